"""
Kernel launch & timing engine.

The requested repeat count is issued in timing windows of at most
`MAX_LAUNCHES_PER_WINDOW` launches. Each window is bracketed by device markers
and synchronized before the next one, so a long launch queue never stalls the
host (or trips the display watchdog) while the measured time stays device-side.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from harness.errors import checked
from harness.geometry import KernelVariant, LaunchGeometry, compute_geometry
from harness.workspace import Workspace
from pipeline.interfaces import Device, LaunchBuffers, Timer

MAX_LAUNCHES_PER_WINDOW = 2

TEXTURE_A = "texA"
TEXTURE_B = "texB"


def chunk_schedule(repeat: int, max_per_window: int = MAX_LAUNCHES_PER_WINDOW) -> List[int]:
    """Launch counts per timing window; sums to `repeat`, each <= `max_per_window`."""
    remaining = int(repeat)
    per = int(max_per_window)
    if remaining < 1:
        raise ValueError(f"repeat must be >= 1, got {repeat}")
    if per < 1:
        raise ValueError(f"max_per_window must be >= 1, got {max_per_window}")
    out: List[int] = []
    while remaining > 0:
        r = per if remaining > per else remaining
        out.append(r)
        remaining -= r
    return out


@dataclass
class TimingAccumulator:
    total_ms: float = 0.0
    launches: int = 0
    windows: int = 0

    def add(self, elapsed_ms: float, count: int) -> None:
        self.total_ms += float(elapsed_ms)
        self.launches += int(count)
        self.windows += 1


@dataclass
class TimedRun:
    variant: KernelVariant
    geometry: LaunchGeometry
    n: int
    repeat: int
    elapsed_ms: float
    launches: int
    windows: int
    trace: Optional[np.ndarray] = None
    trace_fields: int = 0
    trace_layout: Optional[str] = None


def run_candidate(
    device: Device,
    workspace: Workspace,
    variant: KernelVariant,
    *,
    artifact: str,
    timer: Timer,
    repeat: int = 1,
    trace_fields: int = 0,
    alpha: float = 1.0,
) -> TimedRun:
    n = workspace.n
    geometry = compute_geometry(variant, n)
    schedule = chunk_schedule(repeat)

    trace_buf = None
    trace_words = 0
    if trace_fields > 0:
        trace_words = geometry.thread_count * int(trace_fields)
        with checked("alloc+zero trace buffer"):
            trace_buf = device.zeros(trace_words, np.int32)

    buffers = LaunchBuffers(c=workspace.dev_c, n=n, alpha=float(alpha), trace=trace_buf)
    acc = TimingAccumulator()
    trace_host = None
    try:
        with checked(f"load {artifact}"):
            backend = device.load_kernels(
                artifact,
                textures={TEXTURE_A: workspace.dev_a, TEXTURE_B: workspace.dev_b},
                nbytes=workspace.size_bytes,
                timer=timer,
            )
        layout_spec = getattr(backend, "trace_layout", None)
        try:
            for count in schedule:
                with checked(f"launch {variant.entry_point}"):
                    ms = backend.launch(variant, buffers, geometry, count=count)
                acc.add(ms, count)
        finally:
            with checked(f"unload {artifact}"):
                backend.close()

        if trace_buf is not None:
            with checked("download trace buffer"):
                trace_host = np.asarray(device.download(trace_buf), dtype=np.int32).reshape(-1)
    finally:
        if trace_buf is not None:
            with checked("free trace buffer"):
                device.free(trace_buf)

    return TimedRun(
        variant=variant,
        geometry=geometry,
        n=n,
        repeat=int(repeat),
        elapsed_ms=acc.total_ms,
        launches=acc.launches,
        windows=acc.windows,
        trace=trace_host,
        trace_fields=int(trace_fields),
        trace_layout=layout_spec,
    )


__all__ = [
    "MAX_LAUNCHES_PER_WINDOW",
    "TEXTURE_A",
    "TEXTURE_B",
    "chunk_schedule",
    "TimingAccumulator",
    "TimedRun",
    "run_candidate",
]
