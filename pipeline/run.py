"""
Benchmark orchestration.

`BenchmarkSession` owns the device context, the reference BLAS handle, the
timer and the workspace for one run. Resources are registered on an ExitStack
as they are acquired, so every exit path (including a fatal HarnessError)
releases them in reverse order: workspace buffers, then the BLAS handle, then
the device context. Comparison happens only after everything is released.
"""

from __future__ import annotations

import json
import sys
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np

from harness.config import HarnessConfig
from harness.errors import NoDeviceError, OracleError, checked
from harness.geometry import KernelVariant, variant_for
from harness.oracle import ReferenceOracle
from harness.throughput import ThroughputReport
from harness.timing import TimedRun, run_candidate
from harness.trace import DEFAULT_LAYOUT, TraceLayout, decode_trace, format_trace_table, parse_layout
from harness.workspace import Workspace
from pipeline import registry
from pipeline.interfaces import Device, DeviceInfo
from verify.compare import ComparisonResult, compare_outputs
from verify.tolerances import tolerances_from_args

MIN_COMPUTE_MAJOR = 5
REFERENCE_LABEL = "Cublas"


def _log(msg: str) -> None:
    print(str(msg), file=sys.stderr, flush=True)


def select_device(infos: Sequence[DeviceInfo], *, min_major: int = MIN_COMPUTE_MAJOR) -> DeviceInfo:
    """First enumerated device with compute capability major >= `min_major`."""
    for info in infos:
        if int(info.major) >= int(min_major):
            return info
    raise NoDeviceError(min_major)


def artifact_path_for(base: str, variant: KernelVariant, multi: bool) -> str:
    if not multi:
        return base
    p = Path(base)
    return str(p.with_name(f"{p.stem}.{variant.tile_width}{p.suffix}"))


@dataclass
class VariantResult:
    run: TimedRun
    report: ThroughputReport
    trace_lines: List[str] = field(default_factory=list)
    comparison: Optional[ComparisonResult] = None

    def to_json_dict(self) -> Dict[str, Any]:
        out = self.report.to_json_dict()
        out.update(
            {
                "entry_point": self.run.variant.entry_point,
                "grid": list(self.run.geometry.grid),
                "block": list(self.run.geometry.block),
                "launches": int(self.run.launches),
                "windows": int(self.run.windows),
                "trace_records": len(self.trace_lines),
            }
        )
        if self.comparison is not None:
            out["comparison"] = self.comparison.to_json_dict()
        return out


@dataclass
class SessionResult:
    config: HarnessConfig
    device: DeviceInfo
    artifact: str
    warmup_calls: int
    variants: List[VariantResult]
    reference: Optional[ThroughputReport] = None
    released: List[str] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return sum(v.comparison.errors for v in self.variants if v.comparison is not None)

    def to_json_dict(self) -> Dict[str, Any]:
        tol = tolerances_from_args(self.config.atol, self.config.rtol)
        return {
            "kind": "sgemm_bench",
            "n": int(self.config.n),
            "repeat": int(self.config.repeat),
            "device": {
                "backend": self.config.device,
                "ordinal": int(self.device.ordinal),
                "name": self.device.name,
                "capability": self.device.capability,
            },
            "artifact": self.artifact,
            "seed": int(self.config.seed),
            "warmup_calls": int(self.warmup_calls),
            "tolerances": tol.to_dict() if tol is not None else None,
            "results": [v.to_json_dict() for v in self.variants],
            "reference": self.reference.to_json_dict() if self.reference is not None else None,
            "errors": int(self.errors),
            "ok": bool(self.errors == 0),
        }


class BenchmarkSession:
    def __init__(
        self,
        config: HarnessConfig,
        *,
        device: Optional[Device] = None,
        environ: Optional[Mapping[str, str]] = None,
        emit: Callable[[str], None] = print,
    ) -> None:
        self.config = config
        self.device = device if device is not None else registry.get(config.device)()
        self.environ = environ
        self.emit = emit
        self.variants = [variant_for(v) for v in config.variants]
        if not self.variants:
            raise ValueError("at least one kernel variant is required")
        self.artifact = str(config.artifact or getattr(self.device, "default_artifact", ""))
        if not self.artifact:
            raise ValueError(f"no kernel artifact given for device {config.device!r}")
        self.released: List[str] = []

    def _layout_for(self, run: TimedRun) -> TraceLayout:
        if self.config.trace_layout:
            return parse_layout(self.config.trace_layout)
        if run.trace_layout:
            return parse_layout(run.trace_layout)
        return DEFAULT_LAYOUT

    def _open_device(self) -> DeviceInfo:
        with checked("enumerate devices"):
            infos = list(self.device.enumerate())
        info = select_device(infos)
        with checked(f"create context on device {info.ordinal}"):
            self.device.open(info)
        return info

    def _close_device(self) -> None:
        with checked("destroy context"):
            self.device.close()
        self.released.append("device context")

    def _close_blas(self, blas) -> None:
        with checked("destroy BLAS handle", error=OracleError):
            blas.close()
        self.released.append("BLAS handle")

    def _release_workspace(self, ws: Workspace) -> None:
        self.released.extend(ws.release())

    def run(self) -> SessionResult:
        cfg = self.config
        results: List[VariantResult] = []
        snapshots: List[np.ndarray] = []
        reference: Optional[ThroughputReport] = None

        with ExitStack() as stack:
            info = self._open_device()
            stack.callback(self._close_device)
            if cfg.verbose:
                _log(info.describe())

            with checked("create timer"):
                timer = self.device.create_timer()
            with checked("create BLAS handle", error=OracleError):
                blas = self.device.open_blas()
            stack.callback(self._close_blas, blas)

            ws = Workspace.allocate(self.device, cfg.n, seed=cfg.seed)
            stack.callback(self._release_workspace, ws)

            oracle = ReferenceOracle(blas)
            warmup_calls = oracle.warm_up(ws, environ=self.environ)
            if cfg.verbose:
                _log(f"N={cfg.n} repeat={cfg.repeat} seed={cfg.seed} warm-up calls={warmup_calls}")

            for i, variant in enumerate(self.variants):
                if i:
                    ws.reset_candidate()
                run = run_candidate(
                    self.device,
                    ws,
                    variant,
                    artifact=self.artifact,
                    timer=timer,
                    repeat=cfg.repeat,
                    trace_fields=cfg.trace_fields,
                )
                trace_lines: List[str] = []
                if run.trace is not None:
                    records = decode_trace(run.trace, run.geometry, run.trace_fields, self._layout_for(run))
                    trace_lines = format_trace_table(records)
                    for line in trace_lines:
                        self.emit(line)
                report = ThroughputReport(variant.label, cfg.n, run.elapsed_ms, cfg.repeat)
                self.emit(report.format())
                results.append(VariantResult(run=run, report=report, trace_lines=trace_lines))
                snapshots.append(ws.fetch_candidate())

            if cfg.bench_reference:
                ms = oracle.benchmark(ws, timer, repeat=1)
                reference = ThroughputReport(REFERENCE_LABEL, cfg.n, ms, 1)
                self.emit(reference.format())

            oracle.compute(ws)
            _c, truth = ws.fetch_outputs()

        tol = tolerances_from_args(cfg.atol, cfg.rtol)
        multi = len(results) > 1
        for vr, candidate in zip(results, snapshots):
            vr.comparison = compare_outputs(
                candidate,
                truth,
                cfg.n,
                artifact_path=artifact_path_for(cfg.data_path, vr.run.variant, multi),
                report_limit=cfg.report_limit,
                tolerances=tol,
            )
            for line in vr.comparison.summary_lines():
                self.emit(line)

        result = SessionResult(
            config=cfg,
            device=info,
            artifact=self.artifact,
            warmup_calls=warmup_calls,
            variants=results,
            reference=reference,
            released=list(self.released),
        )
        if cfg.json_out:
            out_path = Path(cfg.json_out)
            out_path.write_text(json.dumps(result.to_json_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        return result


def run_benchmark(
    config: HarnessConfig,
    *,
    device: Optional[Device] = None,
    environ: Optional[Mapping[str, str]] = None,
    emit: Callable[[str], None] = print,
) -> SessionResult:
    return BenchmarkSession(config, device=device, environ=environ, emit=emit).run()


__all__ = [
    "MIN_COMPUTE_MAJOR",
    "REFERENCE_LABEL",
    "select_device",
    "artifact_path_for",
    "VariantResult",
    "SessionResult",
    "BenchmarkSession",
    "run_benchmark",
]
