"""
Per-thread diagnostic trace decoding.

Buffer format (written by an instrumented kernel into its last parameter `D`):

  - one record per (block, thread), `P` 32-bit words per record;
  - records are laid out block-row (by) major, then block-column (bx), then
    thread index (tid): record index = (by * grid_dim_x + bx) * threads + tid;
  - each word is stored as raw bits. A field of kind "i32" reads them as a
    signed 32-bit integer, a field of kind "f32" reinterprets the very same
    bits as an IEEE-754 single (no numeric conversion).

Field names and kinds are chosen by the kernel author, so the layout is data:
words beyond the layout are shown as `v<index>` integers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Sequence, Tuple, Union

import numpy as np

from harness.geometry import LaunchGeometry

FieldKind = Literal["i32", "f32"]

_KIND_ALIASES = {"i": "i32", "i32": "i32", "int": "i32", "f": "f32", "f32": "f32", "float": "f32"}


@dataclass(frozen=True)
class TraceField:
    name: str
    kind: FieldKind = "i32"


@dataclass(frozen=True)
class TraceLayout:
    fields: Tuple[TraceField, ...]

    def field_for(self, index: int) -> TraceField:
        if 0 <= index < len(self.fields):
            return self.fields[index]
        return TraceField(f"v{index}", "i32")

    def names(self) -> List[str]:
        return [f.name for f in self.fields]


# Instrumentation fields of the reference sgemm_kernel_128 debug build.
DEFAULT_LAYOUT = TraceLayout(
    tuple(TraceField(n) for n in ("t0", "end", "k", "tid2", "tid15", "ldx", "t2", "t4"))
)


def parse_layout(spec: Union[str, Sequence[str]]) -> TraceLayout:
    """Parse `"t0:i32,end,c:f32"` (kind defaults to i32)."""
    items = spec.split(",") if isinstance(spec, str) else list(spec)
    fields: List[TraceField] = []
    for raw in items:
        s = str(raw).strip()
        if not s:
            continue
        name, _, kind = s.partition(":")
        name = name.strip()
        kind_s = kind.strip().lower() or "i32"
        if not name:
            raise ValueError(f"empty trace field name in {spec!r}")
        if kind_s not in _KIND_ALIASES:
            raise ValueError(f"unknown trace field kind {kind!r} for {name!r} (use i32 or f32)")
        fields.append(TraceField(name, _KIND_ALIASES[kind_s]))  # type: ignore[arg-type]
    if not fields:
        raise ValueError("trace layout must name at least one field")
    return TraceLayout(tuple(fields))


@dataclass(frozen=True)
class TraceRecord:
    by: int
    bx: int
    tid: int
    values: Tuple[Tuple[str, FieldKind, Union[int, float]], ...]

    def as_dict(self) -> Dict[str, Union[int, float]]:
        return {name: value for name, _kind, value in self.values}


def decode_trace(
    raw: np.ndarray,
    geometry: LaunchGeometry,
    fields_per_thread: int,
    layout: TraceLayout = DEFAULT_LAYOUT,
) -> List[TraceRecord]:
    p = int(fields_per_thread)
    if p <= 0:
        return []
    words = np.asarray(raw).reshape(-1)
    if words.dtype.itemsize != 4:
        raise ValueError(f"trace buffer must hold 32-bit words, got dtype {words.dtype}")
    expected = geometry.thread_count * p
    if words.size != expected:
        raise ValueError(f"trace buffer has {words.size} words, expected {expected} ({geometry.thread_count} threads x {p})")
    # Views only: the captured buffer is never modified.
    as_int = words.view(np.int32).reshape(geometry.grid_dim_y, geometry.grid_dim_x, geometry.threads_per_block, p)
    as_float = words.view(np.float32).reshape(as_int.shape)
    kinds = [layout.field_for(i) for i in range(p)]

    out: List[TraceRecord] = []
    for by in range(geometry.grid_dim_y):
        for bx in range(geometry.grid_dim_x):
            for tid in range(geometry.threads_per_block):
                vals = []
                for i, f in enumerate(kinds):
                    if f.kind == "f32":
                        vals.append((f.name, f.kind, float(as_float[by, bx, tid, i])))
                    else:
                        vals.append((f.name, f.kind, int(as_int[by, bx, tid, i])))
                out.append(TraceRecord(by=by, bx=bx, tid=tid, values=tuple(vals)))
    return out


def format_record(rec: TraceRecord) -> str:
    cells = [f"by: {rec.by:3d}", f"bx: {rec.bx:3d}", f"tid:{rec.tid:3d}"]
    for name, kind, value in rec.values:
        if kind == "f32":
            cells.append(f"{name}:{value:.2f}")
        else:
            cells.append(f"{name}:{value:5d}")
    return ", ".join(cells)


def format_trace_table(records: Iterable[TraceRecord]) -> List[str]:
    return [format_record(r) for r in records]


__all__ = [
    "FieldKind",
    "TraceField",
    "TraceLayout",
    "DEFAULT_LAYOUT",
    "parse_layout",
    "TraceRecord",
    "decode_trace",
    "format_record",
    "format_trace_table",
]
