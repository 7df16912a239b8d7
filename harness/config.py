"""
Run configuration.

Positional arguments follow the classic command line contract (C `atoi` parsing,
each value clamped to a safe range and replaced by its default when absent or
out of range). Options default from `SGEMM_BENCH_*` environment variables.
"""

from __future__ import annotations

import os
import re
import time
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

THREAD64_RANGE = (1, 80)
THREAD64_DEFAULT = 80
REPEAT_RANGE = (1, 1000)
REPEAT_DEFAULT = 1
TRACE_FIELDS_RANGE = (1, 100)
TRACE_FIELDS_DEFAULT = 0

REPORT_LIMIT = 768

_ATOI_RE = re.compile(r"^\s*([+-]?\d+)")


def atoi(raw: Optional[str]) -> int:
    """C `atoi`: leading integer prefix, 0 when there is none."""
    if raw is None:
        return 0
    m = _ATOI_RE.match(str(raw))
    if not m:
        return 0
    return int(m.group(1))


def clamp_arg(raw: Optional[str], bounds: Tuple[int, int], default: int) -> int:
    if raw is None:
        return default
    v = atoi(raw)
    lo, hi = bounds
    if v < lo or v > hi:
        return default
    return v


def _env_int(environ: Mapping[str, str], key: str) -> Optional[int]:
    raw = environ.get(key)
    if raw is None or not str(raw).strip():
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def default_seed() -> int:
    return int(time.time())


@dataclass(frozen=True)
class HarnessConfig:
    thread64: int = THREAD64_DEFAULT
    repeat: int = REPEAT_DEFAULT
    trace_fields: int = TRACE_FIELDS_DEFAULT
    device: str = "cuda"
    artifact: Optional[str] = None
    variants: Tuple[str, ...] = ("sgemm_kernel_128",)
    data_path: str = "data.txt"
    seed: int = field(default_factory=default_seed)
    bench_reference: bool = False
    trace_layout: Optional[str] = None
    atol: Optional[float] = None
    rtol: Optional[float] = None
    report_limit: int = REPORT_LIMIT
    json_out: Optional[str] = None
    verbose: bool = False

    @property
    def n(self) -> int:
        return self.thread64 * 64

    @classmethod
    def from_args(
        cls,
        thread64: Optional[str] = None,
        repeat: Optional[str] = None,
        trace_fields: Optional[str] = None,
        **options,
    ) -> "HarnessConfig":
        return cls(
            thread64=clamp_arg(thread64, THREAD64_RANGE, THREAD64_DEFAULT),
            repeat=clamp_arg(repeat, REPEAT_RANGE, REPEAT_DEFAULT),
            trace_fields=clamp_arg(trace_fields, TRACE_FIELDS_RANGE, TRACE_FIELDS_DEFAULT),
            **{k: v for k, v in options.items() if v is not None},
        )


def env_defaults(environ: Optional[Mapping[str, str]] = None) -> dict:
    env = os.environ if environ is None else environ
    out: dict = {}
    if env.get("SGEMM_BENCH_DEVICE"):
        out["device"] = str(env["SGEMM_BENCH_DEVICE"]).strip()
    if env.get("SGEMM_BENCH_ARTIFACT"):
        out["artifact"] = str(env["SGEMM_BENCH_ARTIFACT"]).strip()
    if env.get("SGEMM_BENCH_DATA_PATH"):
        out["data_path"] = str(env["SGEMM_BENCH_DATA_PATH"]).strip()
    seed = _env_int(env, "SGEMM_BENCH_SEED")
    if seed is not None:
        out["seed"] = seed
    return out


__all__ = [
    "THREAD64_RANGE",
    "THREAD64_DEFAULT",
    "REPEAT_RANGE",
    "REPEAT_DEFAULT",
    "TRACE_FIELDS_RANGE",
    "TRACE_FIELDS_DEFAULT",
    "REPORT_LIMIT",
    "atoi",
    "clamp_arg",
    "default_seed",
    "HarnessConfig",
    "env_defaults",
]
