"""
Throughput reporting: dense SGEMM performs 2*N^3 flops (N multiplies and N adds
per output element).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


def sgemm_flops(n: int) -> float:
    n = float(n)
    return n * n * n * 2.0


def gflops(n: int, elapsed_ms: float, repeat: int = 1) -> float:
    ms = float(elapsed_ms) / float(repeat)
    if ms <= 0.0:
        return float("inf")
    # flops / (ms * 1e-3) / 1e9 == flops / (ms * 1e6)
    return sgemm_flops(n) / (ms * 1000000.0)


@dataclass(frozen=True)
class ThroughputReport:
    label: str
    n: int
    elapsed_ms: float
    repeat: int

    @property
    def avg_ms(self) -> float:
        return float(self.elapsed_ms) / float(self.repeat)

    @property
    def gflops(self) -> float:
        return gflops(self.n, self.elapsed_ms, self.repeat)

    def format(self) -> str:
        return f"{self.label} GFLOPS: {self.gflops:.2f} (size: {self.n}, iterations: {self.repeat})"

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label.strip(),
            "n": int(self.n),
            "repeat": int(self.repeat),
            "elapsed_ms": float(self.elapsed_ms),
            "avg_ms": float(self.avg_ms),
            "gflops": float(self.gflops),
        }


__all__ = ["sgemm_flops", "gflops", "ThroughputReport"]
