"""
Candidate-vs-reference correctness verifier.

Fast path: a byte-for-byte comparison of the full buffers. Only when that fails
do we pay for an element-wise pass; for moderate sizes (N <= report_limit) the
pass also writes a grid artifact, one text line per matrix row, each cell being
the candidate value followed by `!` (differs) or `=` (matches). Buffers are
column-major, so row y / column x lives at index x*N + y.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

import numpy as np

from harness.config import REPORT_LIMIT
from verify.tolerances import Tolerances, mismatch_mask


@dataclass
class ComparisonResult:
    n: int
    identical: bool
    errors: int
    artifact_path: Optional[Path] = None
    artifact_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.errors == 0

    def summary_lines(self) -> list[str]:
        lines: list[str] = []
        if self.artifact_error is not None:
            lines.append(self.artifact_error)
        lines.append(f"{self.errors} errors")
        return lines

    def to_json_dict(self) -> Dict[str, Any]:
        return {
            "n": int(self.n),
            "identical": bool(self.identical),
            "errors": int(self.errors),
            "artifact_path": str(self.artifact_path) if self.artifact_path is not None else None,
            "artifact_error": self.artifact_error,
        }


def _as_grid(buf: np.ndarray, n: int) -> np.ndarray:
    """(x, y) view of a column-major N*N buffer."""
    return np.asarray(buf, dtype=np.float32).reshape(n, n)


def render_grid(candidate: np.ndarray, mask: np.ndarray, n: int) -> Iterator[str]:
    c = _as_grid(candidate, n)
    bad = np.asarray(mask, dtype=bool).reshape(n, n)
    for y in range(n):
        col_vals = c[:, y]
        col_bad = bad[:, y]
        yield "".join(f"{float(v):.0f}{'!' if b else '='}" for v, b in zip(col_vals, col_bad))


def write_grid(path: Union[str, Path], candidate: np.ndarray, mask: np.ndarray, n: int) -> Path:
    p = Path(path)
    with p.open("w", encoding="utf-8") as f:
        for line in render_grid(candidate, mask, n):
            f.write(line)
            f.write("\n")
    return p


def compare_outputs(
    candidate: np.ndarray,
    reference: np.ndarray,
    n: int,
    *,
    artifact_path: Union[str, Path, None] = "data.txt",
    report_limit: int = REPORT_LIMIT,
    tolerances: Optional[Tolerances] = None,
) -> ComparisonResult:
    c = np.ascontiguousarray(candidate, dtype=np.float32).reshape(-1)
    t = np.ascontiguousarray(reference, dtype=np.float32).reshape(-1)
    n = int(n)
    if c.size != n * n or t.size != n * n:
        raise ValueError(f"expected two {n}x{n} buffers, got {c.size} and {t.size} elements")

    if c.tobytes() == t.tobytes():
        return ComparisonResult(n=n, identical=True, errors=0)

    mask = mismatch_mask(c, t, tolerances)
    errors = int(np.count_nonzero(mask))
    result = ComparisonResult(n=n, identical=False, errors=errors)
    if n > int(report_limit) or artifact_path is None:
        return result

    try:
        result.artifact_path = write_grid(artifact_path, c, mask, n)
    except OSError:
        result.artifact_error = f"Cannot open {artifact_path} for writing"
    return result


__all__ = ["ComparisonResult", "render_grid", "write_grid", "compare_outputs"]
