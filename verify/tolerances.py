"""
Comparison tolerances for candidate-vs-reference verification.

The default policy is EXACT: the candidate kernel is expected to be bit-exact
with the reference under identical inputs and operation order, so any
deviation is a kernel bug. A kernel that changes its reduction order (e.g. a
different tiling) can legitimately drift; for those runs an explicit
(atol, rtol) pair may be supplied on the command line.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np


@dataclass(frozen=True)
class Tolerances:
    atol: float
    rtol: float

    def to_dict(self) -> Dict[str, float]:
        return {"atol": float(self.atol), "rtol": float(self.rtol)}

    @property
    def exact(self) -> bool:
        return self.atol == 0.0 and self.rtol == 0.0


EXACT = Tolerances(0.0, 0.0)


def tolerances_from_args(atol: Optional[float], rtol: Optional[float]) -> Optional[Tolerances]:
    """None (exact policy) unless at least one bound was given."""
    if atol is None and rtol is None:
        return None
    a = max(0.0, float(atol or 0.0))
    r = max(0.0, float(rtol or 0.0))
    return Tolerances(a, r)


def mismatch_mask(candidate: np.ndarray, reference: np.ndarray, tol: Optional[Tolerances] = None) -> np.ndarray:
    """
    Element-wise "differs" mask.

    Exact policy uses float `!=` (NaN differs from everything, -0.0 equals 0.0).
    With tolerances, a cell differs iff |c - t| > atol + rtol*|t| or either side is NaN.
    """
    c = np.asarray(candidate, dtype=np.float32)
    t = np.asarray(reference, dtype=np.float32)
    if tol is None or tol.exact:
        return c != t
    c64 = c.astype(np.float64)
    t64 = t.astype(np.float64)
    with np.errstate(invalid="ignore"):
        bad = np.abs(c64 - t64) > (float(tol.atol) + float(tol.rtol) * np.abs(t64))
    bad |= np.isnan(c64) | np.isnan(t64)
    # inf == inf is a match; inf - inf is NaN above.
    same_inf = np.isinf(c64) & (c64 == t64)
    return bad & ~same_inf


__all__ = ["Tolerances", "EXACT", "tolerances_from_args", "mismatch_mask"]
