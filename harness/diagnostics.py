"""
Console diagnostics for fatal harness failures.

This is intentionally lightweight (no color dependencies) but supports:
  - structured diagnostics with the failing operation as location
  - notes about which resources were released
  - rich multi-line formatting (Clang-like)
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Iterable, List, Literal, Optional

from harness.errors import HarnessError, NoDeviceError


Level = Literal["error", "warning", "info"]


@dataclass(frozen=True)
class CallSite:
    operation: Optional[str] = None
    location: Optional[str] = None


@dataclass
class Diagnostic:
    level: Level
    message: str
    site: Optional[CallSite] = None
    suggestions: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)


class DiagnosticEngine:
    def format_rich(self, diag: Diagnostic) -> str:
        lines: List[str] = [f"{diag.level.upper()}: {diag.message}"]
        if diag.site is not None and (diag.site.operation or diag.site.location):
            where = f" ({diag.site.location})" if diag.site.location else ""
            lines.append(f"  -> {diag.site.operation or '?'}{where}")
        for n in diag.notes:
            lines.append(f"Note: {n}")
        for s in diag.suggestions:
            lines.append(f"Hint: {s}")
        return "\n".join(lines)


def diagnostic_from_error(err: HarnessError, *, released: Iterable[str] = ()) -> Diagnostic:
    if isinstance(err, NoDeviceError):
        return Diagnostic(
            "error",
            str(err),
            suggestions=["run `python scripts/check_env.py`, or pass `--device host` for a simulated run"],
        )
    diag = Diagnostic("error", str(err), site=CallSite(operation=err.operation, location=err.location))
    rel = [str(r) for r in released]
    if rel:
        diag.notes.append(f"released before exit: {', '.join(rel)}")
    if isinstance(err.__cause__, ImportError):
        diag.suggestions.append("install the GPU stack: pip install -e '.[gpu]'")
    return diag


def closest_match(name: str, candidates: Iterable[str], *, n: int = 1) -> List[str]:
    return list(difflib.get_close_matches(str(name), list(candidates), n=n, cutoff=0.6))


__all__ = [
    "CallSite",
    "Diagnostic",
    "DiagnosticEngine",
    "diagnostic_from_error",
    "closest_match",
]
