"""
Fatal error taxonomy for the SGEMM harness.

Every device/driver or reference-library failure is unrecoverable for the
process: the orchestration object releases whatever is live and the CLI exits
non-zero. Correctness mismatches and diagnostic-artifact I/O problems are NOT
errors; they are reported as data by `verify.compare`.
"""

from __future__ import annotations

import traceback
from pathlib import Path
from typing import Optional, Type


class HarnessError(RuntimeError):
    """Base class: names the failing operation, its call site and the status."""

    kind = "Harness"

    def __init__(self, operation: str, *, status: str = "", location: Optional[str] = None) -> None:
        self.operation = str(operation)
        self.status = str(status)
        self.location = location
        super().__init__(self._message())

    def _message(self) -> str:
        where = f" ({self.location})" if self.location else ""
        if self.status:
            return f"{self.kind} Failure{where}: {self.operation} returned {self.status}"
        return f"{self.kind} Failure{where}: {self.operation}"


class DeviceError(HarnessError):
    kind = "Device"


class NoDeviceError(DeviceError):
    def __init__(self, min_major: int = 5) -> None:
        self.min_major = int(min_major)
        super().__init__(f"no compute {self.min_major}.0 device found")

    def _message(self) -> str:
        return f"No compute {self.min_major}.0 device found, exiting."


class OracleError(HarnessError):
    kind = "Reference BLAS"


class checked:
    """
    Convert any library exception raised inside the block into a harness error.

    The location is the line of the failing call inside the `with` body, so the
    message points at the harness code that issued the device operation.
    """

    def __init__(self, operation: str, *, error: Type[HarnessError] = DeviceError) -> None:
        self.operation = str(operation)
        self.error = error

    def __enter__(self) -> "checked":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None or isinstance(exc, HarnessError) or not isinstance(exc, Exception):
            return False
        location = None
        frames = traceback.extract_tb(tb, limit=1)
        if frames:
            location = f"line {frames[0].lineno} of file {Path(frames[0].filename).name}"
        raise self.error(self.operation, status=f"{type(exc).__name__}: {exc}", location=location) from exc


__all__ = ["HarnessError", "DeviceError", "NoDeviceError", "OracleError", "checked"]
