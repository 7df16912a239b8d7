"""
Device abstraction shared by harness/backends/pipeline.

Keep this module dependency-light (no torch/cupy) so the harness core can be
imported and tested without a GPU. Device buffers are opaque objects owned by
the device that created them; the harness only passes them back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Protocol

import numpy as np

if TYPE_CHECKING:
    from harness.geometry import KernelVariant, LaunchGeometry


@dataclass(frozen=True)
class DeviceInfo:
    ordinal: int
    name: str
    major: int
    minor: int

    @property
    def capability(self) -> str:
        return f"{self.major}.{self.minor}"

    def describe(self) -> str:
        return f"Using: Id:{self.ordinal} {self.name} ({self.capability})"


@dataclass
class LaunchBuffers:
    """
    Kernel parameters, in the order of the SGEMM kernel ABI:
    `C, N, N, N, N, N, N, alpha, D` (D is the optional trace buffer).
    """

    c: Any
    n: int
    alpha: float = 1.0
    trace: Optional[Any] = None


class Timer(Protocol):
    """A start/stop marker pair on the device timeline."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def elapsed_ms(self) -> float:
        """Wait for the stop marker, then return stop - start in milliseconds."""
        ...


class ComputeBackend(Protocol):
    """
    A loaded candidate kernel artifact with its inputs bound.

    `launch` issues `count` back-to-back launches inside one timing window and
    returns the window's elapsed device time in milliseconds.
    """

    name: str

    def launch(self, variant: KernelVariant, buffers: LaunchBuffers, geometry: LaunchGeometry, *, count: int = 1) -> float: ...

    def close(self) -> None: ...


class BlasHandle(Protocol):
    """Reference matmul library handle (column-major BLAS semantics)."""

    def sgemm(
        self,
        transa: str,
        transb: str,
        m: int,
        n: int,
        k: int,
        alpha: float,
        a: Any,
        lda: int,
        b: Any,
        ldb: int,
        beta: float,
        c: Any,
        ldc: int,
    ) -> None: ...

    def close(self) -> None: ...


class Device(Protocol):
    name: str

    def enumerate(self) -> List[DeviceInfo]: ...

    def open(self, info: DeviceInfo) -> None: ...

    def close(self) -> None: ...

    def upload(self, host: np.ndarray) -> Any: ...

    def zeros(self, count: int, dtype: Any = np.float32) -> Any: ...

    def download(self, buf: Any) -> np.ndarray: ...

    def free(self, buf: Any) -> None: ...

    def synchronize(self) -> None: ...

    def create_timer(self) -> Timer: ...

    def open_blas(self) -> BlasHandle: ...

    def load_kernels(self, artifact: str, *, textures: Mapping[str, Any], nbytes: int, timer: Timer) -> ComputeBackend: ...


__all__ = [
    "DeviceInfo",
    "LaunchBuffers",
    "Timer",
    "ComputeBackend",
    "BlasHandle",
    "Device",
]
