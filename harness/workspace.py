"""
Host/device staging for one SGEMM problem.

Two seeded inputs (A, B) are uploaded once; two zeroed outputs receive the
candidate result (C) and the reference result (T). All four buffers are N*N
float32, column-major by convention.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import numpy as np

from harness.errors import DeviceError, checked
from pipeline.interfaces import Device


def seed_inputs(n: int, rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray]:
    """Independent uniform [0, 1) float32 inputs."""
    count = int(n) * int(n)
    a = rng.random(count, dtype=np.float32)
    b = rng.random(count, dtype=np.float32)
    return a, b


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = np.ascontiguousarray(arr, dtype=np.float32).reshape(-1)
    out.setflags(write=False)
    return out


@dataclass
class Workspace:
    device: Device
    n: int
    host_a: np.ndarray
    host_b: np.ndarray
    dev_a: Any = None
    dev_b: Any = None
    dev_c: Any = None
    dev_t: Any = None
    released: bool = False

    @property
    def count(self) -> int:
        return self.n * self.n

    @property
    def size_bytes(self) -> int:
        return self.count * np.dtype(np.float32).itemsize

    @classmethod
    def allocate(cls, device: Device, n: int, *, rng: Optional[np.random.Generator] = None, seed: Optional[int] = None) -> "Workspace":
        if rng is None:
            rng = np.random.default_rng(seed)
        a, b = seed_inputs(n, rng)
        return cls.from_host(device, a, b)

    @classmethod
    def from_host(cls, device: Device, a: np.ndarray, b: np.ndarray) -> "Workspace":
        a = _frozen(a)
        b = _frozen(b)
        n = math.isqrt(int(a.size))
        if n * n != a.size or a.size != b.size or n <= 0:
            raise ValueError(f"inputs must be two square N*N float32 matrices, got sizes {a.size} and {b.size}")
        ws = cls(device=device, n=n, host_a=a, host_b=b)
        try:
            ws._stage()
        except BaseException:
            # Buffers staged before the failure are still live.
            ws.release()
            raise
        return ws

    def _stage(self) -> None:
        with checked("upload A"):
            self.dev_a = self.device.upload(self.host_a)
        with checked("upload B"):
            self.dev_b = self.device.upload(self.host_b)
        with checked("alloc+zero C"):
            self.dev_c = self.device.zeros(self.count, np.float32)
        with checked("alloc+zero T"):
            self.dev_t = self.device.zeros(self.count, np.float32)

    def reset_candidate(self) -> None:
        """Replace C with a fresh zeroed buffer before the next kernel runs."""
        if self.released:
            raise DeviceError("alloc+zero C", status="workspace already released")
        old, self.dev_c = self.dev_c, None
        if old is not None:
            with checked("free C"):
                self.device.free(old)
        with checked("alloc+zero C"):
            self.dev_c = self.device.zeros(self.count, np.float32)

    def fetch_candidate(self) -> np.ndarray:
        if self.released:
            raise DeviceError("download C", status="workspace already released")
        with checked("download C"):
            return np.asarray(self.device.download(self.dev_c), dtype=np.float32).reshape(-1)

    def fetch_outputs(self) -> Tuple[np.ndarray, np.ndarray]:
        if self.released:
            raise DeviceError("download C/T", status="workspace already released")
        with checked("download C"):
            c = np.asarray(self.device.download(self.dev_c), dtype=np.float32).reshape(-1)
        with checked("download T"):
            t = np.asarray(self.device.download(self.dev_t), dtype=np.float32).reshape(-1)
        return c, t

    def release(self) -> List[str]:
        """Free every live device buffer exactly once; returns the names freed."""
        freed: List[str] = []
        if self.released:
            return freed
        self.released = True
        for name in ("dev_a", "dev_b", "dev_c", "dev_t"):
            buf = getattr(self, name)
            if buf is None:
                continue
            setattr(self, name, None)
            with checked(f"free {name[4:].upper()}"):
                self.device.free(buf)
            freed.append(name[4:].upper())
        return freed


__all__ = ["Workspace", "seed_inputs"]
