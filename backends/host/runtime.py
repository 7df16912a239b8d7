"""
Host simulation runtime.

Device buffers are private numpy copies tracked by the device, so a double free
or a use-after-free fails the same way a driver call would. Reference SGEMM and
the bundled kernels accumulate rank-1 updates in a fixed k order in float32,
which makes a correct simulated kernel bit-exact with the reference.
"""

from __future__ import annotations

import importlib
import importlib.util
import time
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from pipeline.interfaces import DeviceInfo, LaunchBuffers

DEFAULT_ARTIFACT = "backends.host.kernels"
DEFAULT_CAPABILITIES: Tuple[Tuple[int, int], ...] = ((5, 2),)


class HostTimer:
    def __init__(self) -> None:
        self._t0: Optional[float] = None
        self._t1: Optional[float] = None

    def start(self) -> None:
        self._t0 = time.perf_counter()
        self._t1 = None

    def stop(self) -> None:
        self._t1 = time.perf_counter()

    def elapsed_ms(self) -> float:
        if self._t0 is None or self._t1 is None:
            raise RuntimeError("timer markers not recorded")
        return (self._t1 - self._t0) * 1000.0


def _colmajor(buf: np.ndarray, rows: int, cols: int, ld: int) -> np.ndarray:
    """(rows x cols) view with M[i, j] == buf[j*ld + i]."""
    flat = buf.reshape(-1)
    if ld < rows or flat.size < cols * ld:
        raise ValueError(f"buffer of {flat.size} elements too small for {rows}x{cols} (ld={ld})")
    return flat[: cols * ld].reshape(cols, ld)[:, :rows].T


def _op(mat: np.ndarray, trans: str) -> np.ndarray:
    t = str(trans).upper()
    if t == "N":
        return mat
    if t in ("T", "C"):
        return mat.T
    raise ValueError(f"invalid transpose flag: {trans!r}")


def rank1_matmul(op_a: np.ndarray, op_b: np.ndarray) -> np.ndarray:
    """float32 product accumulated one k at a time (fixed summation order)."""
    m, k = op_a.shape
    acc = np.zeros((m, op_b.shape[1]), dtype=np.float32)
    for p in range(k):
        acc += np.outer(op_a[:, p], op_b[p, :])
    return acc


class HostBlas:
    def __init__(self, device: "HostDevice") -> None:
        self._device = device
        self.closed = False
        self.calls = 0

    def sgemm(self, transa, transb, m, n, k, alpha, a, lda, b, ldb, beta, c, ldc) -> None:
        if self.closed:
            raise RuntimeError("BLAS handle already destroyed")
        for buf in (a, b, c):
            self._device.check_live(buf)
        ta = str(transa).upper()
        tb = str(transb).upper()
        a_rows, a_cols = (m, k) if ta == "N" else (k, m)
        b_rows, b_cols = (k, n) if tb == "N" else (n, k)
        op_a = _op(_colmajor(a, a_rows, a_cols, int(lda)), ta)
        op_b = _op(_colmajor(b, b_rows, b_cols, int(ldb)), tb)
        out = _colmajor(c, m, n, int(ldc))
        acc = rank1_matmul(op_a, op_b)
        if float(alpha) != 1.0:
            acc *= np.float32(alpha)
        # beta == 0 never reads C (it may hold NaNs).
        if float(beta) == 0.0:
            out[...] = acc
        else:
            out[...] = acc + np.float32(beta) * out
        self.calls += 1

    def close(self) -> None:
        self.closed = True


@dataclass(frozen=True)
class HostBlock:
    """What a simulated kernel sees for one block: its index and bound textures."""

    bx: int
    by: int
    block_dim: int
    grid_dim: Tuple[int, int]
    textures: Mapping[str, np.ndarray]


HostKernel = Callable[[HostBlock, Tuple[Any, ...]], None]


def load_kernel_module(artifact: str) -> ModuleType:
    """Import a kernel artifact given either a dotted module name or a `.py` path."""
    s = str(artifact)
    if s.endswith(".py"):
        path = Path(s)
        if not path.is_file():
            raise FileNotFoundError(f"kernel artifact not found: {path}")
        spec = importlib.util.spec_from_file_location(f"_host_kernels_{path.stem}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load kernel artifact: {path}")
        mod = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(mod)
        return mod
    return importlib.import_module(s)


class HostKernels:
    """A loaded simulated artifact with its texture references bound."""

    def __init__(self, device: "HostDevice", module: ModuleType, *, textures: Mapping[str, Any], nbytes: int, timer: HostTimer) -> None:
        self._device = device
        self.module = module
        self.name = getattr(module, "__name__", "host-kernels")
        self.timer = timer
        self.closed = False
        self.trace_layout: Optional[str] = getattr(module, "TRACE_LAYOUT", None)
        self.textures: Dict[str, np.ndarray] = {}
        for tex in getattr(module, "TEXTURES", ()):
            if tex not in textures:
                raise KeyError(f"texture reference {tex!r} not bound")
            buf = device.check_live(textures[tex])
            if buf.nbytes < int(nbytes):
                raise ValueError(f"texture {tex!r} bound to {buf.nbytes} bytes, need {nbytes}")
            view = buf.reshape(-1)[: int(nbytes) // buf.itemsize].view()
            view.setflags(write=False)
            self.textures[tex] = view

    def entry(self, name: str) -> HostKernel:
        fn = getattr(self.module, name, None)
        if not callable(fn):
            raise AttributeError(f"entry point {name!r} not found in {self.name}")
        return fn

    def launch(self, variant, buffers: LaunchBuffers, geometry, *, count: int = 1) -> float:
        if self.closed:
            raise RuntimeError("module already unloaded")
        fn = self.entry(variant.entry_point)
        c = self._device.check_live(buffers.c)
        trace = self._device.check_live(buffers.trace) if buffers.trace is not None else None
        n = int(buffers.n)
        params = (c, n, n, n, n, n, n, np.float32(buffers.alpha), trace)
        grid = (geometry.grid_dim_x, geometry.grid_dim_y)
        self.timer.start()
        for _ in range(int(count)):
            for by in range(geometry.grid_dim_y):
                for bx in range(geometry.grid_dim_x):
                    fn(HostBlock(bx, by, geometry.threads_per_block, grid, self.textures), params)
        self.timer.stop()
        return self.timer.elapsed_ms()

    def close(self) -> None:
        self.textures = {}
        self.closed = True


class HostDevice:
    name = "host"
    default_artifact = DEFAULT_ARTIFACT

    def __init__(self, capabilities: Sequence[Tuple[int, int]] = DEFAULT_CAPABILITIES) -> None:
        self.capabilities = tuple((int(a), int(b)) for a, b in capabilities)
        self.info: Optional[DeviceInfo] = None
        self._live: Dict[int, np.ndarray] = {}
        self.freed = 0

    def enumerate(self) -> List[DeviceInfo]:
        return [DeviceInfo(i, "Host simulation (numpy)", major, minor) for i, (major, minor) in enumerate(self.capabilities)]

    def open(self, info: DeviceInfo) -> None:
        self.info = info

    def close(self) -> None:
        self.info = None

    def _require_open(self) -> None:
        if self.info is None:
            raise RuntimeError("no device context")

    def check_live(self, buf: Any) -> np.ndarray:
        self._require_open()
        if not isinstance(buf, np.ndarray) or self._live.get(id(buf)) is not buf:
            raise ValueError("invalid device pointer")
        return buf

    @property
    def live_buffers(self) -> int:
        return len(self._live)

    def _track(self, arr: np.ndarray) -> np.ndarray:
        self._live[id(arr)] = arr
        return arr

    def upload(self, host: np.ndarray) -> np.ndarray:
        self._require_open()
        return self._track(np.array(host, copy=True).reshape(-1))

    def zeros(self, count: int, dtype: Any = np.float32) -> np.ndarray:
        self._require_open()
        return self._track(np.zeros(int(count), dtype=dtype))

    def download(self, buf: Any) -> np.ndarray:
        return self.check_live(buf).copy()

    def free(self, buf: Any) -> None:
        self.check_live(buf)
        del self._live[id(buf)]
        self.freed += 1

    def synchronize(self) -> None:
        self._require_open()

    def create_timer(self) -> HostTimer:
        self._require_open()
        return HostTimer()

    def open_blas(self) -> HostBlas:
        self._require_open()
        return HostBlas(self)

    def load_kernels(self, artifact: str, *, textures: Mapping[str, Any], nbytes: int, timer: HostTimer) -> HostKernels:
        self._require_open()
        return HostKernels(self, load_kernel_module(artifact), textures=textures, nbytes=nbytes, timer=timer)


__all__ = [
    "DEFAULT_ARTIFACT",
    "HostTimer",
    "HostBlas",
    "HostBlock",
    "HostKernel",
    "HostKernels",
    "HostDevice",
    "load_kernel_module",
    "rank1_matmul",
]
