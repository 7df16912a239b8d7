"""
CUDA device runtime (torch).

Buffers are flat torch tensors on the selected GPU; the reference SGEMM is
torch's cuBLAS-backed matmul with TF32 disabled; timing uses CUDA events on the
current stream.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from pipeline.interfaces import DeviceInfo

DEFAULT_ARTIFACT = "sgemm.cubin"


def _torch() -> Any:
    import torch  # noqa: PLC0415

    return torch


def _torch_dtype(dtype: Any):
    torch = _torch()
    dt = np.dtype(dtype)
    if dt == np.float32:
        return torch.float32
    if dt == np.int32:
        return torch.int32
    raise TypeError(f"unsupported device buffer dtype: {dt}")


class CudaEventTimer:
    def __init__(self) -> None:
        torch = _torch()
        self._start = torch.cuda.Event(enable_timing=True)
        self._stop = torch.cuda.Event(enable_timing=True)

    def start(self) -> None:
        self._start.record()

    def stop(self) -> None:
        self._stop.record()

    def elapsed_ms(self) -> float:
        self._stop.synchronize()
        return float(self._start.elapsed_time(self._stop))


def _rowmajor_t(buf: Any, rows: int, cols: int, ld: int) -> Any:
    """Transpose view (cols x rows) of a column-major rows x cols matrix."""
    if ld < rows or buf.numel() < cols * ld:
        raise ValueError(f"buffer of {buf.numel()} elements too small for {rows}x{cols} (ld={ld})")
    return buf.reshape(-1)[: cols * ld].view(cols, ld)[:, :rows]


class TorchBlas:
    def __init__(self) -> None:
        self.closed = False

    def sgemm(self, transa, transb, m, n, k, alpha, a, lda, b, ldb, beta, c, ldc) -> None:
        torch = _torch()
        if self.closed:
            raise RuntimeError("BLAS handle already destroyed")
        ta = str(transa).upper()
        tb = str(transb).upper()
        a_rows, a_cols = (m, k) if ta == "N" else (k, m)
        b_rows, b_cols = (k, n) if tb == "N" else (n, k)
        at = _rowmajor_t(a, a_rows, a_cols, int(lda))  # A^T
        bt = _rowmajor_t(b, b_rows, b_cols, int(ldb))  # B^T
        ct = _rowmajor_t(c, m, n, int(ldc))  # C^T
        op_a_t = at if ta == "N" else at.t()
        op_b_t = bt if tb == "N" else bt.t()
        # C^T = op(B)^T @ op(A)^T; beta == 0 ignores the old contents of C.
        out = torch.addmm(ct, op_b_t, op_a_t, beta=float(beta), alpha=float(alpha))
        ct.copy_(out)

    def close(self) -> None:
        self.closed = True


class CudaDevice:
    name = "cuda"
    default_artifact = DEFAULT_ARTIFACT

    def __init__(self) -> None:
        self.info: Optional[DeviceInfo] = None
        self._live: Dict[int, Any] = {}

    def enumerate(self) -> List[DeviceInfo]:
        torch = _torch()
        if not torch.cuda.is_available():
            return []
        out: List[DeviceInfo] = []
        for i in range(torch.cuda.device_count()):
            major, minor = torch.cuda.get_device_capability(i)
            out.append(DeviceInfo(i, str(torch.cuda.get_device_name(i)), int(major), int(minor)))
        return out

    def open(self, info: DeviceInfo) -> None:
        torch = _torch()
        torch.cuda.set_device(info.ordinal)
        torch.backends.cuda.matmul.allow_tf32 = False
        torch.cuda.init()
        self.info = info

    def close(self) -> None:
        if self.info is None:
            return
        torch = _torch()
        self._live.clear()
        torch.cuda.synchronize()
        torch.cuda.empty_cache()
        self.info = None

    def _require_open(self) -> DeviceInfo:
        if self.info is None:
            raise RuntimeError("no device context")
        return self.info

    @property
    def _device(self) -> str:
        return f"cuda:{self._require_open().ordinal}"

    def _track(self, t: Any) -> Any:
        self._live[id(t)] = t
        return t

    def upload(self, host: np.ndarray) -> Any:
        torch = _torch()
        arr = np.array(host, copy=True).reshape(-1)
        return self._track(torch.from_numpy(arr).to(self._device))

    def zeros(self, count: int, dtype: Any = np.float32) -> Any:
        torch = _torch()
        return self._track(torch.zeros(int(count), dtype=_torch_dtype(dtype), device=self._device))

    def download(self, buf: Any) -> np.ndarray:
        self._require_open()
        return buf.detach().cpu().numpy().copy()

    def free(self, buf: Any) -> None:
        if self._live.pop(id(buf), None) is None:
            raise ValueError("invalid device pointer")

    def synchronize(self) -> None:
        _torch().cuda.synchronize(self._device)

    def create_timer(self) -> CudaEventTimer:
        self._require_open()
        return CudaEventTimer()

    def open_blas(self) -> TorchBlas:
        self._require_open()
        return TorchBlas()

    def load_kernels(self, artifact: str, *, textures: Mapping[str, Any], nbytes: int, timer: Any):
        from backends.cuda.cubin import CubinKernels  # noqa: PLC0415

        self._require_open()
        return CubinKernels(artifact, textures=textures, nbytes=nbytes, timer=timer)


__all__ = ["DEFAULT_ARTIFACT", "CudaEventTimer", "TorchBlas", "CudaDevice"]
