"""
Compiled SGEMM artifact loader (CuPy).

The artifact is a cubin exposing `sgemm_kernel_64` / `sgemm_kernel_128` and two
texture references (`texA`, `texB`) that read A and B as float4 from linear
device memory. Buffers are torch tensors; CuPy sees them zero-copy through the
CUDA array interface and launches on torch's current stream, so the torch
event markers bracket the launches.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping

import numpy as np

from pipeline.interfaces import LaunchBuffers


def _cupy() -> Any:
    import cupy  # noqa: PLC0415

    return cupy


def _torch() -> Any:
    import torch  # noqa: PLC0415

    return torch


def _bind_texture(cp: Any, module: Any, name: str, buf: Any, nbytes: int) -> Any:
    rt = cp.cuda.runtime
    tex = cp.cuda.texture
    texref = module.get_texref(name)
    ch = tex.ChannelFormatDescriptor(32, 32, 32, 32, rt.cudaChannelFormatKindFloat)
    res = tex.ResourceDescriptor(rt.cudaResourceTypeLinear, arr=cp.asarray(buf), chDesc=ch, sizeInBytes=int(nbytes))
    desc = tex.TextureDescriptor(
        addressModes=None,
        filterMode=rt.cudaFilterModePoint,
        readMode=rt.cudaReadModeElementType,
    )
    return tex.TextureReference(texref, res, desc)


class CubinKernels:
    def __init__(self, path: str, *, textures: Mapping[str, Any], nbytes: int, timer: Any) -> None:
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"kernel artifact not found: {p}")
        cp = _cupy()
        self.name = p.name
        self.timer = timer
        self._cp = cp
        self._module = cp.RawModule(path=str(p))
        self._functions: Dict[str, Any] = {}
        self._texrefs: List[Any] = [
            _bind_texture(cp, self._module, tex, buf, nbytes) for tex, buf in textures.items()
        ]

    def _function(self, entry: str) -> Any:
        if entry not in self._functions:
            self._functions[entry] = self._module.get_function(entry)
        return self._functions[entry]

    def launch(self, variant, buffers: LaunchBuffers, geometry, *, count: int = 1) -> float:
        if self._module is None:
            raise RuntimeError("module already unloaded")
        cp = self._cp
        torch = _torch()
        fn = self._function(variant.entry_point)
        n = np.int32(buffers.n)
        trace = cp.asarray(buffers.trace) if buffers.trace is not None else np.uint64(0)
        args = (cp.asarray(buffers.c), n, n, n, n, n, n, np.float32(buffers.alpha), trace)
        stream = cp.cuda.ExternalStream(torch.cuda.current_stream().cuda_stream)
        with stream:
            self.timer.start()
            for _ in range(int(count)):
                fn(geometry.grid, geometry.block, args)
            self.timer.stop()
        return self.timer.elapsed_ms()

    def close(self) -> None:
        self._texrefs = []
        self._functions = {}
        self._module = None


__all__ = ["CubinKernels"]
