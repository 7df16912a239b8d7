"""
CUDA device: torch buffers, events and cuBLAS; CuPy loads the cubin artifact.
"""

from pipeline.registry import register

from .runtime import CudaDevice, CudaEventTimer, TorchBlas

register("cuda", CudaDevice)

__all__ = ["CudaDevice", "CudaEventTimer", "TorchBlas"]
