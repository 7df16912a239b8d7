"""
Host simulation device (numpy).

Runs the whole harness without a GPU: buffers are numpy arrays, the reference
BLAS is a fixed-order float32 matmul, and kernel artifacts are Python modules
whose entry points are executed once per block.
"""

from pipeline.registry import register

from .runtime import HostBlas, HostDevice, HostKernels, HostTimer

register("host", HostDevice)

__all__ = ["HostBlas", "HostDevice", "HostKernels", "HostTimer"]
