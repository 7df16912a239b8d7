"""
Simulated tiled SGEMM kernels for the host device.

Same ABI as the compiled artifact: `(C, N, N, N, N, N, N, alpha, D)` with A and
B read through the `texA` / `texB` texture references. Each block owns one
`width x width` tile of C; ragged edge tiles are clipped to N.

Computes C = alpha * A * B^T (column-major), summing over k in ascending order.
"""

from __future__ import annotations

from typing import Any, Tuple

import numpy as np

TEXTURES = ("texA", "texB")

# Per-thread trace words written when D is non-null.
TRACE_LAYOUT = "tid,bx,by,row0,col0,rows,cols,c0:f32"


def _write_trace(block, trace: np.ndarray, tile: np.ndarray, row0: int, col0: int) -> None:
    gx, gy = block.grid_dim
    threads = block.block_dim
    p = trace.size // (gx * gy * threads)
    if p <= 0:
        return
    rec = trace.reshape(gy, gx, threads, p)[block.by, block.bx]
    rows, cols = tile.shape
    words = np.zeros((threads, 8), dtype=np.int32)
    words[:, 0] = np.arange(threads, dtype=np.int32)
    words[:, 1] = block.bx
    words[:, 2] = block.by
    words[:, 3] = row0
    words[:, 4] = col0
    words[:, 5] = rows
    words[:, 6] = cols
    # First output cell each thread owns (threads stride across the tile rows).
    flat = tile.T.reshape(-1)
    first = np.zeros(threads, dtype=np.float32)
    owned = min(threads, flat.size)
    first[:owned] = flat[:owned]
    words[:, 7] = first.view(np.int32)
    used = min(p, words.shape[1])
    rec[:, :used] = words[:, :used]


def _tile_sgemm(block, params: Tuple[Any, ...], width: int) -> None:
    c, n, alpha, trace = params[0], int(params[1]), params[7], params[8]
    row0 = block.bx * width
    col0 = block.by * width
    if row0 >= n or col0 >= n:
        return
    row1 = min(row0 + width, n)
    col1 = min(col0 + width, n)
    a = block.textures["texA"].reshape(n, n)  # a[k, i] == A(i, k)
    b = block.textures["texB"].reshape(n, n)  # b[k, j] == B(j, k)
    acc = np.zeros((row1 - row0, col1 - col0), dtype=np.float32)
    for k in range(n):
        acc += np.outer(a[k, row0:row1], b[k, col0:col1])
    if float(alpha) != 1.0:
        acc *= np.float32(alpha)
    c.reshape(n, n)[col0:col1, row0:row1] = acc.T
    if trace is not None:
        _write_trace(block, trace, acc, row0, col0)


def sgemm_kernel_64(block, params) -> None:
    _tile_sgemm(block, params, 64)


def sgemm_kernel_128(block, params) -> None:
    _tile_sgemm(block, params, 128)


__all__ = ["TEXTURES", "TRACE_LAYOUT", "sgemm_kernel_64", "sgemm_kernel_128"]
