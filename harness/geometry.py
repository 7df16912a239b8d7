"""
Launch geometry for the tiled SGEMM kernels.

Each block computes one `tile_width x tile_width` tile of C; the grid is square
and uses a ceiling division so ragged edge tiles still get a block (the kernel
masks its out-of-range threads).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class KernelVariant:
    entry_point: str
    tile_width: int
    threads_per_block: int
    label: str


SGEMM_64 = KernelVariant(entry_point="sgemm_kernel_64", tile_width=64, threads_per_block=64, label="Max64 ")
SGEMM_128 = KernelVariant(entry_point="sgemm_kernel_128", tile_width=128, threads_per_block=256, label="Max128")

DEFAULT_VARIANT = SGEMM_128

VARIANTS: Dict[str, KernelVariant] = {
    SGEMM_64.entry_point: SGEMM_64,
    SGEMM_128.entry_point: SGEMM_128,
}


@dataclass(frozen=True)
class LaunchGeometry:
    tile_width: int
    threads_per_block: int
    grid_dim_x: int
    grid_dim_y: int
    block_count: int

    @property
    def grid(self) -> Tuple[int, int, int]:
        return (self.grid_dim_x, self.grid_dim_y, 1)

    @property
    def block(self) -> Tuple[int, int, int]:
        return (self.threads_per_block, 1, 1)

    @property
    def thread_count(self) -> int:
        return self.block_count * self.threads_per_block


def variant_for(name: str | int) -> KernelVariant:
    """Resolve `64`, `"128"` or an entry point name to a kernel variant."""
    s = str(name).strip()
    if s in VARIANTS:
        return VARIANTS[s]
    for v in VARIANTS.values():
        if s == str(v.tile_width):
            return v
    raise KeyError(f"unknown sgemm kernel variant: {name!r} (known: {', '.join(sorted(VARIANTS))})")


def compute_geometry(variant: KernelVariant, n: int) -> LaunchGeometry:
    n = int(n)
    if n <= 0:
        raise ValueError(f"problem size must be positive, got N={n}")
    width = int(variant.tile_width)
    grid_xy = n // width + (1 if n % width != 0 else 0)
    return LaunchGeometry(
        tile_width=width,
        threads_per_block=int(variant.threads_per_block),
        grid_dim_x=grid_xy,
        grid_dim_y=grid_xy,
        block_count=grid_xy * grid_xy,
    )


__all__ = [
    "KernelVariant",
    "LaunchGeometry",
    "SGEMM_64",
    "SGEMM_128",
    "DEFAULT_VARIANT",
    "VARIANTS",
    "variant_for",
    "compute_geometry",
]
