# kernels/composite.py
"""
Output compositing: every pixel takes the colour of its centroid.

Alpha policy: alpha is quantized together with colour, i.e. the output
alpha of a pixel is its centroid's alpha, never the source alpha.
Float -> 8-bit conversion rounds to nearest (floor(v * 255 + 0.5)).
"""
from __future__ import annotations
import torch
import torch.nn.functional as F


def to_rgba8(colors: torch.Tensor) -> torch.Tensor:
    return torch.clamp(torch.floor(colors * 255.0 + 0.5), 0, 255).to(torch.uint8)


def composite_kernel(
    grid: tuple[int, int],
    assignments: torch.Tensor,   # (H*W,) int32
    centroids: torch.Tensor,     # (K, 4) float32
    output: torch.Tensor,        # (H, W, 4) uint8, written
    tile_size: int,
) -> None:
    groups_x, groups_y = grid
    height, width = output.shape[:2]
    k = centroids.shape[0]

    # extra transparent palette row for the "unassigned" sentinel K
    palette = torch.cat([to_rgba8(centroids), centroids.new_zeros((1, 4), dtype=torch.uint8)])

    labels = assignments.view(height, width).long()
    labels = F.pad(labels, (0, groups_x * tile_size - width, 0, groups_y * tile_size - height), value=k)

    output.copy_(palette[labels][:height, :width])
