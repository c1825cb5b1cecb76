# kernels/assign.py
"""
Nearest-centroid assignment.

Launched over a 2-D grid of square tiles that covers the whole image;
boundary tiles hang over the right / bottom edge and their out-of-range
texels are never written back.
"""
from __future__ import annotations
import torch
import torch.nn.functional as F


def assign_kernel(
    grid: tuple[int, int],
    texture: torch.Tensor,        # (H, W, 4) float32 in [0, 1]
    centroids: torch.Tensor,      # (K, 4) float32, read-only during the pass
    channel_mask: torch.Tensor,   # (4,) float32, 1.0 = channel takes part in the distance
    assignments: torch.Tensor,    # (H*W,) int32, written
    tile_size: int,
) -> None:
    groups_x, groups_y = grid
    height, width = texture.shape[:2]
    launched_h = groups_y * tile_size
    launched_w = groups_x * tile_size

    # zero texels for the overhang of boundary tiles
    texels = F.pad(texture, (0, 0, 0, launched_w - width, 0, launched_h - height))

    best_dist = torch.full((launched_h, launched_w), float("inf"),
                           dtype=texture.dtype, device=texture.device)
    best_index = torch.zeros((launched_h, launched_w), dtype=torch.int32, device=texture.device)

    for j in range(centroids.shape[0]):
        diff = (texels - centroids[j]) * channel_mask
        dist = (diff * diff).sum(dim=-1)
        # strict '<' so ties stay with the lowest centroid index
        closer = dist < best_dist
        best_dist = torch.where(closer, dist, best_dist)
        best_index = torch.where(closer, torch.full_like(best_index, j), best_index)

    # bounds guard: only in-image texels reach the assignment buffer
    assignments.view(height, width).copy_(best_index[:height, :width])
