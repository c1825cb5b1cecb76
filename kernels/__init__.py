"""Device programs for the torch compute backend.

- assign: per-pixel nearest-centroid search over a tiled grid
- reduce: hierarchical per-cluster sums / counts + centroid update
- composite: palette lookup into an RGBA8 output texture
"""

from .assign import assign_kernel
from .composite import composite_kernel
from .reduce import combine_kernel, partial_sums_kernel

__all__ = ["assign_kernel", "combine_kernel", "composite_kernel", "partial_sums_kernel"]
