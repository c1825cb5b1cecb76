from __future__ import annotations
from dataclasses import dataclass
import numpy as np


@dataclass
class CentroidSet:
    """
    Ordered K x 4 float32 RGBA colours in [0, 1].
    The row index is the cluster identity used by every kernel.
    """
    colors: np.ndarray  # Shape (K, 4), dtype float32.

    def __post_init__(self):
        colors = np.asarray(self.colors, dtype=np.float32)
        if colors.ndim != 2 or colors.shape[1] != 4 or colors.shape[0] < 1:
            raise ValueError(f"Expected (K, 4) centroid colours, got shape {colors.shape}")
        self.colors = colors

    @classmethod
    def from_rgba8(cls, rgba: np.ndarray) -> CentroidSet:
        return cls(np.asarray(rgba, dtype=np.float32).reshape(-1, 4) / 255.0)

    @property
    def k(self) -> int:
        return int(self.colors.shape[0])

    def to_rgba8(self) -> np.ndarray:
        """Palette as (K, 4) uint8, rounded to nearest (never truncated)."""
        return np.clip(np.floor(self.colors * 255.0 + 0.5), 0, 255).astype(np.uint8)

    def palette(self) -> list[tuple[int, int, int, int]]:
        return [tuple(int(c) for c in color) for color in self.to_rgba8()]

    def displacement(self, other: CentroidSet) -> np.ndarray:
        """Per-centroid Euclidean distance to *other* (same K)."""
        if other.k != self.k:
            raise ValueError(f"Cannot compare centroid sets of size {self.k} and {other.k}")
        return np.linalg.norm(self.colors - other.colors, axis=1)
