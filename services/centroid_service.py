from __future__ import annotations
import logging

import numpy as np

from models.centroids import CentroidSet
from models.errors import InvalidKError
from models.image import Image

logger = logging.getLogger(__name__)


class CentroidService:
    """
    Seeds the clustering with K colours taken from K distinct pixel positions.
    Host-side only; deterministic for a given (image, K, seed).
    """

    def __init__(self, min_draw_budget: int = 1024, draws_per_centroid: int = 32):
        self.min_draw_budget = min_draw_budget
        self.draws_per_centroid = draws_per_centroid

    @staticmethod
    def validate_k(image: Image, k) -> int:
        """
        Raise InvalidKError unless 1 <= k <= pixel count.
        Runs before any device work.
        """
        pixel_count = image.pixel_count
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
            raise InvalidKError(k, pixel_count)
        if k < 1 or k > pixel_count:
            raise InvalidKError(k, pixel_count)
        return int(k)

    def init_centroids(self, image: Image, k: int, seed: int = 42) -> CentroidSet:
        k = self.validate_k(image, k)
        flat = np.ascontiguousarray(image.pixels).reshape(-1, 4)
        packed = flat.view(np.uint32).reshape(-1)   # one word per RGBA pixel

        indices = self._sample(packed, k, seed)
        logger.debug(f"Seeded {k} centroids from pixels {indices[:16]}{'...' if k > 16 else ''}")
        return CentroidSet.from_rgba8(flat[indices])

    # ---------- private helpers ----------
    def _sample(self, packed: np.ndarray, k: int, seed: int) -> list[int]:
        """
        Acceptance / rejection sampling of pixel indices, uniform over positions.

        A draw is rejected when its position is already taken, or when its
        colour is already a centroid while unused distinct colours remain.
        Once the draw budget is spent the rest is filled deterministically.
        """
        total = packed.size
        distinct = int(np.unique(packed).size)
        rng = np.random.default_rng(seed)

        chosen: list[int] = []
        taken: set[int] = set()
        colors: set[int] = set()
        budget = max(self.min_draw_budget, self.draws_per_centroid * k)

        for _ in range(budget):
            if len(chosen) == k:
                break
            index = int(rng.integers(0, total))
            if index in taken:
                continue
            color = int(packed[index])
            if color in colors and len(colors) < distinct:
                continue
            chosen.append(index)
            taken.add(index)
            colors.add(color)

        if len(chosen) < k:
            logger.debug(f"Draw budget of {budget} spent with {len(chosen)}/{k} centroids; filling in raster order")
            self._fill(packed, k, chosen, taken, colors)
        return chosen

    @staticmethod
    def _fill(packed: np.ndarray, k: int, chosen: list[int], taken: set[int], colors: set[int]) -> None:
        # unused colours first (first occurrence in raster order) ...
        _, first_seen = np.unique(packed, return_index=True)
        for index in np.sort(first_seen):
            if len(chosen) == k:
                return
            index = int(index)
            color = int(packed[index])
            if color in colors or index in taken:
                continue
            chosen.append(index)
            taken.add(index)
            colors.add(color)

        # ... then any free position
        free = np.setdiff1d(np.arange(packed.size), np.fromiter(taken, dtype=np.int64, count=len(taken)))
        for index in free[: k - len(chosen)]:
            chosen.append(int(index))
            taken.add(int(index))
