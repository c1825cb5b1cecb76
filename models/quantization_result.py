from __future__ import annotations
from dataclasses import dataclass
from models.image import Image
from models.centroids import CentroidSet


@dataclass
class QuantizationResult:
    """
    Data object returned by a clustering job.
    """
    image: Image                  # Quantized image, same dimensions as the input
    centroids: CentroidSet        # Final palette in normalised float space
    iterations: int               # Assign -> Update passes actually executed
    converged_at: int | None      # Pass that produced the final palette (None = hit the ceiling)
    kernel_time_ms: float | None = None  # Only when the device exposes timestamps

    @property
    def converged(self) -> bool:
        return self.converged_at is not None

    @property
    def palette(self) -> list[tuple[int, int, int, int]]:
        return self.centroids.palette()
