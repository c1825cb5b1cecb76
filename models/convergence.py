from __future__ import annotations
from dataclasses import dataclass
import numpy as np


@dataclass
class ConvergenceState:
    """
    Outcome of one Reduction/Update round.
    Rebuilt every iteration; read by the iteration controller.
    """
    displacements: np.ndarray  # (K,) float32, distance moved by each centroid
    tolerance: float

    @property
    def settled(self) -> np.ndarray:
        return self.displacements < self.tolerance

    @property
    def converged(self) -> bool:
        return bool(self.settled.all())

    @property
    def max_displacement(self) -> float:
        return float(self.displacements.max()) if self.displacements.size else 0.0
