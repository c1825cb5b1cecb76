from __future__ import annotations
from dataclasses import dataclass, replace
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

CHANNEL_ORDER = "rgba"
# One reduction workgroup must fit the one-hot bound with at least one cluster column.
MAX_WORKGROUP_ITEMS = 1 << 23


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class QuantizerSettings:
    """
    Value-object holding every tunable of a clustering run.
    Defaults: seed 42, 30 passes, 16x16 tiles and
    256-thread workgroups accumulating 24 items per thread.
    """
    seed: int = 42
    max_iterations: int = 30
    tolerance: float = 1e-4
    device: str = "auto"              # auto | cuda | mps | cpu
    distance_channels: str = "rgba"   # any subset of "rgba", in any order
    tile_size: int = 16
    workgroup_size: int = 256
    n_seq: int = 24
    device_timeout_s: float | None = None
    compile_kernels: bool = False
    show_progress: bool = False

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if not self.tolerance > 0:
            raise ValueError(f"tolerance must be > 0, got {self.tolerance}")
        if self.device not in {"auto", "cuda", "mps", "cpu"}:
            raise ValueError(f"Unknown device '{self.device}'")
        channels = self.distance_channels.lower()
        if not channels or set(channels) - set(CHANNEL_ORDER) or len(set(channels)) != len(channels):
            raise ValueError(f"distance_channels must be a subset of 'rgba', got '{self.distance_channels}'")
        for name in ("tile_size", "workgroup_size", "n_seq"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        if self.workgroup_size * self.n_seq > MAX_WORKGROUP_ITEMS:
            raise ValueError(f"workgroup_size * n_seq must be <= {MAX_WORKGROUP_ITEMS}, "
                             f"got {self.workgroup_size * self.n_seq}")
        if self.device_timeout_s is not None and self.device_timeout_s <= 0:
            raise ValueError(f"device_timeout_s must be > 0, got {self.device_timeout_s}")

    @classmethod
    def from_env(cls, **overrides) -> QuantizerSettings:
        """
        Build settings from KMEANS_* environment variables.
        Keyword overrides whose value is not None win over the environment.
        """
        timeout = os.getenv("KMEANS_DEVICE_TIMEOUT_S", "").strip()
        settings = cls(
            seed=int(os.getenv("KMEANS_SEED", "42")),
            max_iterations=int(os.getenv("KMEANS_MAX_ITERATIONS", "30")),
            tolerance=float(os.getenv("KMEANS_TOLERANCE", "1e-4")),
            device=os.getenv("KMEANS_DEVICE", "auto").strip().lower(),
            distance_channels=os.getenv("KMEANS_DISTANCE_CHANNELS", "rgba").strip().lower(),
            tile_size=int(os.getenv("KMEANS_TILE_SIZE", "16")),
            workgroup_size=int(os.getenv("KMEANS_WORKGROUP_SIZE", "256")),
            n_seq=int(os.getenv("KMEANS_N_SEQ", "24")),
            device_timeout_s=float(timeout) if timeout else None,
            compile_kernels=_env_bool("KMEANS_COMPILE_KERNELS"),
            show_progress=_env_bool("KMEANS_SHOW_PROGRESS"),
        )
        return settings.with_overrides(**overrides)

    def with_overrides(self, **overrides) -> QuantizerSettings:
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def channel_mask(self) -> tuple[float, float, float, float]:
        """1.0 for every RGBA channel that takes part in the distance, else 0.0."""
        channels = self.distance_channels.lower()
        return tuple(1.0 if c in channels else 0.0 for c in CHANNEL_ORDER)
