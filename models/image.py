from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import numpy as np


@dataclass
class Image:
    """
    Simple data object: RGBA8 pixels (+ optional source path for bookkeeping).
    No OpenCV / torch logic in this file.
    """
    pixels: np.ndarray  # Shape (H, W, 4), dtype uint8, RGBA order.
    path: Path | None = None  # Source / destination of the image.

    def __post_init__(self):
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected (H, W, 4) RGBA pixels, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 pixels, got {pixels.dtype}")
        self.pixels = pixels

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes | bytearray | memoryview,
                   path: Path | None = None) -> Image:
        """
        Build an Image from a tightly packed RGBA8 buffer.
        The buffer is copied, so the Image never aliases the caller's memory.
        """
        expected = width * height * 4
        if width < 1 or height < 1:
            raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
        if len(data) != expected:
            raise ValueError(
                f"RGBA buffer for {width}x{height} must be {expected} bytes, got {len(data)}"
            )
        pixels = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, 4).copy()
        return cls(pixels=pixels, path=path)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def dimensions(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def get_pixel(self, x: int, y: int) -> np.ndarray:
        return self.pixels[y, x]

    def raw_pixels(self) -> bytes:
        return np.ascontiguousarray(self.pixels).tobytes()
