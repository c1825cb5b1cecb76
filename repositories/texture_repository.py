# repositories/texture_repository.py
from __future__ import annotations
import numpy as np

from models.compute_backend import ComputeBackend
from models.errors import ReadbackError
from models.image import Image

BYTES_PER_PIXEL = 4
ROW_PITCH_ALIGNMENT = 256  # device copies need row pitch to be a multiple of this


def padded_bytes_per_row(width: int) -> int:
    """Next multiple of 256 bytes for texture readback padding."""
    unpadded = width * BYTES_PER_PIXEL
    return (unpadded + ROW_PITCH_ALIGNMENT - 1) // ROW_PITCH_ALIGNMENT * ROW_PITCH_ALIGNMENT


def pad_rows(tight: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Host-side reference of the device's padded layout: each row of
    width*4 bytes followed by zero bytes up to the padded pitch.
    """
    unpadded = width * BYTES_PER_PIXEL
    padded = np.zeros((height, padded_bytes_per_row(width)), dtype=np.uint8)
    padded[:, :unpadded] = np.asarray(tight, dtype=np.uint8).reshape(height, unpadded)
    return padded.reshape(-1)


def unpad_rows(padded: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Strip readback padding: keep the first width*4 bytes of every padded
    row and return a tightly packed (width*height*4,) buffer.
    """
    pitch = padded_bytes_per_row(width)
    unpadded = width * BYTES_PER_PIXEL
    padded = np.asarray(padded, dtype=np.uint8).reshape(-1)
    if padded.size != pitch * height:
        raise ReadbackError(
            f"Padded buffer for {width}x{height} must be {pitch * height} bytes, got {padded.size}"
        )
    return np.ascontiguousarray(padded.reshape(height, pitch)[:, :unpadded]).reshape(-1)


class TextureRepository:
    """
    Moves pixels between host Images and device textures.

    • upload: RGBA8 host bytes → (H, W, 4) float32 texture in [0, 1]
    • readback: RGBA8 device texture → padded staging buffer → fresh Image
    """

    def __init__(self, backend: ComputeBackend, timeout: float | None = None):
        self.backend = backend
        self.timeout = timeout

    def upload(self, image: Image):
        return self.upload_bytes(image.raw_pixels(), image.width, image.height)

    def upload_bytes(self, data: bytes | np.ndarray, width: int, height: int,
                     bytes_per_row: int | None = None):
        """
        Upload rows read at *bytes_per_row* (defaults to tightly packed).
        The source stride is caller-specified, so no destination padding applies.
        """
        unpadded = width * BYTES_PER_PIXEL
        stride = unpadded if bytes_per_row is None else bytes_per_row
        if stride < unpadded:
            raise ValueError(f"bytes_per_row {stride} is smaller than one row ({unpadded} bytes)")

        src = np.frombuffer(data, dtype=np.uint8) if not isinstance(data, np.ndarray) else data.reshape(-1)
        needed = stride * (height - 1) + unpadded
        if src.size < needed:
            raise ValueError(f"Source buffer holds {src.size} bytes, {needed} required")
        if src.size < stride * height:
            src = np.concatenate([src, np.zeros(stride * height - src.size, dtype=np.uint8)])

        rows = src[: stride * height].reshape(height, stride)[:, :unpadded]
        texels = rows.reshape(height, width, 4).astype(np.float32) / 255.0
        return self.backend.upload(texels, label="input texture")

    def readback_image(self, texture, width: int, height: int) -> Image:
        """Copy an RGBA8 device texture back into a new Image. No partial image on failure."""
        pitch = padded_bytes_per_row(width)
        staging = self.backend.copy_texture_to_buffer(texture, pitch)
        padded = self.backend.readback(staging, self.timeout)
        tight = unpad_rows(padded, width, height)
        return Image(pixels=tight.reshape(height, width, 4))
