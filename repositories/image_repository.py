from pathlib import Path
from typing import Union, Iterable, Iterator
import logging
import os

import numpy as np
import cv2
from PIL import Image as PILImage
from dotenv import load_dotenv

from models.image import Image

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class ImageRepository:
    """
    Handles file I/O for Image entities. Everything in memory is RGBA8.
    """
    def __init__(self):
        self.VALID_EXTS = {
            ext.strip().lower()
            for ext in os.getenv("VALID_IMAGE_EXTENSIONS", ".png,.jpg,.jpeg,.bmp,.webp").split(",")
            if ext.strip()
        }

    @staticmethod
    def create_image(pixels: np.ndarray, path: Union[str, Path] = None) -> Image:
        if path is None:
            return Image(pixels)
        return Image(pixels=pixels, path=Path(path))

    @staticmethod
    def to_rgba(arr: np.ndarray) -> np.ndarray:
        """OpenCV array (gray / BGR / BGRA) → RGBA uint8."""
        if arr.dtype != np.uint8:
            # 16-bit PNG / TIFF: keep the 8 most significant bits
            arr = (arr >> 8).astype(np.uint8) if arr.dtype == np.uint16 else arr.astype(np.uint8)
        if arr.ndim == 2:
            return cv2.cvtColor(arr, cv2.COLOR_GRAY2RGBA)
        if arr.shape[2] == 3:
            return cv2.cvtColor(arr, cv2.COLOR_BGR2RGBA)
        if arr.shape[2] == 4:
            return cv2.cvtColor(arr, cv2.COLOR_BGRA2RGBA)
        raise ValueError(f"Unsupported channel count: {arr.shape[2]}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> Image:
        path = Path(path)
        arr = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
        if arr is None:
            raise FileNotFoundError(f"Image not found or unreadable: {path}")
        return Image(pixels=cls.to_rgba(arr), path=path)

    @staticmethod
    def save(image: Image) -> None:
        if image.path is None:
            raise ValueError("Cannot save an Image without a path")
        path = Path(image.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pil_img = PILImage.fromarray(np.ascontiguousarray(image.pixels))
        if path.suffix.lower() in {".jpg", ".jpeg"}:
            # JPEG has no alpha channel
            pil_img = pil_img.convert("RGB")
        pil_img.save(path)

    def iter_dir(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] | None = None,
    ) -> Iterator[Image]:
        """
        Yield Image objects one at a time.  Nothing accumulates in memory.
        """
        folder = Path(folder)
        if not folder.is_dir():
            raise NotADirectoryError(folder)

        allowed = {e.lower() for e in (exts or self.VALID_EXTS)}
        pattern = "**/*" if recursive else "*"

        for p in sorted(folder.glob(pattern)):
            if p.suffix.lower() not in allowed or not p.is_file():
                logger.debug(f"Skipping {p}")
                continue
            try:
                yield self.load(p)
            except (FileNotFoundError, ValueError) as err:
                logger.warning(f"Skipping {p.name}: {err}")

