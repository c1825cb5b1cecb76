from pathlib import Path
from typing import Iterable, Union, Iterator
import numpy as np

from models.image import Image
from repositories.image_repository import ImageRepository


class ImageService:
    """I/O helpers.  No clustering logic, no torch imports."""
    def __init__(self):
        self.image_repository = ImageRepository()

    def create_image(self, pixels: np.ndarray, path: Union[str, Path] = None) -> Image:
        return self.image_repository.create_image(pixels, path)

    def load(self, path: str | Path) -> Image:
        """Load a single image from disk into an RGBA Image object."""
        return self.image_repository.load(path)

    def stream_gallery(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] | None = None,
    ) -> Iterator[Image]:
        """
        Yield images lazily instead of returning a gigantic list.
        """
        return self.image_repository.iter_dir(folder,
                                              recursive=recursive,
                                              exts=exts)

    def save(self, image: Image) -> None:
        """
        Business-level method to save the image to its path.
        """
        self.image_repository.save(image)

    def with_path(self, image: Image, path: Union[str, Path]) -> Image:
        """Same pixels (copied), new destination path."""
        return self.create_image(image.pixels.copy(), path)

    @staticmethod
    def count_colors(img: Image) -> int:
        """Number of distinct RGBA colours in the image."""
        packed = np.ascontiguousarray(img.pixels).reshape(-1, 4).view(np.uint32)
        return int(np.unique(packed).size)
