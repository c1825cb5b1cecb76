# pipeline/quantize.py
from pathlib import Path
import logging
import os
from typing import Iterable, List

from dotenv import load_dotenv

from models.image import Image
from models.quantization_result import QuantizationResult
from models.settings import QuantizerSettings
from services.image_service import ImageService
from services.kmeans_service import KMeansService

# ------------------------------------------------------------------
# env‑vars
load_dotenv()
OUTPUT_EXT = os.getenv("OUTPUT_IMG_EXT", ".png")

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
def quantize_image(
    image: Image,
    k: int,
    seed: int | None = None,
    *,
    settings: QuantizerSettings | None = None,
    kmeans_service: KMeansService | None = None,
) -> QuantizationResult:
    """
    (Image, K, seed) → quantized Image of identical dimensions (+ diagnostics).
    The input Image is never modified and never aliased by the result.
    """
    service = kmeans_service or KMeansService(settings)
    result = service.quantize(image, k, seed)
    result.image.path = image.path
    return result


def output_path_for(source: Path, k: int, output_dir: str | Path, ext: str = OUTPUT_EXT) -> Path:
    return Path(output_dir) / f"{source.stem}_k{k}{ext}"


def quantize_files(
    paths: Iterable[str | Path],
    k: int,
    output_dir: str | Path,
    *,
    seed: int | None = None,
    settings: QuantizerSettings | None = None,
    kmeans_service: KMeansService | None = None,
    image_service: ImageService | None = None,
    ext: str = OUTPUT_EXT,
) -> List[Path]:
    """
    For every file in *paths*:
        • load as RGBA
        • run an independent clustering job
        • save next to its siblings in *output_dir*
    Unreadable files are skipped with a warning; engine errors propagate.
    Returns the written paths.
    """
    service = kmeans_service or KMeansService(settings)
    images = image_service or ImageService()

    written = []
    for path in paths:
        path = Path(path)
        try:
            img = images.load(path)
        except (FileNotFoundError, ValueError) as err:
            logger.warning(f"Skipping {path}: {err}")
            continue
        written.append(_quantize_and_save(img, k, seed, output_dir, ext, service, images))

    return written


def quantize_gallery(
    folder: str | Path,
    k: int,
    output_dir: str | Path,
    *,
    recursive: bool = False,
    seed: int | None = None,
    settings: QuantizerSettings | None = None,
    kmeans_service: KMeansService | None = None,
    image_service: ImageService | None = None,
    ext: str = OUTPUT_EXT,
) -> List[Path]:
    """
    Same as quantize_files for every image in *folder*, streamed one at a time.
    """
    service = kmeans_service or KMeansService(settings)
    images = image_service or ImageService()
    return [
        _quantize_and_save(img, k, seed, output_dir, ext, service, images)
        for img in images.stream_gallery(folder, recursive=recursive)
    ]


def _quantize_and_save(img: Image, k: int, seed: int | None, output_dir: str | Path, ext: str,
                       service: KMeansService, images: ImageService) -> Path:
    result = service.quantize(img, k, seed)
    out = images.with_path(result.image, output_path_for(Path(img.path), k, output_dir, ext))
    images.save(out)
    logger.info(f"{Path(img.path).name} → {out.path} ({len(result.palette)} colours, "
                f"{result.iterations} iterations)")
    return out.path
