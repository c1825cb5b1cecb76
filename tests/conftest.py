import numpy as np
import pytest

from models.image import Image
from models.settings import QuantizerSettings
from models.torch_backend import TorchBackend
from services.kmeans_service import KMeansService

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
GREEN = (0, 255, 0, 255)


def make_image(rows) -> Image:
    """rows: list of rows, each a list of RGBA tuples."""
    return Image(pixels=np.array(rows, dtype=np.uint8))


def random_image(width: int, height: int, seed: int = 0) -> Image:
    rng = np.random.default_rng(seed)
    return Image(pixels=rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8))


@pytest.fixture
def cpu_settings() -> QuantizerSettings:
    return QuantizerSettings(device="cpu")


@pytest.fixture
def backend() -> TorchBackend:
    return TorchBackend("cpu")


@pytest.fixture
def kmeans_service(cpu_settings) -> KMeansService:
    return KMeansService(cpu_settings)
