import numpy as np
import pytest

from models.errors import ReadbackError
from repositories.texture_repository import (
    TextureRepository,
    pad_rows,
    padded_bytes_per_row,
    unpad_rows,
)
from tests.conftest import random_image


@pytest.mark.parametrize("width, expected", [(1, 256), (63, 256), (64, 256), (65, 512), (100, 512), (129, 768)])
def test_padded_bytes_per_row(width, expected):
    assert padded_bytes_per_row(width) == expected


@pytest.mark.parametrize("width, height", [(1, 1), (3, 2), (63, 4), (65, 3), (100, 5)])
def test_unpad_matches_reference_layout(width, height):
    tight = np.arange(width * height * 4, dtype=np.uint32).astype(np.uint8)
    padded = pad_rows(tight, width, height)
    assert padded.size == padded_bytes_per_row(width) * height

    restored = unpad_rows(padded, width, height)
    assert restored.size == width * height * 4
    np.testing.assert_array_equal(restored, tight)


def test_unpad_rejects_wrong_size():
    with pytest.raises(ReadbackError):
        unpad_rows(np.zeros(100, dtype=np.uint8), 3, 2)


def test_upload_normalises_to_unit_range(backend):
    img = random_image(5, 3)
    texture = TextureRepository(backend).upload(img)
    assert tuple(texture.shape) == (3, 5, 4)
    np.testing.assert_allclose(texture.numpy(), img.pixels / 255.0, atol=1e-7)


def test_upload_honours_source_stride(backend):
    img = random_image(3, 4)
    stride = 3 * 4 + 7
    strided = np.full((4, stride), 0xAB, dtype=np.uint8)
    strided[:, :12] = img.pixels.reshape(4, 12)

    texture = TextureRepository(backend).upload_bytes(strided.tobytes(), 3, 4, bytes_per_row=stride)
    np.testing.assert_allclose(texture.numpy(), img.pixels / 255.0, atol=1e-7)


def test_upload_rejects_short_stride(backend):
    with pytest.raises(ValueError):
        TextureRepository(backend).upload_bytes(b"\x00" * 48, 3, 4, bytes_per_row=8)


@pytest.mark.parametrize("width, height", [(3, 2), (65, 3), (100, 2)])
def test_readback_round_trip(backend, width, height):
    img = random_image(width, height, seed=width)
    texture = backend.upload(img.pixels)
    out = TextureRepository(backend).readback_image(texture, width, height)

    assert out.dimensions == (width, height)
    assert len(out.raw_pixels()) == width * height * 4
    np.testing.assert_array_equal(out.pixels, img.pixels)
    assert not np.shares_memory(out.pixels, img.pixels)
