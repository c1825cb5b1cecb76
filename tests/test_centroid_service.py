import numpy as np
import pytest

from models.errors import InvalidKError
from services.centroid_service import CentroidService
from tests.conftest import BLUE, GREEN, RED, make_image, random_image


@pytest.mark.parametrize("k", [0, -1, 17, 2.5, True, "3"])
def test_invalid_k(k):
    with pytest.raises(InvalidKError):
        CentroidService().init_centroids(random_image(4, 4), k)


def test_same_seed_same_centroids():
    img = random_image(32, 32)
    a = CentroidService().init_centroids(img, 8, seed=7)
    b = CentroidService().init_centroids(img, 8, seed=7)
    np.testing.assert_array_equal(a.colors, b.colors)


def test_centroids_come_from_image_pixels():
    img = random_image(16, 16)
    centroids = CentroidService().init_centroids(img, 10, seed=3)
    source = {tuple(p) for p in img.pixels.reshape(-1, 4)}
    assert centroids.k == 10
    assert all(tuple(c) in source for c in centroids.to_rgba8())


def test_distinct_colours_preferred():
    rows = [[RED] * 8 for _ in range(8)]
    rows[7][7] = BLUE
    rows[0][3] = GREEN
    centroids = CentroidService().init_centroids(make_image(rows), 3)
    assert set(centroids.palette()) == {RED, BLUE, GREEN}


def test_k_equal_to_pixel_count():
    img = make_image([[RED, RED], [RED, BLUE]])
    centroids = CentroidService().init_centroids(img, 4)
    palette = centroids.palette()
    assert len(palette) == 4
    assert sorted(palette).count(RED) == 3
    assert palette.count(BLUE) == 1


def test_small_budget_falls_back_deterministically():
    img = random_image(8, 8, seed=1)
    service = CentroidService(min_draw_budget=1, draws_per_centroid=0)
    a = service.init_centroids(img, 64)
    b = service.init_centroids(img, 64)
    np.testing.assert_array_equal(a.colors, b.colors)
    assert len({tuple(c) for c in a.to_rgba8()}) == len({tuple(p) for p in img.pixels.reshape(-1, 4)})
