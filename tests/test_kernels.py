import numpy as np
import torch

from kernels import assign_kernel, combine_kernel, composite_kernel, partial_sums_kernel
from models.centroids import CentroidSet

ALL_CHANNELS = torch.ones(4)


def brute_force_assign(texture: np.ndarray, centroids: np.ndarray, mask: np.ndarray) -> np.ndarray:
    diff = (texture.reshape(-1, 1, 4) - centroids[None]) * mask
    return np.argmin((diff ** 2).sum(-1), axis=1)


def test_assign_covers_partial_boundary_tiles():
    rng = np.random.default_rng(0)
    texture = rng.random((5, 17, 4), dtype=np.float32)
    centroids = rng.random((6, 4), dtype=np.float32)
    out = torch.full((5 * 17,), 6, dtype=torch.int32)

    assign_kernel((2, 1), torch.from_numpy(texture), torch.from_numpy(centroids), ALL_CHANNELS, out, 16)

    np.testing.assert_array_equal(out.numpy(), brute_force_assign(texture, centroids, np.ones(4, dtype=np.float32)))


def test_assign_ties_go_to_lowest_index():
    texture = torch.full((2, 2, 4), 0.5)
    centroids = torch.tensor([[0.75, 0.5, 0.5, 0.5],
                              [0.25, 0.5, 0.5, 0.5],
                              [0.25, 0.5, 0.5, 0.5]])
    out = torch.empty(4, dtype=torch.int32)
    assign_kernel((1, 1), texture, centroids, ALL_CHANNELS, out, 16)
    assert out.tolist() == [0, 0, 0, 0]


def test_assign_channel_mask_ignores_alpha():
    texture = torch.tensor([[[1.0, 0.0, 0.0, 0.0]]])
    centroids = torch.tensor([[1.0, 0.0, 0.0, 1.0],
                              [0.75, 0.0, 0.0, 0.0]])
    out = torch.empty(1, dtype=torch.int32)

    assign_kernel((1, 1), texture, centroids, torch.tensor([1.0, 1.0, 1.0, 0.0]), out, 16)
    assert out.item() == 0
    assign_kernel((1, 1), texture, centroids, ALL_CHANNELS, out, 16)
    assert out.item() == 1


def _reduce(texture, labels, k, workgroup_size, n_seq, launches):
    groups = sum(launches)
    sums = torch.zeros((groups, k, 4))
    counts = torch.zeros((groups, k), dtype=torch.int64)
    offset = 0
    for launch in launches:
        partial_sums_kernel((launch,), texture, labels, sums, counts, offset, workgroup_size, n_seq)
        offset += launch
    return sums, counts


def test_partial_sums_match_per_cluster_totals():
    rng = np.random.default_rng(1)
    texture = torch.from_numpy(rng.random((5, 6, 4), dtype=np.float32))
    labels = torch.from_numpy(rng.integers(0, 3, size=30).astype(np.int32))

    # 4 threads x 3 items per group -> 3 groups, the last one padded
    sums, counts = _reduce(texture, labels, 3, 4, 3, [3])

    flat = texture.reshape(-1, 4).numpy()
    for cluster in range(3):
        members = flat[labels.numpy() == cluster]
        np.testing.assert_allclose(sums.sum(0)[cluster].numpy(), members.sum(0), rtol=1e-5)
        assert counts.sum(0)[cluster].item() == len(members)


def test_partial_sums_split_launches_agree():
    rng = np.random.default_rng(2)
    texture = torch.from_numpy(rng.random((7, 7, 4), dtype=np.float32))
    labels = torch.from_numpy(rng.integers(0, 4, size=49).astype(np.int32))

    whole = _reduce(texture, labels, 4, 4, 2, [7])
    split = _reduce(texture, labels, 4, 4, 2, [2, 3, 2])
    torch.testing.assert_close(whole[0], split[0])
    assert torch.equal(whole[1], split[1])


def test_partial_sums_cluster_windows_agree():
    rng = np.random.default_rng(3)
    texture = torch.from_numpy(rng.random((6, 6, 4), dtype=np.float32))
    # label 5 is the unassigned sentinel and must not be counted
    labels = torch.from_numpy(rng.integers(0, 6, size=36).astype(np.int32))

    whole = _reduce(texture, labels, 5, 4, 3, [3])
    sums = torch.zeros((3, 5, 4))
    counts = torch.zeros((3, 5), dtype=torch.int64)
    for cluster_offset, clusters in [(0, 2), (2, 2), (4, 1)]:
        partial_sums_kernel((3,), texture, labels, sums, counts, 0, 4, 3, cluster_offset, clusters)

    torch.testing.assert_close(sums, whole[0])
    assert torch.equal(counts, whole[1])
    assert counts.sum().item() == int((labels < 5).sum())


def test_combine_keeps_empty_cluster():
    sums = torch.tensor([[[2.0, 0.0, 0.0, 2.0], [0.0, 0.0, 0.0, 0.0]],
                         [[1.0, 1.0, 0.0, 1.0], [0.0, 0.0, 0.0, 0.0]]])
    counts = torch.tensor([[2, 0], [1, 0]])
    previous = torch.tensor([[0.0, 0.0, 0.0, 0.0], [0.2, 0.4, 0.6, 0.8]])
    centroids = torch.empty(2, 4)
    displacement = torch.empty(2)

    combine_kernel((1,), sums, counts, previous, centroids, displacement)

    torch.testing.assert_close(centroids[0], torch.tensor([1.0, 1 / 3, 0.0, 1.0]))
    torch.testing.assert_close(centroids[1], previous[1])
    assert displacement[1].item() == 0.0
    assert displacement[0].item() > 0.0
    expected = CentroidSet(centroids.numpy()).displacement(CentroidSet(previous.numpy()))
    np.testing.assert_allclose(displacement.numpy(), expected, rtol=1e-6)


def test_composite_rounds_to_nearest():
    centroids = torch.tensor([[0.5, 1.0, 0.0, 0.5]])
    assignments = torch.zeros(3, dtype=torch.int32)
    output = torch.empty((1, 3, 4), dtype=torch.uint8)

    composite_kernel((1, 1), assignments, centroids, output, 16)

    assert output[0, 0].tolist() == [128, 255, 0, 128]


def test_composite_unassigned_pixels_are_transparent():
    centroids = torch.tensor([[1.0, 1.0, 1.0, 1.0]])
    assignments = torch.tensor([0, 1], dtype=torch.int32)
    output = torch.empty((1, 2, 4), dtype=torch.uint8)

    composite_kernel((1, 1), assignments, centroids, output, 16)

    assert output[0].tolist() == [[255, 255, 255, 255], [0, 0, 0, 0]]
