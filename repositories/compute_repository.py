# repositories/compute_repository.py
from __future__ import annotations
import logging
import numpy as np

from kernels import assign_kernel, combine_kernel, composite_kernel, partial_sums_kernel
from models.compute_backend import ComputeBackend
from models.settings import QuantizerSettings

logger = logging.getLogger(__name__)

# Upper bound on one-hot entries materialised by a single partial-sums launch.
MAX_ONE_HOT_ENTRIES = 1 << 24


def compute_work_group_count(size: tuple[int, ...], workgroup: tuple[int, ...]) -> tuple[int, ...]:
    """Ceiling division per axis, so partially filled groups are still launched."""
    return tuple((s + w - 1) // w for s, w in zip(size, workgroup))


class ComputeRepository:
    """
    Low-level access to the clustering kernels on one compute backend.
    Knows launch geometry and buffer shapes; knows nothing about iteration.
    """

    def __init__(self, backend: ComputeBackend, settings: QuantizerSettings):
        self.backend = backend
        self.tile_size = settings.tile_size
        self.workgroup_size = settings.workgroup_size
        self.n_seq = settings.n_seq
        self.timeout = settings.device_timeout_s

        self._assign = backend.register_kernel("assign", assign_kernel)
        self._partial_sums = backend.register_kernel("partial_sums", partial_sums_kernel)
        self._combine = backend.register_kernel("combine", combine_kernel)
        self._composite = backend.register_kernel("composite", composite_kernel)

    # ---------- geometry ----------
    def tile_grid(self, width: int, height: int) -> tuple[int, int]:
        return compute_work_group_count((width, height), (self.tile_size, self.tile_size))

    def reduction_groups(self, pixel_count: int) -> int:
        (groups,) = compute_work_group_count((pixel_count,), (self.workgroup_size * self.n_seq,))
        return groups

    def clusters_per_dispatch(self, k: int) -> int:
        """Widest cluster window whose one-hot for one workgroup stays under the bound."""
        return max(1, min(k, MAX_ONE_HOT_ENTRIES // (self.workgroup_size * self.n_seq) - 1))

    def groups_per_dispatch(self, clusters: int) -> int:
        return max(1, MAX_ONE_HOT_ENTRIES // (self.workgroup_size * self.n_seq * (clusters + 1)))

    # ---------- buffers ----------
    def allocate_assignments(self, pixel_count: int, k: int):
        """AssignmentBuffer filled with the "unassigned" sentinel K."""
        return self.backend.allocate_buffer((pixel_count,), "int32", fill=k, label="assignments")

    def upload_centroids(self, colors):
        return self.backend.upload(colors, label="centroids")

    def upload_channel_mask(self, mask):
        return self.backend.upload(np.asarray(mask, dtype=np.float32), label="channel mask")

    # ---------- kernels ----------
    def assign(self, texture, centroids, channel_mask, assignments) -> None:
        height, width = texture.shape[:2]
        grid = self.tile_grid(width, height)
        self.backend.dispatch(self._assign, grid, texture, centroids, channel_mask, assignments, self.tile_size)

    def update(self, texture, assignments, previous):
        """
        Run both reduction stages and return (new centroids, displacement).
        *previous* is only read.
        """
        k = previous.shape[0]
        pixel_count = texture.shape[0] * texture.shape[1]
        groups = self.reduction_groups(pixel_count)

        group_sums = self.backend.allocate_buffer((groups, k, 4), "float32", fill=0.0, label="group sums")
        group_counts = self.backend.allocate_buffer((groups, k), "int64", fill=0, label="group counts")
        window = self.clusters_per_dispatch(k)
        step = self.groups_per_dispatch(window)
        logger.debug(f"Reducing {pixel_count} pixels over {groups} workgroups "
                     f"({(groups + step - 1) // step} x {(k + window - 1) // window} launch(es))")
        for cluster_offset in range(0, k, window):
            clusters = min(window, k - cluster_offset)
            for offset in range(0, groups, step):
                launch = min(step, groups - offset)
                self.backend.dispatch(self._partial_sums, (launch,), texture, assignments,
                                      group_sums, group_counts, offset, self.workgroup_size, self.n_seq,
                                      cluster_offset, clusters)
        # every workgroup partial must land before the combine reads them
        self.backend.submit_and_wait(self.timeout)

        centroids = self.backend.allocate_buffer((k, 4), "float32", label="centroids")
        displacement = self.backend.allocate_buffer((k,), "float32", label="displacement")
        self.backend.dispatch(self._combine, (1,), group_sums, group_counts, previous, centroids, displacement)
        return centroids, displacement

    def composite(self, assignments, centroids, width: int, height: int):
        output = self.backend.allocate_buffer((height, width, 4), "uint8", label="output texture")
        grid = self.tile_grid(width, height)
        self.backend.dispatch(self._composite, grid, assignments, centroids, output, self.tile_size)
        return output
