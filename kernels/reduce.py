# kernels/reduce.py
"""
Per-cluster colour sums and counts, reduced hierarchically.

Stage 1 (partial_sums_kernel): every thread folds N_SEQ consecutive pixels
into thread-local (colour sum, count) partials, then the threads of each
workgroup are combined into one partial per workgroup and cluster.
Stage 2 (combine_kernel): the per-workgroup partials are summed, new
centroids are formed and their displacement is measured.

No pixel ever issues an atomic add; the only cross-thread traffic is the
workgroup combine and the final per-workgroup sum.
"""
from __future__ import annotations
import torch
import torch.nn.functional as F


def partial_sums_kernel(
    grid: tuple[int],
    texture: torch.Tensor,       # (H, W, 4) float32
    assignments: torch.Tensor,   # (H*W,) int32 in [0, K]
    group_sums: torch.Tensor,    # (G, K, 4) float32, written
    group_counts: torch.Tensor,  # (G, K) int64, written
    group_offset: int,
    workgroup_size: int,
    n_seq: int,
    cluster_offset: int = 0,
    clusters: int | None = None,
) -> None:
    """
    Fills the partials of workgroups [group_offset, group_offset + groups)
    for clusters [cluster_offset, cluster_offset + clusters). Labels outside
    that window, and the sentinel K, fall into a spare column that is dropped.
    """
    (groups,) = grid
    k = group_sums.shape[1]
    if clusters is None:
        clusters = k - cluster_offset
    colors = texture.reshape(-1, 4)
    items_per_group = workgroup_size * n_seq

    start = group_offset * items_per_group
    stop = min(start + groups * items_per_group, colors.shape[0])
    tail = groups * items_per_group - (stop - start)

    labels = assignments[start:stop].long() - cluster_offset
    chunk = colors[start:stop]
    if tail:
        labels = torch.cat([labels, labels.new_full((tail,), clusters)])
        chunk = torch.cat([chunk, chunk.new_zeros((tail, 4))])
    labels = torch.where((labels >= 0) & (labels < clusters), labels, torch.full_like(labels, clusters))

    threads = groups * workgroup_size
    one_hot = F.one_hot(labels.view(threads, n_seq), clusters + 1)    # (T, N_SEQ, window+1)
    thread_counts = one_hot.sum(dim=1)                                 # (T, window+1)
    thread_sums = torch.bmm(one_hot.transpose(1, 2).to(chunk.dtype),
                            chunk.view(threads, n_seq, 4))             # (T, window+1, 4)

    # workgroup combine
    sums = thread_sums.view(groups, workgroup_size, clusters + 1, 4).sum(dim=1)
    counts = thread_counts.view(groups, workgroup_size, clusters + 1).sum(dim=1)

    rows = slice(group_offset, group_offset + groups)
    window = slice(cluster_offset, cluster_offset + clusters)
    group_sums[rows, window].copy_(sums[:, :clusters])
    group_counts[rows, window].copy_(counts[:, :clusters])


def combine_kernel(
    grid: tuple[int],
    group_sums: torch.Tensor,     # (G, K, 4)
    group_counts: torch.Tensor,   # (G, K)
    previous: torch.Tensor,       # (K, 4) centroids of the last round, read-only
    centroids: torch.Tensor,      # (K, 4) written
    displacement: torch.Tensor,   # (K,) written
) -> None:
    sums = group_sums.sum(dim=0)
    counts = group_counts.sum(dim=0)
    occupied = (counts > 0).unsqueeze(1)
    means = sums / counts.clamp(min=1).unsqueeze(1).to(sums.dtype)
    # an empty cluster keeps its previous colour instead of collapsing
    centroids.copy_(torch.where(occupied, means, previous))
    displacement.copy_(torch.linalg.vector_norm(centroids - previous, dim=1))
