from __future__ import annotations
from dataclasses import dataclass
import logging

from tqdm import trange

from models.centroids import CentroidSet
from models.compute_backend import ComputeBackend
from models.convergence import ConvergenceState
from models.image import Image
from models.quantization_result import QuantizationResult
from models.settings import QuantizerSettings
from models.torch_backend import TorchBackend
from repositories.compute_repository import ComputeRepository
from repositories.texture_repository import TextureRepository
from services.centroid_service import CentroidService

logger = logging.getLogger(__name__)


@dataclass
class ClusteringJob:
    """
    Iteration state of one quantization run, owned by the controller.
    Device buffers are passed explicitly to each kernel; nothing is global.
    """
    texture: object        # (H, W, 4) float32 device texture
    centroids: object      # (K, 4) float32 device buffer
    assignments: object    # (H*W,) int32 device buffer, sentinel K until the first pass
    scratch: object        # second assignment buffer, written by the pass in flight
    k: int
    width: int
    height: int

    def commit(self, centroids) -> None:
        """Publish one finished iteration: centroids and assignments move together."""
        self.centroids = centroids
        self.assignments, self.scratch = self.scratch, self.assignments


class KMeansService:
    """
    Iteration controller: Init → {Assign → Update} × n → Finalize.
    *   No file I/O here; works only with Image objects.
    *   The compute backend is acquired lazily, after K has been validated.
    """

    def __init__(self,
                 settings: QuantizerSettings | None = None,
                 backend: ComputeBackend | None = None):
        self.settings = settings or QuantizerSettings.from_env()
        self.centroid_service = CentroidService()
        self._backend = backend
        self._compute: ComputeRepository | None = None

    @property
    def compute(self) -> ComputeRepository:
        if self._compute is None:
            backend = self._backend or TorchBackend(self.settings.device,
                                                    compile_kernels=self.settings.compile_kernels)
            self._compute = ComputeRepository(backend, self.settings)
        return self._compute

    # ─── Public API ────────────────────────────────────────────────
    def quantize(self, image: Image, k: int, seed: int | None = None) -> QuantizationResult:
        """
        Reduce *image* to at most *k* colours.

        Args:
            image: RGBA8 source image (never modified)
            k: palette size, 1 <= k <= width*height
            seed: initializer seed, defaults to settings.seed

        Returns:
            QuantizationResult with a fresh Image of identical dimensions

        Raises:
            InvalidKError before any device work, or one of the device errors
            from models.errors.
        """
        seed = self.settings.seed if seed is None else seed
        initial = self.centroid_service.init_centroids(image, k, seed)
        k = initial.k

        compute = self.compute
        backend = compute.backend
        timeout = self.settings.device_timeout_s
        textures = TextureRepository(backend, timeout)
        logger.info(f"Quantizing {image.width}x{image.height} image to {k} colours on {backend.device_name}")

        job = ClusteringJob(
            texture=textures.upload(image),
            centroids=compute.upload_centroids(initial.colors),
            assignments=compute.allocate_assignments(image.pixel_count, k),
            scratch=compute.allocate_assignments(image.pixel_count, k),
            k=k,
            width=image.width,
            height=image.height,
        )
        channel_mask = compute.upload_channel_mask(self.settings.channel_mask())

        timer = backend.begin_timing()
        iterations, converged_at = self._iterate(job, channel_mask)

        output = compute.composite(job.assignments, job.centroids, job.width, job.height)
        kernel_time_ms = backend.end_timing(timer)

        result_image = textures.readback_image(output, job.width, job.height)
        centroids = CentroidSet(backend.readback(job.centroids, timeout))

        if converged_at is None:
            logger.warning(f"No convergence after {iterations} iterations (ceiling reached)")
        else:
            logger.info(f"Converged at iteration {converged_at} ({iterations} passes)")
        if kernel_time_ms is not None:
            logger.info(f"Compute kernels elapsed: {kernel_time_ms:.3f}ms")
        for index, color in enumerate(centroids.palette()):
            logger.debug(f"Centroid {index} = {color}")

        return QuantizationResult(
            image=result_image,
            centroids=centroids,
            iterations=iterations,
            converged_at=converged_at,
            kernel_time_ms=kernel_time_ms,
        )

    # ─── Internal helpers ──────────────────────────────────────────
    def _iterate(self, job: ClusteringJob, channel_mask) -> tuple[int, int | None]:
        """
        Alternate Assignment and Reduction/Update until every centroid moves
        less than the tolerance, or the iteration ceiling is reached.

        Returns (passes executed, pass that produced the final palette or None).
        """
        compute = self.compute
        backend = compute.backend
        timeout = self.settings.device_timeout_s
        last_moved = 0

        passes = trange(1, self.settings.max_iterations + 1, desc="kmeans", ncols=70,
                        disable=not self.settings.show_progress)
        for iteration in passes:
            compute.assign(job.texture, job.centroids, channel_mask, job.scratch)
            # fence: every pixel is assigned before the reduction reads the buffer
            backend.submit_and_wait(timeout)

            centroids, displacement = compute.update(job.texture, job.scratch, job.centroids)
            state = ConvergenceState(backend.readback(displacement, timeout), self.settings.tolerance)
            job.commit(centroids)

            logger.debug(f"Iteration {iteration}: max centroid displacement {state.max_displacement:.6g}")
            if state.converged:
                return iteration, max(last_moved, 1)
            last_moved = iteration

        return self.settings.max_iterations, None
