"""
Failure values raised by the quantization engine.

Every error is a distinct subclass of KMeansError so callers can tell them
apart. None of them is retried, and no degraded image is ever returned
alongside one.
"""


class KMeansError(Exception):
    """Base class for every engine failure."""


class DeviceUnavailableError(KMeansError):
    """No compatible compute device was found."""


class DeviceInitError(KMeansError):
    """A device was found but could not be initialised (allocation / stream)."""


class InvalidKError(KMeansError, ValueError):
    """K is zero, negative, or larger than the number of pixels."""

    def __init__(self, k, pixel_count: int):
        self.k = k
        self.pixel_count = pixel_count
        super().__init__(
            f"K must be an integer in [1, {pixel_count}] for this image, got {k!r}"
        )


class ReadbackError(KMeansError):
    """Device-to-host transfer failed or produced a buffer of the wrong size."""


class KernelCompileError(KMeansError):
    """A compute kernel could not be built for the target device."""


class KernelLaunchError(KMeansError):
    """A kernel failed while running, e.g. the device ran out of memory."""


class DeviceTimeoutError(KMeansError):
    """A bounded wait on the device elapsed before the work completed."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} did not complete within {timeout:.3f}s")
