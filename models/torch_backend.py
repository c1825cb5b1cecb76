# models/torch_backend.py
from __future__ import annotations
import logging
import threading
import time
from typing import Any, Callable, Sequence

import numpy as np
import torch

from models.compute_backend import ComputeBackend, Kernel
from models.errors import (
    DeviceInitError,
    DeviceTimeoutError,
    DeviceUnavailableError,
    KernelCompileError,
    KernelLaunchError,
    ReadbackError,
)

logger = logging.getLogger(__name__)

_DTYPES = {
    "float32": torch.float32,
    "int32": torch.int32,
    "int64": torch.int64,
    "uint8": torch.uint8,
}


def _mps_available() -> bool:
    return hasattr(torch.backends, "mps") and torch.backends.mps.is_available()


def resolve_device(requested: str = "auto") -> torch.device:
    """
    Pick the torch device for *requested*.
    "auto" prefers CUDA, then MPS (Apple Silicon), then CPU.
    """
    requested = requested.lower()
    if requested == "auto":
        if torch.cuda.is_available():
            return torch.device("cuda", 0)
        if _mps_available():
            return torch.device("mps")
        return torch.device("cpu")
    if requested == "cuda":
        if not torch.cuda.is_available():
            raise DeviceUnavailableError("CUDA was requested but no CUDA device is available")
        return torch.device("cuda", 0)
    if requested == "mps":
        if not _mps_available():
            raise DeviceUnavailableError("MPS was requested but is not available on this machine")
        return torch.device("mps")
    if requested == "cpu":
        return torch.device("cpu")
    raise DeviceUnavailableError(f"Unknown compute device '{requested}'")


class TorchBackend(ComputeBackend):
    """
    Singleton per (device, compile_kernels) wrapping a torch device.
    • Buffers are torch tensors living on the device.
    • Kernels are plain tensor programs, optionally built with torch.compile.
    • Holds no clustering state, so several jobs can share one backend.
    """

    _instances: dict[tuple[str, bool], TorchBackend] = {}
    _lock = threading.RLock()

    # ───────────────────────── singleton ctor
    def __new__(cls, device: str = "auto", compile_kernels: bool = False):
        resolved = resolve_device(device)
        key = (str(resolved), bool(compile_kernels))
        with cls._lock:
            if key not in cls._instances:
                instance = super().__new__(cls)
                instance._init(resolved, bool(compile_kernels))
                cls._instances[key] = instance
            return cls._instances[key]

    # ───────────────────────── actual init
    def _init(self, device: torch.device, compile_kernels: bool):
        self.device = device
        self.compile_kernels = compile_kernels
        self.device_name = str(device)
        try:
            # A tiny allocation surfaces driver / context failures up front.
            torch.zeros(1, device=device)
            if device.type == "cuda":
                self.stream = torch.cuda.current_stream(device)
                self.device_name = f"cuda ({torch.cuda.get_device_name(device)})"
            else:
                self.stream = None
        except (RuntimeError, AssertionError) as err:
            raise DeviceInitError(f"Could not initialise compute device {device}: {err}") from err
        logger.info(f"Compute backend using: {self.device_name}")

    @classmethod
    def reset(cls) -> None:
        """Forget cached devices (tests / driver reloads)."""
        with cls._lock:
            cls._instances.clear()

    # ───────────────────────── buffers
    @property
    def supports_timestamps(self) -> bool:
        return self.device.type == "cuda"

    def allocate_buffer(self, shape: Sequence[int], dtype: str, fill=None, label: str | None = None):
        torch_dtype = _DTYPES[np.dtype(dtype).name]
        try:
            if fill is None:
                return torch.empty(tuple(shape), dtype=torch_dtype, device=self.device)
            return torch.full(tuple(shape), fill, dtype=torch_dtype, device=self.device)
        except RuntimeError as err:
            raise DeviceInitError(f"Could not allocate buffer '{label or 'unnamed'}' {tuple(shape)}: {err}") from err

    def upload(self, array: np.ndarray, label: str | None = None):
        host = np.ascontiguousarray(array)
        try:
            return torch.from_numpy(host).to(self.device)
        except RuntimeError as err:
            raise DeviceInitError(f"Could not upload buffer '{label or 'unnamed'}': {err}") from err

    def copy_texture_to_buffer(self, texture: torch.Tensor, bytes_per_row: int) -> torch.Tensor:
        height, width = texture.shape[:2]
        unpadded = width * 4
        staging = self.allocate_buffer((height, bytes_per_row), "uint8", fill=0, label="staging")
        staging[:, :unpadded] = texture.reshape(height, unpadded)
        return staging.reshape(-1)

    # ───────────────────────── kernels
    def register_kernel(self, name: str, fn: Callable[..., Any]) -> Kernel:
        if not callable(fn):
            raise KernelCompileError(f"Kernel '{name}' is not callable")
        if not self.compile_kernels:
            return Kernel(name=name, fn=fn)
        try:
            compiled = torch.compile(fn, dynamic=True)
        except Exception as err:
            raise KernelCompileError(f"Kernel '{name}' failed to build for {self.device_name}: {err}") from err
        return Kernel(name=name, fn=compiled, compiled=True)

    def dispatch(self, kernel: Kernel, grid: tuple[int, ...], *bindings) -> None:
        if any(g < 1 for g in grid):
            raise ValueError(f"Invalid dispatch grid {grid} for kernel '{kernel.name}'")
        first_launch = kernel.launches == 0
        kernel.launches += 1
        if kernel.compiled and first_launch:
            # torch.compile builds lazily, on the first launch.
            try:
                kernel.fn(grid, *bindings)
            except Exception as err:
                raise KernelCompileError(f"Kernel '{kernel.name}' failed to build for {self.device_name}: {err}") from err
            return
        try:
            kernel.fn(grid, *bindings)
        except RuntimeError as err:
            raise KernelLaunchError(f"Kernel '{kernel.name}' failed on {self.device_name}: {err}") from err

    # ───────────────────────── fences
    def submit_and_wait(self, timeout: float | None = None) -> None:
        if self.device.type == "cuda":
            if timeout is None:
                torch.cuda.synchronize(self.device)
                return
            done = torch.cuda.Event()
            done.record(self.stream)
            deadline = time.monotonic() + timeout
            while not done.query():
                if time.monotonic() > deadline:
                    raise DeviceTimeoutError("Device synchronisation", timeout)
                time.sleep(0.0005)
        elif self.device.type == "mps":
            # MPS offers no pollable event, so a timeout cannot be enforced.
            torch.mps.synchronize()
        # CPU kernels complete before dispatch returns.

    def readback(self, buffer: torch.Tensor, timeout: float | None = None) -> np.ndarray:
        self.submit_and_wait(timeout)
        try:
            return buffer.detach().to("cpu").numpy().copy()
        except (RuntimeError, TypeError) as err:
            raise ReadbackError(f"Could not map device buffer {tuple(buffer.shape)} for reading: {err}") from err

    # ───────────────────────── diagnostics
    def begin_timing(self):
        if not self.supports_timestamps:
            return None
        start = torch.cuda.Event(enable_timing=True)
        start.record(self.stream)
        return start

    def end_timing(self, token) -> float | None:
        if token is None:
            return None
        end = torch.cuda.Event(enable_timing=True)
        end.record(self.stream)
        end.synchronize()
        return float(token.elapsed_time(end))
