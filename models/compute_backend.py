"""
Compute backend contract.

The clustering engine only talks to an accelerator through this interface:
buffers are opaque device handles, kernels are registered callables that
write into the buffers bound to them, and the host observes results only
after an explicit fence (submit_and_wait / readback).
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import numpy as np


@dataclass
class Kernel:
    """A device program plus the bookkeeping the backend needs to launch it."""
    name: str
    fn: Callable[..., Any]
    compiled: bool = False
    launches: int = field(default=0, compare=False)


class ComputeBackend(ABC):

    device_name: str = "unknown"

    @property
    @abstractmethod
    def supports_timestamps(self) -> bool:
        ...

    @abstractmethod
    def allocate_buffer(self, shape: Sequence[int], dtype: str, fill=None, label: str | None = None):
        """Allocate a device buffer, optionally filled with a constant."""

    @abstractmethod
    def upload(self, array: np.ndarray, label: str | None = None):
        """Copy a host array into a new device buffer."""

    @abstractmethod
    def register_kernel(self, name: str, fn: Callable[..., Any]) -> Kernel:
        """Build a kernel for this device. Raises KernelCompileError."""

    @abstractmethod
    def dispatch(self, kernel: Kernel, grid: tuple[int, ...], *bindings) -> None:
        """Enqueue *kernel* over *grid* workgroups. Returns before completion."""

    @abstractmethod
    def copy_texture_to_buffer(self, texture, bytes_per_row: int):
        """Copy an (H, W, 4) uint8 texture into a buffer with rows at *bytes_per_row*."""

    @abstractmethod
    def submit_and_wait(self, timeout: float | None = None) -> None:
        """Fence: block until every enqueued kernel has finished."""

    @abstractmethod
    def readback(self, buffer, timeout: float | None = None) -> np.ndarray:
        """Fence, then copy *buffer* into a fresh host array. Raises ReadbackError."""

    def begin_timing(self):
        """Start a kernel-phase timer. Returns a token for end_timing, or None."""
        return None

    def end_timing(self, token) -> float | None:
        """Elapsed milliseconds since *token*, or None without timestamp support."""
        return None
