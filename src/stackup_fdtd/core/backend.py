"""Compute backends that dispatch the field passes.

A backend owns the device copies of the field and coefficient arrays and runs
the pass functions from ``stackup_fdtd.core.kernels`` over them. Every pass is
split into X slabs of ``group_size`` planes; the pass only returns once all
slabs have finished, which is the barrier between the E and H passes.

Backends:
    NumpyBackend: Host arrays. With ``workers > 1`` slabs run on a thread pool
        (NumPy releases the GIL inside the arithmetic).
    TorchBackend: PyTorch tensors on CUDA, MPS or CPU. Slabs are queued in
        order on the device stream; ``synchronize()`` drains the queue.

Example:
    >>> from stackup_fdtd.core.backend import select_backend, has_gpu_support
    >>> backend = select_backend("auto")  # torch on CUDA/MPS if available
    >>> backend.name
    'numpy'
"""

from __future__ import annotations

import warnings
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Literal

import numpy as np
from numpy.typing import NDArray

from stackup_fdtd.core import kernels
from stackup_fdtd.core.params import record_grid_shape
from stackup_fdtd.errors import BackendUnavailable, ShapeMismatch

# Check for PyTorch and accelerator availability
_HAS_TORCH = False
_HAS_CUDA = False
_HAS_MPS = False
_torch = None

try:
    import torch
    _torch = torch
    _HAS_TORCH = True
    _HAS_CUDA = torch.cuda.is_available()
    _HAS_MPS = torch.backends.mps.is_available() and torch.backends.mps.is_built()
except ImportError:
    pass

DEFAULT_GROUP_SIZE = 16

BackendName = Literal["auto", "numpy", "torch"]


def has_gpu_support() -> bool:
    """Check if a GPU (CUDA or MPS) is reachable through PyTorch.

    Returns:
        True if PyTorch is installed and a CUDA or MPS device is available.
    """
    return _HAS_CUDA or _HAS_MPS


def get_gpu_info() -> dict:
    """Get information about GPU support.

    Returns:
        Dict with keys: available, backend, pytorch_version
    """
    if not _HAS_TORCH:
        return {
            "available": False,
            "backend": None,
            "pytorch_version": None,
        }
    if _HAS_CUDA:
        device = "cuda"
    elif _HAS_MPS:
        device = "mps"
    else:
        device = None
    return {
        "available": device is not None,
        "backend": device,
        "pytorch_version": _torch.__version__,
    }


def _slabs(nx: int, group_size: int) -> list[tuple[int, int]]:
    return [(lo, min(lo + group_size, nx)) for lo in range(0, nx, group_size)]


def _check_record(record: np.ndarray, shape: tuple[int, ...]) -> None:
    if record_grid_shape(record) != tuple(shape[:3]):
        raise ShapeMismatch(
            f"parameter record grid {record_grid_shape(record)} doesn't match "
            f"buffer shape {tuple(shape[:3])}"
        )


# =============================================================================
# Backend interface
# =============================================================================


class ArrayBackend(ABC):
    """Owns device buffers and runs the field passes over them.

    Subclasses provide buffer transfer and a device drain; pass dispatch and
    tiling are shared.
    """

    name: str = "abstract"

    def __init__(self, group_size: int = DEFAULT_GROUP_SIZE):
        if group_size <= 0:
            raise ValueError(f"group_size must be positive, got {group_size}")
        self.group_size = group_size

    # -- buffers --------------------------------------------------------------

    @abstractmethod
    def upload(self, array: NDArray) -> Any:
        """Copy a host array into a new buffer owned by this backend."""

    @abstractmethod
    def download(self, buffer: Any) -> NDArray:
        """Copy a buffer back to a host NumPy array."""

    @abstractmethod
    def copy_into(self, buffer: Any, array: NDArray) -> None:
        """Overwrite an existing buffer with host data of the same shape."""

    def download_slice(self, buffer: Any, axis: int, index: int) -> NDArray:
        """Copy one plane ``buffer[..., index, ...]`` (on ``axis``) to the host."""
        return self.download(buffer[(slice(None),) * axis + (index,)])

    def synchronize(self) -> None:
        """Block until all queued work has finished."""

    def close(self) -> None:
        """Release worker resources."""

    def __enter__(self) -> ArrayBackend:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- passes ---------------------------------------------------------------

    def _dispatch(self, kernel: Callable[..., None], nx: int, *args) -> None:
        """Run ``kernel(*args, lo, hi)`` over every X slab of the grid."""
        for lo, hi in _slabs(nx, self.group_size):
            kernel(*args, lo, hi)

    def inject_source(self, e_field: Any, record: np.ndarray) -> None:
        """Add the record's amplitude to E_x inside the record's sub-box."""
        _check_record(record, e_field.shape)
        offset = (int(record["offset_x"]), int(record["offset_y"]), int(record["offset_z"]))
        size = (int(record["size_x"]), int(record["size_y"]), int(record["size_z"]))
        kernels.inject_current_source(e_field, float(record["e0"]), offset, size)

    def update_e(self, e_field: Any, h_field: Any, a0: Any, a1: Any, record: np.ndarray) -> None:
        """E pass over the whole grid; returns once every slab is done."""
        _check_record(record, e_field.shape)
        self._dispatch(
            kernels.update_electric_field, e_field.shape[0], e_field, h_field, a0, a1
        )

    def update_h(self, h_field: Any, e_field: Any, record: np.ndarray) -> None:
        """H pass over the whole grid; returns once every slab is done."""
        _check_record(record, h_field.shape)
        self._dispatch(
            kernels.update_magnetic_field,
            h_field.shape[0],
            h_field,
            e_field,
            float(record["b0"]),
        )


# =============================================================================
# NumPy backend
# =============================================================================


class NumpyBackend(ArrayBackend):
    """Host backend on NumPy arrays.

    Args:
        group_size: X planes per slab
        workers: Threads used to run slabs. 1 runs slabs inline.
    """

    name = "numpy"

    def __init__(self, group_size: int = DEFAULT_GROUP_SIZE, workers: int = 1):
        super().__init__(group_size)
        if workers <= 0:
            raise ValueError(f"workers must be positive, got {workers}")
        self.workers = workers
        self._executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None

    def upload(self, array: NDArray) -> NDArray:
        return np.array(array, dtype=np.float32, order="C", copy=True)

    def download(self, buffer: NDArray) -> NDArray:
        return np.array(buffer, copy=True)

    def copy_into(self, buffer: NDArray, array: NDArray) -> None:
        if buffer.shape != array.shape:
            raise ShapeMismatch(f"cannot copy {array.shape} into buffer {buffer.shape}")
        np.copyto(buffer, array)

    def _dispatch(self, kernel: Callable[..., None], nx: int, *args) -> None:
        if self._executor is None:
            super()._dispatch(kernel, nx, *args)
            return
        futures = [
            self._executor.submit(kernel, *args, lo, hi)
            for lo, hi in _slabs(nx, self.group_size)
        ]
        wait(futures)
        # Re-raise the first slab failure, if any
        for future in futures:
            future.result()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


# =============================================================================
# PyTorch backend
# =============================================================================


class TorchBackend(ArrayBackend):
    """PyTorch backend for CUDA, MPS or CPU tensors.

    Args:
        device: Torch device string. None picks CUDA, then MPS, then CPU.
        group_size: X planes per slab

    Raises:
        BackendUnavailable: If PyTorch is not installed or the requested
            device is not present
    """

    name = "torch"

    def __init__(self, device: str | None = None, group_size: int = DEFAULT_GROUP_SIZE):
        if not _HAS_TORCH:
            raise BackendUnavailable(
                "PyTorch is required for the torch backend. "
                "Install with: pip install 'stackup-fdtd[gpu]'"
            )
        super().__init__(group_size)
        if device is None:
            device = "cuda" if _HAS_CUDA else "mps" if _HAS_MPS else "cpu"
        if device.startswith("cuda") and not _HAS_CUDA:
            raise BackendUnavailable("CUDA device requested but not available")
        if device == "mps" and not _HAS_MPS:
            raise BackendUnavailable("MPS device requested but not available")
        if device == "cpu":
            warnings.warn(
                "No GPU available, torch backend running on CPU. "
                "This provides no acceleration benefit.",
                UserWarning,
                stacklevel=2,
            )
        self.device = device

    def upload(self, array: NDArray):
        host = np.ascontiguousarray(array, dtype=np.float32)
        return _torch.tensor(host, dtype=_torch.float32, device=self.device)

    def download(self, buffer) -> NDArray:
        return buffer.detach().cpu().numpy().copy()

    def copy_into(self, buffer, array: NDArray) -> None:
        if tuple(buffer.shape) != tuple(array.shape):
            raise ShapeMismatch(
                f"cannot copy {array.shape} into buffer {tuple(buffer.shape)}"
            )
        buffer.copy_(_torch.from_numpy(np.ascontiguousarray(array, dtype=np.float32)))

    def synchronize(self) -> None:
        if self.device.startswith("cuda"):
            _torch.cuda.synchronize()
        elif self.device == "mps":
            _torch.mps.synchronize()


# =============================================================================
# Selection
# =============================================================================


def select_backend(
    name: BackendName = "auto",
    device: str | None = None,
    group_size: int = DEFAULT_GROUP_SIZE,
    workers: int = 1,
) -> ArrayBackend:
    """Create a backend by name.

    Args:
        name: "numpy", "torch", or "auto" (torch when a GPU is available,
            otherwise numpy)
        device: Torch device, only used by the torch backend
        group_size: X planes per slab
        workers: Host threads, only used by the numpy backend

    Returns:
        A ready-to-use backend

    Raises:
        BackendUnavailable: If "torch" is requested without PyTorch or the
            requested device
        ValueError: For an unknown backend name
    """
    if name == "numpy":
        return NumpyBackend(group_size=group_size, workers=workers)
    if name == "torch":
        return TorchBackend(device=device, group_size=group_size)
    if name == "auto":
        if has_gpu_support():
            return TorchBackend(device=device, group_size=group_size)
        return NumpyBackend(group_size=group_size, workers=workers)
    raise ValueError(f"Unknown backend {name!r}; expected 'auto', 'numpy' or 'torch'")
