"""
N-dimensional typed arrays with composable zero-copy views.

The setup code for a simulation carves regions out of the material grids
(ground planes, dielectric slabs, terminator resistors) by chaining views
instead of doing offset arithmetic by hand. Every view is a lightweight
descriptor: the owning array plus a tuple of index transforms. Composing a
view appends a transform and never allocates element storage, so writes
through any view land in the owner's buffer.

Classes:
    NdarrayView: Common interface and composition operators
    NdArray: Owning array backed by a flat NumPy buffer
    GridView: Non-owning view (owner + transform chain)

Example:
    >>> sigma = NdArray.create_zeros([16, 128, 256], "f32")
    >>> # 1-cell thick ground plane with a 20 cell border
    >>> sigma.slice_from([7, 20, 20]).slice_to([1, 88, 216]).fill(1e8)
    >>> # Every other cell along z of the first x plane
    >>> sigma.slice_to([1, 128, 256]).stride_by([1, 1, 2]).fill(0.0)
"""

from __future__ import annotations

import math
import operator
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from stackup_fdtd.errors import OutOfRange, ShapeMismatch

# Element types supported by owning arrays
DTYPES: dict[str, type[np.generic]] = {
    "s8": np.int8,
    "u8": np.uint8,
    "u8_clamped": np.uint8,
    "s16": np.int16,
    "u16": np.uint16,
    "s32": np.int32,
    "u32": np.uint32,
    "f32": np.float32,
    "f64": np.float64,
}


def _row_major_strides(shape: Sequence[int]) -> tuple[int, ...]:
    """Element strides of a dense row-major array with the given shape."""
    strides = []
    stride = 1
    for n in reversed(shape):
        strides.append(stride)
        stride *= n
    return tuple(reversed(strides))


def _as_index(values: Sequence[int]) -> tuple[int, ...]:
    return tuple(operator.index(v) for v in values)


def _check_arity(name: str, values: Sequence[int], shape: Sequence[int]) -> None:
    if len(values) != len(shape):
        raise ShapeMismatch(
            f"{name} {tuple(values)} has dimension {len(values)} but view shape "
            f"{tuple(shape)} has dimension {len(shape)}"
        )


def _dtype_name(dtype: np.dtype) -> str:
    for name, scalar_type in DTYPES.items():
        if name != "u8_clamped" and np.dtype(scalar_type) == dtype:
            return name
    raise ValueError(f"Unsupported buffer dtype: {dtype}")


# =============================================================================
# Index transforms
# =============================================================================
# Each transform knows the shape it exposes and maps an index in that shape
# to an index in the shape of the view it was applied to.


@dataclass(frozen=True)
class _Offset:
    offset: tuple[int, ...]
    shape: tuple[int, ...]

    def to_parent(self, index: tuple[int, ...]) -> tuple[int, ...]:
        return tuple(i + o for i, o in zip(index, self.offset))


@dataclass(frozen=True)
class _Extent:
    shape: tuple[int, ...]

    def to_parent(self, index: tuple[int, ...]) -> tuple[int, ...]:
        return index


@dataclass(frozen=True)
class _Transpose:
    order: tuple[int, ...]
    shape: tuple[int, ...]

    def to_parent(self, index: tuple[int, ...]) -> tuple[int, ...]:
        parent = [0] * len(index)
        for axis, parent_axis in enumerate(self.order):
            parent[parent_axis] = index[axis]
        return tuple(parent)


@dataclass(frozen=True)
class _Reshape:
    shape: tuple[int, ...]
    strides: tuple[int, ...]
    parent_strides: tuple[int, ...]

    def to_parent(self, index: tuple[int, ...]) -> tuple[int, ...]:
        # index -> flat offset in the new shape -> multi-index in the parent shape
        flat = sum(i * s for i, s in zip(index, self.strides))
        parent = []
        for stride in self.parent_strides:
            axis_index, flat = divmod(flat, stride)
            parent.append(axis_index)
        return tuple(parent)


@dataclass(frozen=True)
class _Stride:
    step: tuple[int, ...]
    shape: tuple[int, ...]

    def to_parent(self, index: tuple[int, ...]) -> tuple[int, ...]:
        return tuple(i * s for i, s in zip(index, self.step))


@dataclass(frozen=True)
class _Reverse:
    shape: tuple[int, ...]

    def to_parent(self, index: tuple[int, ...]) -> tuple[int, ...]:
        return tuple(n - 1 - i for i, n in zip(index, self.shape))


# =============================================================================
# Views
# =============================================================================


class NdarrayView(ABC):
    """Indexable window over an owning array.

    Subclasses provide ``shape``, ``dtype``, ``owner`` and ``_resolve`` which
    maps a validated multi-index to a flat offset in the owner's buffer.
    """

    @property
    @abstractmethod
    def shape(self) -> tuple[int, ...]:
        """Size of each axis."""

    @property
    @abstractmethod
    def owner(self) -> NdArray:
        """The array whose buffer this view reads and writes."""

    @abstractmethod
    def _resolve(self, index: tuple[int, ...]) -> int:
        """Flat buffer offset for an already validated index."""

    @property
    def dtype(self) -> str:
        return self.owner.dtype

    @property
    def rank(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return math.prod(self.shape)

    def _validate_index(self, index: Sequence[int]) -> tuple[int, ...]:
        index = _as_index(index)
        _check_arity("Index", index, self.shape)
        for axis, (i, n) in enumerate(zip(index, self.shape)):
            if not 0 <= i < n:
                raise OutOfRange(
                    f"Index {index} at axis {axis} is outside of shape {self.shape}"
                )
        return index

    def _indices(self) -> Iterator[tuple[int, ...]]:
        """Every multi-index of this view in lexicographic (row-major) order."""
        return np.ndindex(*self.shape)

    def get(self, index: Sequence[int]) -> float:
        index = self._validate_index(index)
        return self.owner._load(self._resolve(index))

    def set(self, index: Sequence[int], value: float) -> None:
        index = self._validate_index(index)
        self.owner._store(self._resolve(index), value)

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    @abstractmethod
    def _compose(self, transform) -> GridView:
        """Return a view of this view through an additional transform."""

    def slice_from(self, offset: Sequence[int]) -> GridView:
        """View starting at ``offset`` and running to the end of every axis.

        Raises:
            ShapeMismatch: If ``offset`` has the wrong number of axes
            OutOfRange: If ``offset[i]`` is outside ``[0, shape[i])``
        """
        offset = _as_index(offset)
        _check_arity("Offset", offset, self.shape)
        for axis, (o, n) in enumerate(zip(offset, self.shape)):
            if not 0 <= o < n:
                raise OutOfRange(
                    f"Offset {offset} at axis {axis} is outside of shape {self.shape}"
                )
        shape = tuple(n - o for n, o in zip(self.shape, offset))
        return self._compose(_Offset(offset=offset, shape=shape))

    def slice_to(self, extent: Sequence[int]) -> GridView:
        """View over the first ``extent[i]`` entries of every axis.

        Raises:
            ShapeMismatch: If ``extent`` has the wrong number of axes
            OutOfRange: If ``extent[i]`` is outside ``(0, shape[i]]``
        """
        extent = _as_index(extent)
        _check_arity("Extent", extent, self.shape)
        for axis, (e, n) in enumerate(zip(extent, self.shape)):
            if not 0 < e <= n:
                raise OutOfRange(
                    f"Extent {extent} at axis {axis} is outside of shape {self.shape}"
                )
        return self._compose(_Extent(shape=extent))

    def transpose(self, order: Sequence[int]) -> GridView:
        """View with axes reordered; axis ``k`` of the result is ``order[k]`` here.

        Raises:
            ShapeMismatch: If ``order`` has the wrong length or repeats an axis
            OutOfRange: If an axis in ``order`` is outside ``0..rank``
        """
        order = _as_index(order)
        _check_arity("Transposed axes", order, self.shape)
        for axis in order:
            if not 0 <= axis < self.rank:
                raise OutOfRange(
                    f"Transposed axes {order} contain axis {axis} outside of rank {self.rank}"
                )
        if len(set(order)) != len(order):
            raise ShapeMismatch(f"Duplicate dimension in transposed axes {order}")
        shape = tuple(self.shape[axis] for axis in order)
        return self._compose(_Transpose(order=order, shape=shape))

    def reshape(self, shape: Sequence[int]) -> GridView:
        """View with a new shape over the same elements in row-major order.

        Indices are flattened against the new shape and then unflattened
        against this view's shape, so reshaping works on top of sliced or
        transposed views and not just on dense owners.

        Raises:
            ShapeMismatch: If the total element count differs
        """
        shape = _as_index(shape)
        if any(n <= 0 for n in shape) or math.prod(shape) != self.size:
            raise ShapeMismatch(
                f"Reshape total elements mismatch: shape {self.shape} has {self.size} "
                f"elements, target shape {shape} has {math.prod(shape)}"
            )
        return self._compose(
            _Reshape(
                shape=shape,
                strides=_row_major_strides(shape),
                parent_strides=_row_major_strides(self.shape),
            )
        )

    def flatten(self) -> GridView:
        return self.reshape([self.size])

    def stride_by(self, step: Sequence[int]) -> GridView:
        """View of every ``step[i]``-th entry along each axis.

        The result has shape ``ceil(shape[i] / step[i])``.
        """
        step = _as_index(step)
        _check_arity("Stride", step, self.shape)
        for axis, s in enumerate(step):
            if s <= 0:
                raise OutOfRange(f"Stride {step} at axis {axis} must be positive")
        shape = tuple(-(-n // s) for n, s in zip(self.shape, step))
        return self._compose(_Stride(step=step, shape=shape))

    def reverse(self) -> GridView:
        """View with every axis traversed back to front."""
        return self._compose(_Reverse(shape=self.shape))

    # -------------------------------------------------------------------------
    # Bulk element operations
    # -------------------------------------------------------------------------

    def fill(self, value: float) -> NdarrayView:
        owner = self.owner
        for index in self._indices():
            owner._store(self._resolve(index), value)
        return self

    def assign(self, other: NdarrayView) -> NdarrayView:
        """Copy every element of ``other`` into this view.

        Raises:
            ShapeMismatch: If the shapes differ
        """
        if tuple(other.shape) != tuple(self.shape):
            raise ShapeMismatch(
                f"Assign failed with shape mismatch between destination {self.shape} "
                f"and source {tuple(other.shape)}"
            )
        if other.owner is self.owner:
            # Overlapping windows must read the original values
            other = other.to_owned()
        owner = self.owner
        source_owner = other.owner
        for index in self._indices():
            owner._store(self._resolve(index), source_owner._load(other._resolve(index)))
        return self

    def to_owned(self) -> NdArray:
        """Materialize the view into a new dense array."""
        result = NdArray.create_zeros(self.shape, self.dtype)
        owner = self.owner
        for index in self._indices():
            result._store(result._resolve(index), owner._load(self._resolve(index)))
        return result

    def to_numpy(self) -> NDArray:
        """Dense NumPy copy of the view contents."""
        return self.to_owned().to_numpy()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(shape={self.shape}, dtype={self.dtype!r})"


class NdArray(NdarrayView):
    """Owning N-dimensional array stored as a flat row-major NumPy buffer.

    Use the ``create_*`` / ``from_buffer`` constructors rather than calling the
    class directly.

    Attributes:
        data: Flat 1D NumPy buffer holding every element
        stride: Row-major element strides for each axis
    """

    def __init__(self, data: NDArray, shape: Sequence[int], dtype: str):
        self.data = data
        self._shape = tuple(shape)
        self._dtype = dtype
        self.stride = _row_major_strides(self._shape)

    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def dtype(self) -> str:
        return self._dtype

    @property
    def owner(self) -> NdArray:
        return self

    @staticmethod
    def _validate_shape(shape: Sequence[int]) -> tuple[int, ...]:
        shape = _as_index(shape)
        if len(shape) == 0 or any(n <= 0 for n in shape):
            raise ShapeMismatch(f"Array shape {shape} must have positive dimensions")
        return shape

    @classmethod
    def create_zeros(cls, shape: Sequence[int], dtype: str) -> NdArray:
        """Allocate a zero-filled array.

        Raises:
            ShapeMismatch: If the shape is empty or has a non-positive dimension
            ValueError: If ``dtype`` is not one of ``DTYPES``
        """
        shape = cls._validate_shape(shape)
        if dtype not in DTYPES:
            raise ValueError(f"Unknown dtype '{dtype}'. Valid dtypes: {list(DTYPES)}")
        data = np.zeros(math.prod(shape), dtype=DTYPES[dtype])
        return cls(data, shape, dtype)

    @classmethod
    def from_buffer(cls, shape: Sequence[int], data: NDArray) -> NdArray:
        """Wrap an existing 1D NumPy buffer without copying it."""
        shape = cls._validate_shape(shape)
        data = np.asarray(data)
        if data.ndim != 1 or data.size != math.prod(shape):
            raise ShapeMismatch(
                f"Mismatch between specified shape {shape} with {math.prod(shape)} "
                f"elements and provided buffer of shape {data.shape}"
            )
        return cls(data, shape, _dtype_name(data.dtype))

    @classmethod
    def linspace(cls, start: float, step: float, shape: Sequence[int], dtype: str) -> NdArray:
        """Array whose k-th element in row-major order is ``start + k*step``."""
        arr = cls.create_zeros(shape, dtype)
        for k, index in enumerate(arr._indices()):
            arr._store(arr._resolve(index), start + k * step)
        return arr

    @classmethod
    def arange(cls, shape: Sequence[int], dtype: str) -> NdArray:
        return cls.linspace(0, 1, shape, dtype)

    def _compose(self, transform) -> GridView:
        return GridView(self, (transform,))

    def _resolve(self, index: tuple[int, ...]) -> int:
        return sum(i * s for i, s in zip(index, self.stride))

    def _load(self, offset: int) -> float:
        return self.data[offset].item()

    def _store(self, offset: int, value: float) -> None:
        if self._dtype == "u8_clamped":
            value = min(max(round(value), 0), 255)
        self.data[offset] = value

    def fill(self, value: float) -> NdArray:
        if self._dtype == "u8_clamped":
            value = min(max(round(value), 0), 255)
        self.data.fill(value)
        return self

    def to_owned(self) -> NdArray:
        return NdArray(self.data.copy(), self._shape, self._dtype)

    def to_numpy(self) -> NDArray:
        """N-dimensional NumPy view sharing this array's buffer."""
        return self.data.reshape(self._shape)

    def save_npy(self, path: str | Path) -> None:
        """Write the array in NumPy ``.npy`` format."""
        np.save(path, self.to_numpy(), allow_pickle=False)


class GridView(NdarrayView):
    """Window over an ``NdArray`` described by a chain of index transforms.

    Args:
        owner: Array whose buffer is read and written
        transforms: Transforms applied from the owner outwards; the last one
            defines this view's shape
    """

    def __init__(self, owner: NdArray, transforms: tuple):
        self._owner = owner
        self._transforms = transforms

    @property
    def shape(self) -> tuple[int, ...]:
        return self._transforms[-1].shape

    @property
    def owner(self) -> NdArray:
        return self._owner

    def _compose(self, transform) -> GridView:
        return GridView(self._owner, self._transforms + (transform,))

    def _resolve(self, index: tuple[int, ...]) -> int:
        for transform in reversed(self._transforms):
            index = transform.to_parent(index)
        return self._owner._resolve(index)
