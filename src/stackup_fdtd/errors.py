"""Error taxonomy for grid construction and simulation setup.

All errors are raised at the point of detection and are not retried.
Operations that raise leave their target unmodified.

Classes:
    FDTDError: Base class for all package errors
    ShapeMismatch: Incompatible ranks or sizes between arrays/views
    OutOfRange: Offsets, extents, indices or axes outside their bounds
    InvalidMaterial: Material values that make coefficients undefined
    BackendUnavailable: Requested compute backend cannot be obtained
"""


class FDTDError(Exception):
    """Base class for errors raised by stackup_fdtd."""


class ShapeMismatch(FDTDError, ValueError):
    """Raised when array or view ranks/sizes are incompatible."""


class OutOfRange(FDTDError, IndexError):
    """Raised when an index, offset, extent or axis is outside its bounds."""


class InvalidMaterial(FDTDError, ValueError):
    """Raised when material values cannot produce update coefficients."""


class BackendUnavailable(FDTDError, RuntimeError):
    """Raised when the requested compute backend or device is missing."""
