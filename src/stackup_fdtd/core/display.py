"""Cross-section colour mapping for field snapshots.

Turns one plane of an (Nx, Ny, Nz, 3) vector field into an RGBA image with
channels clamped to [0, 1]:

    "x" / "y" / "z": v = F[..., k] * scale -> (max(-v, 0), max(v, 0), 0, 1)
    "mag":           v = |F| * scale       -> (v, v, v, 1)

Negative components show red and positive components green.
"""

from __future__ import annotations

from typing import Literal

import numpy as np
from numpy.typing import NDArray

from stackup_fdtd.errors import OutOfRange

DisplayMode = Literal["x", "y", "z", "mag"]

DISPLAY_MODES: tuple[str, ...] = ("x", "y", "z", "mag")

# Matches the 10**-0.3 gain of the interactive viewer
DEFAULT_DISPLAY_SCALE = 10 ** -0.3

_COMPONENT = {"x": 0, "y": 1, "z": 2}


def check_slice_index(shape: tuple[int, ...], axis: int, index: int) -> None:
    """Raise OutOfRange unless ``index`` selects a plane of ``shape`` on ``axis``."""
    if not 0 <= axis < 3:
        raise OutOfRange(f"slice axis {axis} not in [0, 3)")
    if not 0 <= index < shape[axis]:
        raise OutOfRange(
            f"slice index {index} out of range for axis {axis} with size {shape[axis]}"
        )


def colourize_plane(
    plane: NDArray[np.floating],
    scale: float = DEFAULT_DISPLAY_SCALE,
    mode: DisplayMode = "x",
) -> NDArray[np.float32]:
    """Map a (A, B, 3) vector plane to an (A, B, 4) RGBA image.

    Raises:
        ValueError: For an unknown mode
    """
    if mode not in DISPLAY_MODES:
        raise ValueError(f"Unknown display mode {mode!r}; expected one of {DISPLAY_MODES}")
    plane = np.asarray(plane, dtype=np.float32)

    image = np.zeros(plane.shape[:-1] + (4,), dtype=np.float32)
    if mode == "mag":
        v = np.linalg.norm(plane, axis=-1) * scale
        image[..., 0] = v
        image[..., 1] = v
        image[..., 2] = v
    else:
        v = plane[..., _COMPONENT[mode]] * scale
        image[..., 0] = np.maximum(-v, 0.0)
        image[..., 1] = np.maximum(v, 0.0)
    image[..., 3] = 1.0
    return np.clip(image, 0.0, 1.0, out=image)


def extract_slice(
    field: NDArray[np.floating],
    index: int,
    scale: float = DEFAULT_DISPLAY_SCALE,
    mode: DisplayMode = "x",
    axis: int = 0,
) -> NDArray[np.float32]:
    """Render the plane ``field[index]`` taken along ``axis``.

    Args:
        field: Vector field of shape (Nx, Ny, Nz, 3)
        index: Plane position along ``axis``
        scale: Display gain applied before clamping
        mode: Signed component ("x", "y", "z") or magnitude ("mag")
        axis: Axis normal to the plane (0 gives a (Ny, Nz) image)

    Returns:
        RGBA float32 image indexed by the two remaining axes in order

    Raises:
        OutOfRange: If ``index`` or ``axis`` is outside the grid
        ValueError: For an unknown mode
    """
    check_slice_index(field.shape, axis, index)
    plane = np.take(field, index, axis=axis)
    return colourize_plane(plane, scale=scale, mode=mode)


def to_rgba8(image: NDArray[np.floating]) -> NDArray[np.uint8]:
    """Quantize an RGBA image in [0, 1] to uint8 (rgba8unorm)."""
    return np.round(np.clip(image, 0.0, 1.0) * 255.0).astype(np.uint8)
