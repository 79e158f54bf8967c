"""Material coefficients for the electric and magnetic field updates.

Ground planes, traces, dielectrics and terminator resistors are all expressed
as regions of elevated conductivity or permittivity. This module turns those
per-cell values into the update coefficients used by the field kernels:

    A0 = 1 / (1 + sigma/epsilon * dt)      (per cell)
    A1 = dt / (epsilon * d_xyz)            (per cell)
    B0 = dt / (mu * d_xyz)                 (whole grid)

Stability: dt <= d_xyz / (c * sqrt(3)) with c = 1/sqrt(epsilon*mu)
(CFL condition for 3D)
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray

from stackup_fdtd.core.ndarray import NdarrayView
from stackup_fdtd.errors import InvalidMaterial

# Physical constants
EPSILON_0 = 8.85e-12  # F/m, vacuum permittivity
MU_0 = 1.26e-6  # H/m, vacuum permeability


@dataclass(frozen=True)
class Coefficients:
    """Precomputed update coefficients.

    Attributes:
        a0: Per-cell decay factor for the electric field, shape (Nx, Ny, Nz)
        a1: Per-cell curl(H) scale for the electric field, shape (Nx, Ny, Nz)
        b0: Curl(E) scale for the magnetic field (uniform permeability)
    """

    a0: NDArray[np.float32]
    a1: NDArray[np.float32]
    b0: float

    @property
    def shape(self) -> tuple[int, ...]:
        return self.a0.shape


def _as_float_grid(values: NdarrayView | ArrayLike) -> NDArray[np.float64]:
    if isinstance(values, NdarrayView):
        values = values.to_numpy()
    return np.asarray(values, dtype=np.float64)


def compute_coefficients(
    sigma: NdarrayView | ArrayLike,
    epsilon: NdarrayView | ArrayLike,
    mu: float,
    d_xyz: float,
    dt: float,
) -> Coefficients:
    """Derive the field update coefficients from material grids.

    Args:
        sigma: Conductivity per cell in S/m
        epsilon: Absolute permittivity per cell in F/m
        mu: Absolute permeability of the whole grid in H/m
        d_xyz: Cell spacing in meters (same for all axes)
        dt: Timestep in seconds

    Returns:
        Coefficients with read-only float32 ``a0``/``a1`` grids

    Raises:
        InvalidMaterial: If epsilon is not strictly positive and finite,
            sigma is negative or non-finite, the grids differ in shape, or
            mu, d_xyz, dt are not positive
    """
    sigma = _as_float_grid(sigma)
    epsilon = _as_float_grid(epsilon)

    if sigma.shape != epsilon.shape:
        raise InvalidMaterial(
            f"sigma shape {sigma.shape} doesn't match epsilon shape {epsilon.shape}"
        )
    if not np.all(np.isfinite(epsilon)) or np.any(epsilon <= 0):
        raise InvalidMaterial(
            "epsilon must be positive and finite in every cell "
            f"(minimum found: {np.nanmin(epsilon):.4g})"
        )
    if not np.all(np.isfinite(sigma)) or np.any(sigma < 0):
        raise InvalidMaterial("sigma must be non-negative and finite in every cell")
    for name, value in (("mu", mu), ("d_xyz", d_xyz), ("dt", dt)):
        if not np.isfinite(value) or value <= 0:
            raise InvalidMaterial(f"{name} must be positive, got {value}")

    a0 = (1.0 / (1.0 + sigma / epsilon * dt)).astype(np.float32)
    a1 = (dt / (epsilon * d_xyz)).astype(np.float32)
    a0.setflags(write=False)
    a1.setflags(write=False)
    b0 = dt / (mu * d_xyz)

    return Coefficients(a0=a0, a1=a1, b0=float(b0))


def speed_of_light(epsilon: float, mu: float) -> float:
    """Wave speed in m/s for a medium with the given absolute constants."""
    return float(1.0 / np.sqrt(epsilon * mu))


def courant_limit(d_xyz: float, epsilon: float, mu: float) -> float:
    """Largest stable timestep for a uniform 3D grid.

    Pass the smallest permittivity on the grid, since it gives the fastest
    wave speed.
    """
    return d_xyz / (speed_of_light(epsilon, mu) * np.sqrt(3))
