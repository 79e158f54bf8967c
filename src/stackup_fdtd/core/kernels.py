"""Field update passes for the 3D electromagnetic FDTD solver.

Each pass is a plain function that mutates its output array in place. The
functions only use slicing, negation and in-place arithmetic, so they run
unchanged on NumPy arrays and on PyTorch tensors; binding to a device is left
to ``stackup_fdtd.core.backend``.

Physics (leapfrog on a Yee-style grid):
    E(t+1) = A0 * (E(t) + A1 * curl(H(t)))
    H(t+1) = H(t) - B0 * curl(E(t+1))

Layout:
    E and H have shape (Nx, Ny, Nz, 3) with the vector component fastest.
    A0 and A1 have shape (Nx, Ny, Nz).

Boundaries:
    curl(H) uses forward differences and curl(E) backward differences. A
    neighbour outside the grid is treated as a zero field value (Dirichlet
    truncation), so the difference reduces to -H[c] or E[c] at that edge.

Tiling:
    The E and H passes accept an X slab [lo, hi). Cells are independent
    within a pass, so any partition of the X axis into slabs gives the same
    result as one full-grid call.
"""

from __future__ import annotations

from typing import Any

# NumPy array or torch tensor
Array = Any


def _axis_range(axis: int, start: int, stop: int) -> tuple[slice, ...]:
    """Index selecting ``start:stop`` along ``axis`` and everything before it."""
    return (slice(None),) * axis + (slice(start, stop),)


def _forward_difference(f: Array, axis: int, lo: int, hi: int) -> Array:
    """``f[c+1] - f[c]`` along ``axis`` for the X slab ``[lo, hi)``.

    The neighbour term is only added where ``c+1 < N``; past the last cell the
    difference is ``-f[c]``.
    """
    current = f[lo:hi]
    diff = -current
    if axis == 0:
        # X neighbours of the slab's last row live outside the slab
        upper = f[lo + 1:hi + 1]
        diff[: upper.shape[0]] += upper
    else:
        n = f.shape[axis]
        diff[_axis_range(axis, 0, n - 1)] += current[_axis_range(axis, 1, n)]
    return diff


def _backward_difference(f: Array, axis: int, lo: int, hi: int) -> Array:
    """``f[c] - f[c-1]`` along ``axis`` for the X slab ``[lo, hi)``.

    The neighbour term is only subtracted where ``c-1 >= 0``; at the first
    cell the difference is ``f[c]``.
    """
    current = f[lo:hi]
    # Accumulate the negated difference so the result is a fresh array
    diff = -current
    if axis == 0:
        lower = f[max(lo - 1, 0):hi - 1]
        diff[diff.shape[0] - lower.shape[0]:] += lower
    else:
        n = f.shape[axis]
        diff[_axis_range(axis, 1, n)] += current[_axis_range(axis, 0, n - 1)]
    return -diff


def inject_current_source(
    e_field: Array,
    e0: float,
    offset: tuple[int, int, int],
    size: tuple[int, int, int],
) -> None:
    """Add ``e0`` to the X component of E inside a sub-box.

    Args:
        e_field: Electric field, shape (Nx, Ny, Nz, 3)
        e0: Amplitude for the current step
        offset: First cell (ix, iy, iz) of the box
        size: Box extent (sx, sy, sz) in cells; cells past the grid edge
            are skipped
    """
    ox, oy, oz = offset
    sx, sy, sz = size
    e_field[ox:ox + sx, oy:oy + sy, oz:oz + sz, 0] += e0


def update_electric_field(
    e_field: Array,
    h_field: Array,
    a0: Array,
    a1: Array,
    lo: int = 0,
    hi: int | None = None,
) -> None:
    """Advance E by one step from curl(H) for the X slab ``[lo, hi)``.

    Args:
        e_field: Electric field, updated in place, shape (Nx, Ny, Nz, 3)
        h_field: Magnetic field from the previous H pass (read only)
        a0: Per-cell decay coefficient, shape (Nx, Ny, Nz)
        a1: Per-cell curl coefficient, shape (Nx, Ny, Nz)
        lo: First X plane to update
        hi: One past the last X plane (default: Nx)
    """
    if hi is None:
        hi = e_field.shape[0]
    hx, hy, hz = h_field[..., 0], h_field[..., 1], h_field[..., 2]

    dhz_dy = _forward_difference(hz, 1, lo, hi)
    dhy_dz = _forward_difference(hy, 2, lo, hi)
    dhx_dz = _forward_difference(hx, 2, lo, hi)
    dhz_dx = _forward_difference(hz, 0, lo, hi)
    dhy_dx = _forward_difference(hy, 0, lo, hi)
    dhx_dy = _forward_difference(hx, 1, lo, hi)

    curl_x = dhz_dy - dhy_dz
    curl_y = dhx_dz - dhz_dx
    curl_z = dhy_dx - dhx_dy

    k0 = a0[lo:hi]
    k1 = a1[lo:hi]
    e = e_field[lo:hi]
    e[..., 0] = k0 * (e[..., 0] + k1 * curl_x)
    e[..., 1] = k0 * (e[..., 1] + k1 * curl_y)
    e[..., 2] = k0 * (e[..., 2] + k1 * curl_z)


def update_magnetic_field(
    h_field: Array,
    e_field: Array,
    b0: float,
    lo: int = 0,
    hi: int | None = None,
) -> None:
    """Advance H by one step from curl(E) for the X slab ``[lo, hi)``.

    Lossless update with uniform permeability: ``H -= B0 * curl(E)``.

    Args:
        h_field: Magnetic field, updated in place, shape (Nx, Ny, Nz, 3)
        e_field: Electric field already advanced by the E pass (read only)
        b0: Curl coefficient dt/(mu*d_xyz)
        lo: First X plane to update
        hi: One past the last X plane (default: Nx)
    """
    if hi is None:
        hi = h_field.shape[0]
    ex, ey, ez = e_field[..., 0], e_field[..., 1], e_field[..., 2]

    dez_dy = _backward_difference(ez, 1, lo, hi)
    dey_dz = _backward_difference(ey, 2, lo, hi)
    dex_dz = _backward_difference(ex, 2, lo, hi)
    dez_dx = _backward_difference(ez, 0, lo, hi)
    dey_dx = _backward_difference(ey, 0, lo, hi)
    dex_dy = _backward_difference(ex, 1, lo, hi)

    curl_x = dez_dy - dey_dz
    curl_y = dex_dz - dez_dx
    curl_z = dey_dx - dex_dy

    h = h_field[lo:hi]
    h[..., 0] -= b0 * curl_x
    h[..., 1] -= b0 * curl_y
    h[..., 2] -= b0 * curl_z
