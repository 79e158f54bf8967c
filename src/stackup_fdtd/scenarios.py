"""Ready-made simulation setups.

The reference scenario is a microstrip transmission line: a ground plane,
an FR4-like dielectric slab and a signal trace running along Z, terminated
at both ends by resistive blocks and driven by a sin² current pulse between
trace and ground.

Cross-section (X is vertical):

    x_start+6   ======== trace (1 cell, 20 cells wide in Y)
    x_start+1   ........ dielectric (5 cells, eps_r = 4.1)
    x_start     ________ ground plane (1 cell)
"""

from __future__ import annotations

from stackup_fdtd.core.materials import EPSILON_0
from stackup_fdtd.core.simulation import SimulationGrid, SimulationSetup, SimulationSource
from stackup_fdtd.core.waveforms import sin_squared_pulse

# Copper-like conductivity for the ground plane and trace
CONDUCTOR_SIGMA = 1e8
DIELECTRIC_EPSILON_R = 4.1
# Half the characteristic impedance of the line, one resistor per end
TERMINATOR_RESISTANCE = 53.864 / 2

TRANSMISSION_LINE_SHAPE = (16, 128, 256)


def create_transmission_line_setup(
    shape: tuple[int, int, int] = TRANSMISSION_LINE_SHAPE,
    dt: float = 1e-12,
    d_xyz: float = 1e-3,
    period: int = 256,
    plane_border: int = 20,
    signal_width: int = 20,
    separation_height: int = 5,
) -> SimulationSetup:
    """Build the microstrip transmission-line setup.

    Args:
        shape: Grid dimensions (Nx, Ny, Nz)
        dt: Timestep in seconds
        d_xyz: Cell spacing in meters
        period: Length of the sin² source pulse in steps
        plane_border: Cells left free around the ground plane in Y and Z
        signal_width: Trace width in cells (Y)
        separation_height: Dielectric thickness in cells (X)

    Returns:
        Unbaked setup with one source
    """
    nx, ny, nz = shape
    plane_height = 1
    signal_height = 1

    grid = SimulationGrid(shape=shape, dt=dt, d_xyz=d_xyz)

    # Center the stack vertically
    total_height = plane_height + separation_height + signal_height
    x_start = int(nx / 2 - total_height / 2)
    y_signal = int(ny / 2 - signal_width / 2)
    z_length = nz - 2 * plane_border

    grid.fill_sigma(
        (x_start, plane_border, plane_border),
        (plane_height, ny - 2 * plane_border, z_length),
        CONDUCTOR_SIGMA,
    )
    grid.fill_epsilon(
        (x_start + plane_height, plane_border, plane_border),
        (separation_height, ny - 2 * plane_border, z_length),
        DIELECTRIC_EPSILON_R * EPSILON_0,
    )
    grid.fill_sigma(
        (x_start + plane_height + separation_height, y_signal, plane_border),
        (signal_height, signal_width, z_length),
        CONDUCTOR_SIGMA,
    )

    # Terminators: resistive blocks bridging trace and ground at each end
    thickness = 1
    area = (signal_width * d_xyz) * (thickness * d_xyz)
    length = separation_height * d_xyz
    terminator_sigma = length / (TERMINATOR_RESISTANCE * area)
    for z in (plane_border, nz - plane_border - thickness):
        grid.fill_sigma(
            (x_start + plane_height, y_signal, z),
            (separation_height, signal_width, thickness),
            terminator_sigma,
        )

    source = SimulationSource(
        offset=(x_start + plane_height, y_signal, nz // 2),
        size=(separation_height, signal_width, 1),
        signal=sin_squared_pulse(period),
    )
    return SimulationSetup(grid=grid, sources=[source])
