"""Simulation setup and the time-stepping loop.

This module ties the pieces together: a SimulationGrid holds the host field
and material arrays, SimulationSource describes a driven sub-box, and
Simulation mirrors everything onto a compute backend and advances it.

Each step runs, in order:
    1. Source injection for every source with waveform samples left
    2. E pass over the whole grid (barrier)
    3. H pass over the whole grid (barrier)

Classes:
    SimulationGrid: Field and material arrays plus grid constants
    SimulationSource: Driven sub-box with a sampled waveform
    SimulationSetup: Grid plus its sources
    DisplayOptions: Which cross-section to render
    SimulationState: Lifecycle of a Simulation
    Simulation: Backend-bound stepping loop

Example:
    >>> grid = SimulationGrid(shape=(16, 64, 64), dt=1e-12, d_xyz=1e-3)
    >>> grid.fill_sigma((8, 0, 0), (1, 64, 64), 1e8)  # ground plane
    >>> source = SimulationSource((9, 30, 32), (1, 4, 1), sin_squared_pulse(128))
    >>> with Simulation(SimulationSetup(grid, [source]), backend="numpy") as sim:
    ...     sim.run(total_steps=256, display_interval=32)
"""

from __future__ import annotations

import time
import warnings
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Literal

import numpy as np
from numpy.typing import NDArray

from stackup_fdtd.core.backend import DEFAULT_GROUP_SIZE, BackendName, select_backend
from stackup_fdtd.core.display import (
    DEFAULT_DISPLAY_SCALE,
    DISPLAY_MODES,
    DisplayMode,
    check_slice_index,
    colourize_plane,
)
from stackup_fdtd.core.materials import (
    EPSILON_0,
    MU_0,
    Coefficients,
    compute_coefficients,
    courant_limit,
)
from stackup_fdtd.core.ndarray import NdArray
from stackup_fdtd.core.params import (
    E_FIELD_PARAMS,
    H_FIELD_PARAMS,
    SOURCE_PARAMS,
    grid_fields,
    pack_params,
)
from stackup_fdtd.errors import InvalidMaterial, OutOfRange, ShapeMismatch

FieldName = Literal["e_field", "h_field"]

# on_update(current_step, total_steps, elapsed_seconds, total_cells)
UpdateCallback = Callable[[int, int, float, int], None]
# on_display(step, rgba_image)
DisplayCallback = Callable[[int, NDArray[np.float32]], None]


def _as_triple(values, name: str) -> tuple[int, int, int]:
    values = tuple(int(v) for v in values)
    if len(values) != 3:
        raise ShapeMismatch(f"{name} must have 3 entries, got {len(values)}")
    return values


# =============================================================================
# Grid and sources
# =============================================================================


@dataclass
class SimulationGrid:
    """Host-side field and material arrays for a uniform 3D grid.

    Materials are painted with ``fill_sigma``/``fill_epsilon`` before
    ``bake()`` derives the update coefficients. After baking the materials
    are frozen.

    Args:
        shape: Grid dimensions (Nx, Ny, Nz)
        dt: Timestep in seconds
        d_xyz: Cell spacing in meters
        mu: Absolute permeability of the whole grid in H/m

    Attributes:
        e_field: Electric field, f32 NdArray of shape (Nx, Ny, Nz, 3)
        h_field: Magnetic field, f32 NdArray of shape (Nx, Ny, Nz, 3)
        sigma: Conductivity in S/m, f32 NdArray of shape (Nx, Ny, Nz)
        epsilon: Absolute permittivity in F/m, initialised to EPSILON_0
    """

    shape: tuple[int, int, int]
    dt: float
    d_xyz: float
    mu: float = MU_0
    e_field: NdArray = field(init=False, repr=False)
    h_field: NdArray = field(init=False, repr=False)
    sigma: NdArray = field(init=False, repr=False)
    epsilon: NdArray = field(init=False, repr=False)

    def __post_init__(self):
        self.shape = _as_triple(self.shape, "shape")
        for name in ("dt", "d_xyz", "mu"):
            if getattr(self, name) <= 0:
                raise InvalidMaterial(f"{name} must be positive, got {getattr(self, name)}")

        self.e_field = NdArray.create_zeros(self.shape + (3,), "f32")
        self.h_field = NdArray.create_zeros(self.shape + (3,), "f32")
        self.sigma = NdArray.create_zeros(self.shape, "f32")
        self.epsilon = NdArray.create_zeros(self.shape, "f32").fill(EPSILON_0)
        self._coefficients: Coefficients | None = None

    @property
    def total_cells(self) -> int:
        nx, ny, nz = self.shape
        return nx * ny * nz

    @property
    def is_baked(self) -> bool:
        return self._coefficients is not None

    @property
    def coefficients(self) -> Coefficients:
        if self._coefficients is None:
            raise RuntimeError("Grid has not been baked; call bake() first")
        return self._coefficients

    def _fill(self, array: NdArray, offset, size, value: float) -> None:
        if self.is_baked:
            raise RuntimeError("Materials are frozen once the grid is baked")
        array.slice_from(_as_triple(offset, "offset")).slice_to(_as_triple(size, "size")).fill(value)

    def fill_sigma(self, offset, size, value: float) -> None:
        """Set conductivity to ``value`` in the sub-box at ``offset`` of ``size`` cells."""
        self._fill(self.sigma, offset, size, value)

    def fill_epsilon(self, offset, size, value: float) -> None:
        """Set absolute permittivity to ``value`` in a sub-box."""
        self._fill(self.epsilon, offset, size, value)

    def bake(self) -> Coefficients:
        """Derive the update coefficients from the painted materials.

        Returns:
            The computed coefficients (also available as ``coefficients``)

        Raises:
            RuntimeError: If the grid was already baked
            InvalidMaterial: If the material values are not physical
        """
        if self.is_baked:
            raise RuntimeError("Grid is already baked")
        self._coefficients = compute_coefficients(
            self.sigma, self.epsilon, self.mu, self.d_xyz, self.dt
        )
        return self._coefficients


@dataclass
class SimulationSource:
    """Soft current source driving E_x inside a sub-box.

    One waveform sample is added per step while samples remain; afterwards
    the source is inactive.

    Args:
        offset: First cell (ix, iy, iz) of the box
        size: Box extent (sx, sy, sz) in cells
        signal: Waveform samples, one per step
    """

    offset: tuple[int, int, int]
    size: tuple[int, int, int]
    signal: NDArray[np.float32]

    def __post_init__(self):
        self.offset = _as_triple(self.offset, "offset")
        self.size = _as_triple(self.size, "size")
        self.signal = np.asarray(self.signal, dtype=np.float32).ravel()

    def __len__(self) -> int:
        return len(self.signal)

    def validate(self, grid_shape: tuple[int, int, int]) -> None:
        """Check that the box lies inside the grid.

        Raises:
            OutOfRange: If any part of the box falls outside ``grid_shape``
        """
        for axis, (o, s, n) in enumerate(zip(self.offset, self.size, grid_shape)):
            if not 0 <= o < n:
                raise OutOfRange(f"source offset {o} on axis {axis} outside [0, {n})")
            if s <= 0 or o + s > n:
                raise OutOfRange(
                    f"source size {s} at offset {o} on axis {axis} exceeds grid size {n}"
                )

    def record(self, grid_shape: tuple[int, int, int], step: int) -> np.ndarray:
        """Packed parameters for injecting sample ``step``."""
        ox, oy, oz = self.offset
        sx, sy, sz = self.size
        return pack_params(
            SOURCE_PARAMS,
            **grid_fields(grid_shape),
            offset_x=ox,
            offset_y=oy,
            offset_z=oz,
            size_x=sx,
            size_y=sy,
            size_z=sz,
            e0=self.signal[step],
        )


@dataclass
class SimulationSetup:
    """A grid and the sources that drive it."""

    grid: SimulationGrid
    sources: list[SimulationSource] = field(default_factory=list)


@dataclass
class DisplayOptions:
    """Cross-section rendered during a run.

    Args:
        field: "e_field" or "h_field"
        axis: Axis normal to the displayed plane
        index: Plane position along ``axis`` (default: middle of the grid)
        scale: Display gain applied before clamping
        mode: "x", "y", "z" or "mag"
    """

    field: FieldName = "e_field"
    axis: int = 0
    index: int | None = None
    scale: float = DEFAULT_DISPLAY_SCALE
    mode: DisplayMode = "x"

    def __post_init__(self):
        if self.field not in ("e_field", "h_field"):
            raise ValueError(f"field must be 'e_field' or 'h_field', got {self.field!r}")
        if self.mode not in DISPLAY_MODES:
            raise ValueError(f"Unknown display mode {self.mode!r}")
        if not 0 <= self.axis < 3:
            raise OutOfRange(f"display axis {self.axis} not in [0, 3)")

    def resolve_index(self, shape: tuple[int, int, int]) -> int:
        return shape[self.axis] // 2 if self.index is None else self.index


class SimulationState(Enum):
    SETUP = "setup"
    STEPPING = "stepping"
    DONE = "done"


# =============================================================================
# Simulation
# =============================================================================


class Simulation:
    """Runs a SimulationSetup on a compute backend.

    Construction validates the setup, bakes the grid if needed and uploads
    field and coefficient buffers. Nothing is uploaded if validation fails.

    Args:
        setup: Grid and sources
        backend: "numpy", "torch" or "auto"
        device: Torch device for the torch backend
        group_size: X planes per dispatched slab
        workers: Host threads for the numpy backend

    Raises:
        OutOfRange: If a source box lies outside the grid
        InvalidMaterial: If baking fails
        ShapeMismatch: If the coefficients don't match the grid shape
        BackendUnavailable: If the requested backend can't be created
    """

    def __init__(
        self,
        setup: SimulationSetup,
        backend: BackendName = "auto",
        device: str | None = None,
        group_size: int = DEFAULT_GROUP_SIZE,
        workers: int = 1,
    ):
        grid = setup.grid
        for source in setup.sources:
            source.validate(grid.shape)
        if not grid.is_baked:
            grid.bake()
        coeffs = grid.coefficients
        if coeffs.shape != grid.shape:
            raise ShapeMismatch(
                f"coefficient shape {coeffs.shape} doesn't match grid shape {grid.shape}"
            )

        epsilon_min = float(grid.epsilon.to_numpy().min())
        dt_max = courant_limit(grid.d_xyz, epsilon_min, grid.mu)
        if grid.dt > dt_max:
            warnings.warn(
                f"Timestep {grid.dt:.3e} s exceeds the 3D Courant limit "
                f"{dt_max:.3e} s; the simulation will be unstable.",
                UserWarning,
                stacklevel=2,
            )

        self.setup = setup
        self.grid = grid
        self._backend = select_backend(backend, device=device, group_size=group_size, workers=workers)

        self._initial_e = grid.e_field.to_numpy().copy()
        self._initial_h = grid.h_field.to_numpy().copy()
        self._e = self._backend.upload(self._initial_e)
        self._h = self._backend.upload(self._initial_h)
        self._a0 = self._backend.upload(coeffs.a0)
        self._a1 = self._backend.upload(coeffs.a1)

        self._e_params = pack_params(E_FIELD_PARAMS, **grid_fields(grid.shape))
        self._h_params = pack_params(H_FIELD_PARAMS, **grid_fields(grid.shape), b0=coeffs.b0)

        self._step_count = 0
        self._state = SimulationState.SETUP

    # -- properties -----------------------------------------------------------

    @property
    def state(self) -> SimulationState:
        return self._state

    @property
    def step_count(self) -> int:
        return self._step_count

    @property
    def time(self) -> float:
        """Simulated time in seconds."""
        return self._step_count * self.grid.dt

    @property
    def backend(self) -> str:
        return self._backend.name

    @property
    def coefficients(self) -> Coefficients:
        return self.grid.coefficients

    @property
    def e_field(self) -> NDArray[np.float32]:
        """Host copy of the electric field, shape (Nx, Ny, Nz, 3)."""
        self._backend.synchronize()
        return self._backend.download(self._e)

    @property
    def h_field(self) -> NDArray[np.float32]:
        """Host copy of the magnetic field, shape (Nx, Ny, Nz, 3)."""
        self._backend.synchronize()
        return self._backend.download(self._h)

    def memory_usage_mb(self) -> float:
        """Device memory held by field and coefficient buffers."""
        # E and H have 3 components, A0 and A1 one each
        return self.grid.total_cells * 8 * 4 / 1e6

    # -- stepping -------------------------------------------------------------

    def step(self) -> None:
        """Advance the simulation by one timestep.

        Raises:
            RuntimeError: If a completed run has not been reset
        """
        if self._state is SimulationState.DONE:
            raise RuntimeError("Simulation is done; call reset() before stepping again")
        self._state = SimulationState.STEPPING

        shape = self.grid.shape
        for source in self.setup.sources:
            if self._step_count < len(source):
                self._backend.inject_source(self._e, source.record(shape, self._step_count))

        self._backend.update_e(self._e, self._h, self._a0, self._a1, self._e_params)
        self._backend.update_h(self._h, self._e, self._h_params)
        self._step_count += 1

    def run(
        self,
        total_steps: int,
        display_interval: int = 1,
        on_update: UpdateCallback | None = None,
        on_display: DisplayCallback | None = None,
        display_options: DisplayOptions | None = None,
        output_file: str | Path | None = None,
    ) -> None:
        """Advance ``total_steps`` steps, reporting progress along the way.

        ``on_update`` is called with step 0 before the first step, after every
        ``display_interval`` steps and once with ``total_steps`` at the end.
        Each call follows a drain of the backend queue. The displayed slice
        is rendered at the same points (except step 0) for ``on_display`` and
        written to ``output_file`` when given.

        Args:
            total_steps: Number of steps to run
            display_interval: Steps between progress and display updates
            on_update: Progress callback (step, total_steps, elapsed, total_cells)
            on_display: Receives (step_count, RGBA image) for each rendered slice
            display_options: Cross-section to render (default: E_x, middle X plane)
            output_file: Path to an HDF5 file for the rendered slices

        Raises:
            ValueError: If total_steps is negative or display_interval < 1
            RuntimeError: If a completed run has not been reset
        """
        if total_steps < 0:
            raise ValueError(f"total_steps must be non-negative, got {total_steps}")
        if display_interval < 1:
            raise ValueError(f"display_interval must be >= 1, got {display_interval}")
        if self._state is SimulationState.DONE:
            raise RuntimeError("Simulation is done; call reset() before running again")

        options = display_options or DisplayOptions()
        check_slice_index(self.grid.shape, options.axis, options.resolve_index(self.grid.shape))
        total_cells = self.grid.total_cells

        writer = None
        if output_file is not None:
            from stackup_fdtd.io import SliceResultWriter

            writer = SliceResultWriter(output_file, self, options)

        start_time = time.perf_counter()

        def report(done: int, render: bool) -> None:
            self._backend.synchronize()
            if render and (on_display is not None or writer is not None):
                plane = self.extract_plane(options)
                if writer is not None:
                    writer.write_slice(self._step_count, plane)
                if on_display is not None:
                    on_display(self._step_count, colourize_plane(plane, options.scale, options.mode))
            if on_update is not None:
                on_update(done, total_steps, time.perf_counter() - start_time, total_cells)

        try:
            report(0, render=False)
            for done in range(1, total_steps + 1):
                self.step()
                if done % display_interval == 0 and done < total_steps:
                    report(done, render=True)
            report(total_steps, render=True)
            self._state = SimulationState.DONE
        finally:
            if writer is not None:
                writer.finalize(
                    runtime=time.perf_counter() - start_time, backend=self.backend
                )

    # -- readback -------------------------------------------------------------

    def extract_plane(self, options: DisplayOptions | None = None) -> NDArray[np.float32]:
        """Raw (A, B, 3) vector plane selected by ``options``.

        Raises:
            OutOfRange: If the plane index is outside the grid
        """
        options = options or DisplayOptions()
        index = options.resolve_index(self.grid.shape)
        check_slice_index(self.grid.shape, options.axis, index)
        buffer = self._e if options.field == "e_field" else self._h
        self._backend.synchronize()
        return self._backend.download_slice(buffer, options.axis, index)

    def extract_display(self, options: DisplayOptions | None = None) -> NDArray[np.float32]:
        """RGBA image of the current cross-section, shape (A, B, 4)."""
        options = options or DisplayOptions()
        return colourize_plane(self.extract_plane(options), options.scale, options.mode)

    # -- lifecycle ------------------------------------------------------------

    def reset(self) -> None:
        """Restore the initial fields and rewind to step 0."""
        self._backend.synchronize()
        self._backend.copy_into(self._e, self._initial_e)
        self._backend.copy_into(self._h, self._initial_h)
        self._step_count = 0
        self._state = SimulationState.SETUP

    def close(self) -> None:
        """Release the backend and its buffers."""
        self._backend.close()
        self._e = self._h = self._a0 = self._a1 = None

    def __enter__(self) -> Simulation:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

