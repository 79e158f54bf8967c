"""
Unit tests for simulation setup and the stepping loop.

Tests verify:
- Grid allocation, material painting and baking
- Source validation and waveform consumption
- Closed-form single-step response of an E impulse
- Progress callback sequence
- State machine and reset
"""

import numpy as np
import pytest

from stackup_fdtd import (
    EPSILON_0,
    DisplayOptions,
    InvalidMaterial,
    OutOfRange,
    ShapeMismatch,
    Simulation,
    SimulationGrid,
    SimulationSetup,
    SimulationSource,
    SimulationState,
)

DT = 1e-12
D_XYZ = 1e-3


def _grid(shape=(6, 5, 4)):
    return SimulationGrid(shape=shape, dt=DT, d_xyz=D_XYZ)


def _record_injections(sim):
    """Wrap the backend's source injection to log injected amplitudes."""
    calls = []
    inject = sim._backend.inject_source

    def recording(e_field, record):
        calls.append((sim.step_count, float(record["e0"])))
        inject(e_field, record)

    sim._backend.inject_source = recording
    return calls


# =============================================================================
# SimulationGrid
# =============================================================================


class TestSimulationGrid:
    """Tests for grid allocation and material painting."""

    def test_allocation(self):
        grid = _grid()
        assert grid.e_field.shape == (6, 5, 4, 3)
        assert grid.h_field.shape == (6, 5, 4, 3)
        assert grid.sigma.shape == (6, 5, 4)
        assert grid.total_cells == 120
        assert np.all(grid.sigma.to_numpy() == 0)
        np.testing.assert_allclose(grid.epsilon.to_numpy(), EPSILON_0, rtol=1e-6)
        assert not grid.is_baked

    def test_fill_sigma_sub_box(self):
        grid = _grid()
        grid.fill_sigma((1, 2, 0), (2, 1, 4), 1e8)
        expected = np.zeros((6, 5, 4), dtype=np.float32)
        expected[1:3, 2:3, 0:4] = 1e8
        np.testing.assert_array_equal(grid.sigma.to_numpy(), expected)

    def test_fill_epsilon_sub_box(self):
        grid = _grid()
        grid.fill_epsilon((0, 0, 1), (6, 5, 2), 4.1 * EPSILON_0)
        eps = grid.epsilon.to_numpy()
        assert eps[0, 0, 1] == pytest.approx(4.1 * EPSILON_0, rel=1e-6)
        assert eps[0, 0, 0] == pytest.approx(EPSILON_0, rel=1e-6)

    def test_fill_outside_grid(self):
        grid = _grid()
        with pytest.raises(OutOfRange):
            grid.fill_sigma((5, 0, 0), (2, 1, 1), 1.0)

    def test_bake(self):
        grid = _grid()
        coeffs = grid.bake()
        assert grid.is_baked
        assert grid.coefficients is coeffs
        assert coeffs.shape == (6, 5, 4)

    def test_bake_twice(self):
        grid = _grid()
        grid.bake()
        with pytest.raises(RuntimeError, match="already baked"):
            grid.bake()

    def test_materials_frozen_after_bake(self):
        grid = _grid()
        grid.bake()
        with pytest.raises(RuntimeError, match="frozen"):
            grid.fill_sigma((0, 0, 0), (1, 1, 1), 1.0)

    def test_coefficients_before_bake(self):
        with pytest.raises(RuntimeError, match="not been baked"):
            _grid().coefficients

    def test_bake_rejects_bad_material(self):
        grid = _grid()
        grid.fill_epsilon((0, 0, 0), (1, 1, 1), 0.0)
        with pytest.raises(InvalidMaterial):
            grid.bake()
        assert not grid.is_baked

    def test_invalid_constants(self):
        with pytest.raises(InvalidMaterial, match="dt must be positive"):
            SimulationGrid(shape=(2, 2, 2), dt=0.0, d_xyz=D_XYZ)

    def test_shape_must_be_3d(self):
        with pytest.raises(ShapeMismatch):
            SimulationGrid(shape=(2, 2), dt=DT, d_xyz=D_XYZ)


# =============================================================================
# SimulationSource
# =============================================================================


class TestSimulationSource:
    """Tests for source descriptors."""

    def test_signal_converted(self):
        source = SimulationSource((0, 0, 0), (1, 1, 1), [1, 2, 3])
        assert source.signal.dtype == np.float32
        assert len(source) == 3

    def test_validate_inside(self):
        SimulationSource((1, 1, 1), (5, 4, 3), [1.0]).validate((6, 5, 4))

    @pytest.mark.parametrize(
        "offset, size",
        [((6, 0, 0), (1, 1, 1)), ((0, 0, 0), (1, 6, 1)), ((0, 0, 0), (0, 1, 1)), ((-1, 0, 0), (1, 1, 1))],
    )
    def test_validate_outside(self, offset, size):
        with pytest.raises(OutOfRange):
            SimulationSource(offset, size, [1.0]).validate((6, 5, 4))

    def test_simulation_rejects_out_of_range_source(self):
        """Invalid sources abort construction before the grid is baked."""
        grid = _grid()
        source = SimulationSource((5, 0, 0), (2, 1, 1), [1.0])
        with pytest.raises(OutOfRange):
            Simulation(SimulationSetup(grid, [source]), backend="numpy")
        assert not grid.is_baked


# =============================================================================
# Stepping
# =============================================================================


class TestStepping:
    """Tests for the physics of a single step and of many steps."""

    def test_bakes_on_construction(self):
        grid = _grid()
        with Simulation(SimulationSetup(grid), backend="numpy"):
            assert grid.is_baked

    def test_courant_warning(self):
        grid = SimulationGrid(shape=(2, 2, 2), dt=1e-11, d_xyz=D_XYZ)
        with pytest.warns(UserWarning, match="Courant limit"):
            Simulation(SimulationSetup(grid), backend="numpy").close()

    def test_zero_state_idempotence(self):
        grid = _grid()
        grid.fill_sigma((2, 0, 0), (1, 5, 4), 1e8)
        with Simulation(SimulationSetup(grid), backend="numpy") as sim:
            for _ in range(25):
                sim.step()
            assert not sim.e_field.any()
            assert not sim.h_field.any()

    @staticmethod
    def _check_single_cell_response(setup):
        """One step with E_x(1,1,1) = 1 in vacuum.

        The E pass leaves E unchanged (H is zero and A0 = 1). The H pass
        sees E_x change along y and z only, which gives four non-zero H
        entries of magnitude B0.
        """
        with Simulation(setup, backend="numpy") as sim:
            a0 = sim.coefficients.a0[1, 1, 1]
            b0 = np.float32(sim.coefficients.b0)
            sim.step()
            e, h = sim.e_field, sim.h_field

        assert e[1, 1, 1, 0] == a0 * 1.0
        e[1, 1, 1, 0] = 0
        assert not e.any()

        expected = {
            (1, 1, 1, 1): -b0,
            (1, 1, 2, 1): b0,
            (1, 1, 1, 2): b0,
            (1, 2, 1, 2): -b0,
        }
        for index, value in expected.items():
            assert h[index] == pytest.approx(value, rel=1e-6)
            h[index] = 0
        assert not h.any()

    def test_initial_impulse_closed_form(self, impulse_setup):
        self._check_single_cell_response(impulse_setup)

    def test_single_cell_source_closed_form(self):
        """A one-sample source at (1,1,1) gives the same first step as an impulse."""
        grid = SimulationGrid(shape=(4, 4, 4), dt=DT, d_xyz=D_XYZ)
        source = SimulationSource((1, 1, 1), (1, 1, 1), [1.0])
        self._check_single_cell_response(SimulationSetup(grid, [source]))

    def test_source_isolation(self):
        """A 2x2x2 source with e0 = 5 only sets E_x in its box on step one."""
        grid = SimulationGrid(shape=(4, 4, 4), dt=DT, d_xyz=D_XYZ)
        source = SimulationSource((1, 1, 1), (2, 2, 2), [5.0])
        with Simulation(SimulationSetup(grid, [source]), backend="numpy") as sim:
            sim.step()
            e = sim.e_field
        expected = np.zeros((4, 4, 4, 3), dtype=np.float32)
        expected[1:3, 1:3, 1:3, 0] = 5.0
        np.testing.assert_array_equal(e, expected)

    def test_waveform_consumed_once(self):
        """Each sample is injected on its own step, then the source goes quiet."""
        grid = _grid()
        source = SimulationSource((1, 1, 1), (1, 1, 1), [0.5, 1.0, 0.25])
        with Simulation(SimulationSetup(grid, [source]), backend="numpy") as sim:
            calls = _record_injections(sim)
            for _ in range(6):
                sim.step()
        assert calls == [(0, 0.5), (1, 1.0), (2, 0.25)]

    def test_multiple_sources_in_order(self):
        grid = _grid()
        first = SimulationSource((1, 1, 1), (1, 1, 1), [1.0, 2.0])
        second = SimulationSource((3, 3, 2), (1, 1, 1), [3.0])
        with Simulation(SimulationSetup(grid, [first, second]), backend="numpy") as sim:
            calls = _record_injections(sim)
            sim.step()
            sim.step()
        assert calls == [(0, 1.0), (0, 3.0), (1, 2.0)]

    def test_threaded_tiles_match_single_pass(self):
        def setup():
            grid = SimulationGrid(shape=(8, 6, 5), dt=DT, d_xyz=D_XYZ)
            grid.fill_sigma((3, 0, 0), (1, 6, 5), 1e8)
            return SimulationSetup(grid, [SimulationSource((4, 2, 2), (2, 2, 1), [1.0] * 4)])

        with Simulation(setup(), backend="numpy") as single:
            single.run(10)
            e_single, h_single = single.e_field, single.h_field
        with Simulation(setup(), backend="numpy", group_size=3, workers=3) as tiled:
            tiled.run(10)
            np.testing.assert_array_equal(tiled.e_field, e_single)
            np.testing.assert_array_equal(tiled.h_field, h_single)

    def test_time(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            sim.step()
            sim.step()
            assert sim.step_count == 2
            assert sim.time == pytest.approx(2 * DT)


# =============================================================================
# Run loop
# =============================================================================


class TestRun:
    """Tests for Simulation.run() callbacks and lifecycle."""

    def _run(self, total_steps, interval):
        updates, displays = [], []
        setup = SimulationSetup(_grid(), [SimulationSource((2, 2, 2), (1, 1, 1), [1.0])])
        with Simulation(setup, backend="numpy") as sim:
            sim.run(
                total_steps,
                display_interval=interval,
                on_update=lambda *args: updates.append(args),
                on_display=lambda step, image: displays.append((step, image)),
            )
        return updates, displays

    def test_update_sequence(self):
        updates, displays = self._run(10, 3)
        assert [u[0] for u in updates] == [0, 3, 6, 9, 10]
        assert all(u[1] == 10 for u in updates)
        assert all(u[3] == 120 for u in updates)
        elapsed = [u[2] for u in updates]
        assert elapsed == sorted(elapsed)
        assert [d[0] for d in displays] == [3, 6, 9, 10]

    def test_final_step_reported_once(self):
        updates, _ = self._run(9, 3)
        assert [u[0] for u in updates] == [0, 3, 6, 9]

    def test_zero_steps(self):
        updates, displays = self._run(0, 5)
        assert [u[0] for u in updates] == [0, 0]
        assert [d[0] for d in displays] == [0]

    def test_display_image_shape(self):
        _, displays = self._run(2, 1)
        # Default display is the middle X plane: (Ny, Nz, RGBA)
        assert displays[0][1].shape == (5, 4, 4)
        assert np.all(displays[0][1][..., 3] == 1.0)

    @pytest.mark.parametrize("kwargs", [{"total_steps": -1}, {"total_steps": 5, "display_interval": 0}])
    def test_invalid_arguments(self, impulse_setup, kwargs):
        with Simulation(impulse_setup, backend="numpy") as sim:
            with pytest.raises(ValueError):
                sim.run(**kwargs)

    def test_invalid_display_index(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            with pytest.raises(OutOfRange):
                sim.run(2, display_options=DisplayOptions(index=4))
            assert sim.step_count == 0

    def test_state_machine(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            assert sim.state is SimulationState.SETUP
            sim.step()
            assert sim.state is SimulationState.STEPPING
            sim.run(3)
            assert sim.state is SimulationState.DONE
            assert sim.step_count == 4
            with pytest.raises(RuntimeError, match="reset"):
                sim.step()
            with pytest.raises(RuntimeError, match="reset"):
                sim.run(1)

    def test_reset_restores_initial_fields(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            initial = sim.e_field
            sim.run(5)
            sim.reset()
            assert sim.state is SimulationState.SETUP
            assert sim.step_count == 0
            np.testing.assert_array_equal(sim.e_field, initial)
            assert not sim.h_field.any()
            # Stepping again reproduces the first step
            sim.step()
            assert sim.h_field[1, 1, 2, 1] == pytest.approx(np.float32(sim.coefficients.b0))


# =============================================================================
# Readback
# =============================================================================


class TestReadback:
    """Tests for host copies and cross-sections."""

    def test_field_properties_are_copies(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            e = sim.e_field
            e[...] = 7.0
            assert sim.e_field[0, 0, 0, 0] == 0.0

    def test_extract_plane(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            plane = sim.extract_plane(DisplayOptions(axis=0, index=1))
            assert plane.shape == (4, 4, 3)
            assert plane[1, 1, 0] == 1.0

    def test_extract_display_h_field(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            sim.step()
            image = sim.extract_display(DisplayOptions(field="h_field", index=1, mode="y", scale=1e3))
            assert image.shape == (4, 4, 4)
            # H_y(1,1,2) = +B0 is green, H_y(1,1,1) = -B0 is red
            assert image[1, 2, 1] > 0
            assert image[1, 1, 0] > 0

    def test_display_options_validation(self):
        with pytest.raises(ValueError, match="field"):
            DisplayOptions(field="d_field")
        with pytest.raises(ValueError, match="mode"):
            DisplayOptions(mode="w")
        with pytest.raises(OutOfRange):
            DisplayOptions(axis=3)

    def test_display_options_default_index(self):
        assert DisplayOptions().resolve_index((16, 128, 256)) == 8
        assert DisplayOptions(axis=2).resolve_index((16, 128, 256)) == 128

    def test_memory_usage(self, impulse_setup):
        with Simulation(impulse_setup, backend="numpy") as sim:
            assert sim.memory_usage_mb() == pytest.approx(64 * 8 * 4 / 1e6)
