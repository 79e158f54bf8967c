"""Tests for the reference microstrip transmission-line scenario."""

import numpy as np
import pytest

from stackup_fdtd import EPSILON_0, Simulation, create_transmission_line_setup
from stackup_fdtd.scenarios import TERMINATOR_RESISTANCE

SMALL_SHAPE = (16, 48, 64)


@pytest.fixture(scope="module")
def small_setup():
    return create_transmission_line_setup(shape=SMALL_SHAPE, period=32)


class TestLayout:
    """Material placement of the reference stack."""

    def test_default_source(self):
        setup = create_transmission_line_setup()
        (source,) = setup.sources
        # Stack of 7 cells centered in Nx = 16 starts at x = 4
        assert source.offset == (5, 54, 128)
        assert source.size == (5, 20, 1)
        assert len(source.signal) == 256
        assert setup.grid.shape == (16, 128, 256)
        assert not setup.grid.is_baked

    def test_ground_plane(self, small_setup):
        sigma = small_setup.grid.sigma.to_numpy()
        assert sigma[4, 20, 20] == 1e8
        assert sigma[4, 27, 43] == 1e8
        # Border left free
        assert sigma[4, 19, 30] == 0
        assert sigma[4, 28, 30] == 0
        assert sigma[3, 24, 30] == 0

    def test_dielectric(self, small_setup):
        eps = small_setup.grid.epsilon.to_numpy()
        assert eps[5, 24, 30] == pytest.approx(4.1 * EPSILON_0, rel=1e-6)
        assert eps[9, 24, 30] == pytest.approx(4.1 * EPSILON_0, rel=1e-6)
        assert eps[10, 24, 30] == pytest.approx(EPSILON_0, rel=1e-6)

    def test_trace(self, small_setup):
        sigma = small_setup.grid.sigma.to_numpy()
        # Trace is 20 cells wide centered in Ny = 48 (y = 14..33) at x = 10
        assert sigma[10, 14, 30] == 1e8
        assert sigma[10, 33, 30] == 1e8
        assert sigma[10, 13, 30] == 0
        assert sigma[10, 34, 30] == 0

    def test_terminators(self, small_setup):
        sigma = small_setup.grid.sigma.to_numpy()
        area = (20 * 1e-3) * 1e-3
        expected = 5e-3 / (TERMINATOR_RESISTANCE * area)
        for z in (20, 64 - 20 - 1):
            assert sigma[5, 14, z] == pytest.approx(expected, rel=1e-6)
            assert sigma[9, 33, z] == pytest.approx(expected, rel=1e-6)
        assert sigma[5, 14, 30] == 0


class TestRun:
    """Short runs of the scenario."""

    def test_pulse_excites_line(self):
        setup = create_transmission_line_setup(shape=SMALL_SHAPE, period=32)
        with Simulation(setup, backend="numpy") as sim:
            sim.run(16, display_interval=8)
            e = sim.e_field
            h = sim.h_field
        assert np.all(np.isfinite(e))
        assert np.all(np.isfinite(h))
        # Source region under the trace carries E_x
        assert np.abs(e[5:10, 14:34, 32, 0]).max() > 0
        assert np.abs(h).max() > 0
