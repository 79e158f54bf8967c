"""Pytest configuration and shared fixtures for the stackup-fdtd test suite."""

import os

import numpy as np
import pytest

# PyTorch and NumPy may each load an OpenMP runtime; allow both in one process.
# This must be set before torch is imported.
os.environ.setdefault("KMP_DUPLICATE_LIB_OK", "TRUE")

from stackup_fdtd import SimulationGrid, SimulationSetup  # noqa: E402


@pytest.fixture
def rng():
    """Deterministic random generator."""
    return np.random.default_rng(1234)


@pytest.fixture
def impulse_setup():
    """4x4x4 vacuum grid with E_x = 1 at cell (1, 1, 1) and no sources."""
    grid = SimulationGrid(shape=(4, 4, 4), dt=1e-12, d_xyz=1e-3)
    grid.e_field.set([1, 1, 1, 0], 1.0)
    return SimulationSetup(grid=grid, sources=[])


@pytest.fixture
def random_fields(rng):
    """Random E, H, A0, A1 arrays on a small asymmetric grid."""
    shape = (5, 4, 3)
    e = rng.uniform(-1, 1, shape + (3,)).astype(np.float32)
    h = rng.uniform(-1, 1, shape + (3,)).astype(np.float32)
    a0 = rng.uniform(0.5, 1.0, shape).astype(np.float32)
    a1 = rng.uniform(0.1, 1.0, shape).astype(np.float32)
    return e, h, a0, a1
