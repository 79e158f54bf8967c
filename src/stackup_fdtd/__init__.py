"""
Stackup FDTD - electromagnetic FDTD simulation of PCB stackups.

Main exports:
- NdArray, GridView: N-dimensional arrays with zero-copy views
- SimulationGrid, SimulationSource, SimulationSetup: Scenario construction
- Simulation: Time-stepping loop on a NumPy or PyTorch backend
- DisplayOptions, extract_slice: Field cross-section rendering
- compute_coefficients: Material update coefficients
- create_transmission_line_setup: Reference microstrip scenario
"""

from stackup_fdtd.core.backend import get_gpu_info, has_gpu_support, select_backend
from stackup_fdtd.core.display import DEFAULT_DISPLAY_SCALE, extract_slice, to_rgba8
from stackup_fdtd.core.materials import (
    EPSILON_0,
    MU_0,
    Coefficients,
    compute_coefficients,
    courant_limit,
)
from stackup_fdtd.core.ndarray import GridView, NdArray
from stackup_fdtd.core.simulation import (
    DisplayOptions,
    Simulation,
    SimulationGrid,
    SimulationSetup,
    SimulationSource,
    SimulationState,
)
from stackup_fdtd.core.waveforms import gaussian_pulse, sin_squared_pulse
from stackup_fdtd.errors import (
    BackendUnavailable,
    FDTDError,
    InvalidMaterial,
    OutOfRange,
    ShapeMismatch,
)
from stackup_fdtd.scenarios import create_transmission_line_setup

# Submodules for more specific imports
from . import io

__version__ = "0.1.0"

__all__ = [
    # Arrays
    "NdArray",
    "GridView",
    # Materials
    "EPSILON_0",
    "MU_0",
    "Coefficients",
    "compute_coefficients",
    "courant_limit",
    # Simulation
    "SimulationGrid",
    "SimulationSource",
    "SimulationSetup",
    "Simulation",
    "SimulationState",
    "DisplayOptions",
    "create_transmission_line_setup",
    # Waveforms
    "sin_squared_pulse",
    "gaussian_pulse",
    # Display
    "DEFAULT_DISPLAY_SCALE",
    "extract_slice",
    "to_rgba8",
    # Backends
    "select_backend",
    "has_gpu_support",
    "get_gpu_info",
    # Errors
    "FDTDError",
    "ShapeMismatch",
    "OutOfRange",
    "InvalidMaterial",
    "BackendUnavailable",
    # Submodules
    "io",
]
