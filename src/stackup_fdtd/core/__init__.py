"""Core FDTD components: arrays, materials, passes, backends and the run loop."""

from stackup_fdtd.core.backend import (
    ArrayBackend,
    NumpyBackend,
    TorchBackend,
    has_gpu_support,
    select_backend,
)
from stackup_fdtd.core.kernels import (
    inject_current_source,
    update_electric_field,
    update_magnetic_field,
)
from stackup_fdtd.core.ndarray import GridView, NdArray
from stackup_fdtd.core.simulation import (
    DisplayOptions,
    Simulation,
    SimulationGrid,
    SimulationSetup,
    SimulationSource,
)

__all__ = [
    "NdArray",
    "GridView",
    "inject_current_source",
    "update_electric_field",
    "update_magnetic_field",
    "ArrayBackend",
    "NumpyBackend",
    "TorchBackend",
    "has_gpu_support",
    "select_backend",
    "SimulationGrid",
    "SimulationSource",
    "SimulationSetup",
    "DisplayOptions",
    "Simulation",
]
