"""HDF5 output format for displayed field cross-sections.

Schema:
    /metadata      attrs: created_at, solver_version, total_runtime_seconds, backend
    /grid          attrs: shape, resolution, extent
    /simulation    attrs: timestep, mu, b0, courant_limit, num_steps, total_time
    /materials     sigma, epsilon (gzip), attrs: a0_min, a0_max, a1_min, a1_max
    /sources       source_<i> groups: attrs offset, size; dataset signal
    /display       attrs: field, axis, index, scale, mode
    /slices        plane (N, A, B, 3) float32 (gzip), steps (N,) int64
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import h5py
import numpy as np
from numpy.typing import NDArray

from stackup_fdtd.core.display import colourize_plane
from stackup_fdtd.core.materials import courant_limit

if TYPE_CHECKING:
    from stackup_fdtd.core.simulation import DisplayOptions, Simulation


class SliceResultWriter:
    """Streaming writer for the slices rendered during a run.

    Example:
        >>> writer = SliceResultWriter("slices.h5", sim, DisplayOptions())
        >>> for _ in range(8):
        ...     sim.step()
        ...     writer.write_slice(sim.step_count, sim.extract_plane())
        >>> writer.finalize(runtime=1.2)
    """

    def __init__(
        self,
        filename: str | Path,
        simulation: Simulation,
        options: DisplayOptions,
        compression: str | None = "gzip",
        compression_level: int = 4,
    ):
        """Initialize HDF5 writer.

        Args:
            filename: Output file path
            simulation: Simulation whose slices are written
            options: Cross-section being recorded
            compression: Compression algorithm ('gzip', 'lzf', None)
            compression_level: Compression level (0-9 for gzip)
        """
        self.filename = Path(filename)
        self.simulation = simulation
        self.options = options
        self.compression = compression
        self.compression_opts = compression_level if compression == "gzip" else None
        self.file = h5py.File(filename, "w")

        self._plane_dataset = None
        self._steps_dataset = None
        self._num_slices = 0

        self._write_metadata()

    def _write_metadata(self) -> None:
        from stackup_fdtd import __version__

        sim = self.simulation
        grid = sim.grid
        coeffs = grid.coefficients

        meta = self.file.create_group("metadata")
        meta.attrs["created_at"] = datetime.now(timezone.utc).isoformat()
        meta.attrs["solver_version"] = __version__

        grid_group = self.file.create_group("grid")
        grid_group.attrs["shape"] = list(grid.shape)
        grid_group.attrs["resolution"] = grid.d_xyz
        grid_group.attrs["extent"] = [n * grid.d_xyz for n in grid.shape]

        epsilon = grid.epsilon.to_numpy()
        sim_group = self.file.create_group("simulation")
        sim_group.attrs["timestep"] = grid.dt
        sim_group.attrs["mu"] = grid.mu
        sim_group.attrs["b0"] = coeffs.b0
        sim_group.attrs["courant_limit"] = courant_limit(
            grid.d_xyz, float(epsilon.min()), grid.mu
        )

        materials = self.file.create_group("materials")
        for name, data in (("sigma", grid.sigma.to_numpy()), ("epsilon", epsilon)):
            materials.create_dataset(
                name,
                data=data,
                compression=self.compression,
                compression_opts=self.compression_opts,
            )
        materials.attrs["a0_min"] = float(coeffs.a0.min())
        materials.attrs["a0_max"] = float(coeffs.a0.max())
        materials.attrs["a1_min"] = float(coeffs.a1.min())
        materials.attrs["a1_max"] = float(coeffs.a1.max())

        sources = self.file.create_group("sources")
        for i, source in enumerate(sim.setup.sources):
            src = sources.create_group(f"source_{i}")
            src.attrs["offset"] = list(source.offset)
            src.attrs["size"] = list(source.size)
            src.create_dataset("signal", data=source.signal)

        display = self.file.create_group("display")
        display.attrs["field"] = self.options.field
        display.attrs["axis"] = self.options.axis
        display.attrs["index"] = self.options.resolve_index(grid.shape)
        display.attrs["scale"] = self.options.scale
        display.attrs["mode"] = self.options.mode

        self.file.create_group("slices")

    def write_slice(self, step: int, plane: NDArray[np.floating]) -> None:
        """Append one (A, B, 3) field plane recorded at ``step``."""
        plane = np.asarray(plane, dtype=np.float32)
        if self._plane_dataset is None:
            slices = self.file["slices"]
            self._plane_dataset = slices.create_dataset(
                "plane",
                shape=(0,) + plane.shape,
                maxshape=(None,) + plane.shape,
                dtype=np.float32,
                chunks=(1,) + plane.shape,
                compression=self.compression,
                compression_opts=self.compression_opts,
            )
            self._steps_dataset = slices.create_dataset(
                "steps", shape=(0,), maxshape=(None,), dtype=np.int64, chunks=True
            )
        elif plane.shape != self._plane_dataset.shape[1:]:
            raise ValueError(
                f"plane shape {plane.shape} doesn't match recorded shape "
                f"{self._plane_dataset.shape[1:]}"
            )

        idx = self._num_slices
        self._plane_dataset.resize((idx + 1,) + plane.shape)
        self._steps_dataset.resize((idx + 1,))
        self._plane_dataset[idx] = plane
        self._steps_dataset[idx] = step
        self._num_slices += 1

    def finalize(self, runtime: float | None = None, **extra_metadata) -> None:
        """Write final metadata and close file.

        Args:
            runtime: Total wall-clock runtime in seconds
            **extra_metadata: Additional metadata to store
        """
        if not self.file:
            return
        sim_group = self.file["simulation"]
        sim_group.attrs["num_steps"] = self.simulation.step_count
        sim_group.attrs["total_time"] = self.simulation.time

        if runtime is not None:
            self.file["metadata"].attrs["total_runtime_seconds"] = runtime
        for key, value in extra_metadata.items():
            self.file["metadata"].attrs[key] = value

        self.file.flush()
        self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finalize()


class SliceResultReader:
    """Reader for slice files written by SliceResultWriter.

    Example:
        >>> with SliceResultReader("slices.h5") as reader:
        ...     steps = reader.load_steps()
        ...     image = reader.load_image(-1)
    """

    def __init__(self, filename: str | Path):
        self.filename = Path(filename)
        self.file = h5py.File(filename, "r")

    def get_metadata(self) -> dict[str, Any]:
        """Extract all metadata groups as plain dicts."""
        metadata = {}
        for name in ("metadata", "grid", "simulation", "display"):
            if name in self.file:
                metadata[name] = dict(self.file[name].attrs)
        if "materials" in self.file:
            metadata["materials"] = dict(self.file["materials"].attrs)
        if "sources" in self.file:
            metadata["sources"] = [
                dict(self.file[f"sources/{name}"].attrs) for name in self.file["sources"]
            ]
        return metadata

    def get_num_slices(self) -> int:
        if "slices/plane" not in self.file:
            return 0
        return self.file["slices/plane"].shape[0]

    def load_steps(self) -> NDArray[np.int64]:
        """Step number of every recorded slice."""
        if "slices/steps" not in self.file:
            return np.zeros(0, dtype=np.int64)
        return self.file["slices/steps"][:]

    def load_slice(self, idx: int) -> NDArray[np.float32]:
        """Load the raw (A, B, 3) field plane of slice ``idx``.

        Raises:
            ValueError: If the file holds no slices
        """
        if "slices/plane" not in self.file:
            raise ValueError("No slice data in file")
        return self.file["slices/plane"][idx]

    def load_image(self, idx: int) -> NDArray[np.float32]:
        """Render slice ``idx`` with the display scale and mode it was recorded with."""
        display = self.file["display"].attrs
        return colourize_plane(
            self.load_slice(idx), scale=float(display["scale"]), mode=str(display["mode"])
        )

    def load_material(self, name: str) -> NDArray[np.float32]:
        """Load the ``sigma`` or ``epsilon`` grid."""
        if f"materials/{name}" not in self.file:
            raise KeyError(f"Material '{name}' not found. Available: {list(self.file['materials'])}")
        return self.file[f"materials/{name}"][:]

    def load_source_signal(self, idx: int) -> NDArray[np.float32]:
        return self.file[f"sources/source_{idx}/signal"][:]

    def close(self):
        """Close the HDF5 file."""
        if self.file:
            self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
