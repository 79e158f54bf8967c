"""Packed parameter records passed to each field pass.

Each record is a NumPy structured dtype with a fixed field order, little
endian scalars and no implicit padding, so ``record.tobytes()`` is the exact
uniform block a device kernel would read.

Records:
    SOURCE_PARAMS: grid size, source offset, source size, amplitude (40 bytes)
    E_FIELD_PARAMS: grid size (12 bytes)
    H_FIELD_PARAMS: grid size, curl coefficient B0 (16 bytes)

Example:
    >>> rec = pack_params(E_FIELD_PARAMS, grid_x=16, grid_y=128, grid_z=256)
    >>> rec.tobytes()[:4]
    b'\\x10\\x00\\x00\\x00'
"""

from __future__ import annotations

import numpy as np

_U32 = "<u4"
_F32 = "<f4"

_GRID_FIELDS = [("grid_x", _U32), ("grid_y", _U32), ("grid_z", _U32)]

SOURCE_PARAMS = np.dtype(
    _GRID_FIELDS
    + [
        ("offset_x", _U32),
        ("offset_y", _U32),
        ("offset_z", _U32),
        ("size_x", _U32),
        ("size_y", _U32),
        ("size_z", _U32),
        ("e0", _F32),
    ]
)

E_FIELD_PARAMS = np.dtype(_GRID_FIELDS)

H_FIELD_PARAMS = np.dtype(_GRID_FIELDS + [("b0", _F32)])


def pack_params(dtype: np.dtype, **values) -> np.ndarray:
    """Build a zero-dimensional record of ``dtype`` from keyword values.

    Args:
        dtype: One of the ``*_PARAMS`` record types
        **values: One value per field of ``dtype``

    Returns:
        Record array with shape ``()``

    Raises:
        ValueError: If a field is missing or an unknown field is given
    """
    names = set(dtype.names)
    missing = names - values.keys()
    extra = values.keys() - names
    if missing or extra:
        raise ValueError(
            f"record fields mismatch: missing {sorted(missing)}, "
            f"unexpected {sorted(extra)}"
        )
    record = np.zeros((), dtype=dtype)
    for name in dtype.names:
        record[name] = values[name]
    return record


def grid_fields(shape: tuple[int, int, int]) -> dict[str, int]:
    """Grid size fields shared by every record."""
    nx, ny, nz = shape
    return {"grid_x": nx, "grid_y": ny, "grid_z": nz}


def record_grid_shape(record: np.ndarray) -> tuple[int, int, int]:
    return int(record["grid_x"]), int(record["grid_y"]), int(record["grid_z"])
