"""Tests for packed kernel parameter records."""

import numpy as np
import pytest

from stackup_fdtd.core.params import (
    E_FIELD_PARAMS,
    H_FIELD_PARAMS,
    SOURCE_PARAMS,
    grid_fields,
    pack_params,
    record_grid_shape,
)


class TestRecordLayout:
    """Record sizes, field order and byte layout."""

    def test_sizes(self):
        assert SOURCE_PARAMS.itemsize == 40
        assert E_FIELD_PARAMS.itemsize == 12
        assert H_FIELD_PARAMS.itemsize == 16

    def test_field_order(self):
        assert SOURCE_PARAMS.names == (
            "grid_x", "grid_y", "grid_z",
            "offset_x", "offset_y", "offset_z",
            "size_x", "size_y", "size_z",
            "e0",
        )
        assert E_FIELD_PARAMS.names == ("grid_x", "grid_y", "grid_z")
        assert H_FIELD_PARAMS.names == ("grid_x", "grid_y", "grid_z", "b0")

    def test_no_padding(self):
        """Fields are packed back to back in declaration order."""
        offsets = [SOURCE_PARAMS.fields[name][1] for name in SOURCE_PARAMS.names]
        assert offsets == list(range(0, 40, 4))

    def test_little_endian_bytes(self):
        record = pack_params(H_FIELD_PARAMS, **grid_fields((16, 128, 256)), b0=0.5)
        raw = record.tobytes()
        assert len(raw) == 16
        np.testing.assert_array_equal(np.frombuffer(raw[:12], dtype="<u4"), [16, 128, 256])
        assert np.frombuffer(raw[12:], dtype="<f4")[0] == 0.5

    def test_source_record(self):
        record = pack_params(
            SOURCE_PARAMS,
            **grid_fields((4, 5, 6)),
            offset_x=1, offset_y=2, offset_z=3,
            size_x=2, size_y=2, size_z=1,
            e0=5.0,
        )
        raw = record.tobytes()
        np.testing.assert_array_equal(
            np.frombuffer(raw[:36], dtype="<u4"), [4, 5, 6, 1, 2, 3, 2, 2, 1]
        )
        assert np.frombuffer(raw[36:], dtype="<f4")[0] == 5.0
        assert record_grid_shape(record) == (4, 5, 6)


class TestPackParams:
    """Validation in pack_params()."""

    def test_missing_field(self):
        with pytest.raises(ValueError, match="missing \\['b0'\\]"):
            pack_params(H_FIELD_PARAMS, **grid_fields((2, 2, 2)))

    def test_unexpected_field(self):
        with pytest.raises(ValueError, match="unexpected \\['b0'\\]"):
            pack_params(E_FIELD_PARAMS, **grid_fields((2, 2, 2)), b0=1.0)
