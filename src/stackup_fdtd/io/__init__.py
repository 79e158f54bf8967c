"""I/O for FDTD results."""

from stackup_fdtd.io.hdf5 import SliceResultReader, SliceResultWriter

__all__ = [
    "SliceResultWriter",
    "SliceResultReader",
]
