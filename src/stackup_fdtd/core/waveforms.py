"""Sampled source waveforms.

A source consumes one amplitude per simulation step, so waveforms here are
finite arrays indexed by step rather than functions of time.

Example:
    >>> signal = sin_squared_pulse(period=256)
    >>> signal[0], signal[128]
    (0.0, 1.0)
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def sin_squared_pulse(period: int, amplitude: float = 1.0) -> NDArray[np.float32]:
    """Single raised pulse ``amplitude * sin(pi*i/period)**2`` for ``i < period``.

    Args:
        period: Number of samples in the pulse
        amplitude: Peak amplitude

    Returns:
        float32 array of length ``period``
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    i = np.arange(period, dtype=np.float64)
    return (amplitude * np.sin(np.pi * i / period) ** 2).astype(np.float32)


def gaussian_pulse(
    n_samples: int,
    frequency: float,
    dt: float,
    bandwidth: float | None = None,
    amplitude: float = 1.0,
) -> NDArray[np.float32]:
    """Gaussian-modulated sinusoid sampled once per timestep.

    Args:
        n_samples: Number of steps the source is active
        frequency: Center frequency in Hz
        dt: Timestep in seconds
        bandwidth: Frequency bandwidth in Hz (default: 2 * frequency)
        amplitude: Peak amplitude

    Returns:
        float32 array of length ``n_samples``
    """
    if n_samples <= 0:
        raise ValueError(f"n_samples must be positive, got {n_samples}")
    if bandwidth is None:
        bandwidth = 2.0 * frequency

    # Delay the peak so the pulse starts close to zero
    sigma_t = 1.0 / (2.0 * np.pi * bandwidth)
    t_peak = 4.0 * sigma_t

    t = np.arange(n_samples, dtype=np.float64) * dt - t_peak
    envelope = np.exp(-0.5 * (t / sigma_t) ** 2)
    carrier = np.sin(2.0 * np.pi * frequency * t)
    return (amplitude * envelope * carrier).astype(np.float32)
