#!/usr/bin/env python3
"""
Benchmark for field pass dispatch.

Measures step throughput (Mcells/s) of the reference transmission-line
scenario for different slab sizes, worker counts and backends.

Usage:
    python benchmarks/benchmark_dispatch.py
    python benchmarks/benchmark_dispatch.py --quick
    python benchmarks/benchmark_dispatch.py --json
"""

from __future__ import annotations

import argparse
import json
import time
from dataclasses import asdict, dataclass

from stackup_fdtd import Simulation, create_transmission_line_setup, has_gpu_support


@dataclass
class DispatchResult:
    """Timing for one backend configuration."""

    backend: str
    group_size: int
    workers: int
    num_steps: int
    total_time_sec: float
    mcells_per_sec: float


def benchmark_configuration(
    shape: tuple[int, int, int],
    num_steps: int,
    backend: str = "numpy",
    group_size: int = 16,
    workers: int = 1,
) -> DispatchResult:
    """Run ``num_steps`` steps and report throughput.

    Args:
        shape: Grid dimensions
        num_steps: Steps to time (after one warm-up step)
        backend: "numpy" or "torch"
        group_size: X planes per slab
        workers: Host threads for the numpy backend

    Returns:
        DispatchResult for the configuration
    """
    setup = create_transmission_line_setup(shape=shape)
    with Simulation(setup, backend=backend, group_size=group_size, workers=workers) as sim:
        sim.step()
        start = time.perf_counter()
        sim.run(num_steps, display_interval=num_steps)
        elapsed = time.perf_counter() - start
        cells = sim.grid.total_cells

    return DispatchResult(
        backend=backend,
        group_size=group_size,
        workers=workers,
        num_steps=num_steps,
        total_time_sec=elapsed,
        mcells_per_sec=num_steps * cells / elapsed / 1e6,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.split("\n")[1])
    parser.add_argument("--quick", action="store_true", help="Small grid, few steps")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    args = parser.parse_args()

    shape = (16, 64, 128) if args.quick else (16, 128, 256)
    num_steps = 20 if args.quick else 100

    configurations = [
        ("numpy", 16, 1),
        ("numpy", 4, 4),
        ("numpy", 2, 8),
    ]
    if has_gpu_support():
        configurations.append(("torch", 16, 1))

    results = [
        benchmark_configuration(shape, num_steps, backend, group_size, workers)
        for backend, group_size, workers in configurations
    ]

    if args.json:
        print(json.dumps([asdict(r) for r in results], indent=2))
        return

    print(f"Grid {shape[0]} × {shape[1]} × {shape[2]}, {num_steps} steps")
    print(f"{'backend':<8} {'group':>6} {'workers':>8} {'time (s)':>10} {'Mcells/s':>10}")
    for r in results:
        print(
            f"{r.backend:<8} {r.group_size:>6} {r.workers:>8} "
            f"{r.total_time_sec:>10.3f} {r.mcells_per_sec:>10.1f}"
        )


if __name__ == "__main__":
    main()
