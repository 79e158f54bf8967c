"""Progress display for FDTD simulations.

Provides rich terminal UI for simulation progress tracking including:
- Progress bar with percentage
- Elapsed time and ETA
- Computational throughput (Mcells/s)
- Memory usage

``SimulationProgress.update`` has the signature of the ``on_update`` callback
accepted by ``Simulation.run``.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import TYPE_CHECKING

import psutil
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

if TYPE_CHECKING:
    from stackup_fdtd.core.simulation import Simulation


def format_time(seconds: float) -> str:
    """Format time duration for display.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string like "1m 23s" or "2h 15m"
    """
    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs:02d}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes:02d}m"


def format_bytes(num_bytes: float) -> str:
    """Format byte count for display, e.g. "1.5 GB"."""
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if abs(num_bytes) < 1024.0:
            return f"{num_bytes:.1f} {unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.1f} PB"


class SimulationProgress:
    """Real-time progress display driven by the run loop's progress callback.

    Example:
        >>> with SimulationProgress(console, total_steps) as progress:
        ...     sim.run(total_steps, display_interval=16, on_update=progress.update)
    """

    def __init__(self, console: Console, total_steps: int, update_interval: float = 0.1):
        """Initialize progress display.

        Args:
            console: Rich console instance
            total_steps: Total number of timesteps
            update_interval: Minimum time between stats refreshes (seconds)
        """
        self.console = console
        self.total_steps = total_steps
        self.update_interval = update_interval

        self.last_update = 0.0
        self.peak_memory = 0.0
        self.throughput_mcells = 0.0

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            TextColumn("•"),
            TimeRemainingColumn(),
            console=console,
        )
        self.task = self.progress.add_task("Computing", total=total_steps)
        self.progress.start()

    def update(self, step: int, total_steps: int, elapsed: float, total_cells: int) -> None:
        """Progress callback for ``Simulation.run``.

        Args:
            step: Steps completed so far in this run
            total_steps: Steps requested for the run
            elapsed: Seconds since the run started, sampled after a drain
            total_cells: Cells updated per step
        """
        self.progress.update(self.task, completed=step, total=total_steps)

        current_time = time.time()
        # Rate limit the stats line, but always show the final one
        if step < total_steps and current_time - self.last_update < self.update_interval:
            return

        if elapsed > 0 and step > 0:
            self.throughput_mcells = step * total_cells / elapsed / 1e6

        memory = psutil.Process().memory_info().rss
        self.peak_memory = max(self.peak_memory, memory)

        stats_parts = [
            f"Speed: {self.throughput_mcells:.1f} Mcells/s",
            f"Memory: {format_bytes(memory)}",
            f"(peak: {format_bytes(self.peak_memory)})",
        ]
        self.console.print("\r" + " | ".join(stats_parts), end="", style="dim")
        self.last_update = current_time

    def finish(self) -> None:
        """Stop the progress bar and end the stats line."""
        self.progress.stop()
        self.console.print()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finish()


def print_simulation_info(
    console: Console,
    simulation: Simulation,
    total_steps: int,
    output_path: str | Path | None = None,
) -> None:
    """Print simulation parameters before running.

    Args:
        console: Rich console instance
        simulation: Simulation about to run
        total_steps: Number of timesteps to run
        output_path: Path to the HDF5 output file, if any
    """
    grid = simulation.grid
    num_cells = grid.total_cells

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Parameter", style="cyan")
    table.add_column("Value", style="white")

    shape_str = f"{grid.shape[0]} × {grid.shape[1]} × {grid.shape[2]}"
    table.add_row("Grid", f"{shape_str} ({num_cells / 1e6:.2f}M cells)")
    table.add_row("Resolution", f"{grid.d_xyz * 1e3:.2f} mm")
    table.add_row("Timestep", f"{grid.dt:.2e} s")
    table.add_row("Duration", f"{total_steps} steps ({grid.dt * total_steps:.2e} s)")
    table.add_row("Sources", str(len(simulation.setup.sources)))
    table.add_row("Backend", simulation.backend)
    table.add_row("Buffers", format_bytes(simulation.memory_usage_mb() * 1e6))
    if output_path is not None:
        table.add_row("Output", str(output_path))

    console.print(table)
    console.print()
