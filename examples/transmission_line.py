"""
Example: Microstrip Transmission Line
=====================================
A sin² current pulse launched between a signal trace and its ground plane.
The pulse travels along Z in the FR4-like dielectric and is absorbed by the
resistive terminators at both ends of the line.

Expected runtime: ~1 minute on the NumPy backend, seconds on a GPU
Output: transmission_line.h5 (E_x slices through the middle X plane)
        transmission_line.png (last slice, needs matplotlib)

Grid: 16 × 128 × 256 cells @ 1mm resolution
Timestep: 1 ps
Source: 256-step sin² pulse under the trace at z = 128
"""

from rich.console import Console

from stackup_fdtd import DisplayOptions, Simulation, create_transmission_line_setup
from stackup_fdtd.io import SliceResultReader
from stackup_fdtd.progress import SimulationProgress, print_simulation_info

TOTAL_STEPS = 1024
DISPLAY_INTERVAL = 32
OUTPUT = "transmission_line.h5"

console = Console()

setup = create_transmission_line_setup()
display = DisplayOptions(field="e_field", axis=0, mode="x")

with Simulation(setup, backend="auto") as sim:
    console.rule("FDTD Simulation: Microstrip Transmission Line")
    print_simulation_info(console, sim, TOTAL_STEPS, output_path=OUTPUT)

    with SimulationProgress(console, TOTAL_STEPS) as progress:
        sim.run(
            TOTAL_STEPS,
            display_interval=DISPLAY_INTERVAL,
            on_update=progress.update,
            display_options=display,
            output_file=OUTPUT,
        )

console.print(f"[green]✓[/green] Slices saved to: {OUTPUT}")

# Render the last recorded slice
try:
    import matplotlib.pyplot as plt
except ImportError:
    console.print("Install matplotlib to render the final slice: pip install 'stackup-fdtd[viz]'")
else:
    with SliceResultReader(OUTPUT) as reader:
        image = reader.load_image(-1)
        step = int(reader.load_steps()[-1])

    fig, ax = plt.subplots(figsize=(8, 4))
    ax.imshow(image, origin="lower", aspect="auto")
    ax.set_title(f"E_x at x = {setup.grid.shape[0] // 2}, step {step}")
    ax.set_xlabel("z (cells)")
    ax.set_ylabel("y (cells)")
    fig.savefig("transmission_line.png", dpi=150, bbox_inches="tight")
    console.print("Final slice saved to: transmission_line.png")
