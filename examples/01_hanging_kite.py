"""
Example 01: Kite hanging from its lines.

The control bar is held 20 m up and the kite is released at rest 15 m
below it. With no aerodynamic load the kite swings into equilibrium under
the bar. Results are logged to CSV and plotted.
"""
import sys
from pathlib import Path

# Setup path for local development (not needed if installed via pip)
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from kitesim.config import InitialState, SimulationConfig
from kitesim.core.simulation import KiteSimulation
from kitesim.dynamics.geometry import KiteGeometry
from kitesim.utils.io import save_simulation_history
from kitesim.utils.orientation import describe_orientation

BAR_HEIGHT = 20.0
DT = 1.0 / 60.0


def hanging_config() -> SimulationConfig:
    cfg = SimulationConfig()
    geom = KiteGeometry.from_specs(cfg.kite, cfg.bridles)
    ctrl_mid = 0.5 * (geom["ctrl_left"] + geom["ctrl_right"])
    start = np.array([0.0, 0.0, BAR_HEIGHT - cfg.lines.length]) - ctrl_mid
    cfg.initial = InitialState(
        position=tuple(float(x) for x in start),
        pitch=0.0,
        bar_center=(0.0, 0.0, BAR_HEIGHT),
    )
    return cfg


def run_example():
    sim = KiteSimulation(hanging_config(), simulation_name="01_hanging_kite")
    results = sim.run(duration=10.0, dt=DT)

    final = results[-1]
    print(f"\nFinal position: {np.round(final.state.position, 3)}")
    print(f"Final attitude: {describe_orientation(final.state.orientation)}")
    print(f"Line tensions:  L={final.tensions.left_total:.2f}N  R={final.tensions.right_total:.2f}N")
    print(f"Pilot feel:     {sim.feedback.state}")

    sim.save_plots()
    save_simulation_history(
        [r.as_row() for r in results],
        str(sim.output_path / "logs" / "history.csv"),
    )
    sim.dispose()
    print(f"Simulation complete. Results saved to {sim.output_path}")


if __name__ == "__main__":
    run_example()
