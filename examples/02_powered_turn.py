"""
Example 02: Powered kite with a steering input.

A crude aerodynamic load pulls the kite away from the pilot along the lines
and lifts it against gravity. Halfway through the right handle is pulled
back and the pilot feedback reports the turn.
"""
import sys
from pathlib import Path

# Setup path for local development (not needed if installed via pip)
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from kitesim.core.simulation import KiteSimulation

DT = 1.0 / 60.0
PULL = 12.0  # N along the lines
LIFT = 4.0  # N upward
STEER = np.array([0.15, 0.0, 0.0])  # m, right handle pulled towards the pilot


def aero_load(sim: KiteSimulation):
    away = sim.body.p - sim.bar_center
    away = away / np.linalg.norm(away)
    force = PULL * away + np.array([0.0, 0.0, LIFT])
    return force, np.zeros(3)


def run_example():
    sim = KiteSimulation(simulation_name="02_powered_turn")
    sim.initialize()
    left, right = sim.handles

    n_steps = int(round(8.0 / DT))
    for i in range(n_steps):
        steering = 3.0 <= sim.t < 6.0
        handles = (left, right + STEER) if steering else (left, right)
        force, torque = aero_load(sim)
        out = sim.step(force, torque, handles=handles, dt=DT)

        if i % 60 == 0:
            fb = sim.feedback
            print(
                f"t={out.t:5.2f}s  L={fb.left_filtered:6.2f}N  R={fb.right_filtered:6.2f}N  "
                f"asym={fb.asymmetry:5.1f}%  {fb.state}"
            )

    sim.save_plots()
    sim.dispose()
    print(f"Simulation complete. Results saved to {sim.output_path}")


if __name__ == "__main__":
    run_example()
