"""
kitesim - Constraint-based physics core for a tethered two-line kite.

Core Components
---------------
KiteSimulation : Simulation driver (initialize / step / reset / dispose)
KiteController : Rigid-body integrator with force smoothing and safety clamps
PBDSolver : Position-based projection of lines and ground
TensionMonitor : Advisory line/bridle tension read-model
PBDDiagnostics : Convergence monitoring

Examples
--------
>>> import numpy as np
>>> from kitesim import KiteSimulation, SimulationConfig
>>> sim = KiteSimulation(SimulationConfig())
>>> sim.run(duration=2.0, dt=1/60)
"""

__version__ = "0.1.0"

from kitesim.config import BridleLengths, SimulationConfig
from kitesim.core.controller import ControllerWarnings, KiteController
from kitesim.core.diagnostics import PBDDiagnostics, compute_flight_sphere
from kitesim.core.simulation import KiteSimulation, StepResult
from kitesim.core.solver import PBDSolver, SolveResult
from kitesim.core import trilateration
from kitesim.dynamics.body import KiteBody, KiteState
from kitesim.dynamics.geometry import KiteGeometry
from kitesim.dynamics.tension import PilotFeedback, TensionMonitor, TensionReport
from kitesim.logger import ConsoleSink, CSVLogger, EventSink, RecordingSink

__all__ = [
    "__version__",
    # Core
    "KiteSimulation",
    "StepResult",
    "KiteController",
    "ControllerWarnings",
    "PBDSolver",
    "SolveResult",
    "PBDDiagnostics",
    "compute_flight_sphere",
    "trilateration",
    # Model
    "KiteBody",
    "KiteState",
    "KiteGeometry",
    "TensionMonitor",
    "TensionReport",
    "PilotFeedback",
    # Configuration
    "SimulationConfig",
    "BridleLengths",
    # Logging
    "EventSink",
    "ConsoleSink",
    "RecordingSink",
    "CSVLogger",
]
