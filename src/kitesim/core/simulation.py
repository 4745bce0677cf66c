"""
Simulation driver for the tethered kite.

Owns the kite body, its geometry and the per-frame collaborators
(controller, tension monitor, pilot feedback, diagnostics) and exposes the
explicit lifecycle ``initialize`` / ``step`` / ``reset`` / ``dispose`` plus
optional CSV logging with automatic output organization.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from kitesim.config import BridleLengths, SimulationConfig
from kitesim.core.controller import ControllerWarnings, KiteController
from kitesim.core.diagnostics import (
    ConstraintError,
    ConvergenceHistory,
    FlightSphere,
    PBDDiagnostics,
    compute_flight_sphere,
)
from kitesim.core.solver import PBDSolver
from kitesim.dynamics.body import KiteBody, KiteState
from kitesim.dynamics.constraints import ConstraintSet, build_constraint_set
from kitesim.dynamics.geometry import KiteGeometry, derive_control_points
from kitesim.dynamics.tension import PilotFeedback, TensionMonitor, TensionReport
from kitesim.logger import ConsoleSink, CSVLogger, EventSink
from kitesim.utils.validation import is_finite_vector, validate_non_negative, validate_timestep

DEFAULT_OUTPUT_DIR = Path("output")
SOURCE = "KiteSimulation"

AeroCallback = Callable[[float, KiteState], tuple[NDArray[np.float64], NDArray[np.float64]]]
Handles = tuple[NDArray[np.float64], NDArray[np.float64]]


@dataclass(frozen=True)
class StepResult:
    """Everything a collaborator may want to read after one frame."""

    t: float
    dt: float
    state: KiteState
    tensions: TensionReport
    warnings: ControllerWarnings
    convergence: ConvergenceHistory
    reverted: bool = False

    def as_row(self) -> dict[str, float]:
        """Flat record for ``save_simulation_history``."""
        p, q, v = self.state.position, self.state.orientation, self.state.velocity
        return {
            "t": self.t,
            "p_x": p[0], "p_y": p[1], "p_z": p[2],
            "q_x": q[0], "q_y": q[1], "q_z": q[2], "q_w": q[3],
            "v_x": v[0], "v_y": v[1], "v_z": v[2],
            "T_left": self.tensions.left_total,
            "T_right": self.tensions.right_total,
            "asym": self.tensions.asymmetry,
            "max_error": self.convergence.final_max_error,
        }


class KiteSimulation:
    """
    Tethered kite: one rigid body, two control lines, one ground plane.

    Parameters
    ----------
    config : SimulationConfig | None
        Full configuration. Validated on construction.
    sink : EventSink | None
        Receives info, warnings and errors from every collaborator.
        Defaults to ``ConsoleSink``.
    simulation_name : str | None
        Enables CSV logging right away when given.
    output_dir : Path | str | None
        Base directory for outputs. Defaults to "./output".
    auto_timestamp : bool
        Append a timestamp to the output folder name.

    Notes
    -----
    Per frame the caller supplies the aerodynamic force and torque (world
    frame) and the two handle positions. Tuning calls (line length, bridle
    lengths, smoothing rate) are meant to happen between frames.

    Examples
    --------
    >>> sim = KiteSimulation()
    >>> sim.initialize()
    >>> out = sim.step(np.zeros(3), np.zeros(3), dt=1/60)
    >>> out.tensions.asymmetry
    0.0
    """

    def __init__(
        self,
        config: SimulationConfig | None = None,
        sink: EventSink | None = None,
        simulation_name: str | None = None,
        output_dir: Path | str | None = None,
        auto_timestamp: bool = True,
    ) -> None:
        self.config = config if config is not None else SimulationConfig()
        self.config.validate()
        self.sink = sink if sink is not None else ConsoleSink()

        cfg = self.config
        self.geometry = KiteGeometry.from_specs(cfg.kite, cfg.bridles)
        self.body = KiteBody(
            mass=cfg.kite.mass,
            inertia=cfg.kite.inertia,
            position=np.asarray(cfg.initial.position, dtype=np.float64),
            orientation=cfg.initial.orientation,
        )
        self.solver = PBDSolver(cfg.solver, cfg.limits)
        self.controller = KiteController(
            self.body, self.geometry, self.solver, cfg.controller, cfg.limits, self.sink
        )
        self.tension_monitor = TensionMonitor(cfg.lines, cfg.feedback)
        self.feedback = PilotFeedback(cfg.feedback)
        self.diagnostics = PBDDiagnostics(cfg.diagnostics, cfg.solver.tolerance, self.sink)

        self.handles: Handles = cfg.default_handles()
        self.t = 0.0
        self.last_result: StepResult | None = None
        self._initialized = False
        self._disposed = False

        self._simulation_name = simulation_name
        self._output_dir = Path(output_dir) if output_dir else DEFAULT_OUTPUT_DIR
        self._auto_timestamp = auto_timestamp
        self.output_path: Path | None = None
        self.logger: CSVLogger | None = None
        if simulation_name is not None:
            self.enable_logging(simulation_name)

    # --- Lifecycle ---

    def initialize(self) -> None:
        """Put the kite at its initial pose; implied by the first ``step``."""
        if self._disposed:
            raise RuntimeError("Simulation has been disposed")
        self._restore_initial_state()
        self._initialized = True
        self.sink.info(
            SOURCE,
            f"Initialized: kite at {np.round(self.body.p, 3).tolist()}, "
            f"line length {self.config.lines.length:.2f}m",
        )

    def reset(self) -> None:
        """
        Back to the configured initial pose at rest.

        Smoothed force is re-seeded to gravity, diagnostics and tension
        history are cleared and time restarts at zero. Tuned lengths and
        smoothing rate are kept.
        """
        self._restore_initial_state()
        self.sink.info(SOURCE, "Reset to initial state")

    def dispose(self) -> None:
        self.disable_logging()
        self._disposed = True

    def _restore_initial_state(self) -> None:
        init = self.config.initial
        self.controller.reset(np.asarray(init.position, dtype=np.float64), init.orientation)
        self.tension_monitor.reset()
        self.feedback.reset()
        self.diagnostics.reset()
        self.handles = self.config.default_handles()
        self.t = 0.0
        self.last_result = None

    # --- Read-only views ---

    @property
    def state(self) -> KiteState:
        return self.body.snapshot()

    @property
    def tensions(self) -> TensionReport:
        return self.tension_monitor.report

    @property
    def warnings(self) -> ControllerWarnings:
        return self.controller.warnings

    @property
    def bar_center(self) -> NDArray[np.float64]:
        return 0.5 * (self.handles[0] + self.handles[1])

    def constraint_set(self) -> ConstraintSet:
        left, right = self.handles
        return build_constraint_set(
            left, right, self.config.lines.length, self.config.solver.ground_height
        )

    def flight_sphere(self, wind_direction: NDArray[np.float64] | None = None) -> FlightSphere:
        return compute_flight_sphere(
            self.body.p, self.bar_center, self.config.lines.length,
            self.config.bridles, wind_direction,
        )

    def get_energy(self) -> dict[str, float]:
        """Kinetic and gravitational potential energy relative to the ground [J]."""
        KE = self.body.kinetic_energy()
        PE = self.body.mass * self.config.controller.gravity * (
            self.body.p[2] - self.config.solver.ground_height
        )
        return {"kinetic": KE, "potential": float(PE), "total": KE + float(PE)}

    # --- Tuning ---

    def set_line_length(self, length: float) -> None:
        validate_non_negative(length, "line length")
        self.config.lines.length = float(length)
        self.sink.info(SOURCE, f"Line length set to {length:.2f}m")

    def set_bridle_lengths(self, bridles: BridleLengths) -> None:
        """Re-derive the control points for new bridle lengths and commit them."""
        bridles.validate()
        left, right = derive_control_points(self.geometry, bridles)
        self.geometry = self.geometry.with_control_points(left, right)
        self.controller.geometry = self.geometry
        self.config.bridles = bridles
        self.sink.info(
            SOURCE,
            f"Bridles nose={bridles.nose:.3f} inter={bridles.inter:.3f} "
            f"centre={bridles.centre:.3f}m, control point {np.round(right, 3).tolist()}",
        )

    def set_force_smoothing(self, rate: float) -> None:
        self.controller.set_force_smoothing(rate)

    # --- Stepping ---

    def _accept_handles(self, handles: Handles | None) -> None:
        if handles is None:
            return
        left, right = handles
        if is_finite_vector(left) and is_finite_vector(right):
            self.handles = (np.asarray(left, dtype=np.float64), np.asarray(right, dtype=np.float64))
        else:
            self.sink.warn(SOURCE, "Invalid handle positions, keeping previous ones")

    def step(
        self,
        aero_force: NDArray[np.float64],
        aero_torque: NDArray[np.float64],
        handles: Handles | None = None,
        dt: float = 1.0 / 60.0,
    ) -> StepResult:
        """
        Advance one frame.

        Parameters
        ----------
        aero_force, aero_torque : NDArray[np.float64]
            Aerodynamic loads, world frame (3,). Invalid values are replaced
            by zero with a warning.
        handles : tuple | None
            (left, right) handle positions; None keeps the previous ones.
        dt : float
            Elapsed time [s], clamped to ``config.max_frame_time``.

        Returns
        -------
        StepResult
        """
        if self._disposed:
            raise RuntimeError("Simulation has been disposed")
        if not self._initialized:
            self.initialize()

        if not (np.isfinite(dt) and dt > 0.0):
            self.sink.warn(SOURCE, f"Invalid time step {dt!r}, frame skipped")
            return self._result(0.0, self.diagnostics.analyze(), reverted=False)
        dt = min(float(dt), self.config.max_frame_time)

        self._accept_handles(handles)
        constraints = self.constraint_set()

        solve = self.controller.step(aero_force, aero_torque, constraints, dt)
        for i, triples in enumerate(solve.iteration_errors):
            self.diagnostics.record_errors(
                i, [ConstraintError.from_lengths(n, cur, tgt, unilateral=True) for n, cur, tgt in triples]
            )
        self.t += dt

        report = self.tension_monitor.update(
            self.body.p, self.body.q, self.geometry, constraints, self.config.bridles,
            dt=dt, current_lengths=solve.pre_correction_lengths,
        )
        self.feedback.update(report.left_total, report.right_total, dt)

        radius = self.config.lines.length + self.config.bridles.mean
        self.diagnostics.report(self.t, self.body.p, self.bar_center, radius)

        result = self._result(dt, self.diagnostics.analyze(), solve.reverted)
        if self.logger is not None:
            self.logger.log(self)
        return result

    def _result(self, dt: float, convergence: ConvergenceHistory, reverted: bool) -> StepResult:
        self.last_result = StepResult(
            t=self.t,
            dt=dt,
            state=self.state,
            tensions=self.tensions,
            warnings=self.warnings,
            convergence=convergence,
            reverted=reverted,
        )
        return self.last_result

    def run(
        self,
        duration: float,
        dt: float,
        aero: AeroCallback | None = None,
        handles: Handles | None = None,
        log_interval: float = 1.0,
    ) -> list[StepResult]:
        """
        Fixed-step loop for scripts and tests.

        Parameters
        ----------
        duration : float
            Simulated time to run [s]
        dt : float
            Fixed time step [s]
        aero : callable | None
            ``(t, state) -> (force, torque)``; zero loads when None.
        handles : tuple | None
            Fixed handle positions for the whole run.
        log_interval : float
            Interval [s] for progress lines. <= 0 disables them.

        Returns
        -------
        list[StepResult]

        Raises
        ------
        ValueError
            If ``dt`` is not positive.
        """
        validate_timestep(dt, self.config.max_frame_time)
        if not self._initialized:
            self.initialize()
        zero = np.zeros(3, dtype=np.float64)
        n_steps = int(round(duration / dt))
        results: list[StepResult] = []
        last_log_time = self.t

        if self.logger is not None:
            self.logger.log(self)

        self.sink.info(SOURCE, f"Starting fixed-step simulation: {duration}s duration, dt={dt}s")
        try:
            for _ in range(n_steps):
                force, torque = aero(self.t, self.state) if aero is not None else (zero, zero)
                results.append(self.step(force, torque, handles, dt))
                if log_interval > 0 and (self.t - last_log_time) >= log_interval:
                    p = self.body.p
                    self.sink.info(
                        SOURCE,
                        f"t={self.t:6.2f}s | kite z={p[2]:7.2f}m, |v|={np.linalg.norm(self.body.v):6.2f}m/s, "
                        f"T=({self.tensions.left_total:6.1f}, {self.tensions.right_total:6.1f})N",
                    )
                    last_log_time = self.t
        finally:
            if self.logger is not None:
                self.logger.flush()
        return results

    # --- Logging and plots ---

    def enable_logging(self, name: str | None = None, output_dir: Path | str | None = None) -> Path:
        """
        Enable CSV logging under ``output_dir/name_timestamp/{logs,plots}``.

        Raises
        ------
        ValueError
            If no simulation name is available.
        """
        if name is not None:
            self._simulation_name = name
        if output_dir is not None:
            self._output_dir = Path(output_dir)
        if self._simulation_name is None:
            raise ValueError(
                "Simulation name required for logging. "
                "Either pass it to __init__ or to enable_logging()."
            )

        if self._auto_timestamp:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            folder_name = f"{self._simulation_name}_{timestamp}"
        else:
            folder_name = self._simulation_name
        self.output_path = self._output_dir / folder_name

        logs_dir = self.output_path / "logs"
        plots_dir = self.output_path / "plots"
        logs_dir.mkdir(parents=True, exist_ok=True)
        plots_dir.mkdir(parents=True, exist_ok=True)

        self.logger = CSVLogger(logs_dir / "simulation.csv")
        self.sink.info(SOURCE, f"Logging enabled: {self.output_path}")
        return self.output_path

    def disable_logging(self) -> None:
        if self.logger is not None:
            self.logger.close()
            self.logger = None
            self.sink.info(SOURCE, "Logging disabled")

    def save_plots(self, show: bool = False) -> list[Path]:
        """
        Trajectory and line-tension plots from the logged CSV.

        Raises
        ------
        RuntimeError
            If logging is not enabled or nothing has been logged yet.
        """
        if self.logger is None or self.output_path is None:
            raise RuntimeError("Logging must be enabled to save plots. Call enable_logging().")

        from kitesim.visualization.plotting import plot_line_tensions, plot_trajectory_3d

        self.logger.flush()
        csv_path = self.output_path / "logs" / "simulation.csv"
        plots_dir = self.output_path / "plots"
        if not csv_path.exists():
            raise RuntimeError(f"No log file found at {csv_path}. Has the simulation been run yet?")

        import matplotlib.pyplot as plt

        paths = [plots_dir / "kite_trajectory_3d.png", plots_dir / "line_tensions.png"]
        figs = [
            plot_trajectory_3d(str(csv_path), "kite", save_path=str(paths[0]), show=show),
            plot_line_tensions(str(csv_path), save_path=str(paths[1]), show=show),
        ]
        for fig in figs:
            plt.close(fig)
        self.sink.info(SOURCE, f"Plots saved to: {plots_dir}")
        return paths
