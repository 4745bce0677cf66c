"""
Configuration for the kite simulation.

Grouped dataclasses with the defaults of the reference delta kite. Every
group can be overridden independently, either in code or through
``kitesim.utils.io.load_simulation_config``.

Physical units: SI throughout (m, kg, s, N, rad).
"""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from kitesim.utils.orientation import orientation_from_euler
from kitesim.utils.validation import validate_non_negative, validate_positive

GRAVITY = 9.81  # m/s²
DEFAULT_MAX_FRAME_TIME = 1.0 / 30.0  # s


@dataclass
class KiteSpecs:
    """
    Dimensions and mass properties of the delta kite.

    Attributes
    ----------
    wingspan : float
        Tip to tip span [m]
    chord : float
        Spine length from base to nose [m]
    center_height_ratio : float
        Height of the centre point as a fraction of the chord [-]
    interpolation_ratio : float
        Position of the spar/leading-edge intersection along the half span [-]
    fix_point_ratio : float
        Whisker attachment position relative to the inter points [-]
    whisker_height_ratio : float
        Whisker tip height relative to the centre point [-]
    whisker_depth : float
        How far the whiskers reach behind the sail [m]
    mass : float
        Total kite mass [kg]
    inertia : float | None
        Isotropic moment of inertia [kg·m²]. Derived from mass and
        dimensions when not given.
    """

    wingspan: float = 1.65
    chord: float = 0.65
    center_height_ratio: float = 0.25
    interpolation_ratio: float = 0.75
    fix_point_ratio: float = 2.0 / 3.0
    whisker_height_ratio: float = 0.6
    whisker_depth: float = 0.20
    mass: float = 0.31
    inertia: float | None = None

    def __post_init__(self):
        if self.inertia is None:
            self.inertia = self.mass * (self.wingspan**2 + self.chord**2) / 24.0


@dataclass
class BridleLengths:
    """Rest lengths of the three bridles on each side [m]."""

    nose: float = 0.65
    inter: float = 0.65
    centre: float = 0.65

    def validate(self) -> None:
        validate_non_negative(self.nose, "bridle nose length")
        validate_non_negative(self.inter, "bridle inter length")
        validate_non_negative(self.centre, "bridle centre length")

    @property
    def mean(self) -> float:
        return (self.nose + self.inter + self.centre) / 3.0

    def as_dict(self) -> dict[str, float]:
        return {"nose": self.nose, "inter": self.inter, "centre": self.centre}


@dataclass
class LineConfig:
    """
    Control lines and the advisory spring law used to report tension.

    Attributes
    ----------
    length : float
        Rest length of both control lines [m]
    stiffness : float
        Line spring constant for tension reporting [N/m]
    max_tension : float
        Reported line tension ceiling [N]
    bridle_stiffness : float
        Bridle spring constant [N/m]
    bridle_max_tension : float
        Per-bridle tension ceiling [N]
    conservation_tolerance : float
        Allowed band between the bridle sum and the line tension per side [-]
    reference_frame_time : float
        Frame time the stiffness is calibrated at [s]. The stretch removed by
        the solver grows with dt², so it is rescaled to this frame time
    taut_tolerance : float
        A line that ended the previous frame within this distance of its
        rest length counts as taut [m]
    """

    length: float = 15.0
    stiffness: float = 3500.0
    max_tension: float = 200.0
    bridle_stiffness: float = 80.0
    bridle_max_tension: float = 80.0
    conservation_tolerance: float = 0.1
    reference_frame_time: float = 1.0 / 60.0
    taut_tolerance: float = 0.01


@dataclass
class PhysicsLimits:
    """Safety ceilings that keep a frame from blowing up the state."""

    max_force: float = 1000.0  # N
    max_torque: float = 20.0  # N·m
    max_velocity: float = 30.0  # m/s
    max_angular_velocity: float = 15.0  # rad/s
    max_acceleration: float = 100.0  # m/s²
    max_angular_acceleration: float = 5.0  # rad/s²
    epsilon: float = 1e-4


@dataclass
class SolverConfig:
    """Position-based constraint solver settings."""

    iterations: int = 20
    settle_iterations: int = 3  # sweeps after the orientation update
    tolerance: float = 0.01  # m
    ground_height: float = 0.0  # m
    ground_friction: float = 0.95  # horizontal velocity kept per ground contact


@dataclass
class ControllerConfig:
    """
    Rigid-body integrator settings.

    Attributes
    ----------
    linear_damping : float
        Continuous-time linear decay rate [1/s]; applied as exp(-c dt)
    angular_drag : float
        Angular damping factor [1/s]; damping torque is -I * k * w
    force_smoothing_rate : float
        Rate of the exponential blend toward raw force/torque [1/s]
    min_force_smoothing_rate, max_force_smoothing_rate : float
        Bounds for ``set_force_smoothing``
    gravity : float
        Gravitational acceleration magnitude [m/s²], acting along -Z
    """

    linear_damping: float = 2.0
    angular_drag: float = 2.0
    force_smoothing_rate: float = 10.0
    min_force_smoothing_rate: float = 0.1
    max_force_smoothing_rate: float = 20.0
    gravity: float = GRAVITY

    @property
    def gravity_vector(self) -> NDArray[np.float64]:
        return np.array([0.0, 0.0, -self.gravity], dtype=np.float64)


@dataclass
class DiagnosticsConfig:
    """Convergence monitoring and throttled reporting."""

    log_interval: float = 1.0  # s of simulated time
    escape_margin: float = 0.5  # m beyond the flight sphere radius
    warn_error: float = 0.1  # m, incomplete convergence worth a warning
    critical_relative_error: float = 0.001  # 0.1 %
    history_size: int = 16


@dataclass
class FeedbackConfig:
    """Pilot (haptic) feedback filtering."""

    filter_rate: float = 5.0  # 1/s
    asymmetry_threshold: float = 10.0  # %
    power_threshold: float = 20.0  # N
    idle_threshold: float = 5.0  # N
    stall_threshold: float = 10.0  # N
    stall_asymmetry: float = 30.0  # %


@dataclass
class InitialState:
    """
    Initial pose and control bar placement.

    The pilot stands at the origin; the kite starts downwind (-X) and
    inside the flight sphere so the lines begin slack.
    """

    position: tuple[float, float, float] = (-10.0, 0.0, 11.0)
    roll: float = 0.0  # deg
    pitch: float = 15.0  # deg
    yaw: float = 0.0  # deg
    bar_center: tuple[float, float, float] = (0.0, 0.0, 1.0)
    handle_separation: float = 0.6  # m

    @property
    def orientation(self) -> NDArray[np.float64]:
        return orientation_from_euler(roll=self.roll, pitch=self.pitch, yaw=self.yaw)


@dataclass
class SimulationConfig:
    """Aggregate configuration handed to ``KiteSimulation``."""

    kite: KiteSpecs = field(default_factory=KiteSpecs)
    bridles: BridleLengths = field(default_factory=BridleLengths)
    lines: LineConfig = field(default_factory=LineConfig)
    limits: PhysicsLimits = field(default_factory=PhysicsLimits)
    solver: SolverConfig = field(default_factory=SolverConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    initial: InitialState = field(default_factory=InitialState)
    max_frame_time: float = DEFAULT_MAX_FRAME_TIME

    def validate(self) -> None:
        """
        Check the configuration for physically impossible values.

        Raises
        ------
        ValueError
            On non-positive mass/inertia/frame time, negative lengths or an
            empty iteration budget.
        """
        validate_positive(self.kite.mass, "kite mass")
        validate_positive(self.kite.inertia, "kite inertia")
        validate_positive(self.kite.wingspan, "wingspan")
        validate_positive(self.kite.chord, "chord")
        self.bridles.validate()
        validate_non_negative(self.lines.length, "line length")
        validate_non_negative(self.lines.stiffness, "line stiffness")
        validate_non_negative(self.lines.max_tension, "line max tension")
        validate_positive(self.lines.reference_frame_time, "line reference frame time")
        validate_non_negative(self.lines.taut_tolerance, "line taut tolerance")
        validate_positive(self.max_frame_time, "max frame time")
        if self.solver.iterations < 1:
            raise ValueError(f"solver iterations must be >= 1, got {self.solver.iterations}")
        validate_non_negative(self.solver.settle_iterations, "solver settle iterations")

    def default_handles(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Left and right handle positions of a centred, level control bar."""
        center = np.asarray(self.initial.bar_center, dtype=np.float64)
        half = 0.5 * self.initial.handle_separation
        left = center + np.array([0.0, half, 0.0])
        right = center - np.array([0.0, half, 0.0])
        return left, right
