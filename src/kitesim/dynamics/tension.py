"""
Tension read-model for lines and bridles.

The tethers are treated as stiff springs purely for reporting: a clamped
Hookean law turns stretch beyond rest length into a force magnitude. The
constraint solver, not this model, keeps the geometry correct, and nothing
here is fed back into it.

Bridle tensions are obtained by balancing the line force at each control
point against the three bridles meeting there, followed by a conservation
pass that keeps each side's bridle sum close to its line tension.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from kitesim.config import BridleLengths, FeedbackConfig, LineConfig
from kitesim.dynamics.body import point_to_world
from kitesim.dynamics.constraints import ConstraintSet, LineConstraint
from kitesim.dynamics.geometry import BRIDLES, bridle_residuals

SEPARATION_EPSILON = 1e-9
MIN_ASYMMETRY_TOTAL = 1e-3  # N
MIN_BRIDLE_SUM = 0.1  # N
SIDES = ("left", "right")


def tension_magnitude(
    current_length: float,
    target_length: float,
    stiffness: float,
    max_tension: float
) -> float:
    """
    Clamped Hookean tension.

    Returns ``min(max(0, stiffness * (current - target)), max_tension)``;
    a slack tether (current <= target) carries no force.
    """
    deviation = current_length - target_length
    if deviation <= 0.0:
        return 0.0
    return float(min(stiffness * deviation, max_tension))


@dataclass(frozen=True)
class Tension:
    """Tension of a single tether, direction from the kite point toward the anchor."""

    current_length: float
    target_length: float
    deviation: float
    magnitude: float
    direction: NDArray[np.float64]

    @property
    def force(self) -> NDArray[np.float64]:
        """Force exerted on the kite point [N] (3,)."""
        return self.magnitude * self.direction


def compute_tension(
    kite_point: NDArray[np.float64],
    anchor: NDArray[np.float64],
    target_length: float,
    stiffness: float,
    max_tension: float,
    current_length: float | None = None,
) -> Tension:
    """
    Tension between a world-space kite point and an external anchor.

    ``current_length`` overrides the measured separation, e.g. to report the
    stretch the solver had to remove this frame.
    """
    sep = np.asarray(anchor, dtype=np.float64) - np.asarray(kite_point, dtype=np.float64)
    dist = float(np.linalg.norm(sep))
    direction = sep / dist if dist > SEPARATION_EPSILON else np.zeros(3)
    length = dist if current_length is None else float(current_length)
    return Tension(
        current_length=length,
        target_length=float(target_length),
        deviation=length - float(target_length),
        magnitude=tension_magnitude(length, target_length, stiffness, max_tension),
        direction=direction,
    )


def decompose_bridle_tensions(
    line_force: NDArray[np.float64],
    control_point: NDArray[np.float64],
    anchors: list[NDArray[np.float64]],
    max_tension: float,
) -> NDArray[np.float64]:
    """
    Split a line force at a control point into three bridle tensions.

    Solves ``sum_i t_i * u_i = -line_force`` in the least-squares sense,
    with ``u_i`` the unit vectors from the control point to each bridle
    anchor, then clamps each ``t_i`` to ``[0, max_tension]``.
    """
    if not np.any(line_force):
        return np.zeros(len(anchors))
    cols = []
    for a in anchors:
        d = np.asarray(a, dtype=np.float64) - control_point
        n = np.linalg.norm(d)
        cols.append(d / n if n > SEPARATION_EPSILON else np.zeros(3))
    U = np.column_stack(cols)
    t, *_ = np.linalg.lstsq(U, -np.asarray(line_force, dtype=np.float64), rcond=None)
    return np.clip(t, 0.0, max_tension)


def conservation_factor(line_tension: float, bridle_sum: float, tolerance: float) -> float:
    """Per-side rescale factor bringing the bridle sum toward the line tension."""
    if line_tension <= 0.0:
        return 1.0
    ratio = line_tension / max(bridle_sum, MIN_BRIDLE_SUM)
    return float(np.clip(ratio, 1.0 - tolerance, 1.0 + tolerance))


@dataclass(frozen=True)
class BridleTension:
    name: str
    side: str
    magnitude: float
    residual: float  # actual minus rest length [m]
    strain_tension: float  # Hookean estimate from the residual alone [N]


def asymmetry_percent(left: float, right: float) -> float:
    return abs(left - right) / max(left + right, MIN_ASYMMETRY_TOTAL) * 100.0


def dominant_side(left: float, right: float, asymmetry: float, threshold: float) -> str:
    if asymmetry < threshold:
        return "neutral"
    return "left" if left > right else "right"


@dataclass(frozen=True)
class TensionReport:
    """
    Per-frame tension view.

    Attributes
    ----------
    lines : dict[str, Tension]
        Keyed by side ("left", "right")
    bridles : dict[str, BridleTension]
        Keyed by bridle name
    left_total, right_total : float
        Line tension per side [N]
    asymmetry : float
        ``|L - R| / max(L + R, 1e-3) * 100`` [%]
    dominant_side : str
        "left", "right" or "neutral"
    left_rate, right_rate : float
        Change of line tension since the previous report [N/s]
    """

    lines: dict[str, Tension] = field(default_factory=dict)
    bridles: dict[str, BridleTension] = field(default_factory=dict)
    left_total: float = 0.0
    right_total: float = 0.0
    asymmetry: float = 0.0
    dominant_side: str = "neutral"
    left_rate: float = 0.0
    right_rate: float = 0.0

    def bridle_sum(self, side: str) -> float:
        return float(sum(b.magnitude for b in self.bridles.values() if b.side == side))


class TensionMonitor:
    """
    Recomputes the tension report on demand.

    State kept between calls: the previous line tensions, used for rates of
    change, and each line's length at the end of the previous frame.

    Notes
    -----
    When the solver's pre-correction lengths are supplied, the reported
    stretch is measured from the line's length at the end of the previous
    frame (capped at rest length) rather than from rest length. A taut line
    that the sweep order left a little short then reports the same stretch
    as its partner. The stretch of one frame grows with dt², so it is
    rescaled to ``LineConfig.reference_frame_time``.
    """

    def __init__(self, lines: LineConfig, feedback: FeedbackConfig | None = None) -> None:
        self.lines = lines
        self.feedback = feedback if feedback is not None else FeedbackConfig()
        self.report = TensionReport()
        self._previous: dict[str, float] | None = None
        self._committed: dict[str, float] = {}

    def reset(self) -> None:
        self.report = TensionReport()
        self._previous = None
        self._committed = {}

    def frame_length(self, line: LineConstraint, tentative: float, dt: float) -> float:
        """Effective length for a pre-correction line length ``tentative`` [m]."""
        cfg = self.lines
        target = line.target_length
        if tentative <= target:
            return float(tentative)
        reference = target
        previous = self._committed.get(line.name)
        if previous is not None and previous >= target - cfg.taut_tolerance:
            reference = min(previous, target)
        stretch = tentative - reference
        if dt > 0.0:
            stretch *= (cfg.reference_frame_time / dt) ** 2
        return float(target + stretch)

    def update(
        self,
        position: NDArray[np.float64],
        orientation: NDArray[np.float64],
        geometry: Mapping[str, NDArray[np.float64]],
        constraints: ConstraintSet,
        bridles: BridleLengths,
        dt: float = 0.0,
        current_lengths: Mapping[str, float] | None = None,
    ) -> TensionReport:
        """
        Build the report for the given pose.

        Parameters
        ----------
        current_lengths : Mapping[str, float] | None
            Pre-correction line lengths keyed by constraint name, converted
            with :meth:`frame_length`. Defaults to the measured distance
            between control point and handle at this pose.
        """
        cfg = self.lines
        line_tensions: dict[str, Tension] = {}
        committed: dict[str, float] = {}
        for c in constraints.lines:
            kite_world = point_to_world(position, orientation, geometry[c.kite_point])
            committed[c.name] = float(np.linalg.norm(kite_world - c.anchor))
            length = None
            if current_lengths is not None and c.name in current_lengths:
                length = self.frame_length(c, current_lengths[c.name], dt)
            line_tensions[c.side] = compute_tension(
                kite_world, c.anchor, c.target_length, cfg.stiffness, cfg.max_tension,
                current_length=length,
            )
        self._committed = committed

        residuals = bridle_residuals(geometry, bridles)
        rest = bridles.as_dict()
        magnitudes: dict[str, float] = {}
        for side in SIDES:
            group = [b for b in BRIDLES if b.side == side]
            if side not in line_tensions:
                for b in group:
                    magnitudes[b.name] = 0.0
                continue
            ctrl = point_to_world(position, orientation, geometry[group[0].control])
            anchors = [point_to_world(position, orientation, geometry[b.anchor]) for b in group]
            raw = decompose_bridle_tensions(
                line_tensions[side].force, ctrl, anchors, cfg.bridle_max_tension
            )
            factor = conservation_factor(
                line_tensions[side].magnitude, float(raw.sum()), cfg.conservation_tolerance
            )
            for b, t in zip(group, raw):
                magnitudes[b.name] = float(t * factor)

        bridle_report = {}
        for b in BRIDLES:
            strain = tension_magnitude(
                rest[b.length_key] + residuals[b.name], rest[b.length_key],
                cfg.bridle_stiffness, cfg.bridle_max_tension,
            )
            bridle_report[b.name] = BridleTension(
                name=b.name, side=b.side, magnitude=magnitudes[b.name],
                residual=residuals[b.name], strain_tension=strain,
            )

        left = line_tensions["left"].magnitude if "left" in line_tensions else 0.0
        right = line_tensions["right"].magnitude if "right" in line_tensions else 0.0
        asym = asymmetry_percent(left, right)

        left_rate = right_rate = 0.0
        if self._previous is not None and dt > 0.0:
            left_rate = (left - self._previous["left"]) / dt
            right_rate = (right - self._previous["right"]) / dt
        self._previous = {"left": left, "right": right}

        self.report = TensionReport(
            lines=line_tensions,
            bridles=bridle_report,
            left_total=left,
            right_total=right,
            asymmetry=asym,
            dominant_side=dominant_side(left, right, asym, self.feedback.asymmetry_threshold),
            left_rate=left_rate,
            right_rate=right_rate,
        )
        return self.report


class PilotFeedback:
    """
    Filtered hand tensions for haptic or display collaborators.

    Raw line tensions are low-pass filtered with
    ``filtered += (raw - filtered) * min(dt * rate, 1)`` (time constant
    ``1 / rate``), then classified into a coarse flight state.
    """

    def __init__(self, config: FeedbackConfig | None = None) -> None:
        self.config = config if config is not None else FeedbackConfig()
        self.reset()

    def reset(self) -> None:
        self.left_raw = 0.0
        self.right_raw = 0.0
        self.left_filtered = 0.0
        self.right_filtered = 0.0
        self.left_rate = 0.0
        self.right_rate = 0.0
        self.asymmetry = 0.0
        self.dominant_side = "neutral"
        self.magnitude = 0.0
        self.state = "idle"

    def update(self, left: float, right: float, dt: float) -> PilotFeedback:
        cfg = self.config
        if dt > 0.0:
            self.left_rate = (left - self.left_raw) / dt
            self.right_rate = (right - self.right_raw) / dt
        self.left_raw = float(left)
        self.right_raw = float(right)

        blend = min(dt * cfg.filter_rate, 1.0)
        self.left_filtered += (self.left_raw - self.left_filtered) * blend
        self.right_filtered += (self.right_raw - self.right_filtered) * blend

        self.asymmetry = asymmetry_percent(self.left_filtered, self.right_filtered)
        self.dominant_side = dominant_side(
            self.left_filtered, self.right_filtered, self.asymmetry, cfg.asymmetry_threshold
        )
        self.magnitude = 0.5 * (self.left_filtered + self.right_filtered)
        self.state = self._classify()
        return self

    def _classify(self) -> str:
        cfg = self.config
        if self.magnitude < cfg.idle_threshold:
            return "idle"
        if self.magnitude < cfg.stall_threshold and self.asymmetry > cfg.stall_asymmetry:
            return "stall"
        if self.magnitude >= cfg.power_threshold and self.asymmetry < cfg.asymmetry_threshold:
            return "powered"
        if self.dominant_side == "left":
            return "turning_left"
        if self.dominant_side == "right":
            return "turning_right"
        return "powered"
