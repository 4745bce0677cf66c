"""
Convergence diagnostics for the constraint solver.

Pure observer: nothing here changes the simulation state. Per-iteration
constraint errors are summarised into metrics, kept in a short rolling
history for divergence detection, and reported through an ``EventSink`` at
most once per ``log_interval`` of simulated time.
"""
from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from kitesim.config import BridleLengths, DiagnosticsConfig
from kitesim.logger import ConsoleSink, EventSink

SOURCE = "PBDDiagnostics"
CONVERGENCE_TOLERANCE = 0.01  # m
MIN_TARGET_LENGTH = 1e-3  # m, floor for relative error
DIVERGENCE_WINDOW = 3
DIVERGENCE_NOISE = 1e-9  # m, rounding-level changes are not growth


@dataclass(frozen=True)
class ConstraintError:
    name: str
    current_length: float
    target_length: float
    error: float
    relative_error: float

    @classmethod
    def from_lengths(
        cls,
        name: str,
        current: float,
        target: float,
        unilateral: bool = False
    ) -> ConstraintError:
        """
        Absolute and relative length error.

        With ``unilateral`` only stretch counts; a slack tether has no error.
        """
        if unilateral:
            error = max(0.0, current - target)
        else:
            error = abs(current - target)
        return cls(
            name=name,
            current_length=float(current),
            target_length=float(target),
            error=float(error),
            relative_error=float(error / max(target, MIN_TARGET_LENGTH)),
        )


@dataclass(frozen=True)
class IterationMetrics:
    """Relative errors are in percent."""

    iteration: int
    max_error: float
    avg_error: float
    max_relative_error: float
    avg_relative_error: float
    constraint_count: int
    converged: bool


def iteration_metrics(
    iteration: int,
    errors: list[ConstraintError],
    tolerance: float = CONVERGENCE_TOLERANCE,
) -> IterationMetrics:
    if not errors:
        return IterationMetrics(iteration, 0.0, 0.0, 0.0, 0.0, 0, True)
    abs_err = np.array([e.error for e in errors])
    rel_err = np.array([e.relative_error for e in errors]) * 100.0
    max_error = float(abs_err.max())
    return IterationMetrics(
        iteration=iteration,
        max_error=max_error,
        avg_error=float(abs_err.mean()),
        max_relative_error=float(rel_err.max()),
        avg_relative_error=float(rel_err.mean()),
        constraint_count=len(errors),
        converged=max_error < tolerance,
    )


@dataclass(frozen=True)
class ConvergenceHistory:
    iterations: list[IterationMetrics] = field(default_factory=list)
    final_max_error: float = 0.0
    final_avg_error: float = 0.0
    converged: bool = False
    diverged: bool = False


class PBDDiagnostics:
    """
    Rolling convergence monitor.

    Parameters
    ----------
    config : DiagnosticsConfig | None
        Reporting interval, thresholds and history length.
    tolerance : float
        Absolute error below which an iteration counts as converged [m].
    sink : EventSink | None
        Receives throttled summaries and alerts.
    """

    def __init__(
        self,
        config: DiagnosticsConfig | None = None,
        tolerance: float = CONVERGENCE_TOLERANCE,
        sink: EventSink | None = None,
    ) -> None:
        self.config = config if config is not None else DiagnosticsConfig()
        self.tolerance = float(tolerance)
        self.sink = sink if sink is not None else ConsoleSink()
        self.history: deque[IterationMetrics] = deque(maxlen=self.config.history_size)
        self.last_errors: list[ConstraintError] = []
        self._last_report: float | None = None

    def reset(self) -> None:
        self.history.clear()
        self.last_errors = []
        self._last_report = None

    def record(self, metrics: IterationMetrics) -> None:
        self.history.append(metrics)

    def record_errors(self, iteration: int, errors: Iterable[ConstraintError]) -> IterationMetrics:
        """Summarise one iteration and record it."""
        self.last_errors = list(errors)
        metrics = iteration_metrics(iteration, self.last_errors, self.tolerance)
        self.record(metrics)
        return metrics

    def critical_errors(self) -> list[ConstraintError]:
        """Constraints of the last recorded iteration above the critical relative error."""
        critical = self.config.critical_relative_error
        return [e for e in self.last_errors if e.relative_error > critical]

    def analyze(self) -> ConvergenceHistory:
        if not self.history:
            return ConvergenceHistory()
        items = list(self.history)
        final = items[-1]
        diverged = False
        if len(items) >= DIVERGENCE_WINDOW:
            last = items[-DIVERGENCE_WINDOW:]
            diverged = all(
                b.max_error > a.max_error + DIVERGENCE_NOISE for a, b in zip(last, last[1:])
            )
        return ConvergenceHistory(
            iterations=items,
            final_max_error=final.max_error,
            final_avg_error=final.avg_error,
            converged=final.converged,
            diverged=diverged,
        )

    def report(
        self,
        t: float,
        kite_position: NDArray[np.float64],
        anchor: NDArray[np.float64],
        sphere_radius: float,
    ) -> ConvergenceHistory | None:
        """
        Throttled summary of the current convergence state.

        Returns the analysed history when a report was emitted, None when
        throttled.
        """
        if self._last_report is not None and t - self._last_report < self.config.log_interval:
            return None
        self._last_report = t

        convergence = self.analyze()
        distance = float(np.linalg.norm(np.asarray(kite_position) - np.asarray(anchor)))
        self.sink.info(
            SOURCE,
            f"t={t:.2f}s dist={distance:.2f}m (radius={sphere_radius:.1f}m), "
            f"maxErr={convergence.final_max_error:.4f}m, avgErr={convergence.final_avg_error:.4f}m, "
            f"converged={convergence.converged}, diverged={convergence.diverged}",
        )

        if convergence.diverged:
            self.sink.error(
                SOURCE,
                f"Divergence detected, error={convergence.final_max_error:.4f}m increasing over iterations",
            )
        elif not convergence.converged and convergence.final_max_error > self.config.warn_error:
            self.sink.warn(
                SOURCE,
                f"Convergence incomplete: error={convergence.final_max_error:.4f}m "
                f"> tolerance={self.tolerance}m",
            )
        for e in self.critical_errors():
            self.sink.warn(
                SOURCE,
                f"{e.name}: error={e.error:.4f}m ({e.relative_error * 100:.2f}%), "
                f"target={e.target_length:.2f}m",
            )

        if distance > sphere_radius + self.config.escape_margin:
            self.sink.error(
                SOURCE,
                f"Kite escaping flight sphere: distance={distance:.2f}m > radius={sphere_radius:.1f}m",
            )
        return convergence


@dataclass(frozen=True)
class FlightSphere:
    """
    Where the kite sits in its wind window.

    Zones: "zenith" (overhead), "power" (low, in the wind), "edge" (side
    of the window), "transition" (anything else).
    """

    center: NDArray[np.float64]
    radius: float
    current_distance: float
    tension_factor: float
    zenith: NDArray[np.float64]
    distance_to_zenith: float
    power_factor: float
    wind_angle_deg: float
    zone: str


def compute_flight_sphere(
    kite_position: NDArray[np.float64],
    pilot_position: NDArray[np.float64],
    line_length: float,
    bridles: BridleLengths,
    wind_direction: NDArray[np.float64] | None = None,
) -> FlightSphere:
    """
    Describe the flight sphere around the pilot.

    Parameters
    ----------
    wind_direction : NDArray[np.float64] | None
        Direction the wind blows toward. Defaults to -X, so the kite flies
        downwind of the pilot in the default set-up.
    """
    center = np.asarray(pilot_position, dtype=np.float64)
    kite = np.asarray(kite_position, dtype=np.float64)
    radius = float(line_length + bridles.mean)

    offset = kite - center
    distance = float(np.linalg.norm(offset))
    tension_factor = min(distance / radius, 1.0) if radius > 0 else 0.0

    zenith = center + np.array([0.0, 0.0, radius])
    distance_to_zenith = float(np.linalg.norm(kite - zenith))
    relative_height = offset[2] / radius if radius > 0 else 0.0
    power_factor = float(np.clip(1.0 - relative_height, 0.0, 1.0))

    wind = np.array([-1.0, 0.0, 0.0]) if wind_direction is None else np.asarray(wind_direction, dtype=np.float64)
    wind = wind / np.linalg.norm(wind)
    to_kite = offset / distance if distance > 0 else np.zeros(3)
    wind_angle = float(np.degrees(np.arccos(np.clip(to_kite @ wind, -1.0, 1.0))))

    if relative_height > 0.8 and distance_to_zenith < radius * 0.3:
        zone = "zenith"
    elif 0.2 < relative_height < 0.6:
        zone = "power"
    elif 60.0 < wind_angle < 120.0:
        zone = "edge"
    else:
        zone = "transition"

    return FlightSphere(
        center=center,
        radius=radius,
        current_distance=distance,
        tension_factor=float(tension_factor),
        zenith=zenith,
        distance_to_zenith=distance_to_zenith,
        power_factor=power_factor,
        wind_angle_deg=wind_angle,
        zone=zone,
    )
