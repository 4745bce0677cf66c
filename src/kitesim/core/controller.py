"""
Rigid-body integrator for the kite.

One step::

    1. validate raw force/torque (non-finite or above ceiling -> zero)
    2. blend toward the raw inputs: s += (raw - s) * (1 - exp(-rate dt))
    3. linear: a = F/m (clamped), v += a dt, v *= exp(-c dt) (clamped),
       tentative p = p + v dt
    4. constraint projection (may correct p, q, v, w)
    5. angular: a = (tau - I k w)/I (clamped), w += a dt (clamped),
       q = exp(w dt) ⊗ q, renormalize, short re-projection (lines, ground)
    6. non-finite pose -> previous valid pose, zero velocities

Damping is a continuous-time decay so results do not depend on the frame
rate.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from kitesim.config import ControllerConfig, PhysicsLimits
from kitesim.core.solver import PBDSolver, SolveResult
from kitesim.dynamics.body import KiteBody, rotate_world
from kitesim.dynamics.constraints import ConstraintSet
from kitesim.logger import ConsoleSink, EventSink
from kitesim.utils.validation import clamp_magnitude, is_finite_vector

SOURCE = "KiteController"


@dataclass(frozen=True)
class ControllerWarnings:
    """Safety clamps that engaged during the last step."""

    accel: bool = False
    velocity: bool = False
    angular: bool = False
    accel_value: float = 0.0
    velocity_value: float = 0.0
    angular_value: float = 0.0

    @property
    def any(self) -> bool:
        return self.accel or self.velocity or self.angular


class KiteController:
    """
    Advances the kite body by one frame and runs the constraint solver.

    Parameters
    ----------
    body : KiteBody
        The authoritative kite state; updated in place.
    geometry : Mapping[str, NDArray]
        Local kite points, including the control points.
    solver : PBDSolver | None
        Constraint solver. Defaults to one built from ``limits``.
    config : ControllerConfig | None
        Damping, smoothing and gravity.
    limits : PhysicsLimits | None
        Input ceilings and kinematic clamps.
    sink : EventSink | None
        Receives warnings about rejected inputs and reverted frames.
    """

    def __init__(
        self,
        body: KiteBody,
        geometry: Mapping[str, NDArray[np.float64]],
        solver: PBDSolver | None = None,
        config: ControllerConfig | None = None,
        limits: PhysicsLimits | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self.body = body
        self.geometry = geometry
        self.config = config if config is not None else ControllerConfig()
        self.limits = limits if limits is not None else PhysicsLimits()
        self.solver = solver if solver is not None else PBDSolver(limits=self.limits)
        self.sink = sink if sink is not None else ConsoleSink()

        self._smoothing_rate = 0.0
        self.set_force_smoothing(self.config.force_smoothing_rate)
        self.smoothed_force = self._gravity_force()
        self.smoothed_torque = np.zeros(3, dtype=np.float64)
        self.warnings = ControllerWarnings()

    def _gravity_force(self) -> NDArray[np.float64]:
        return self.body.mass * self.config.gravity_vector

    @property
    def force_smoothing(self) -> float:
        return self._smoothing_rate

    def set_force_smoothing(self, rate: float) -> None:
        """Set the smoothing rate [1/s], clamped to the configured range."""
        self._smoothing_rate = float(np.clip(
            rate, self.config.min_force_smoothing_rate, self.config.max_force_smoothing_rate
        ))

    def reset(self, position: NDArray[np.float64], orientation: NDArray[np.float64]) -> None:
        """Restore a pose at rest with the smoothed force re-seeded to gravity."""
        self.body.reset_to(position, orientation)
        self.smoothed_force = self._gravity_force()
        self.smoothed_torque = np.zeros(3, dtype=np.float64)
        self.warnings = ControllerWarnings()

    def _validated(self, vec, ceiling: float, label: str) -> NDArray[np.float64]:
        if not is_finite_vector(vec):
            self.sink.warn(SOURCE, f"Invalid {label} {vec!r}, using zero")
            return np.zeros(3, dtype=np.float64)
        arr = np.asarray(vec, dtype=np.float64)
        if np.linalg.norm(arr) > ceiling:
            self.sink.warn(
                SOURCE, f"{label.capitalize()} {np.linalg.norm(arr):.1f} exceeds {ceiling}, using zero"
            )
            return np.zeros(3, dtype=np.float64)
        return arr

    def step(
        self,
        aero_force: NDArray[np.float64],
        aero_torque: NDArray[np.float64],
        constraints: ConstraintSet,
        dt: float,
    ) -> SolveResult:
        """
        Advance the kite by ``dt`` seconds.

        Parameters
        ----------
        aero_force : NDArray[np.float64]
            Aerodynamic force, world frame [N] (3,). Gravity is added here.
        aero_torque : NDArray[np.float64]
            Aerodynamic torque, world frame [N·m] (3,)
        constraints : ConstraintSet
            Lines and ground for this frame.
        dt : float
            Time step [s]

        Returns
        -------
        SolveResult
            The constraint pass, for diagnostics and tension reporting.
        """
        body = self.body
        lim = self.limits
        cfg = self.config
        prev_p = body.p.copy()
        prev_q = body.q.copy()

        force = self._validated(aero_force, lim.max_force, "force") + self._gravity_force()
        torque = self._validated(aero_torque, lim.max_torque, "torque")

        blend = 1.0 - np.exp(-self._smoothing_rate * dt)
        self.smoothed_force = self.smoothed_force + (force - self.smoothed_force) * blend
        self.smoothed_torque = self.smoothed_torque + (torque - self.smoothed_torque) * blend

        # Linear
        accel = self.smoothed_force * body.inv_mass
        accel_value = float(np.linalg.norm(accel))
        accel, accel_clamped = clamp_magnitude(accel, lim.max_acceleration)
        v = (body.v + accel * dt) * np.exp(-cfg.linear_damping * dt)
        velocity_value = float(np.linalg.norm(v))
        v, velocity_clamped = clamp_magnitude(v, lim.max_velocity)
        tentative = body.p + v * dt

        result = self.solver.solve(
            tentative, body.q, v, body.w, body.mass, body.inertia, self.geometry, constraints
        )
        if result.reverted:
            self.sink.error(SOURCE, "Constraint projection produced a non-finite state, frame discarded")

        # Angular
        w = result.angular_velocity
        damping_torque = -body.inertia * cfg.angular_drag * w
        ang_accel = (self.smoothed_torque + damping_torque) * body.inv_inertia
        ang_accel, _ = clamp_magnitude(ang_accel, lim.max_angular_acceleration)
        w = w + ang_accel * dt
        angular_value = float(np.linalg.norm(w))
        w, angular_clamped = clamp_magnitude(w, lim.max_angular_velocity)

        p = result.position
        v = result.velocity
        q = result.orientation
        finite = all(np.all(np.isfinite(x)) for x in (p, q, v, w))
        if finite:
            q = rotate_world(q, w * dt)
            settled = self.solver.settle(
                p, q, v, w, body.mass, body.inertia, self.geometry, constraints
            )
            p, q = settled.position, settled.orientation
            v, w = settled.velocity, settled.angular_velocity
            finite = not settled.reverted and bool(np.all(np.isfinite(q)))
        if not finite:
            self.sink.error(SOURCE, "Non-finite kite state, reverting to previous pose")
            p, q = prev_p, prev_q
            v = np.zeros(3, dtype=np.float64)
            w = np.zeros(3, dtype=np.float64)
            result.reverted = True

        body.set_pose(p, q)
        body.v = np.array(v, dtype=np.float64)
        body.w = np.array(w, dtype=np.float64)

        self.warnings = ControllerWarnings(
            accel=accel_clamped,
            velocity=velocity_clamped,
            angular=angular_clamped,
            accel_value=accel_value,
            velocity_value=velocity_value,
            angular_value=angular_value,
        )
        return result
