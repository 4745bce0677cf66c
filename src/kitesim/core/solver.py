"""
Position-based constraint projection for the tethered kite.

The solver takes the tentative (post-integration) pose and projects it back
onto the constraint manifold: lines may not be longer than their rest
length and no kite point may sit below the ground. Corrections move the
whole rigid body. A line correction is split between translation and a
world-frame rotation through the generalised inverse mass of the control
point, because control points are fixed in the kite frame rather than free
particles.

Per iteration (Gauss-Seidel, each projection sees the previous one)::

    for line in constraints.lines:  project_line(line)
    project_ground()

The full iteration budget is always spent; convergence is reported, never
used as an early exit.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation as ScR

from kitesim.config import PhysicsLimits, SolverConfig
from kitesim.dynamics.body import quat_normalize, rotate_world
from kitesim.dynamics.constraints import ConstraintSet, GroundConstraint, LineConstraint

Array = np.ndarray

SEPARATION_EPSILON = 1e-9
PENETRATION_EPSILON = 1e-12  # m, rounding left over by a previous lift

# (constraint name, current length, target length)
ErrorTriple = tuple[str, float, float]


@dataclass
class SolveResult:
    """Corrected pose and velocities plus what diagnostics need from the pass."""

    position: NDArray[np.float64]
    orientation: NDArray[np.float64]
    velocity: NDArray[np.float64]
    angular_velocity: NDArray[np.float64]
    iterations: int = 0
    violation_history: list[float] = field(default_factory=list)
    iteration_errors: list[list[ErrorTriple]] = field(default_factory=list)
    pre_correction_lengths: dict[str, float] = field(default_factory=dict)
    reverted: bool = False

    @property
    def errors(self) -> list[ErrorTriple]:
        """Per-constraint triples measured after the last iteration."""
        return self.iteration_errors[-1] if self.iteration_errors else []


class _Pose:
    """Mutable working copy of the body state for one solve."""
    __slots__ = ("p", "q", "v", "w", "R")

    def __init__(self, p: Array, q: Array, v: Array, w: Array) -> None:
        self.p = np.array(p, dtype=np.float64)
        self.q = quat_normalize(q)
        self.v = np.array(v, dtype=np.float64)
        self.w = np.array(w, dtype=np.float64)
        self.R = ScR.from_quat(self.q).as_matrix()

    def rotate(self, rotvec: Array) -> None:
        self.q = rotate_world(self.q, rotvec)
        self.R = ScR.from_quat(self.q).as_matrix()

    def world(self, local: Array) -> Array:
        return self.p + self.R @ local

    def finite(self) -> bool:
        return bool(
            np.all(np.isfinite(self.p)) and np.all(np.isfinite(self.q))
            and np.all(np.isfinite(self.v)) and np.all(np.isfinite(self.w))
        )


class PBDSolver:
    """
    Fixed-budget position-based solver for two lines and a ground plane.

    Parameters
    ----------
    config : SolverConfig
        Iteration budget, tolerance and ground friction.
    limits : PhysicsLimits
        Provides ``epsilon`` used to guard divisions and snap velocities.
    """

    def __init__(self, config: SolverConfig | None = None, limits: PhysicsLimits | None = None) -> None:
        self.config = config if config is not None else SolverConfig()
        self.limits = limits if limits is not None else PhysicsLimits()

    def solve(
        self,
        position: NDArray[np.float64],
        orientation: NDArray[np.float64],
        velocity: NDArray[np.float64],
        angular_velocity: NDArray[np.float64],
        mass: float,
        inertia: float,
        geometry: Mapping[str, NDArray[np.float64]],
        constraints: ConstraintSet,
    ) -> SolveResult:
        """
        Project the tentative pose onto the constraints.

        Returns
        -------
        SolveResult
            Corrected state. On a non-finite intermediate result the input
            pose is returned with zero velocities and ``reverted=True``.
        """
        pose = _Pose(position, orientation, velocity, angular_velocity)
        hull = np.array([geometry[name] for name in geometry], dtype=np.float64)

        result = SolveResult(
            position=pose.p, orientation=pose.q, velocity=pose.v, angular_velocity=pose.w,
            pre_correction_lengths=self._line_lengths(pose, geometry, constraints.lines),
        )

        for it in range(self.config.iterations):
            self._sweep(pose, geometry, hull, constraints, mass, inertia)
            if not pose.finite():
                return self._revert(position, orientation, result)

            lengths = self._line_lengths(pose, geometry, constraints.lines)
            errors = [(c.name, lengths[c.name], c.target_length) for c in constraints.lines]
            violation = max(
                [max(0.0, cur - tgt) for _, cur, tgt in errors]
                + [self._penetration(pose, hull, constraints.ground)]
            )
            result.iteration_errors.append(errors)
            result.violation_history.append(float(violation))
            result.iterations = it + 1

        result.position = pose.p
        result.orientation = pose.q
        result.velocity = pose.v
        result.angular_velocity = pose.w
        return result

    def settle(
        self,
        position: NDArray[np.float64],
        orientation: NDArray[np.float64],
        velocity: NDArray[np.float64],
        angular_velocity: NDArray[np.float64],
        mass: float,
        inertia: float,
        geometry: Mapping[str, NDArray[np.float64]],
        constraints: ConstraintSet,
    ) -> SolveResult:
        """
        Short re-projection of a committed pose.

        The orientation update after ``solve`` can swing a point below the
        ground or stretch a loaded line. ``config.settle_iterations`` sweeps
        (lines, then ground) pull it back; the ground is always projected
        last. Nothing is recorded for diagnostics.
        """
        pose = _Pose(position, orientation, velocity, angular_velocity)
        hull = np.array([geometry[name] for name in geometry], dtype=np.float64)
        result = SolveResult(
            position=pose.p, orientation=pose.q, velocity=pose.v, angular_velocity=pose.w,
        )
        for it in range(self.config.settle_iterations):
            self._sweep(pose, geometry, hull, constraints, mass, inertia)
            if not pose.finite():
                return self._revert(position, orientation, result)
            result.iterations = it + 1

        result.position = pose.p
        result.orientation = pose.q
        result.velocity = pose.v
        result.angular_velocity = pose.w
        return result

    def _sweep(
        self,
        pose: _Pose,
        geometry: Mapping[str, Array],
        hull: Array,
        constraints: ConstraintSet,
        mass: float,
        inertia: float,
    ) -> None:
        inv_mass = 1.0 / mass
        inv_inertia = 1.0 / max(inertia, self.limits.epsilon)
        for line in constraints.lines:
            self._project_line(pose, geometry[line.kite_point], line, inv_mass, inv_inertia)
        self._project_ground(pose, hull, constraints.ground)

    def _project_line(
        self,
        pose: _Pose,
        local: Array,
        line: LineConstraint,
        inv_mass: float,
        inv_inertia: float,
    ) -> None:
        eps = self.limits.epsilon
        if line.target_length <= 0.0:
            return
        cp = pose.world(local)
        diff = cp - line.anchor
        dist = float(np.linalg.norm(diff))
        if dist < SEPARATION_EPSILON or dist <= line.target_length:
            return

        n = diff / dist
        C = dist - line.target_length
        r = cp - pose.p
        alpha = np.cross(r, n)
        denom = inv_mass + float(alpha @ alpha) * inv_inertia
        lam = C / max(denom, eps)

        pose.p = pose.p - inv_mass * lam * n
        d_theta = -inv_inertia * lam * alpha
        if np.linalg.norm(d_theta) > eps:
            pose.rotate(d_theta)

        # Remove the outward radial velocity of the control point
        cp2 = pose.world(local)
        sep2 = cp2 - line.anchor
        dist2 = float(np.linalg.norm(sep2))
        if dist2 < SEPARATION_EPSILON:
            return
        n2 = sep2 / dist2
        r2 = cp2 - pose.p
        radial_speed = float((pose.v + np.cross(pose.w, r2)) @ n2)
        if radial_speed > 0.0:
            rxn = np.cross(r2, n2)
            eff = inv_mass + float(rxn @ rxn) * inv_inertia
            J = -radial_speed / max(eff, eps)
            pose.v = pose.v + J * inv_mass * n2
            pose.w = pose.w + inv_inertia * np.cross(r2, J * n2)

    def _project_ground(self, pose: _Pose, hull: Array, ground: GroundConstraint) -> None:
        penetration = self._penetration(pose, hull, ground)
        if penetration <= PENETRATION_EPSILON:
            return
        pose.p = pose.p + np.array([0.0, 0.0, penetration])
        v = pose.v.copy()
        if v[2] < 0.0:
            v[2] = 0.0
        v[0] *= self.config.ground_friction
        v[1] *= self.config.ground_friction
        if float(v @ v) < self.limits.epsilon:
            v[:] = 0.0
        pose.v = v

    @staticmethod
    def _penetration(pose: _Pose, hull: Array, ground: GroundConstraint) -> float:
        lowest = float(np.min(pose.p[2] + hull @ pose.R[2]))
        return max(0.0, ground.ground_height - lowest)

    @staticmethod
    def _line_lengths(
        pose: _Pose,
        geometry: Mapping[str, Array],
        lines: tuple[LineConstraint, ...],
    ) -> dict[str, float]:
        return {
            c.name: float(np.linalg.norm(pose.world(geometry[c.kite_point]) - c.anchor))
            for c in lines
        }

    @staticmethod
    def _revert(position: Array, orientation: Array, result: SolveResult) -> SolveResult:
        result.position = np.array(position, dtype=np.float64)
        result.orientation = quat_normalize(orientation)
        result.velocity = np.zeros(3)
        result.angular_velocity = np.zeros(3)
        result.reverted = True
        return result
