"""
Rigid-body state of the kite.

Position is the spine base in world coordinates [m], orientation a
scalar-last unit quaternion (body -> world), velocities are world-frame
[m/s, rad/s]. The kite carries a single scalar moment of inertia.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation as ScR

QUATERNION_EPSILON = 1e-12


def quat_normalize(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Unit-length copy of ``q`` ([x, y, z, w]).

    A degenerate (near zero) quaternion carries no attitude, so the identity
    is returned with a RuntimeWarning.
    """
    q = np.asarray(q, dtype=np.float64)
    norm = float(np.linalg.norm(q))
    if norm < QUATERNION_EPSILON:
        warnings.warn(
            f"Degenerate quaternion {q}, substituting identity",
            RuntimeWarning,
            stacklevel=2,
        )
        return np.array([0.0, 0.0, 0.0, 1.0], dtype=np.float64)
    return q / norm


def rotate_world(q: NDArray[np.float64], rotvec: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Apply an incremental rotation expressed in the world frame.

    Parameters
    ----------
    q : NDArray[np.float64]
        Current unit quaternion [x, y, z, w] (4,)
    rotvec : NDArray[np.float64]
        Rotation vector (axis * angle) in world frame [rad] (3,)

    Returns
    -------
    NDArray[np.float64]
        Normalized quaternion ``exp(rotvec) ⊗ q``.
    """
    rotvec = np.asarray(rotvec, dtype=np.float64)
    if np.linalg.norm(rotvec) < QUATERNION_EPSILON:
        return quat_normalize(q)
    R_new = ScR.from_rotvec(rotvec) * ScR.from_quat(q)
    return quat_normalize(R_new.as_quat())


def point_to_world(
    position: NDArray[np.float64],
    orientation: NDArray[np.float64],
    local: NDArray[np.float64]
) -> NDArray[np.float64]:
    """World coordinates of a body-frame point (or an (N, 3) stack of points)."""
    # Geometry arrays are read-only and Rotation.apply needs a writable buffer
    local = np.array(local, dtype=np.float64)
    return np.asarray(position) + ScR.from_quat(orientation).apply(local)


@dataclass(frozen=True)
class KiteState:
    """Read-only snapshot of the kite body."""

    position: NDArray[np.float64]
    orientation: NDArray[np.float64]
    velocity: NDArray[np.float64]
    angular_velocity: NDArray[np.float64]

    @property
    def speed(self) -> float:
        return float(np.linalg.norm(self.velocity))


class KiteBody:
    """
    The kite as one rigid body.

    State Variables
    ---------------
    - p : NDArray[np.float64]
        Spine base, world frame [m] (3,)
    - q : NDArray[np.float64]
        Attitude, body -> world, [x, y, z, w] (4,)
    - v : NDArray[np.float64]
        Spine base velocity, world frame [m/s] (3,)
    - w : NDArray[np.float64]
        Spin, world frame [rad/s] (3,)

    Properties
    ----------
    - mass : float
        Sail and frame mass [kg]
    - inertia : float
        Scalar moment of inertia [kg·m²]

    Notes
    -----
    The kite is treated as having a scalar inertia, so the inverse inertia
    is the same in every frame. Orientation is renormalized on every write.
    """
    __slots__ = ("p", "q", "v", "w", "mass", "inertia", "inv_mass", "inv_inertia")

    def __init__(
        self,
        mass: float,
        inertia: float,
        position: NDArray[np.float64],
        orientation: NDArray[np.float64],
        linear_velocity: NDArray[np.float64] | None = None,
        angular_velocity: NDArray[np.float64] | None = None,
    ) -> None:
        if not mass > 0:
            raise ValueError(f"Mass must be positive, got {mass}")
        if not inertia > 0:
            raise ValueError(f"Inertia must be positive, got {inertia}")

        self.mass = float(mass)
        self.inertia = float(inertia)
        self.inv_mass = 1.0 / self.mass
        self.inv_inertia = 1.0 / self.inertia

        self.p = np.asarray(position, dtype=np.float64).copy()
        self.q = quat_normalize(np.asarray(orientation, dtype=np.float64).copy())
        self.v = (np.zeros(3, dtype=np.float64) if linear_velocity is None
                  else np.asarray(linear_velocity, dtype=np.float64).copy())
        self.w = (np.zeros(3, dtype=np.float64) if angular_velocity is None
                  else np.asarray(angular_velocity, dtype=np.float64).copy())

    def rotation_world(self) -> NDArray[np.float64]:
        """3x3 rotation matrix R such that v_world = R @ v_body."""
        return ScR.from_quat(self.q).as_matrix()

    def point_to_world(self, local: NDArray[np.float64]) -> NDArray[np.float64]:
        return point_to_world(self.p, self.q, local)

    def set_pose(self, position: NDArray[np.float64], orientation: NDArray[np.float64]) -> None:
        self.p = np.asarray(position, dtype=np.float64).copy()
        self.q = quat_normalize(orientation)

    def reset_to(self, position: NDArray[np.float64], orientation: NDArray[np.float64]) -> None:
        """Move to the given pose and zero both velocities."""
        self.set_pose(position, orientation)
        self.v = np.zeros(3, dtype=np.float64)
        self.w = np.zeros(3, dtype=np.float64)

    def snapshot(self) -> KiteState:
        return KiteState(
            position=self.p.copy(),
            orientation=self.q.copy(),
            velocity=self.v.copy(),
            angular_velocity=self.w.copy(),
        )

    def kinetic_energy(self) -> float:
        """Translational plus rotational energy, ``m|v|²/2 + I|ω|²/2`` [J]."""
        return 0.5 * float(self.mass * (self.v @ self.v) + self.inertia * (self.w @ self.w))
