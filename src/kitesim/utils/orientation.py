"""
Attitude helpers for the kite.

Quaternions are scalar-last ``[x, y, z, w]`` as returned by
``scipy.spatial.transform.Rotation.as_quat``. Angles follow the FLU body
frame: roll banks about the forward ``x`` axis, pitch tips the spine about
the spar (``y``), yaw turns about the vertical.

Examples
--------
>>> from kitesim.utils.orientation import orientation_from_euler
>>> q = orientation_from_euler(pitch=15)  # spine tipped 15 deg
"""
from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation as R

IDENTITY: NDArray[np.float64] = np.array([0.0, 0.0, 0.0, 1.0], dtype=np.float64)
"""Kite upright, spine vertical, bridles facing +x."""

EULER_ORDER = "xyz"  # extrinsic roll, pitch, yaw


def orientation_from_euler(
    roll: float = 0.0,
    pitch: float = 0.0,
    yaw: float = 0.0,
    degrees: bool = True,
) -> NDArray[np.float64]:
    """
    Kite attitude from roll, pitch and yaw.

    Parameters
    ----------
    roll, pitch, yaw : float
        Extrinsic rotations about world x, y, z, applied in that order.
    degrees : bool
        Angles in degrees (default) or radians.

    Returns
    -------
    NDArray[np.float64]
        Quaternion [x, y, z, w].
    """
    return R.from_euler(EULER_ORDER, [roll, pitch, yaw], degrees=degrees).as_quat()


def orientation_from_axis_angle(
    axis,
    angle: float,
    degrees: bool = True,
) -> NDArray[np.float64]:
    """
    Rotation of ``angle`` about ``axis`` (normalized here).

    Raises
    ------
    ValueError
        If the axis has zero length.
    """
    axis = np.asarray(axis, dtype=np.float64)
    norm = float(np.linalg.norm(axis))
    if norm == 0.0:
        raise ValueError("Rotation axis must be non-zero")
    theta = np.deg2rad(angle) if degrees else float(angle)
    return R.from_rotvec(axis * (theta / norm)).as_quat()


def quaternion_to_euler(q: NDArray[np.float64], degrees: bool = True) -> tuple[float, float, float]:
    """(roll, pitch, yaw) of ``q``, the inverse of ``orientation_from_euler``."""
    roll, pitch, yaw = R.from_quat(q).as_euler(EULER_ORDER, degrees=degrees)
    return float(roll), float(pitch), float(yaw)


def describe_orientation(q: NDArray[np.float64]) -> str:
    """
    One-line attitude for console output.

    >>> describe_orientation([0, 0, 0.7071068, 0.7071068])
    'Roll: 0.0°, Pitch: 0.0°, Yaw: 90.0°'
    """
    roll, pitch, yaw = quaternion_to_euler(q)
    return f"Roll: {roll:.1f}°, Pitch: {pitch:.1f}°, Yaw: {yaw:.1f}°"
