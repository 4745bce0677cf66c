"""
Closed-form three-sphere intersection.

Used to place the bridle control points: each control point sits at the
bridle lengths from three anchor points on the kite frame.

Notes
-----
A local orthonormal frame is built on the anchors::

    ex = (B - A) / |B - A|
    ey = orthogonalised (C - A), normalised
    ez = ex × ey, flipped so that ez · hemisphere >= 0

and the intersection follows from the standard sphere equations. When the
spheres do not intersect the out-of-plane radicand is clamped to zero, so
the result degrades to the closest point in the anchor plane instead of
raising.
"""
from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

DEGENERATE_EPSILON = 1e-9

# +X of the kite frame, the bridle side
DEFAULT_HEMISPHERE = np.array([1.0, 0.0, 0.0], dtype=np.float64)


def solve(
    anchor_a: NDArray[np.float64],
    anchor_b: NDArray[np.float64],
    anchor_c: NDArray[np.float64],
    dist_a: float,
    dist_b: float,
    dist_c: float,
    hemisphere: NDArray[np.float64] = DEFAULT_HEMISPHERE,
) -> NDArray[np.float64]:
    """
    Find the point at the given distances from three anchors.

    Parameters
    ----------
    anchor_a, anchor_b, anchor_c : NDArray[np.float64]
        Non-collinear anchor points (3,)
    dist_a, dist_b, dist_c : float
        Distances from the respective anchors [m]
    hemisphere : NDArray[np.float64]
        Direction selecting which of the two mirror solutions is returned

    Returns
    -------
    NDArray[np.float64]
        Intersection point (3,)

    Raises
    ------
    ValueError
        If the anchors are coincident or collinear.
    """
    a = np.asarray(anchor_a, dtype=np.float64)
    b = np.asarray(anchor_b, dtype=np.float64)
    c = np.asarray(anchor_c, dtype=np.float64)

    ab = b - a
    d = float(np.linalg.norm(ab))
    if d < DEGENERATE_EPSILON:
        raise ValueError("Trilateration anchors A and B coincide")
    ex = ab / d

    ac = c - a
    i = float(np.dot(ex, ac))
    ey_raw = ac - i * ex
    ey_norm = float(np.linalg.norm(ey_raw))
    if ey_norm < DEGENERATE_EPSILON:
        raise ValueError("Trilateration anchors are collinear")
    ey = ey_raw / ey_norm
    j = float(np.dot(ey, ac))

    ez = np.cross(ex, ey)
    if np.dot(ez, hemisphere) < 0.0:
        ez = -ez

    x = (dist_a**2 - dist_b**2 + d**2) / (2.0 * d)
    y = (dist_a**2 - dist_c**2 + i**2 + j**2) / (2.0 * j) - (i / j) * x
    z = np.sqrt(max(0.0, dist_a**2 - x**2 - y**2))

    return a + x * ex + y * ey + z * ez


def residuals(
    point: NDArray[np.float64],
    anchors: list[NDArray[np.float64]],
    distances: list[float],
) -> NDArray[np.float64]:
    """Distance error ``|point - anchor| - distance`` for each anchor."""
    point = np.asarray(point, dtype=np.float64)
    return np.array(
        [np.linalg.norm(point - np.asarray(a)) - dist for a, dist in zip(anchors, distances)],
        dtype=np.float64,
    )
