"""
Checks for configuration values and per-frame inputs.

Configuration is validated strictly and raises ``ValueError``. Frame inputs
are only inspected (``is_finite_vector``) so the caller can substitute a
safe value and keep the loop running.
"""
from __future__ import annotations

import warnings

import numpy as np
from numpy.typing import NDArray


def validate_positive(value: float, name: str, strict: bool = True) -> None:
    """
    Require ``value > 0``.

    Parameters
    ----------
    value : float
    name : str
        Used in the message.
    strict : bool
        Raise when True, otherwise emit a RuntimeWarning and continue.

    Raises
    ------
    ValueError
        If ``strict`` and the value is not positive (NaN included).
    """
    if value > 0:
        return
    message = f"{name} must be positive, got {value}"
    if strict:
        raise ValueError(message)
    warnings.warn(message, RuntimeWarning, stacklevel=2)


def validate_non_negative(value: float, name: str) -> None:
    if not value >= 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


def validate_vector(v: NDArray[np.float64], name: str) -> NDArray[np.float64]:
    """Return ``v`` as a finite (3,) float64 array or raise ``ValueError``."""
    arr = np.asarray(v, dtype=np.float64)
    if arr.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be finite, got {arr}")
    return arr


def validate_timestep(dt: float, max_dt: float) -> None:
    """
    Fixed-step loops need ``0 < dt``; steps above ``max_dt`` get clamped
    by the simulation, which is worth a warning.

    Raises
    ------
    ValueError
        If ``dt`` is not a positive finite number.
    """
    if not (np.isfinite(dt) and dt > 0):
        raise ValueError(f"Time step must be positive and finite, got {dt}")
    if dt > max_dt:
        warnings.warn(
            f"Time step {dt}s exceeds the frame ceiling {max_dt}s and will be clamped",
            RuntimeWarning,
            stacklevel=2,
        )


def is_finite_vector(v) -> bool:
    """True if ``v`` is a (3,) array-like with only finite components."""
    if v is None:
        return False
    try:
        arr = np.asarray(v, dtype=np.float64)
    except (TypeError, ValueError):
        return False
    return arr.shape == (3,) and bool(np.all(np.isfinite(arr)))


def clamp_magnitude(v: NDArray[np.float64], max_norm: float) -> tuple[NDArray[np.float64], bool]:
    """
    Scale ``v`` down to ``max_norm`` if it is longer.

    Returns
    -------
    tuple[NDArray[np.float64], bool]
        The (possibly) clamped vector and whether clamping happened.
    """
    n = float(np.linalg.norm(v))
    if n > max_norm:
        return v * (max_norm / n), True
    return v, False
