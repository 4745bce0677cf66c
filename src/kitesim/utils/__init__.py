"""Utility functions for kitesim."""

from kitesim.utils.orientation import (
    IDENTITY,
    describe_orientation,
    orientation_from_axis_angle,
    orientation_from_euler,
    quaternion_to_euler,
)
from kitesim.utils.validation import (
    clamp_magnitude,
    is_finite_vector,
    validate_non_negative,
    validate_positive,
    validate_timestep,
    validate_vector,
)

__all__ = [
    "IDENTITY",
    "orientation_from_euler",
    "orientation_from_axis_angle",
    "quaternion_to_euler",
    "describe_orientation",
    "validate_positive",
    "validate_non_negative",
    "validate_vector",
    "validate_timestep",
    "is_finite_vector",
    "clamp_magnitude",
]
