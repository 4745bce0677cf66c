"""
Constraints acting on the kite.

Two inextensible control lines (unilateral: they only resist stretching)
tie the bridle control points to the pilot's handles, and a ground plane
keeps every frame point above a fixed height. The solver enforces them;
these classes only describe them.
"""
from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from kitesim.dynamics.geometry import CONTROL_POINTS
from kitesim.utils.validation import validate_non_negative, validate_vector


@dataclass(frozen=True)
class LineConstraint:
    """
    Maximum-distance constraint between a kite point and a world anchor.

    C = |p_world - anchor| - target_length <= 0
    """

    name: str
    kite_point: str
    anchor: NDArray[np.float64]
    target_length: float
    side: str

    def __post_init__(self):
        validate_non_negative(self.target_length, f"{self.name} target length")
        object.__setattr__(self, "anchor", validate_vector(self.anchor, f"{self.name} anchor"))


@dataclass(frozen=True)
class GroundConstraint:
    """Keep every kite point at or above ``ground_height``."""

    name: str = "ground"
    ground_height: float = 0.0


@dataclass(frozen=True)
class ConstraintSet:
    """The line constraints (solved in order) and the ground plane."""

    lines: tuple[LineConstraint, ...]
    ground: GroundConstraint = field(default_factory=GroundConstraint)

    def line(self, side: str) -> LineConstraint:
        for c in self.lines:
            if c.side == side:
                return c
        raise KeyError(f"No line constraint on side '{side}'")


def build_constraint_set(
    left_handle: NDArray[np.float64],
    right_handle: NDArray[np.float64],
    line_length: float,
    ground_height: float = 0.0,
) -> ConstraintSet:
    """Left and right control lines from the handles, plus the ground."""
    lines = (
        LineConstraint("line_left", CONTROL_POINTS["left"], left_handle, line_length, "left"),
        LineConstraint("line_right", CONTROL_POINTS["right"], right_handle, line_length, "right"),
    )
    return ConstraintSet(lines=lines, ground=GroundConstraint(ground_height=ground_height))
