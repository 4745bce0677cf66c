"""
Local geometry of the delta kite.

Points are expressed in the kite body frame (FLU, origin at the bottom of
the spine). The frame points are authored from the kite dimensions; the two
bridle control points are derived from the bridle lengths by
trilateration.

Examples
--------
>>> geom = KiteGeometry.from_specs(KiteSpecs(), BridleLengths())
>>> geom["ctrl_right"]
array([ 0.517..., -0.309...,  0.406...])
"""
from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

import numpy as np
from numpy.typing import NDArray

from kitesim.config import BridleLengths, KiteSpecs
from kitesim.core import trilateration

MIRROR_Y = np.array([1.0, -1.0, 1.0], dtype=np.float64)


@dataclass(frozen=True)
class Bridle:
    """One bridle: a rope from a frame anchor to a control point."""

    name: str
    anchor: str
    control: str
    length_key: str  # "nose", "inter" or "centre" in BridleLengths
    side: str


BRIDLES: tuple[Bridle, ...] = (
    Bridle("bridle_nose_left", "nose", "ctrl_left", "nose", "left"),
    Bridle("bridle_inter_left", "inter_left", "ctrl_left", "inter", "left"),
    Bridle("bridle_centre_left", "centre", "ctrl_left", "centre", "left"),
    Bridle("bridle_nose_right", "nose", "ctrl_right", "nose", "right"),
    Bridle("bridle_inter_right", "inter_right", "ctrl_right", "inter", "right"),
    Bridle("bridle_centre_right", "centre", "ctrl_right", "centre", "right"),
)

CONTROL_POINTS = {"left": "ctrl_left", "right": "ctrl_right"}


def connections() -> list[tuple[str, str]]:
    """Frame edges (spine, leading edges, spreader, whiskers) for renderers."""
    return [
        ("nose", "spine_base"),
        ("nose", "left_tip"),
        ("nose", "right_tip"),
        ("inter_left", "inter_right"),
        ("whisker_left", "fix_left"),
        ("whisker_right", "fix_right"),
    ]


class KiteGeometry(Mapping):
    """
    Immutable mapping from point name to local coordinates.

    Arrays handed out are read-only views; build a new geometry with
    ``with_control_points`` rather than editing one in place.
    """

    def __init__(self, points: Mapping[str, NDArray[np.float64]]) -> None:
        frozen = {}
        for name, value in points.items():
            arr = np.array(value, dtype=np.float64)
            if arr.shape != (3,):
                raise ValueError(f"Point '{name}' must have shape (3,), got {arr.shape}")
            arr.setflags(write=False)
            frozen[name] = arr
        self._points = MappingProxyType(frozen)

    @classmethod
    def from_specs(cls, specs: KiteSpecs, bridles: BridleLengths) -> KiteGeometry:
        """Authored frame points plus control points derived from ``bridles``."""
        geom = cls(delta_points(specs))
        left, right = derive_control_points(geom, bridles)
        return geom.with_control_points(left, right)

    def __getitem__(self, name: str) -> NDArray[np.float64]:
        return self._points[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def as_array(self, names: list[str] | None = None) -> NDArray[np.float64]:
        """Stack the requested points (all by default) into an (N, 3) array."""
        names = list(self._points) if names is None else names
        return np.array([self._points[n] for n in names], dtype=np.float64)

    def with_control_points(
        self,
        ctrl_left: NDArray[np.float64],
        ctrl_right: NDArray[np.float64]
    ) -> KiteGeometry:
        points = dict(self._points)
        points["ctrl_left"] = ctrl_left
        points["ctrl_right"] = ctrl_right
        return KiteGeometry(points)


def delta_points(specs: KiteSpecs) -> dict[str, NDArray[np.float64]]:
    """
    Authored frame points of the delta kite.

    The spreader (inter) points sit where the leading edges cross the centre
    height; the whiskers reach behind the sail (-X) from the fix points.
    """
    W = specs.wingspan
    H = specs.chord
    centre_z = specs.center_height_ratio * H
    inter_y = 0.5 * W * specs.interpolation_ratio
    fix_y = inter_y * specs.fix_point_ratio
    whisker_z = centre_z * specs.whisker_height_ratio
    whisker_x = -specs.whisker_depth

    return {
        "spine_base": np.array([0.0, 0.0, 0.0]),
        "nose": np.array([0.0, 0.0, H]),
        "left_tip": np.array([0.0, 0.5 * W, 0.0]),
        "right_tip": np.array([0.0, -0.5 * W, 0.0]),
        "centre": np.array([0.0, 0.0, centre_z]),
        "inter_left": np.array([0.0, inter_y, centre_z]),
        "inter_right": np.array([0.0, -inter_y, centre_z]),
        "fix_left": np.array([0.0, fix_y, centre_z]),
        "fix_right": np.array([0.0, -fix_y, centre_z]),
        "whisker_left": np.array([whisker_x, fix_y, whisker_z]),
        "whisker_right": np.array([whisker_x, -fix_y, whisker_z]),
    }


def derive_control_points(
    geometry: Mapping[str, NDArray[np.float64]],
    bridles: BridleLengths,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Place the control points at the bridle lengths from their anchors.

    The right point is trilaterated from (nose, inter_right, centre) on the
    bridle side of the sail; the left point is its mirror across the
    symmetry plane y = 0.

    Returns
    -------
    tuple[NDArray[np.float64], NDArray[np.float64]]
        (ctrl_left, ctrl_right) in the kite frame.
    """
    bridles.validate()
    ctrl_right = trilateration.solve(
        geometry["nose"],
        geometry["inter_right"],
        geometry["centre"],
        bridles.nose,
        bridles.inter,
        bridles.centre,
    )
    return ctrl_right * MIRROR_Y, ctrl_right


def bridle_residuals(
    geometry: Mapping[str, NDArray[np.float64]],
    bridles: BridleLengths,
) -> dict[str, float]:
    """Actual minus rest length for each of the six bridles [m]."""
    lengths = bridles.as_dict()
    out = {}
    for b in BRIDLES:
        actual = float(np.linalg.norm(geometry[b.control] - geometry[b.anchor]))
        out[b.name] = actual - lengths[b.length_key]
    return out
