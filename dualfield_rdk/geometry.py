"""Viewing-geometry helpers for the dual-field dot display.

Dot positions are simulated in metres on a plane at the viewing distance,
while every experimenter-facing parameter is given in degrees of visual angle.
The functions below perform those conversions so that the motion code never has
to know about degrees and the presentation code never has to know about the
simulation plane.
"""
from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np


def meters_per_degree(view_distance_m: float) -> float:
    """Return the lateral extent (m) of one degree at ``view_distance_m``."""

    return view_distance_m * math.tan(math.radians(1.0))


def deg_to_meters(angle_deg: float, view_distance_m: float) -> float:
    """Convert an eccentricity in degrees to a lateral offset in metres."""

    return view_distance_m * math.tan(math.radians(angle_deg))


def meters_to_deg(offset_m, view_distance_m: float):
    """Inverse of :func:`deg_to_meters`.

    Works element-wise, so a whole ``(n, 2)`` position array converts in one call.
    """

    if view_distance_m <= 0:
        raise ValueError("Viewing distance must be positive")
    return np.degrees(np.arctan(np.asarray(offset_m) / view_distance_m))


@dataclass(frozen=True)
class MonitorSpec:
    """Physical monitor description used to build the PsychoPy monitor."""

    name: str = "dualfield_rdk"
    px_width: int = 1920
    px_height: int = 1080
    width_cm: float = 53.0


__all__ = [
    "meters_per_degree",
    "deg_to_meters",
    "meters_to_deg",
    "MonitorSpec",
]
