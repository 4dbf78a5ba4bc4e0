"""Motion stepping for dot populations inside a circular aperture.

Each subfield keeps its dots as one flat ``(n, 2)`` array of positions on the
stimulus plane, in metres, centred on the aperture.  The kernels below update
those arrays in place for one simulation tick.  Translation speeds are always
given in metres per second; the caller converts from degrees.

Dots that leave the aperture are reflected specularly about the boundary and
pulled in by :data:`REFLECT_SHRINK` so they end strictly inside.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from .conditions import MotionKind

REFLECT_SHRINK = 0.999

_DIAGONAL = math.sqrt(0.5)

#: Compass directions for balanced non-coherent motion, dot ``k`` uses ``k % 8``.
BALANCED_DIRECTIONS = np.array(
    [
        (1.0, 0.0),
        (_DIAGONAL, _DIAGONAL),
        (0.0, 1.0),
        (-_DIAGONAL, _DIAGONAL),
        (-1.0, 0.0),
        (-_DIAGONAL, -_DIAGONAL),
        (0.0, -1.0),
        (_DIAGONAL, -_DIAGONAL),
    ]
)


def _check_points(points: np.ndarray) -> None:
    if points.ndim != 2 or points.shape[1] != 2:
        raise ValueError(f"Dot positions must be an (n, 2) array, got shape {points.shape}")


def uniform_disk(rng: np.random.Generator, count: int, radius: float) -> np.ndarray:
    """Sample ``count`` points uniformly over a disk of ``radius``."""

    u = rng.random(count)
    theta = rng.random(count) * (2.0 * math.pi)
    r = radius * np.sqrt(u)
    return np.column_stack((r * np.cos(theta), r * np.sin(theta)))


def reflect_into_disk(points: np.ndarray, radius: float) -> np.ndarray:
    """Reflect every point outside ``radius`` back into the aperture, in place."""

    _check_points(points)
    mags = np.hypot(points[:, 0], points[:, 1])
    outside = mags > radius
    if not np.any(outside):
        return points

    mag = mags[outside][:, None]
    normals = points[outside] / mag
    reflected = (points[outside] - 2.0 * normals * (mag - radius)) * REFLECT_SHRINK

    # a step longer than the aperture diameter can reflect past the far side
    new_mags = np.hypot(reflected[:, 0], reflected[:, 1])
    overshoot = new_mags > radius
    if np.any(overshoot):
        reflected[overshoot] *= (radius * REFLECT_SHRINK / new_mags[overshoot])[:, None]

    points[outside] = reflected
    return points


def step_rotation(
    points: np.ndarray,
    speed_deg_per_s: float,
    dt: float,
    direction: int,
    radius: float,
) -> np.ndarray:
    """Rotate all dots about the aperture centre for one tick.

    ``direction`` > 0 is counter-clockwise, < 0 clockwise; 0 counts as
    counter-clockwise.  Rounding drift past ``radius`` is scaled back onto
    the boundary rather than reflected.
    """

    _check_points(points)
    sign = -1.0 if direction < 0 else 1.0
    angle = math.radians(speed_deg_per_s * dt * sign)
    c, s = math.cos(angle), math.sin(angle)
    x = points[:, 0].copy()
    y = points[:, 1]
    points[:, 0] = x * c - y * s
    points[:, 1] = x * s + y * c

    mags = np.hypot(points[:, 0], points[:, 1])
    outside = mags > radius
    if np.any(outside):
        points[outside] *= (radius / mags[outside])[:, None]
    return points


def heading_displacement(heading_deg: float, speed_m_per_s: float, dt: float) -> np.ndarray:
    """Per-tick displacement vector for coherent motion along ``heading_deg``."""

    theta = math.radians(heading_deg)
    step = speed_m_per_s * dt
    return np.array([math.cos(theta) * step, math.sin(theta) * step])


def step_translation(points: np.ndarray, delta: Sequence[float], radius: float) -> np.ndarray:
    """Move every dot by the same ``delta`` and reflect at the boundary."""

    _check_points(points)
    points += np.asarray(delta, dtype=float)
    return reflect_into_disk(points, radius)


def balanced_displacements(count: int, step_m: float) -> np.ndarray:
    """Return the per-dot displacements of one balanced non-coherent tick."""

    return BALANCED_DIRECTIONS[np.arange(count) % len(BALANCED_DIRECTIONS)] * step_m


def step_non_coherent_balanced(points: np.ndarray, step_m: float, radius: float) -> np.ndarray:
    """Move dot ``k`` by ``step_m`` along compass direction ``k % 8``."""

    _check_points(points)
    points += balanced_displacements(len(points), step_m)
    return reflect_into_disk(points, radius)


@dataclass
class SubfieldState:
    """Runtime dot positions of one subfield for the current trial attempt."""

    positions: np.ndarray
    radius: float
    rng: np.random.Generator

    @classmethod
    def from_seed(cls, seed: int, count: int, radius: float) -> "SubfieldState":
        rng = np.random.default_rng(seed)
        return cls(positions=uniform_disk(rng, count, radius), radius=radius, rng=rng)

    def step(
        self,
        kind: MotionKind,
        *,
        dt: float,
        rotation_speed_deg_per_s: float,
        translation_speed_m_per_s: float,
        heading_deg: float,
    ) -> None:
        """Apply the kernel selected by ``kind`` for one tick."""

        if kind is MotionKind.ROTATION_CW:
            step_rotation(self.positions, rotation_speed_deg_per_s, dt, -1, self.radius)
        elif kind is MotionKind.ROTATION_CCW:
            step_rotation(self.positions, rotation_speed_deg_per_s, dt, 1, self.radius)
        elif kind is MotionKind.LINEAR:
            delta = heading_displacement(heading_deg, translation_speed_m_per_s, dt)
            step_translation(self.positions, delta, self.radius)
        elif kind is MotionKind.NON_COHERENT:
            step_non_coherent_balanced(
                self.positions, translation_speed_m_per_s * dt, self.radius
            )


def build_subfield_states(
    seeds: Sequence[int], count: int, radius: float
) -> List[SubfieldState]:
    """Create one freshly sampled dot population per seed."""

    return [SubfieldState.from_seed(seed, count, radius) for seed in seeds]


@dataclass(frozen=True)
class TrajectorySample:
    frame: int
    subfield: int
    dot: int
    x: float
    y: float


@dataclass
class TrajectoryRecorder:
    """Keeps dot positions of translating subfields, tick by tick."""

    samples: List[TrajectorySample] = field(default_factory=list)

    def record(self, frame: int, subfield: int, points: np.ndarray) -> None:
        for dot, (x, y) in enumerate(points):
            self.samples.append(TrajectorySample(frame, subfield, dot, float(x), float(y)))

    def clear(self) -> None:
        self.samples.clear()

    def __len__(self) -> int:
        return len(self.samples)


__all__ = [
    "REFLECT_SHRINK",
    "BALANCED_DIRECTIONS",
    "uniform_disk",
    "reflect_into_disk",
    "step_rotation",
    "heading_displacement",
    "step_translation",
    "balanced_displacements",
    "step_non_coherent_balanced",
    "SubfieldState",
    "build_subfield_states",
    "TrajectorySample",
    "TrajectoryRecorder",
]
