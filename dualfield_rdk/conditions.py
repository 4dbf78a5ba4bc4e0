"""Per-frame stimulus condition model.

A :class:`StimulusCondition` describes one trial's complete timeline as four
:class:`SubfieldTracks`, each holding parallel per-frame sequences of motion
kind, colour, visibility, eye and depth plane.  Index ``f`` of every sequence
describes the stimulus exactly at simulation tick ``f``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Sequence, Tuple

RGBA = Tuple[float, float, float, float]

SUBFIELD_COUNT = 4


class SynthesisError(RuntimeError):
    """Raised when a condition does not match its trial's frame contract."""


class MotionKind(IntEnum):
    """Motion applied to a subfield on a given tick (values are log codes)."""

    NONE = 0
    ROTATION_CW = 1
    ROTATION_CCW = 2
    LINEAR = 3
    NON_COHERENT = 4


class Eye(IntEnum):
    BOTH = 0
    LEFT = 1
    RIGHT = 2


class DepthPlane(IntEnum):
    FIXATION = 0
    NEAR = 1
    FAR = 2


class DelayedColor(IntEnum):
    """Colour of the delayed-onset field once it appears."""

    RED = 0
    GREEN = 1

    def opposite(self) -> "DelayedColor":
        return DelayedColor.GREEN if self is DelayedColor.RED else DelayedColor.RED

    @property
    def letter(self) -> str:
        return "R" if self is DelayedColor.RED else "G"


def encode_color_letter(color: Sequence[float]) -> str:
    """Map an RGBA colour to the single-letter code used in colour payloads."""

    r, g, b = (float(c) for c in color[:3])
    alpha = float(color[3]) if len(color) > 3 else 1.0
    if alpha < 0.5 or (r < 0.05 and g < 0.05 and b < 0.05):
        return "K"
    if r >= g and r >= b:
        return "R"
    if g >= b:
        return "G"
    return "B"


@dataclass(frozen=True)
class FrameAttributes:
    """Snapshot of one subfield's attributes on one frame."""

    motion_kind: MotionKind
    color: RGBA
    visible: bool
    eye: Eye
    depth: DepthPlane


@dataclass
class SubfieldTracks:
    """Parallel per-frame attribute sequences for one subfield."""

    motion_kind: List[MotionKind]
    color: List[RGBA]
    visible: List[bool]
    eye: List[Eye]
    depth: List[DepthPlane]

    @classmethod
    def empty(cls, total_frames: int, off_color: RGBA) -> "SubfieldTracks":
        """Invisible, static, both eyes, fixation plane on every frame."""

        return cls(
            motion_kind=[MotionKind.NONE] * total_frames,
            color=[tuple(off_color)] * total_frames,
            visible=[False] * total_frames,
            eye=[Eye.BOTH] * total_frames,
            depth=[DepthPlane.FIXATION] * total_frames,
        )

    def __len__(self) -> int:
        return len(self.motion_kind)

    def check_length(self, total_frames: int) -> None:
        lengths = {
            "motion_kind": len(self.motion_kind),
            "color": len(self.color),
            "visible": len(self.visible),
            "eye": len(self.eye),
            "depth": len(self.depth),
        }
        bad = {name: n for name, n in lengths.items() if n != total_frames}
        if bad:
            raise SynthesisError(
                f"Subfield tracks do not span {total_frames} frames: {bad}"
            )

    def at(self, frame: int) -> FrameAttributes:
        return FrameAttributes(
            motion_kind=self.motion_kind[frame],
            color=self.color[frame],
            visible=self.visible[frame],
            eye=self.eye[frame],
            depth=self.depth[frame],
        )


@dataclass
class StimulusCondition:
    """One trial's full per-frame timeline for the four subfields."""

    name: str
    total_frames: int
    subfields: List[SubfieldTracks] = field(default_factory=list)

    @classmethod
    def empty(cls, name: str, total_frames: int, off_color: RGBA) -> "StimulusCondition":
        return cls(
            name=name,
            total_frames=total_frames,
            subfields=[
                SubfieldTracks.empty(total_frames, off_color)
                for _ in range(SUBFIELD_COUNT)
            ],
        )

    def validate(self, expected_frames: int | None = None) -> None:
        """Check the length contract, optionally against a trial's frame count."""

        if expected_frames is not None and expected_frames != self.total_frames:
            raise SynthesisError(
                f"Condition '{self.name}' spans {self.total_frames} frames, "
                f"trial expects {expected_frames}"
            )
        if len(self.subfields) != SUBFIELD_COUNT:
            raise SynthesisError(
                f"Condition '{self.name}' has {len(self.subfields)} subfields, "
                f"expected {SUBFIELD_COUNT}"
            )
        for tracks in self.subfields:
            tracks.check_length(self.total_frames)

    def frame(self, frame: int) -> List[FrameAttributes]:
        """Return the attributes of every subfield at ``frame``."""

        if not 0 <= frame < self.total_frames:
            raise IndexError(
                f"Frame {frame} outside condition '{self.name}' (0..{self.total_frames - 1})"
            )
        return [tracks.at(frame) for tracks in self.subfields]

    def motion_payload_row(self, frame: int) -> str:
        """Return ``"1|1|2|2"``-style motion codes for ``frame``."""

        return "|".join(str(int(tracks.motion_kind[frame])) for tracks in self.subfields)

    def color_payload_row(self, frame: int) -> str:
        """Return ``"R|R|K|K"``-style colour letters for ``frame``."""

        return "|".join(encode_color_letter(tracks.color[frame]) for tracks in self.subfields)


_PAIR_NAMES = ("delayed", "non_delayed")


@dataclass(frozen=True)
class SubfieldLayout:
    """Which subfields form each field, how they rotate and which one is cued.

    The first index of the translating pair carries coherent motion, the
    second carries balanced non-coherent motion.
    """

    non_delayed: Tuple[int, int] = (0, 1)
    delayed: Tuple[int, int] = (2, 3)
    non_delayed_rotation: MotionKind = MotionKind.ROTATION_CW
    delayed_rotation: MotionKind = MotionKind.ROTATION_CCW
    cued_pair: str = "delayed"
    uncued_pair: str = "non_delayed"

    def __post_init__(self) -> None:
        indices = tuple(self.non_delayed) + tuple(self.delayed)
        if sorted(indices) != list(range(SUBFIELD_COUNT)):
            raise ValueError(
                f"Subfield layout must use each of 0..{SUBFIELD_COUNT - 1} once, got {indices}"
            )
        for name in (self.cued_pair, self.uncued_pair):
            if name not in _PAIR_NAMES:
                raise ValueError(f"Unknown field pair '{name}' (expected one of {_PAIR_NAMES})")
        rotations = (MotionKind.ROTATION_CW, MotionKind.ROTATION_CCW)
        if self.non_delayed_rotation not in rotations or self.delayed_rotation not in rotations:
            raise ValueError("Baseline motion of each field must be a rotation")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "SubfieldLayout":
        kwargs: Dict[str, Any] = dict(values)
        for key in ("non_delayed", "delayed"):
            if key in kwargs:
                kwargs[key] = tuple(int(i) for i in kwargs[key])
        for key in ("non_delayed_rotation", "delayed_rotation"):
            if key in kwargs:
                value = kwargs[key]
                kwargs[key] = MotionKind[value] if isinstance(value, str) else MotionKind(value)
        return cls(**kwargs)

    def pair(self, name: str) -> Tuple[int, int]:
        return tuple(self.delayed) if name == "delayed" else tuple(self.non_delayed)

    def knows_label(self, condition_label: str) -> bool:
        return condition_label.strip().lower() in ("cued", "uncued")

    def translation_pair(self, condition_label: str) -> Tuple[int, int]:
        """Return ``(coherent, non_coherent)`` subfields for a condition label."""

        label = condition_label.strip().lower()
        if label == "cued":
            return self.pair(self.cued_pair)
        if label == "uncued":
            return self.pair(self.uncued_pair)
        raise SynthesisError(f"Unknown condition label '{condition_label}'")


__all__ = [
    "RGBA",
    "SUBFIELD_COUNT",
    "SynthesisError",
    "MotionKind",
    "Eye",
    "DepthPlane",
    "DelayedColor",
    "FrameAttributes",
    "SubfieldTracks",
    "StimulusCondition",
    "SubfieldLayout",
    "encode_color_letter",
]
