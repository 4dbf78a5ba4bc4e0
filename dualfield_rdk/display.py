"""PsychoPy drawing for the dual-field display and the response targets."""
from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

import numpy as np
from psychopy import visual

from .block import StimulusPresenter
from .conditions import FrameAttributes
from .config import ExperimentConfig
from .geometry import meters_to_deg
from .motion import SubfieldState
from .response import DIRECTION_COUNT, direction_heading_deg

TARGET_ECCENTRICITY_DEG = 1.5
TARGET_RADIUS_DEG = 0.25


def to_psychopy_rgb(color: Iterable[float]) -> List[float]:
    """Convert 0..1 RGB(A) values to PsychoPy's -1..1 colour range."""

    rgb = list(color)[:3]
    return [round((value * 2.0) - 1.0, 3) for value in rgb]


class PsychoPyPresenter(StimulusPresenter):
    """Draw the four dot subfields, a fixation cross and the target ring."""

    def __init__(self, win: visual.Window, config: ExperimentConfig) -> None:
        self.win = win
        self.config = config
        self._dots_visible = False
        self._targets_visible = False
        self._visible: List[bool] = [False] * 4
        count = config.dots_per_subfield
        off = to_psychopy_rgb(config.color_off)
        self._subfield_stims = [
            visual.ElementArrayStim(
                win,
                units="deg",
                nElements=count,
                elementTex=None,
                elementMask="circle",
                sizes=config.dot_size_deg,
                xys=np.zeros((count, 2)),
                colors=np.tile(off, (count, 1)),
                colorSpace="rgb",
            )
            for _ in range(4)
        ]
        self._fixation = visual.TextStim(
            win, text="+", height=0.5, color="white", units="deg"
        )
        self._message = visual.TextStim(
            win, text="", height=0.6, color="white", units="deg", wrapWidth=20
        )
        self._targets = self._build_targets()
        self._candidate = -1

    def _build_targets(self) -> List[visual.Circle]:
        eccentricity = self.config.aperture_radius_deg + TARGET_ECCENTRICITY_DEG
        targets = []
        for index in range(DIRECTION_COUNT):
            theta = np.radians(direction_heading_deg(index))
            targets.append(
                visual.Circle(
                    self.win,
                    units="deg",
                    radius=TARGET_RADIUS_DEG,
                    pos=(eccentricity * np.cos(theta), eccentricity * np.sin(theta)),
                    fillColor=None,
                    lineColor="white",
                    edges=48,
                )
            )
        return targets

    # ------------------------------------------------------------------
    # StimulusPresenter hooks
    # ------------------------------------------------------------------
    def show_dots(self, visible: bool) -> None:
        self._dots_visible = visible

    def show_targets(self, visible: bool) -> None:
        self._targets_visible = visible
        if not visible:
            self.set_candidate(-1)

    def apply_appearance(self, frame: int, attributes: Sequence[FrameAttributes]) -> None:
        for index, (stim, attrs) in enumerate(zip(self._subfield_stims, attributes)):
            self._visible[index] = attrs.visible
            stim.colors = np.tile(to_psychopy_rgb(attrs.color), (stim.nElements, 1))

    def update_dots(self, frame: int, subfields: Sequence[SubfieldState]) -> None:
        distance = self.config.view_distance_m
        for stim, state in zip(self._subfield_stims, subfields):
            stim.xys = meters_to_deg(state.positions, distance)

    def set_candidate(self, direction: int) -> None:
        if direction == self._candidate:
            return
        self._candidate = direction
        for index, target in enumerate(self._targets):
            target.fillColor = "white" if index == direction else None

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------
    def draw(self) -> None:
        if self._dots_visible:
            for stim, visible in zip(self._subfield_stims, self._visible):
                if visible:
                    stim.draw()
        self._fixation.draw()
        if self._targets_visible:
            for target in self._targets:
                target.draw()

    def draw_message(self, text: str) -> None:
        """Draw a line of text below the fixation cross."""

        self._message.text = text
        self._message.pos = (0.0, -(self.config.aperture_radius_deg + 3.0))
        self._message.draw()


def window_kwargs(config: ExperimentConfig) -> Dict[str, object]:
    """Return ``visual.Window`` keyword arguments (handles debug sizing)."""

    base = dict(
        units="deg",
        allowGUI=config.debug_mode,
        color=list(config.background_color),
        colorSpace="rgb",
        waitBlanking=not config.debug_mode,
    )
    if config.debug_mode:
        return {**base, "size": list(config.debug_window_size), "fullscr": False}
    return {**base, "size": list(config.window_size), "fullscr": config.full_screen}


__all__ = ["PsychoPyPresenter", "to_psychopy_rgb", "window_kwargs"]
