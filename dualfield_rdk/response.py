"""8-way direction response capture with confirm/cancel/timeout semantics.

The :class:`ResponseStateMachine` is stepped once per simulation tick with the
abstract input events that arrived since the previous tick.  Selecting a
direction only updates the candidate choice; the window ends on cancel, on
confirm, or when ``max_response_frames`` ticks have elapsed.  Reaction times
are counted in whole ticks from the response-window onset.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

DIRECTION_COUNT = 8
DEFAULT_DEVICE = "Keyboard"


class ResponseStatus(Enum):
    CONFIRMED = "Confirmed"
    CANCELED = "Canceled"
    TIMED_OUT = "TimedOut"


class EventKind(Enum):
    DIRECTION = "Direction"
    CONFIRM = "Confirm"
    CANCEL = "Cancel"


@dataclass(frozen=True)
class ResponseEvent:
    """A logical input event, tagged with the device that produced it."""

    kind: EventKind
    direction: int = -1
    device_label: str = DEFAULT_DEVICE
    key: str = ""

    @classmethod
    def direction_selected(
        cls, index: int, device_label: str = DEFAULT_DEVICE, key: str = ""
    ) -> "ResponseEvent":
        return cls(EventKind.DIRECTION, int(index), device_label, key)

    @classmethod
    def confirm(cls, device_label: str = DEFAULT_DEVICE, key: str = "") -> "ResponseEvent":
        return cls(EventKind.CONFIRM, -1, device_label, key)

    @classmethod
    def cancel(cls, device_label: str = DEFAULT_DEVICE, key: str = "") -> "ResponseEvent":
        return cls(EventKind.CANCEL, -1, device_label, key)


@dataclass(frozen=True)
class ResponseRecord:
    """Final summary of one response window."""

    status: ResponseStatus
    choice_index: int
    rt_frames: int
    selection_event: Optional[ResponseEvent] = None
    end_event: Optional[ResponseEvent] = None
    device_label: str = DEFAULT_DEVICE

    @property
    def end_event_label(self) -> str:
        if self.end_event is None:
            return "Timeout"
        return self.end_event.kind.value

    @property
    def is_valid(self) -> bool:
        return self.status is ResponseStatus.CONFIRMED


class ResponseStateMachine:
    """Inactive -> Active -> Confirmed | Canceled | TimedOut."""

    def __init__(self, max_response_frames: int = 0) -> None:
        self.max_response_frames = max_response_frames
        self._active = False
        self._onset_frame = 0
        self._candidate: Optional[ResponseEvent] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def candidate(self) -> int:
        """Currently selected direction, or -1 when none has been chosen."""

        return self._candidate.direction if self._candidate is not None else -1

    def begin(self, onset_frame: int = 0) -> None:
        self._active = True
        self._onset_frame = onset_frame
        self._candidate = None

    def stop(self) -> None:
        self._active = False

    def step(
        self, response_frame: int, events: Iterable[ResponseEvent] = ()
    ) -> Optional[ResponseRecord]:
        """Process one tick; return the final record once the window ends."""

        if not self._active:
            return None

        cancel: Optional[ResponseEvent] = None
        confirm: Optional[ResponseEvent] = None
        for event in events:
            if event.kind is EventKind.DIRECTION:
                if 0 <= event.direction < DIRECTION_COUNT:
                    self._candidate = event
                else:
                    logger.warning("Ignoring out-of-range direction %s", event.direction)
            elif event.kind is EventKind.CANCEL and cancel is None:
                cancel = event
            elif event.kind is EventKind.CONFIRM and confirm is None:
                confirm = event

        rt_frames = response_frame - self._onset_frame

        if cancel is not None:
            return self._finish(ResponseStatus.CANCELED, -1, rt_frames, cancel)

        if confirm is not None:
            if self._candidate is not None:
                return self._finish(
                    ResponseStatus.CONFIRMED, self._candidate.direction, rt_frames, confirm
                )
            logger.info("Confirm without a selected direction; treating as cancel")
            return self._finish(ResponseStatus.CANCELED, -1, rt_frames, confirm)

        if self.max_response_frames > 0 and rt_frames >= self.max_response_frames:
            return self._finish(ResponseStatus.TIMED_OUT, -1, self.max_response_frames, None)

        return None

    def _finish(
        self,
        status: ResponseStatus,
        choice_index: int,
        rt_frames: int,
        end_event: Optional[ResponseEvent],
    ) -> ResponseRecord:
        self._active = False
        source = end_event or self._candidate
        device = source.device_label if source is not None else DEFAULT_DEVICE
        return ResponseRecord(
            status=status,
            choice_index=choice_index,
            rt_frames=rt_frames,
            selection_event=self._candidate,
            end_event=end_event,
            device_label=device or DEFAULT_DEVICE,
        )


def _default_directions() -> Dict[str, int]:
    # keypad layout: 0=Up(8), 1=UpRight(9), 2=Right(6), 3=DownRight(3),
    # 4=Down(2), 5=DownLeft(1), 6=Left(4), 7=UpLeft(7)
    keypad = {"8": 0, "9": 1, "6": 2, "3": 3, "2": 4, "1": 5, "4": 6, "7": 7}
    mapping = {f"num_{digit}": index for digit, index in keypad.items()}
    mapping.update(keypad)
    mapping.update({"up": 0, "right": 2, "down": 4, "left": 6})
    return mapping


@dataclass
class KeyMapping:
    """Translate key names into logical response events."""

    directions: Dict[str, int] = field(default_factory=_default_directions)
    confirm_keys: Tuple[str, ...] = ("return", "num_enter", "space")
    cancel_keys: Tuple[str, ...] = ("delete", "backspace")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "KeyMapping":
        kwargs: Dict[str, Any] = dict(values)
        if "directions" in kwargs:
            kwargs["directions"] = {str(k): int(v) for k, v in kwargs["directions"].items()}
        for key in ("confirm_keys", "cancel_keys"):
            if key in kwargs:
                kwargs[key] = tuple(kwargs[key])
        return cls(**kwargs)

    @property
    def all_keys(self) -> Tuple[str, ...]:
        return tuple(self.directions) + self.confirm_keys + self.cancel_keys

    def event_for_key(
        self, key: str, device_label: str = DEFAULT_DEVICE
    ) -> Optional[ResponseEvent]:
        """Return the event for ``key`` or ``None`` if the key is unmapped."""

        if key in self.cancel_keys:
            return ResponseEvent.cancel(device_label, key)
        if key in self.confirm_keys:
            return ResponseEvent.confirm(device_label, key)
        if key in self.directions:
            return ResponseEvent.direction_selected(self.directions[key], device_label, key)
        return None


def direction_heading_deg(index: int) -> float:
    """Heading (0 deg = right, counter-clockwise) of response direction ``index``."""

    return (90.0 - 45.0 * index) % 360.0


__all__ = [
    "DIRECTION_COUNT",
    "ResponseStatus",
    "EventKind",
    "ResponseEvent",
    "ResponseRecord",
    "ResponseStateMachine",
    "KeyMapping",
    "direction_heading_deg",
]
