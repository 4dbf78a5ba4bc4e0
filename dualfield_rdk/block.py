"""Trial phase state machine for one block of dual-field trials.

Per trial the runner moves through::

    WAITING_FOR_START -> STIMULUS -> TARGETS_RESPONSE -> DONE -> next trial

Simulation time only advances in the stimulus and response phases, on a
fixed-step accumulator: real elapsed time is accumulated and one tick of
``config.sim_dt`` is executed each time a full step is available, so the number
of ticks never depends on the display refresh rate.  Canceled and timed-out
trials are appended to the back of the queue and presented again later with
the same dot seeds.
"""
from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Deque, Iterable, List, Optional, Sequence

import numpy as np

from .conditions import FrameAttributes, MotionKind, StimulusCondition, SynthesisError
from .config import ExperimentConfig
from .motion import SubfieldState, TrajectoryRecorder, build_subfield_states
from .planner import TrialDescriptor, make_rng, plan_trials
from .response import ResponseEvent, ResponseRecord, ResponseStateMachine, ResponseStatus
from .session_log import SessionLog
from .synthesizer import synthesize_condition

logger = logging.getLogger(__name__)

_TRANSLATING = (MotionKind.LINEAR, MotionKind.NON_COHERENT)


class TrialPhase(Enum):
    WAITING_FOR_START = "WaitingForStart"
    STIMULUS = "Stimulus"
    TARGETS_RESPONSE = "TargetsResponse"
    DONE = "Done"


class StimulusPresenter:
    """Receives what should be on screen; never feeds back into the simulation."""

    def show_dots(self, visible: bool) -> None:
        pass

    def show_targets(self, visible: bool) -> None:
        pass

    def apply_appearance(self, frame: int, attributes: Sequence[FrameAttributes]) -> None:
        pass

    def update_dots(self, frame: int, subfields: Sequence[SubfieldState]) -> None:
        pass

    def set_candidate(self, direction: int) -> None:
        pass


class TrialBlockRunner:
    """Run a queue of planned trials through the phase state machine."""

    def __init__(
        self,
        config: ExperimentConfig,
        log: Optional[SessionLog] = None,
        presenter: Optional[StimulusPresenter] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config
        self.log = log if log is not None else SessionLog()
        self.presenter = presenter if presenter is not None else StimulusPresenter()
        self._rng = rng if rng is not None else make_rng(config.rng_seed)
        self.response = ResponseStateMachine(config.max_response_frames)

        self._planned: List[TrialDescriptor] = []
        self._queue: Deque[TrialDescriptor] = deque()
        self._phase = TrialPhase.DONE
        self._finished = False
        self._trial: Optional[TrialDescriptor] = None
        self._condition: Optional[StimulusCondition] = None
        self._subfields: List[SubfieldState] = []
        self._frame = 0
        self._response_frame = 0
        self._accum = 0.0
        self._started = 0
        self._started_this_pass = 0
        self._mk_rows: List[str] = []
        self._color_rows: List[str] = []
        self._last_response: Optional[ResponseRecord] = None
        # input not yet handed to a response tick
        self._pending: List[ResponseEvent] = []
        self.trajectories = TrajectoryRecorder() if config.record_trajectories else None

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------
    @property
    def phase(self) -> TrialPhase:
        return self._phase

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def current_trial(self) -> Optional[TrialDescriptor]:
        return self._trial

    @property
    def condition(self) -> Optional[StimulusCondition]:
        return self._condition

    @property
    def subfields(self) -> List[SubfieldState]:
        return self._subfields

    @property
    def frame_in_stimulus(self) -> int:
        return self._frame

    @property
    def response_frame(self) -> int:
        return self._response_frame

    @property
    def trials_started(self) -> int:
        return self._started

    @property
    def planned_trials(self) -> List[TrialDescriptor]:
        return list(self._planned)

    @property
    def queue(self) -> List[TrialDescriptor]:
        return list(self._queue)

    @property
    def last_response(self) -> Optional[ResponseRecord]:
        return self._last_response

    # ------------------------------------------------------------------
    # Block management
    # ------------------------------------------------------------------
    def begin_block(self) -> None:
        """Plan the block, open the log session and load the first trial."""

        self._planned = plan_trials(self.config, self._rng)
        self._queue = deque(self._planned)
        self._started = 0
        self._started_this_pass = 0
        self._finished = False
        self.log.begin_session(self.config, self._planned)
        logger.info("Block planned with %d trials", len(self._planned))
        self.next_trial()

    def next_trial(self) -> None:
        """Load the next queued trial, or end (or loop) the block."""

        while True:
            if not self._queue:
                self.log.end_session()
                if self.config.loop_block and self._started_this_pass > 0:
                    logger.info("Block complete; rewinding the planned trials")
                    self._queue = deque(self._planned)
                    self._started = 0
                    self._started_this_pass = 0
                    self.log.begin_session(self.config, self._planned)
                    continue
                logger.info("Block complete")
                self._end_block()
                return

            trial = self._queue.popleft()
            try:
                condition = synthesize_condition(trial, self.config)
            except SynthesisError as exc:
                self.log.log_skipped(trial, str(exc))
                continue

            self._load_trial(trial, condition)
            return

    def _load_trial(self, trial: TrialDescriptor, condition: StimulusCondition) -> None:
        self._trial = trial
        self._condition = condition
        self._subfields = build_subfield_states(
            trial.seeds, self.config.dots_per_subfield, self.config.aperture_radius_m
        )
        self._frame = 0
        self._response_frame = 0
        self._accum = 0.0
        self._mk_rows = []
        self._color_rows = []
        self._pending = []
        if self.trajectories is not None:
            self.trajectories.clear()
        self._started += 1
        self._started_this_pass += 1

        self.response.stop()
        self.presenter.show_dots(False)
        self.presenter.show_targets(False)
        self.log.begin_trial(trial, self.config, condition)
        self._phase = TrialPhase.WAITING_FOR_START
        logger.info(
            "Trial %d loaded (planned index=%d, condition=%s, heading=%.0f deg, frames=%d)",
            self._started,
            trial.index,
            trial.condition_label,
            trial.heading_deg,
            trial.total_frames,
        )

    def _end_block(self) -> None:
        self._phase = TrialPhase.DONE
        self._finished = True
        self._trial = None
        self._condition = None
        self.presenter.show_dots(False)
        self.presenter.show_targets(False)

    def abort(self, reason: str = "") -> None:
        """Tear the block down; an open trial is logged with an ABORT row."""

        self.response.stop()
        self._pending = []
        self.log.abort(reason)
        self.log.end_session()
        self._queue.clear()
        self._end_block()

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------
    def start(self) -> bool:
        """Handle the start event; returns True if the stimulus began."""

        if self._phase is not TrialPhase.WAITING_FOR_START:
            return False
        self._phase = TrialPhase.STIMULUS
        self._accum = 0.0
        self.presenter.show_dots(True)
        logger.debug("Trial %s started", self._trial.index if self._trial else None)
        return True

    def update(self, elapsed_s: float, events: Iterable[ResponseEvent] = ()) -> int:
        """Advance the fixed-step clock by ``elapsed_s`` of real time.

        ``events`` are held until the next response tick, so input that
        arrives during an update too short to run a tick is not lost.
        Returns the number of ticks run.
        """

        if self._phase not in (TrialPhase.STIMULUS, TrialPhase.TARGETS_RESPONSE):
            return 0
        self._pending.extend(events)
        dt = self.config.sim_dt
        self._accum += elapsed_s
        ticks = 0
        while self._accum >= dt and self._phase in (
            TrialPhase.STIMULUS,
            TrialPhase.TARGETS_RESPONSE,
        ):
            self._accum -= dt
            self.sim_step()
            ticks += 1
        return ticks

    def sim_step(self, events: Iterable[ResponseEvent] = ()) -> None:
        """Execute exactly one simulation tick of the current phase."""

        self._pending.extend(events)
        if self._phase is TrialPhase.STIMULUS:
            self._step_stimulus()
        elif self._phase is TrialPhase.TARGETS_RESPONSE:
            self._step_response()

    # ------------------------------------------------------------------
    # Stimulus phase
    # ------------------------------------------------------------------
    def _step_stimulus(self) -> None:
        trial, condition = self._trial, self._condition
        assert trial is not None and condition is not None
        frame = self._frame
        if not 0 <= frame < trial.total_frames:
            logger.warning(
                "Stimulus frame %d outside 0..%d on trial %d; ending stimulus",
                frame,
                trial.total_frames - 1,
                trial.index,
            )
            self._enter_response()
            return

        attributes = condition.frame(frame)
        self.presenter.apply_appearance(frame, attributes)

        config = self.config
        translation_speed_m = config.translation_speed_deg_per_s * config.meters_per_degree
        for index, (state, attrs) in enumerate(zip(self._subfields, attributes)):
            state.step(
                attrs.motion_kind,
                dt=config.sim_dt,
                rotation_speed_deg_per_s=config.rotation_speed_deg_per_s,
                translation_speed_m_per_s=translation_speed_m,
                heading_deg=trial.heading_deg,
            )
            if self.trajectories is not None and attrs.motion_kind in _TRANSLATING:
                self.trajectories.record(frame, index, state.positions)
        self.presenter.update_dots(frame, self._subfields)

        self._mk_rows.append(condition.motion_payload_row(frame))
        self._color_rows.append(condition.color_payload_row(frame))

        self._frame += 1
        if self._frame >= trial.total_frames:
            self._enter_response()

    # ------------------------------------------------------------------
    # Response phase
    # ------------------------------------------------------------------
    def _enter_response(self) -> None:
        self.presenter.show_dots(False)
        self.presenter.show_targets(True)
        self._phase = TrialPhase.TARGETS_RESPONSE
        self._response_frame = 0
        self.response.max_response_frames = self.config.max_response_frames
        self.response.begin(0)
        if self._pending:
            logger.debug("Dropping %d events received during the stimulus", len(self._pending))
        self._pending = []

    def _step_response(self) -> None:
        events, self._pending = self._pending, []
        record = self.response.step(self._response_frame, events)
        self.presenter.set_candidate(self.response.candidate)
        self._response_frame += 1
        if record is not None:
            self._finalize(record)

    # ------------------------------------------------------------------
    # Logging + advance
    # ------------------------------------------------------------------
    def _finalize(self, record: ResponseRecord) -> None:
        trial = self._trial
        assert trial is not None
        self._phase = TrialPhase.DONE
        self._last_response = record
        self.presenter.show_targets(False)

        if self._mk_rows:
            self.log.log_motion_payload(trial.index, ";".join(self._mk_rows))
        if self._color_rows:
            self.log.log_color_payload(trial.index, ";".join(self._color_rows))
        confirmed = record.status is ResponseStatus.CONFIRMED
        self.log.log_response(
            record.choice_index if confirmed else -1,
            record.rt_frames,
            record.end_event_label,
            record.device_label,
        )
        self.log.end_trial()

        if not confirmed:
            logger.info(
                "Trial %d %s after %d response frames; requeued",
                trial.index,
                record.status.value,
                record.rt_frames,
            )
            self._queue.append(trial)

        self.next_trial()


__all__ = ["TrialPhase", "StimulusPresenter", "TrialBlockRunner"]
