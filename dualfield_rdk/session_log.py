"""Session log sinks for trial rows and per-frame payloads.

Every sink follows the same per-trial call order::

    begin_trial -> log_motion_payload / log_color_payload (any number)
                -> log_response -> end_trial

:class:`SessionLog` enforces that order and owns the crash-safety rule: a trial
that has been opened but not ended when the session is aborted or closed is
finalized with an ``ABORT`` end event, so the written log always has one row
per opened trial.  Subclasses only decide where rows and payload lines go.
"""
from __future__ import annotations

import atexit
import csv
import json
import logging
import os
import pickle
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

if TYPE_CHECKING:
    from .conditions import StimulusCondition
    from .config import ExperimentConfig
    from .planner import TrialDescriptor

logger = logging.getLogger(__name__)

ABORT_EVENT = "ABORT"
SKIPPED_EVENT = "SKIPPED"

DEFAULT_FIELDS: Tuple[str, ...] = (
    "participant",
    "attempt",
    "trial_index",
    "condition_id",
    "heading_deg",
    "delayed_color",
    "onset_frame",
    "trans_start_frame",
    "trans_end_frame",
    "total_frames",
    "seed_a0",
    "seed_a1",
    "seed_b2",
    "seed_b3",
    "translation_speed_deg_per_s",
    "view_distance_m",
    "choice_index",
    "rt_frames",
    "end_event",
    "device",
)


class SessionLog:
    """Base sink: tracks the open trial and assembles its summary row."""

    def __init__(self, participant: str = "") -> None:
        self.participant = participant
        self.rows: List[Dict[str, object]] = []
        self._attempts: Counter = Counter()
        self._open_trial: Optional["TrialDescriptor"] = None
        self._row: Dict[str, object] = {}
        self._response_logged = False
        self._session_open = False
        self._closed = False
        self._config: Optional["ExperimentConfig"] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def trial_open(self) -> bool:
        return self._open_trial is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def _require_open_trial(self, call: str) -> "TrialDescriptor":
        if self._open_trial is None:
            raise RuntimeError(f"{call}() called with no open trial")
        return self._open_trial

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    def begin_session(
        self, config: "ExperimentConfig", trials: Sequence["TrialDescriptor"]
    ) -> None:
        if self._closed:
            raise RuntimeError("Session log is closed")
        self._config = config
        self._session_open = True
        self._write_session_start(config, trials)

    def end_session(self) -> None:
        if self._open_trial is not None:
            self.abort("session ended with an open trial")
        if self._session_open:
            self._session_open = False
            self._write_session_end()

    # ------------------------------------------------------------------
    # Trial contract
    # ------------------------------------------------------------------
    def _base_row(
        self, trial: "TrialDescriptor", config: Optional["ExperimentConfig"]
    ) -> Dict[str, object]:
        self._attempts[trial.index] += 1
        seeds = trial.seeds
        return {
            "participant": self.participant,
            "attempt": self._attempts[trial.index],
            "trial_index": trial.index,
            "condition_id": trial.condition_label,
            "heading_deg": f"{trial.heading_deg:.1f}",
            "delayed_color": trial.delayed_field_color.letter,
            "onset_frame": trial.onset_frame,
            "trans_start_frame": trial.translation_start_frame,
            "trans_end_frame": trial.translation_end_frame,
            "total_frames": trial.total_frames,
            "seed_a0": seeds[0],
            "seed_a1": seeds[1],
            "seed_b2": seeds[2],
            "seed_b3": seeds[3],
            "translation_speed_deg_per_s": (
                config.translation_speed_deg_per_s if config is not None else ""
            ),
            "view_distance_m": config.view_distance_m if config is not None else "",
            "choice_index": "",
            "rt_frames": "",
            "end_event": "",
            "device": "",
        }

    def begin_trial(
        self,
        trial: "TrialDescriptor",
        config: "ExperimentConfig",
        condition: "StimulusCondition",
    ) -> None:
        if self._open_trial is not None:
            raise RuntimeError(
                f"begin_trial() for trial {trial.index} while trial "
                f"{self._open_trial.index} is still open"
            )
        self._open_trial = trial
        self._row = self._base_row(trial, config)
        self._response_logged = False
        self._write_trial_start(trial, condition)

    def log_motion_payload(self, trial_index: int, payload: str) -> None:
        self._require_open_trial("log_motion_payload")
        self._write_payload("mkrows", trial_index, payload)

    def log_color_payload(self, trial_index: int, payload: str) -> None:
        self._require_open_trial("log_color_payload")
        self._write_payload("colorrows", trial_index, payload)

    def log_response(
        self, choice_index: int, rt_frames: int, end_event: str, device_label: str
    ) -> None:
        self._require_open_trial("log_response")
        self._row.update(
            choice_index=choice_index,
            rt_frames=rt_frames,
            end_event=end_event,
            device=device_label,
        )
        self._response_logged = True

    def end_trial(self) -> None:
        self._require_open_trial("end_trial")
        if not self._response_logged:
            raise RuntimeError("end_trial() called before log_response()")
        row = dict(self._row)
        self.rows.append(row)
        self._write_row(row)
        self._open_trial = None
        self._row = {}
        self._response_logged = False

    def log_skipped(self, trial: "TrialDescriptor", reason: str) -> None:
        """Write a row for a trial that could not be presented at all."""

        if self._open_trial is not None:
            raise RuntimeError("log_skipped() while another trial is open")
        row = self._base_row(trial, self._config)
        row.update(choice_index=-1, rt_frames=-1, end_event=SKIPPED_EVENT, device="")
        logger.error("Trial %s skipped: %s", trial.index, reason)
        self.rows.append(row)
        self._write_row(row)

    # ------------------------------------------------------------------
    # Crash safety
    # ------------------------------------------------------------------
    def abort(self, reason: str = "") -> None:
        """Finalize an open trial with an ``ABORT`` end event."""

        if self._open_trial is None:
            return
        logger.warning(
            "Aborting open trial %s%s",
            self._open_trial.index,
            f": {reason}" if reason else "",
        )
        if self._response_logged:
            self._row["end_event"] = ABORT_EVENT
        else:
            self.log_response(-1, -1, ABORT_EVENT, "")
        self.end_trial()

    def close(self) -> None:
        if self._closed:
            return
        self.abort("log closed")
        self.end_session()
        self._closed = True
        self._close_stream()

    def __enter__(self) -> "SessionLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            self.abort(f"{exc_type.__name__}: {exc}")
        self.close()

    # ------------------------------------------------------------------
    # Output hooks
    # ------------------------------------------------------------------
    def _write_session_start(
        self, config: "ExperimentConfig", trials: Sequence["TrialDescriptor"]
    ) -> None:
        pass

    def _write_session_end(self) -> None:
        pass

    def _write_trial_start(
        self, trial: "TrialDescriptor", condition: "StimulusCondition"
    ) -> None:
        pass

    def _write_payload(self, kind: str, trial_index: int, payload: str) -> None:
        pass

    def _write_row(self, row: Dict[str, object]) -> None:
        pass

    def _close_stream(self) -> None:
        pass


class RecordingSessionLog(SessionLog):
    """Keeps every call in memory; used for dry runs and tests."""

    def __init__(self, participant: str = "") -> None:
        super().__init__(participant)
        self.events: List[Tuple[str, object]] = []
        self.payloads: List[Tuple[str, int, str]] = []
        self.sessions = 0

    def _write_session_start(self, config, trials) -> None:
        self.sessions += 1
        self.events.append(("begin_session", len(trials)))

    def _write_session_end(self) -> None:
        self.events.append(("end_session", None))

    def _write_trial_start(self, trial, condition) -> None:
        self.events.append(("begin_trial", trial.index))

    def _write_payload(self, kind: str, trial_index: int, payload: str) -> None:
        self.payloads.append((kind, trial_index, payload))
        self.events.append((kind, trial_index))

    def _write_row(self, row: Dict[str, object]) -> None:
        self.events.append(("end_trial", row["trial_index"]))


class CsvSessionLog(SessionLog):
    """CSV sink: header, ``# params`` line, one row per trial attempt and
    ``# mkrows`` / ``# colorrows`` payload lines.  Every write is flushed."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        data_fields: Iterable[str] = DEFAULT_FIELDS,
        participant: str = "",
    ) -> None:
        super().__init__(participant)
        self.path = Path(path)
        self.data_fields = list(data_fields)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file: Optional[TextIO] = self.path.open("w", newline="", encoding="utf-8")
        self._writer = csv.DictWriter(
            self._file, fieldnames=self.data_fields, extrasaction="ignore"
        )
        self._header_written = False
        atexit.register(self.close)
        logger.info("Logging session to %s", self.path)

    def _flush(self) -> None:
        if self._file is not None:
            self._file.flush()

    def _write_line(self, line: str) -> None:
        if self._file is None:
            raise RuntimeError(f"Session log '{self.path}' is closed")
        self._file.write(line + "\n")
        self._flush()

    def _write_session_start(self, config, trials) -> None:
        if not self._header_written:
            if self._file is None:
                raise RuntimeError(f"Session log '{self.path}' is closed")
            self._writer.writeheader()
            self._header_written = True
        params = " ".join(f"{key}={value}" for key, value in config.params_summary().items())
        self._write_line(f"# params {params} planned_trials={len(trials)}")

    def _write_payload(self, kind: str, trial_index: int, payload: str) -> None:
        self._write_line(f"# {kind} {trial_index} {payload}")

    def _write_row(self, row: Dict[str, object]) -> None:
        if self._file is None:
            raise RuntimeError(f"Session log '{self.path}' is closed")
        self._writer.writerow(row)
        self._flush()

    def _close_stream(self) -> None:
        atexit.unregister(self.close)
        if self._file is not None:
            self._file.close()
            self._file = None

    # ------------------------------------------------------------------
    # Sidecars
    # ------------------------------------------------------------------
    def write_info_sidecar(self, info: Dict[str, object]) -> Path:
        """Store participant information next to the CSV as JSON."""

        info_path = self.path.with_suffix(".json")
        with info_path.open("w", encoding="utf-8") as info_file:
            json.dump(info, info_file, indent=2)
        return info_path

    def save_session_pickle(self, extra: Optional[Dict[str, object]] = None) -> Path:
        """Persist the rows written so far for quick inspection."""

        pickle_path = self.path.with_suffix(".pickle")
        payload: Dict[str, object] = {
            "data_fields": self.data_fields,
            "rows": self.rows,
            "csv_path": os.fspath(self.path),
            "participant": self.participant,
        }
        if extra:
            payload.update(extra)
        with pickle_path.open("wb") as pickle_file:
            pickle.dump(payload, pickle_file)
        return pickle_path


__all__ = [
    "ABORT_EVENT",
    "SKIPPED_EVENT",
    "DEFAULT_FIELDS",
    "SessionLog",
    "RecordingSessionLog",
    "CsvSessionLog",
]
