"""High-level experiment orchestration for the dual-field motion task."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from psychopy import core, gui, monitors, visual
from psychopy import logging as psychopy_logging
from psychopy.hardware import keyboard

from .block import TrialBlockRunner, TrialPhase
from .config import ExperimentConfig
from .display import PsychoPyPresenter, window_kwargs
from .planner import make_rng
from .response import ResponseEvent
from .serial_keypad import SerialKeypad
from .session_log import CsvSessionLog

logger = logging.getLogger(__name__)

KEYBOARD_DEVICE = "Keyboard"


class ExperimentAbort(Exception):
    """Raised when the operator issues a quit command (e.g., presses ESC)."""


class DualFieldExperiment:
    """Run one block of the dual-field task in a PsychoPy window."""

    def __init__(self, config: ExperimentConfig | None = None):
        self.config = config or ExperimentConfig()
        self.runner: Optional[TrialBlockRunner] = None
        self.experiment_info: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # GUI helpers
    # ------------------------------------------------------------------
    def collect_participant_info(self) -> Dict[str, str]:
        """Display an info dialog to collect participant metadata."""

        info = {
            "Participant ID": "",
            "Session": "1",
        }
        dialog = gui.DlgFromDict(info, title="Dual-field motion", fixed=["Session"])
        if not dialog.OK:
            core.quit()
        instruction_dialog = gui.Dlg(title="Instructions")
        instruction_dialog.addText(self.config.instructions_text())
        instruction_dialog.show()
        return info

    # ------------------------------------------------------------------
    # Window / devices
    # ------------------------------------------------------------------
    def create_monitor(self) -> monitors.Monitor:
        spec = self.config.monitor_spec
        monitor = monitors.Monitor(
            spec.name,
            width=spec.width_cm,
            distance=self.config.view_distance_m * 100.0,
        )
        monitor.setSizePix([spec.px_width, spec.px_height])
        return monitor

    def create_window(self) -> visual.Window:
        return visual.Window(
            **window_kwargs(self.config),
            monitor=self.create_monitor(),
            screen=self.config.screen_index,
        )

    def _create_serial_keypad(self) -> SerialKeypad | None:
        """Instantiate the serial keypad if configured."""

        port = self.config.participant_serial_port
        if not port:
            return None
        try:
            return SerialKeypad(port=port, baudrate=self.config.participant_serial_baud)
        except Exception as exc:
            logger.warning("Could not open serial keypad on %s: %s", port, exc)
            return None

    def _output_path(self, info: Dict[str, str]) -> Path:
        participant = info.get("Participant ID", "") or "unknown"
        session = info.get("Session", "1")
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_dir = Path(self.config.results_directory)
        output_dir.mkdir(parents=True, exist_ok=True)
        return output_dir / f"{self.config.experiment_name}_{participant}_{session}_{stamp}.csv"

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------
    def _poll_keys(
        self, kb: keyboard.Keyboard, keypad: SerialKeypad | None
    ) -> List[Tuple[str, str]]:
        """Return ``(key, device)`` pairs pressed since the previous frame."""

        watched = (
            list(self.config.key_mapping.all_keys)
            + list(self.config.start_keys)
            + list(self.config.quit_keys)
        )
        pressed = [(key.name, KEYBOARD_DEVICE) for key in kb.getKeys(watched, waitRelease=False)]
        if keypad is not None:
            pressed.extend((name, keypad.device_label) for name in keypad.poll_keys())
        return pressed

    def _events_for(self, pressed: List[Tuple[str, str]]) -> List[ResponseEvent]:
        mapping = self.config.key_mapping
        events = []
        for name, device in pressed:
            event = mapping.event_for_key(name, device)
            if event is not None:
                events.append(event)
        return events

    # ------------------------------------------------------------------
    # Trial loop
    # ------------------------------------------------------------------
    def run_block(
        self,
        win: visual.Window,
        log: CsvSessionLog,
        keypad: SerialKeypad | None,
    ) -> None:
        """Drive the block runner from the display loop until the queue is empty."""

        presenter = PsychoPyPresenter(win, self.config)
        self.runner = runner = TrialBlockRunner(
            self.config, log=log, presenter=presenter, rng=make_rng(self.config.rng_seed)
        )
        runner.begin_block()
        start_prompt = f"Press {'/'.join(self.config.start_keys)} to start the trial"

        kb = keyboard.Keyboard()
        kb.clearEvents()
        clock = core.Clock()
        while not runner.finished:
            elapsed = clock.getTime()
            clock.reset()
            pressed = self._poll_keys(kb, keypad)
            names = [name for name, _ in pressed]
            if any(name in self.config.quit_keys for name in names):
                raise ExperimentAbort("Quit key pressed")

            if runner.phase is TrialPhase.WAITING_FOR_START:
                if any(name in self.config.start_keys for name in names):
                    runner.start()
            else:
                runner.update(elapsed, self._events_for(pressed))

            presenter.draw()
            if runner.phase is TrialPhase.WAITING_FOR_START:
                presenter.draw_message(start_prompt)
            win.flip()

    # ------------------------------------------------------------------
    # Experiment entry point
    # ------------------------------------------------------------------
    def run(self) -> None:
        """Execute the full experiment pipeline."""

        self.config.validate()
        participant_info = self.collect_participant_info()
        self.experiment_info.update(participant_info)

        csv_path = self._output_path(participant_info)
        psychopy_logging.console.setLevel(psychopy_logging.WARNING)
        psychopy_logging.LogFile(
            str(csv_path.with_suffix(".log")), level=psychopy_logging.INFO, filemode="w"
        )

        log = CsvSessionLog(
            csv_path,
            data_fields=self.config.data_fields,
            participant=participant_info.get("Participant ID", ""),
        )
        log.write_info_sidecar(
            {**participant_info, "instructions": self.config.instructions_text()}
        )
        keypad = self._create_serial_keypad()
        win = self.create_window()
        aborted = False
        try:
            self.run_block(win, log, keypad)
        except ExperimentAbort as exc:
            aborted = True
            logger.warning("Experiment aborted: %s", exc)
            if self.runner is not None:
                self.runner.abort(str(exc))
        finally:
            log.close()
            win.close()
            if keypad is not None:
                keypad.close()

        log.save_session_pickle(
            {"experiment_info": self.experiment_info, "aborted": aborted}
        )
        logger.info("Session saved to %s", csv_path)
        core.quit()


__all__ = ["DualFieldExperiment", "ExperimentAbort"]
