"""
Test configuration and fixtures for the dual-field motion experiment.
"""
import sys
from pathlib import Path
from typing import List, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dualfield_rdk.block import StimulusPresenter, TrialBlockRunner  # noqa: E402
from dualfield_rdk.config import ExperimentConfig  # noqa: E402
from dualfield_rdk.planner import make_rng  # noqa: E402
from dualfield_rdk.session_log import RecordingSessionLog  # noqa: E402


class RecordingPresenter(StimulusPresenter):
    """Presenter that remembers what would be on screen."""

    def __init__(self):
        self.dots_visible = False
        self.targets_visible = False
        self.frames: List[int] = []
        self.candidates: List[int] = []
        self.calls: List[Tuple[str, object]] = []

    def show_dots(self, visible):
        self.dots_visible = visible
        self.calls.append(("dots", visible))

    def show_targets(self, visible):
        self.targets_visible = visible
        self.calls.append(("targets", visible))

    def apply_appearance(self, frame, attributes):
        self.frames.append(frame)

    def set_candidate(self, direction):
        self.candidates.append(direction)


@pytest.fixture
def scenario_config():
    """75 Hz timing used by the reference scenario, with a small dot count."""
    return ExperimentConfig(
        sim_hz=75,
        delayed_onset_ms=750,
        pre_translation_ms=300,
        translation_duration_ms=40,
        post_translation_ms=400,
        repetitions_per_cell=1,
        dots_per_field=32,
        max_response_frames=60,
        rng_seed=2024,
    )


@pytest.fixture
def single_trial_config(scenario_config):
    """A block containing exactly one trial."""
    scenario_config.condition_labels = ("CUED",)
    scenario_config.heading_count = 1
    scenario_config.balance_delayed_field_color = False
    return scenario_config


@pytest.fixture
def recording_log():
    return RecordingSessionLog(participant="P01")


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def make_runner(recording_log, presenter):
    """Build a runner over ``config`` wired to the recording log and presenter."""

    def _make(config):
        return TrialBlockRunner(
            config, log=recording_log, presenter=presenter, rng=make_rng(config.rng_seed)
        )

    return _make
