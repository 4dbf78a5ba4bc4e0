"""Dual-field random-dot motion experiment.

This package plans balanced, reproducible blocks of trials, synthesizes the
per-frame timeline of the four dot subfields, steps dot motion on a fixed
simulation clock and runs the trial and response state machines.  The PsychoPy
front end lives in :mod:`dualfield_rdk.experiment` and is only imported when the
experiment is actually launched, so the planning and simulation code can be
used (and tested) without a display.
"""

from .block import StimulusPresenter, TrialBlockRunner, TrialPhase
from .conditions import (
    DelayedColor,
    DepthPlane,
    Eye,
    MotionKind,
    StimulusCondition,
    SubfieldLayout,
    SubfieldTracks,
    SynthesisError,
)
from .config import ConfigurationError, ExperimentConfig, load_config
from .motion import (
    step_non_coherent_balanced,
    step_rotation,
    step_translation,
    uniform_disk,
)
from .planner import TrialDescriptor, make_rng, plan_trials
from .response import (
    KeyMapping,
    ResponseEvent,
    ResponseRecord,
    ResponseStateMachine,
    ResponseStatus,
)
from .session_log import CsvSessionLog, RecordingSessionLog, SessionLog
from .synthesizer import synthesize_condition
from .cli import main as run_experiment

__all__ = [
    "ExperimentConfig",
    "ConfigurationError",
    "load_config",
    "TrialDescriptor",
    "make_rng",
    "plan_trials",
    "MotionKind",
    "Eye",
    "DepthPlane",
    "DelayedColor",
    "SubfieldTracks",
    "StimulusCondition",
    "SubfieldLayout",
    "SynthesisError",
    "synthesize_condition",
    "uniform_disk",
    "step_rotation",
    "step_translation",
    "step_non_coherent_balanced",
    "ResponseStatus",
    "ResponseEvent",
    "ResponseRecord",
    "ResponseStateMachine",
    "KeyMapping",
    "SessionLog",
    "RecordingSessionLog",
    "CsvSessionLog",
    "TrialPhase",
    "StimulusPresenter",
    "TrialBlockRunner",
    "run_experiment",
]
