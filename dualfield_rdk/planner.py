"""Balanced, reproducible trial planning.

:func:`plan_trials` expands the experiment parameters into the full block of
trial descriptors: every condition label crossed with every heading and
repetition, optionally doubled into one red-delayed and one green-delayed
instance so the delayed-field colour is exactly balanced per cell.  All random
draws (per-trial dot seeds, then the shuffle) come from the RNG handle passed
in by the caller, so the same seed always reproduces the same block.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

import numpy as np

from .conditions import DelayedColor
from .config import ConfigurationError, ExperimentConfig

SEED_MAX = 2**31 - 1


@dataclass(frozen=True)
class TrialDescriptor:
    """Immutable description of one planned trial.

    ``translation_start_frame`` is inclusive and ``translation_end_frame``
    exclusive.  ``seeds`` holds one dot-layout seed per subfield.
    """

    index: int
    condition_label: str
    heading_deg: float
    onset_frame: int
    translation_start_frame: int
    translation_end_frame: int
    total_frames: int
    seeds: Tuple[int, int, int, int]
    delayed_field_color: DelayedColor


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Return the RNG handle that drives planning and per-trial seeds."""

    return np.random.default_rng(seed)


def trial_timing(config: ExperimentConfig) -> Tuple[int, int, int, int]:
    """Return ``(onset, translation_start, translation_end, total)`` frames."""

    onset = config.ms_to_frames(config.delayed_onset_ms)
    start = onset + config.ms_to_frames(config.pre_translation_ms)
    end = start + config.ms_to_frames(config.translation_duration_ms)
    total = end + config.ms_to_frames(config.post_translation_ms)
    return onset, start, end, total


def unique_stimulus_count(config: ExperimentConfig) -> int:
    """Number of distinct (condition, heading, delayed colour) cells."""

    color_factor = 2 if config.balance_delayed_field_color else 1
    return len(config.condition_labels) * config.heading_count * color_factor


def target_trial_count(config: ExperimentConfig) -> int:
    """Number of trials :func:`plan_trials` produces for ``config``."""

    return unique_stimulus_count(config) * config.repetitions_per_cell


def _draw_seeds(rng: np.random.Generator) -> Tuple[int, int, int, int]:
    return tuple(int(rng.integers(0, SEED_MAX)) for _ in range(4))  # type: ignore[return-value]


def plan_trials(config: ExperimentConfig, rng: np.random.Generator) -> List[TrialDescriptor]:
    """Return the shuffled, reindexed list of trials for one block."""

    config.validate()
    onset, start, end, total = trial_timing(config)
    if config.balance_delayed_field_color:
        colors = (DelayedColor.RED, DelayedColor.GREEN)
    else:
        colors = (DelayedColor.GREEN,)

    trials: List[TrialDescriptor] = []
    for label in config.condition_labels:
        for heading in config.headings():
            for _ in range(config.repetitions_per_cell):
                for color in colors:
                    trials.append(
                        TrialDescriptor(
                            index=len(trials),
                            condition_label=label,
                            heading_deg=heading,
                            onset_frame=onset,
                            translation_start_frame=start,
                            translation_end_frame=end,
                            total_frames=total,
                            seeds=_draw_seeds(rng),
                            delayed_field_color=color,
                        )
                    )

    if not trials:
        raise ConfigurationError("Experiment parameters produced zero trials")

    # Fisher-Yates, drawing from the same stream as the seeds
    for i in range(len(trials) - 1, 0, -1):
        j = int(rng.integers(i + 1))
        trials[i], trials[j] = trials[j], trials[i]

    return [replace(trial, index=i) for i, trial in enumerate(trials)]


__all__ = [
    "TrialDescriptor",
    "make_rng",
    "plan_trials",
    "trial_timing",
    "unique_stimulus_count",
    "target_trial_count",
]
