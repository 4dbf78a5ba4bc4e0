from collections import Counter

import pytest

from dualfield_rdk.conditions import DelayedColor
from dualfield_rdk.config import ConfigurationError, ExperimentConfig
from dualfield_rdk.planner import (
    SEED_MAX,
    make_rng,
    plan_trials,
    target_trial_count,
    trial_timing,
    unique_stimulus_count,
)


def test_trial_count_matches_cells_times_repetitions():
    config = ExperimentConfig(repetitions_per_cell=3)
    trials = plan_trials(config, make_rng(1))
    # 2 conditions x 8 headings x 3 repetitions x 2 colours
    assert len(trials) == 96
    assert len(trials) == target_trial_count(config)
    assert unique_stimulus_count(config) == 32


def test_delayed_colour_is_exactly_balanced_per_cell():
    config = ExperimentConfig(repetitions_per_cell=3)
    trials = plan_trials(config, make_rng(7))
    counts = Counter(
        (t.condition_label, t.heading_deg, t.delayed_field_color) for t in trials
    )
    for label in config.condition_labels:
        for heading in config.headings():
            assert counts[(label, heading, DelayedColor.RED)] == 3
            assert counts[(label, heading, DelayedColor.GREEN)] == 3


def test_without_colour_balancing_delayed_field_is_green():
    config = ExperimentConfig(repetitions_per_cell=2, balance_delayed_field_color=False)
    trials = plan_trials(config, make_rng(3))
    assert len(trials) == 2 * 8 * 2
    assert {t.delayed_field_color for t in trials} == {DelayedColor.GREEN}


def test_same_seed_reproduces_identical_plan():
    config = ExperimentConfig(repetitions_per_cell=2)
    first = plan_trials(config, make_rng(12345))
    second = plan_trials(config, make_rng(12345))
    assert first == second


def test_different_seed_changes_order_and_seeds():
    config = ExperimentConfig(repetitions_per_cell=2)
    first = plan_trials(config, make_rng(1))
    second = plan_trials(config, make_rng(2))
    assert [t.seeds for t in first] != [t.seeds for t in second]


def test_trials_are_reindexed_after_shuffle():
    trials = plan_trials(ExperimentConfig(repetitions_per_cell=2), make_rng(5))
    assert [t.index for t in trials] == list(range(len(trials)))


def test_seeds_are_31_bit_and_four_per_trial():
    trials = plan_trials(ExperimentConfig(repetitions_per_cell=1), make_rng(9))
    for trial in trials:
        assert len(trial.seeds) == 4
        assert all(0 <= seed < SEED_MAX for seed in trial.seeds)


def test_reference_scenario_timing(scenario_config):
    onset, start, end, total = trial_timing(scenario_config)
    assert (onset, start, end) == (56, 79, 82)
    assert total == 82 + 30


def test_timing_ordering_holds_for_every_trial():
    config = ExperimentConfig(
        sim_hz=60, delayed_onset_ms=10, pre_translation_ms=0, translation_duration_ms=1
    )
    for trial in plan_trials(config, make_rng(0)):
        assert trial.translation_start_frame >= trial.onset_frame
        assert trial.translation_end_frame > trial.translation_start_frame
        assert trial.total_frames > trial.translation_end_frame


def test_headings_are_45_degrees_apart():
    trials = plan_trials(ExperimentConfig(repetitions_per_cell=1), make_rng(0))
    assert sorted({t.heading_deg for t in trials}) == [0, 45, 90, 135, 180, 225, 270, 315]


@pytest.mark.parametrize(
    "overrides",
    [
        {"repetitions_per_cell": 0},
        {"heading_count": 0},
        {"condition_labels": ()},
        {"sim_hz": 0},
    ],
)
def test_configurations_without_trials_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        plan_trials(ExperimentConfig(**overrides), make_rng(0))
