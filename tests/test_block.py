import numpy as np
import pytest

from dualfield_rdk import block as block_module
from dualfield_rdk.block import TrialPhase
from dualfield_rdk.conditions import SynthesisError
from dualfield_rdk.response import ResponseEvent, ResponseStatus


def run_stimulus(runner):
    """Start the loaded trial and tick through its whole stimulus phase."""

    assert runner.start()
    for _ in range(runner.current_trial.total_frames):
        runner.sim_step()
    assert runner.phase is TrialPhase.TARGETS_RESPONSE


def tick_response(runner, ticks):
    for _ in range(ticks):
        runner.sim_step()


def test_begin_block_loads_first_trial_and_waits(make_runner, scenario_config, recording_log):
    runner = make_runner(scenario_config)
    runner.begin_block()
    assert runner.phase is TrialPhase.WAITING_FOR_START
    assert runner.current_trial == runner.planned_trials[0]
    assert len(runner.queue) == len(runner.planned_trials) - 1
    assert recording_log.events[:2] == [
        ("begin_session", 32),
        ("begin_trial", runner.planned_trials[0].index),
    ]


def test_clock_does_not_run_while_waiting(make_runner, single_trial_config):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    assert runner.update(1.0) == 0
    assert runner.frame_in_stimulus == 0


def test_fixed_step_clock_counts_whole_ticks(make_runner, single_trial_config):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    runner.start()
    assert runner.update(0.5) == 37
    assert runner.frame_in_stimulus == 37
    # the leftover fraction is carried into the next update
    assert runner.update(0.5 / 37) == 1
    assert runner.frame_in_stimulus == 38


def test_dots_then_targets_are_shown(make_runner, single_trial_config, presenter):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    assert not presenter.dots_visible
    runner.start()
    assert presenter.dots_visible
    for _ in range(single_trial_config.ms_to_frames(750)):
        runner.sim_step()
    assert presenter.frames == list(range(56))
    tick_response(runner, 112 - 56)
    assert not presenter.dots_visible
    assert presenter.targets_visible


def test_dots_stay_inside_aperture(make_runner, single_trial_config):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    radius = single_trial_config.aperture_radius_m
    runner.start()
    for _ in range(112):
        runner.sim_step()
        for state in runner.subfields:
            assert np.all(np.hypot(state.positions[:, 0], state.positions[:, 1]) <= radius)


def test_cancel_is_logged_and_requeued(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    trial = runner.current_trial
    run_stimulus(runner)
    tick_response(runner, 12)
    runner.sim_step([ResponseEvent.cancel()])

    row = recording_log.rows[0]
    assert row["choice_index"] == -1
    assert row["rt_frames"] == 12
    assert row["end_event"] == "Cancel"
    assert row["attempt"] == 1
    assert runner.last_response.status is ResponseStatus.CANCELED

    # the only trial comes straight back with the same seeds
    assert runner.phase is TrialPhase.WAITING_FOR_START
    assert runner.current_trial == trial
    assert runner.trials_started == 2


def test_requeued_trial_is_appended_behind_the_rest(make_runner, scenario_config):
    runner = make_runner(scenario_config)
    runner.begin_block()
    first = runner.current_trial
    run_stimulus(runner)
    runner.sim_step([ResponseEvent.cancel()])
    assert runner.queue[-1] == first
    assert runner.current_trial == runner.planned_trials[1]


def test_requeued_trial_replays_identical_dots(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    initial = [state.positions.copy() for state in runner.subfields]
    run_stimulus(runner)
    runner.sim_step([ResponseEvent.cancel()])

    for before, state in zip(initial, runner.subfields):
        np.testing.assert_array_equal(before, state.positions)

    run_stimulus(runner)
    runner.sim_step([ResponseEvent.direction_selected(1)])
    runner.sim_step([ResponseEvent.confirm()])
    assert [row["attempt"] for row in recording_log.rows] == [1, 2]


def test_timeout_is_logged_and_requeued(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    run_stimulus(runner)
    tick_response(runner, 60)
    assert not recording_log.rows
    runner.sim_step()

    row = recording_log.rows[0]
    assert row["rt_frames"] == 60
    assert row["end_event"] == "Timeout"
    assert row["choice_index"] == -1
    assert runner.phase is TrialPhase.WAITING_FOR_START


def test_confirmed_response_finishes_the_block(make_runner, single_trial_config, recording_log, presenter):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    run_stimulus(runner)
    tick_response(runner, 3)
    runner.sim_step([ResponseEvent.direction_selected(3, "SerialKeypad")])
    runner.sim_step([ResponseEvent.confirm("SerialKeypad")])

    row = recording_log.rows[0]
    assert row["choice_index"] == 3
    assert row["rt_frames"] == 4
    assert row["end_event"] == "Confirm"
    assert row["device"] == "SerialKeypad"
    assert row["participant"] == "P01"
    assert presenter.candidates[-2:] == [3, 3]

    assert runner.finished
    assert runner.phase is TrialPhase.DONE
    assert runner.queue == []
    assert recording_log.events[-1] == ("end_session", None)
    assert runner.update(1.0) == 0


def test_loop_block_rewinds_into_a_new_session(make_runner, single_trial_config, recording_log):
    single_trial_config.loop_block = True
    runner = make_runner(single_trial_config)
    runner.begin_block()
    trial = runner.current_trial
    run_stimulus(runner)
    runner.sim_step([ResponseEvent.direction_selected(0)])
    runner.sim_step([ResponseEvent.confirm()])

    assert not runner.finished
    assert recording_log.sessions == 2
    assert runner.current_trial == trial
    assert runner.trials_started == 1


def test_abort_writes_an_abort_row(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    runner.start()
    runner.update(0.2)
    runner.abort("operator quit")

    row = recording_log.rows[-1]
    assert row["end_event"] == "ABORT"
    assert row["choice_index"] == -1
    assert runner.finished
    assert not recording_log.trial_open
    assert recording_log.events[-1] == ("end_session", None)


def test_stimulus_overrun_ends_stimulus_phase(make_runner, single_trial_config, caplog):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    runner.start()
    runner._frame = 500
    with caplog.at_level("WARNING"):
        runner.sim_step()
    assert runner.phase is TrialPhase.TARGETS_RESPONSE
    assert "outside" in caplog.text


def test_unsynthesizable_trial_is_skipped(make_runner, single_trial_config, recording_log, monkeypatch):
    def broken(trial, config):
        raise SynthesisError("track length mismatch")

    monkeypatch.setattr(block_module, "synthesize_condition", broken)
    runner = make_runner(single_trial_config)
    runner.begin_block()

    assert runner.finished
    assert len(recording_log.rows) == 1
    assert recording_log.rows[0]["end_event"] == "SKIPPED"
    assert runner.trials_started == 0


def test_payload_rows_cover_every_stimulus_frame(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    index = runner.current_trial.index
    run_stimulus(runner)
    runner.sim_step([ResponseEvent.cancel()])

    payloads = {kind: payload for kind, _, payload in recording_log.payloads}
    assert {trial for _, trial, _ in recording_log.payloads} == {index}
    motion = payloads["mkrows"].split(";")
    colors = payloads["colorrows"].split(";")
    assert len(motion) == len(colors) == 112
    assert motion[0] == "1|1|2|2"
    assert motion[80] == "1|1|3|4"
    # delayed field is green when colour balancing is off
    assert colors[0] == "R|R|K|K"
    assert colors[56] == "R|R|G|G"


def test_trajectories_recorded_for_translating_subfields(make_runner, single_trial_config):
    single_trial_config.record_trajectories = True
    runner = make_runner(single_trial_config)
    runner.begin_block()
    run_stimulus(runner)

    samples = runner.trajectories.samples
    dots = single_trial_config.dots_per_subfield
    assert len(samples) == 3 * 2 * dots
    assert {s.subfield for s in samples} == {2, 3}
    assert {s.frame for s in samples} == {79, 80, 81}


@pytest.mark.parametrize("events", [[], [ResponseEvent.confirm()]])
def test_events_outside_response_window_are_ignored(make_runner, single_trial_config, events):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    runner.start()
    runner.update(0.1, events)
    assert runner.phase is TrialPhase.STIMULUS


def test_input_during_a_short_update_reaches_the_next_tick(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    run_stimulus(runner)
    dt = single_trial_config.sim_dt

    assert runner.update(dt * 0.6, [ResponseEvent.cancel()]) == 0
    assert recording_log.rows == []
    assert runner.update(dt * 0.6) == 1

    row = recording_log.rows[0]
    assert row["end_event"] == "Cancel"
    assert row["rt_frames"] == 0


def test_selection_and_confirm_split_across_short_updates(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    run_stimulus(runner)
    dt = single_trial_config.sim_dt

    # a 120 Hz display polls more often than the 75 Hz clock ticks
    assert runner.update(dt * 0.625, [ResponseEvent.direction_selected(5)]) == 0
    assert runner.update(dt * 0.625, [ResponseEvent.confirm()]) == 1

    row = recording_log.rows[0]
    assert row["choice_index"] == 5
    assert row["end_event"] == "Confirm"
    assert row["rt_frames"] == 0


def test_input_from_the_stimulus_phase_is_not_carried_into_the_response(make_runner, single_trial_config, recording_log):
    runner = make_runner(single_trial_config)
    runner.begin_block()
    runner.start()
    for _ in range(111):
        runner.sim_step()
    runner.sim_step([ResponseEvent.direction_selected(2), ResponseEvent.confirm()])
    assert runner.phase is TrialPhase.TARGETS_RESPONSE

    runner.sim_step()
    assert runner.response.candidate == -1
    assert recording_log.rows == []
