import json

from dualfield_rdk.cli import build_arg_parser, config_from_args, main


def test_dry_run_prints_plan(capsys):
    main(["--dry-run", "--repetitions", "1", "--seed", "3"])
    out = capsys.readouterr().out
    assert "Dry-run: 32 trials planned (32 unique stimuli)." in out
    assert "onset frame   : 56" in out
    assert "translation   : [79, 82)" in out
    assert out.rstrip().endswith("Dry-run complete.")


def test_dry_run_without_colour_balance(capsys):
    main(["--dry-run", "--repetitions", "2", "--no-color-balance"])
    out = capsys.readouterr().out
    assert "Dry-run: 32 trials planned (16 unique stimuli)." in out


def test_command_line_overrides_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"sim_hz": 60, "repetitions_per_cell": 4}), encoding="utf-8")
    args = build_arg_parser().parse_args(
        ["--config", str(path), "--sim-hz", "120", "--loop", "--data-dir", str(tmp_path)]
    )
    config = config_from_args(args)
    assert config.sim_hz == 120
    assert config.repetitions_per_cell == 4
    assert config.loop_block
    assert config.results_directory == str(tmp_path)


def test_defaults_without_options():
    config = config_from_args(build_arg_parser().parse_args([]))
    assert config.sim_hz == 75
    assert config.max_response_frames == 0
    assert config.participant_serial_port is None
