"""Command line helpers for running the dual-field motion experiment."""
from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Dict

from .config import ExperimentConfig, load_config
from .planner import make_rng, plan_trials, trial_timing, unique_stimulus_count


def build_arg_parser() -> argparse.ArgumentParser:
    """Create an argument parser exposing the common runtime options."""

    parser = argparse.ArgumentParser(
        description=(
            "Launch the dual-field random-dot motion task. "
            "Parameters not given on the command line come from --config or the defaults."
        )
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with ExperimentConfig field values.",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Folder where CSV/JSON/pickle outputs will be saved (default: data).",
    )
    parser.add_argument("--sim-hz", type=int, default=None, help="Simulation ticks per second.")
    parser.add_argument(
        "--repetitions",
        type=int,
        default=None,
        help="Repetitions per (condition x heading) cell.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed of the block RNG.")
    parser.add_argument(
        "--max-response-frames",
        type=int,
        default=None,
        help="Response timeout in simulation ticks (0 = no timeout).",
    )
    parser.add_argument(
        "--no-color-balance",
        action="store_true",
        help="Always show the delayed field in green instead of balancing red/green.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Rewind the planned trials when the block is complete.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable windowed debug mode.",
    )
    parser.add_argument(
        "--participant-serial-port",
        type=str,
        default=None,
        help=(
            "Serial COM port used by the participant keypad (e.g., COM1). "
            "Requires pyserial; if omitted the keypad is ignored."
        ),
    )
    parser.add_argument(
        "--participant-serial-baud",
        type=int,
        default=None,
        help="Baud rate for the participant serial keypad (default: 9600).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan the block, print its timing and balance, and exit without PsychoPy.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug messages to the console.",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> ExperimentConfig:
    """Merge command line options over the config file (or defaults)."""

    overrides: Dict[str, Any] = {}
    if args.data_dir is not None:
        overrides["results_directory"] = str(args.data_dir)
    if args.sim_hz is not None:
        overrides["sim_hz"] = args.sim_hz
    if args.repetitions is not None:
        overrides["repetitions_per_cell"] = args.repetitions
    if args.seed is not None:
        overrides["rng_seed"] = args.seed
    if args.max_response_frames is not None:
        overrides["max_response_frames"] = args.max_response_frames
    if args.no_color_balance:
        overrides["balance_delayed_field_color"] = False
    if args.loop:
        overrides["loop_block"] = True
    if args.debug:
        overrides["debug_mode"] = True
    if args.participant_serial_port is not None:
        overrides["participant_serial_port"] = args.participant_serial_port
    if args.participant_serial_baud is not None:
        overrides["participant_serial_baud"] = args.participant_serial_baud

    if args.config is not None:
        return load_config(args.config, **overrides)
    return ExperimentConfig(**overrides)


def main(argv: list[str] | None = None) -> None:
    """Parse command line options and execute the experiment."""

    parser = build_arg_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = config_from_args(args)
    if args.dry_run:
        perform_dry_run(config)
        return

    from .experiment import DualFieldExperiment

    experiment = DualFieldExperiment(config)
    experiment.run()


def perform_dry_run(config: ExperimentConfig) -> None:
    """Print the planned block's timing and balance summary and exit."""

    trials = plan_trials(config, make_rng(config.rng_seed))
    onset, start, end, total = trial_timing(config)

    print(f"Dry-run: {len(trials)} trials planned ({unique_stimulus_count(config)} unique stimuli).")
    print(f"  sim_hz        : {config.sim_hz} (dt={config.sim_dt * 1000:.3f} ms)")
    print(f"  onset frame   : {onset}")
    print(f"  translation   : [{start}, {end})")
    print(f"  total frames  : {total}")
    print(f"  aperture (m)  : {config.aperture_radius_m:.4f}")
    print(f"  dots/subfield : {config.dots_per_subfield}")

    cells = Counter(
        (trial.condition_label, trial.heading_deg, trial.delayed_field_color.letter)
        for trial in trials
    )
    print("  cells (condition, heading, delayed colour): count")
    for (label, heading, color), count in sorted(cells.items()):
        print(f"    {label:<8} {heading:6.1f} {color} : {count}")
    print("  first trials:")
    for trial in trials[:5]:
        print(
            f"    [{trial.index:03}] {trial.condition_label:<8} heading={trial.heading_deg:6.1f} "
            f"delayed={trial.delayed_field_color.letter} seeds={list(trial.seeds)}"
        )
    print("Dry-run complete.")


if __name__ == "__main__":  # pragma: no cover - module level CLI hook
    main(sys.argv[1:])
