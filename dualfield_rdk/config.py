"""Configuration helpers for the dual-field random-dot motion experiment.

The :class:`ExperimentConfig` dataclass stores the user-editable parameters for
the block: simulation clock, viewing geometry, kinematics, trial timing,
balancing options and the runtime options of the PsychoPy front end.  Keeping
these values in a separate module makes it easy to discover what can be tweaked
without touching the planning, stimulus or logging code.
"""
from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .conditions import RGBA, SubfieldLayout
from .geometry import MonitorSpec, deg_to_meters, meters_per_degree
from .response import KeyMapping
from .session_log import DEFAULT_FIELDS


class ConfigurationError(ValueError):
    """Raised when the experiment parameters cannot produce a valid block."""


@dataclass
class ExperimentConfig:
    """Container for experiment parameters and runtime options."""

    experiment_name: str = "dualfield_rdk"

    # Simulation clock (decoupled from display refresh)
    sim_hz: int = 75

    # Viewing geometry (degrees of visual angle, metres)
    view_distance_m: float = 2.0
    aperture_radius_deg: float = 2.0
    dot_size_deg: float = 0.03

    # Kinematics
    rotation_speed_deg_per_s: float = 81.0
    translation_speed_deg_per_s: float = 2.26

    # Trial timeline (milliseconds)
    delayed_onset_ms: float = 750.0
    pre_translation_ms: float = 300.0
    translation_duration_ms: float = 40.0
    post_translation_ms: float = 400.0

    # Block / balancing
    condition_labels: Tuple[str, ...] = ("CUED", "UNCUED")
    heading_count: int = 8
    repetitions_per_cell: int = 5
    balance_delayed_field_color: bool = True
    rng_seed: Optional[int] = 1234567
    loop_block: bool = False

    # Dot layout
    dots_per_field: int = 200
    subfield_layout: SubfieldLayout = field(default_factory=SubfieldLayout)

    # Colour palette (RGBA, 0..1)
    color_red: RGBA = (0.9, 0.2, 0.2, 1.0)
    color_green: RGBA = (0.2, 0.85, 0.2, 1.0)
    color_off: RGBA = (0.0, 0.0, 0.0, 1.0)

    # Response window
    max_response_frames: int = 0
    key_mapping: KeyMapping = field(default_factory=KeyMapping)
    start_keys: Tuple[str, ...] = ("space",)
    quit_keys: Tuple[str, ...] = ("escape",)

    # Output
    results_directory: str = "data"
    record_trajectories: bool = False
    data_fields: List[str] = field(default_factory=lambda: list(DEFAULT_FIELDS))

    # Presentation
    screen_index: int = 0
    full_screen: bool = True
    window_size: Tuple[int, int] = (1920, 1080)
    monitor_width_cm: float = 53.0
    background_color: Sequence[float] = (-1.0, -1.0, -1.0)
    debug_mode: bool = False
    debug_window_size: Tuple[int, int] = (1024, 768)
    participant_serial_port: Optional[str] = None
    participant_serial_baud: int = 9600

    # ------------------------------------------------------------------
    # Derived quantities
    # ------------------------------------------------------------------
    @property
    def sim_dt(self) -> float:
        """Duration of one simulation tick in seconds."""

        return 1.0 / max(1, self.sim_hz)

    @property
    def meters_per_degree(self) -> float:
        return meters_per_degree(self.view_distance_m)

    @property
    def aperture_radius_m(self) -> float:
        return deg_to_meters(self.aperture_radius_deg, self.view_distance_m)

    @property
    def dots_per_subfield(self) -> int:
        return max(1, self.dots_per_field // 2)

    @property
    def monitor_spec(self) -> MonitorSpec:
        """Monitor description for the active (debug or full) window size."""

        width, height = self.debug_window_size if self.debug_mode else self.window_size
        return MonitorSpec(
            name=self.experiment_name,
            px_width=int(width),
            px_height=int(height),
            width_cm=self.monitor_width_cm,
        )

    def ms_to_frames(self, ms: float) -> int:
        """Convert a duration in milliseconds to whole simulation ticks.

        Halves round up, so 300 ms at 75 Hz (22.5 ticks) yields 23.  The
        product is formed before dividing to keep 22.5 exact in binary.
        """

        ticks = math.floor(float(ms) * self.sim_hz / 1000.0 + 0.5)
        return max(1, int(ticks))

    def headings(self) -> List[float]:
        """Return the evenly spaced heading angles in degrees."""

        step = 360.0 / self.heading_count
        return [k * step for k in range(self.heading_count)]

    def instructions_text(self) -> str:
        """Return an instruction string for the on-screen dialog."""

        mapping = self.key_mapping
        return (
            "Dual-field random-dot motion task\n\n"
            "Keep your eyes on the central fixation cross.  Two dot fields "
            "rotate; one of them briefly drifts in one of eight directions.\n\n"
            f"Press {'/'.join(self.start_keys)} to start each trial.\n"
            "Choose a direction with the numeric keypad (8 = up, 9 = up-right, "
            "6 = right, ...), then confirm with "
            f"{'/'.join(mapping.confirm_keys)}.\n"
            f"Press {'/'.join(mapping.cancel_keys)} to skip a trial; it will be "
            "shown again later.\n"
            "Press ESC at any time to exit early."
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self) -> None:
        """Raise :class:`ConfigurationError` if the block cannot be planned."""

        problems: List[str] = []
        if self.sim_hz <= 0:
            problems.append(f"sim_hz must be positive (got {self.sim_hz})")
        if self.repetitions_per_cell < 1:
            problems.append(
                f"repetitions_per_cell must be >= 1 (got {self.repetitions_per_cell})"
            )
        if self.heading_count < 1:
            problems.append(f"heading_count must be >= 1 (got {self.heading_count})")
        if not self.condition_labels:
            problems.append("condition_labels must name at least one condition")
        if self.view_distance_m <= 0:
            problems.append("view_distance_m must be positive")
        if self.aperture_radius_deg <= 0:
            problems.append("aperture_radius_deg must be positive")
        if self.dots_per_field < 1:
            problems.append("dots_per_field must be >= 1")
        if self.max_response_frames < 0:
            problems.append("max_response_frames must be >= 0 (0 disables the timeout)")
        for label in self.condition_labels:
            if not self.subfield_layout.knows_label(label):
                problems.append(f"condition label '{label}' is not cued/uncued")
        if problems:
            raise ConfigurationError("; ".join(problems))

    def params_summary(self) -> Dict[str, object]:
        """Return the stimulus parameters written to the session log header."""

        return {
            "sim_hz": self.sim_hz,
            "view_distance_m": self.view_distance_m,
            "aperture_radius_deg": self.aperture_radius_deg,
            "dot_size_deg": self.dot_size_deg,
            "rotation_speed_deg_per_s": self.rotation_speed_deg_per_s,
            "translation_speed_deg_per_s": self.translation_speed_deg_per_s,
            "dots_per_field": self.dots_per_field,
            "max_response_frames": self.max_response_frames,
        }


_NESTED_TYPES = {
    "subfield_layout": SubfieldLayout,
    "key_mapping": KeyMapping,
}


def _coerce_value(name: str, value: Any, default: Any) -> Any:
    """Convert JSON values (lists, dicts) to the types the dataclass expects."""

    nested = _NESTED_TYPES.get(name)
    if nested is not None:
        if not isinstance(value, dict):
            raise ConfigurationError(f"'{name}' must be a JSON object")
        return nested.from_dict(value)
    if isinstance(value, list) and isinstance(default, tuple):
        return tuple(value)
    return value


def load_config(path: str | os.PathLike[str], **overrides: Any) -> ExperimentConfig:
    """Build an :class:`ExperimentConfig` from a JSON file.

    Keyword ``overrides`` take precedence over values from the file, which in
    turn take precedence over the dataclass defaults.
    """

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file '{config_path}' does not exist.")
    with config_path.open("r", encoding="utf-8") as config_file:
        loaded: Any = json.load(config_file)
    if not isinstance(loaded, dict):
        raise TypeError(
            f"Configuration file '{config_path.name}' must contain a JSON object."
        )

    defaults = ExperimentConfig()
    known = {f.name for f in fields(ExperimentConfig)}
    unknown = sorted(set(loaded) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

    values = {
        name: _coerce_value(name, value, getattr(defaults, name))
        for name, value in loaded.items()
    }
    values.update(overrides)
    return ExperimentConfig(**values)


__all__ = ["ExperimentConfig", "ConfigurationError", "load_config"]
