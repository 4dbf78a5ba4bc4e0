"""Build the per-frame stimulus condition for a planned trial."""
from __future__ import annotations

from .conditions import DelayedColor, MotionKind, RGBA, StimulusCondition
from .config import ExperimentConfig
from .planner import TrialDescriptor


def color_for(color: DelayedColor, config: ExperimentConfig) -> RGBA:
    return tuple(config.color_red if color is DelayedColor.RED else config.color_green)


def condition_name(trial: TrialDescriptor) -> str:
    return f"Trial_{trial.index}_{trial.condition_label}_Del{trial.delayed_field_color.letter}"


def synthesize_condition(trial: TrialDescriptor, config: ExperimentConfig) -> StimulusCondition:
    """Return the full timeline of ``trial``.

    Both fields rotate throughout (in opposite directions).  The non-delayed
    field is visible from frame 0 in the colour opposite to the delayed one;
    the delayed field switches from off to its colour at ``onset_frame``.
    During ``[translation_start_frame, translation_end_frame)`` the pair chosen
    by the condition label translates: one subfield coherently along the
    heading, the other with balanced non-coherent motion.
    """

    layout = config.subfield_layout
    total = trial.total_frames
    off = tuple(config.color_off)
    delayed_color = color_for(trial.delayed_field_color, config)
    non_delayed_color = color_for(trial.delayed_field_color.opposite(), config)

    condition = StimulusCondition.empty(condition_name(trial), total, off)
    tracks = condition.subfields

    for s in layout.non_delayed:
        tracks[s].motion_kind = [layout.non_delayed_rotation] * total
        tracks[s].color = [non_delayed_color] * total
        tracks[s].visible = [True] * total

    onset = min(max(trial.onset_frame, 0), total)
    for s in layout.delayed:
        tracks[s].motion_kind = [layout.delayed_rotation] * total
        tracks[s].color = [off] * onset + [delayed_color] * (total - onset)
        tracks[s].visible = [False] * onset + [True] * (total - onset)

    coherent, non_coherent = layout.translation_pair(trial.condition_label)
    start = max(0, trial.translation_start_frame)
    end = min(total, trial.translation_end_frame)
    for f in range(start, end):
        tracks[coherent].motion_kind[f] = MotionKind.LINEAR
        tracks[non_coherent].motion_kind[f] = MotionKind.NON_COHERENT

    condition.validate(expected_frames=trial.total_frames)
    return condition


__all__ = ["synthesize_condition", "condition_name", "color_for"]
