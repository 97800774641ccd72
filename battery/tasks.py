import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple

from config.settings import AttentionNetworkConfig, ConfigError, NBackConfig, StroopConfig
from data.models import TrialSpec
from battery.state_machine import PHASE_CUE, PHASE_FIXATION, PHASE_PRE_TARGET, PHASE_TARGET
from battery.trial_generator import build_nback_block, generate_factorial_block, generate_nback_sequence


TASK_ATTENTION = "attention_network"
TASK_STROOP = "stroop"
TASK_NBACK = "nback"

MATCH = "match"
NONMATCH = "nonmatch"


@dataclass(frozen=True)
class Effect:
    """RT difference slow_level - fast_level on one factor."""
    name: str
    factor: str
    slow_level: str
    fast_level: str


@dataclass(frozen=True)
class TaskDefinition:
    """Everything the battery needs to know about one test, from trial building to scoring."""
    task_id: str
    label: str
    instructions: str
    responses: Callable[[Any], Tuple[str, ...]]
    rt_factors: Tuple[str, ...]
    effects: Tuple[Effect, ...]
    detection: bool
    build: Callable[[Any, random.Random], List[TrialSpec]]
    describe: Callable[[TrialSpec, str], Dict[str, Any]]


# ---------------------------------------------------------------------------
# Attention network test (cue x flanker)
# ---------------------------------------------------------------------------

ARROWS = {"left": "<", "right": ">"}


def _opposite(direction: str) -> str:
    return "right" if direction == "left" else "left"


def arrow_row(direction: str, flanking: str) -> str:
    """Five-symbol flanker row, e.g. "<<><<" for an incongruent right target."""
    target = ARROWS[direction]
    if flanking == "congruent":
        return target * 5
    if flanking == "incongruent":
        flank = ARROWS[_opposite(direction)]
        return flank * 2 + target + flank * 2
    return "--" + target + "--"


def _attention_derive(levels: Dict[str, str]):
    return levels["direction"], ()


def build_attention_trials(cfg: AttentionNetworkConfig, rng: random.Random) -> List[TrialSpec]:
    """Crossed cue x flanking x direction x position design; expected response is the target direction."""
    return generate_factorial_block(TASK_ATTENTION, cfg.factors(), cfg.repetitions, rng, _attention_derive)


def describe_attention(trial: TrialSpec, phase: str) -> Dict[str, Any]:
    if phase == PHASE_CUE:
        cue = trial.level("cue")
        if cue == "spatial":
            locations = [trial.level("position")]
        elif cue == "center":
            locations = ["center"]
        else:
            locations = []
        return {"fixation": True, "cue": cue, "cue_locations": locations}
    if phase == PHASE_TARGET:
        direction = trial.level("direction")
        flanking = trial.level("flanking")
        return {
            "fixation": True,
            "direction": direction,
            "flanking": flanking,
            "position": trial.level("position"),
            "arrows": arrow_row(direction, flanking),
        }
    if phase in (PHASE_FIXATION, PHASE_PRE_TARGET):
        return {"fixation": True}
    return {}


# ---------------------------------------------------------------------------
# Stroop color-word test
# ---------------------------------------------------------------------------

def _stroop_derive(levels: Dict[str, str]):
    word, ink = levels["word"], levels["ink"]
    congruency = "congruent" if word.lower() == ink.lower() else "incongruent"
    return ink, (("congruency", congruency),)


def build_stroop_trials(cfg: StroopConfig, rng: random.Random) -> List[TrialSpec]:
    if len(cfg.words) != len(cfg.inks):
        raise ConfigError("Stroop needs one color word per ink")
    return generate_factorial_block(TASK_STROOP, cfg.factors(), cfg.repetitions, rng, _stroop_derive)


def describe_stroop(trial: TrialSpec, phase: str) -> Dict[str, Any]:
    """Word and ink to draw while the target is up."""
    if phase == PHASE_TARGET:
        return {
            "word": trial.level("word"),
            "ink": trial.level("ink"),
            "congruency": trial.level("congruency"),
        }
    if phase == PHASE_FIXATION:
        return {"fixation": True}
    return {}


# ---------------------------------------------------------------------------
# Spatial n-back
# ---------------------------------------------------------------------------

def build_nback_trials(cfg: NBackConfig, rng: random.Random) -> List[TrialSpec]:
    sequence = generate_nback_sequence(
        cfg.lag,
        cfg.scored_trials,
        rng,
        n_positions=cfg.n_positions,
        target_probability=cfg.target_probability,
    )
    return build_nback_block(sequence, cfg.lag, task_id=TASK_NBACK)


def describe_nback(trial: TrialSpec, phase: str) -> Dict[str, Any]:
    """Grid cell (0-based) to light up while the target is up."""
    if phase == PHASE_TARGET:
        return {"cell": trial.stimulus}
    if phase == PHASE_FIXATION:
        return {"fixation": True}
    return {}


TASK_REGISTRY: Dict[str, TaskDefinition] = {
    TASK_ATTENTION: TaskDefinition(
        task_id=TASK_ATTENTION,
        label="Attention Network Test",
        instructions=(
            "Keep your eyes on the central cross. A row of arrows appears above or below it. "
            "Press F (or Left) if the middle arrow points left and J (or Right) if it points right. "
            "Ignore the arrows on either side."
        ),
        responses=lambda cfg: tuple(sorted(set(cfg.directions))),
        rt_factors=("cue", "flanking"),
        effects=(
            Effect("alerting", "cue", "none", "center"),
            Effect("orienting", "cue", "center", "spatial"),
            Effect("executive", "flanking", "incongruent", "congruent"),
        ),
        detection=False,
        build=build_attention_trials,
        describe=describe_attention,
    ),
    TASK_STROOP: TaskDefinition(
        task_id=TASK_STROOP,
        label="Stroop Color-Word Test",
        instructions=(
            "A color word is shown in colored ink. Name the INK color, not the word: "
            "R red, B blue, G green, Y yellow, P purple."
        ),
        responses=lambda cfg: tuple(cfg.inks),
        rt_factors=("congruency",),
        effects=(Effect("interference", "congruency", "incongruent", "congruent"),),
        detection=False,
        build=build_stroop_trials,
        describe=describe_stroop,
    ),
    TASK_NBACK: TaskDefinition(
        task_id=TASK_NBACK,
        label="Spatial N-Back",
        instructions=(
            "A square lights up in a 3x3 grid. Press F if it is in the same place as n steps ago, "
            "J if it is not. You may also stay still when it is not a match."
        ),
        responses=lambda cfg: (MATCH, NONMATCH),
        rt_factors=(),
        effects=(),
        detection=True,
        build=build_nback_trials,
        describe=describe_nback,
    ),
}


def get_task(task_id: str) -> TaskDefinition:
    """Look a test up in TASK_REGISTRY; unknown ids are a ConfigError."""
    try:
        return TASK_REGISTRY[task_id]
    except KeyError:
        raise ConfigError(f"Unknown test id: {task_id!r}") from None
