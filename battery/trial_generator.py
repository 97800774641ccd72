import itertools
import random
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from config.settings import ConfigError
from data.models import TrialSpec


MIN_LAG = 1
MAX_LAG = 3

# derive(levels) -> (expected_response, conditions)
DeriveFn = Callable[[Dict[str, str]], Tuple[Optional[str], Tuple[Tuple[str, str], ...]]]


def validate_factors(factors: Dict[str, Sequence[str]], repetitions: int) -> None:
    """Fail fast on an empty factor set, an empty level list or non-positive repetitions."""
    if not factors:
        raise ConfigError("Factor set is empty")
    for name, levels in factors.items():
        if len(levels) == 0:
            raise ConfigError(f"Factor {name!r} has no levels")
    if not isinstance(repetitions, int) or repetitions <= 0:
        raise ConfigError(f"repetitions must be a positive integer, got {repetitions!r}")


def generate_factorial_block(
    task_id: str,
    factors: Dict[str, Sequence[str]],
    repetitions: int,
    rng: random.Random,
    derive: Optional[DeriveFn] = None,
) -> List[TrialSpec]:
    """
    Fully crossed design: every combination of factor levels appears
    ``repetitions`` times, then the whole list is shuffled (Fisher-Yates).

    Levels listed twice in one factor count twice, which is how the
    attention test weights spatial cues.
    """
    validate_factors(factors, repetitions)

    names = list(factors.keys())
    combos = list(itertools.product(*(factors[n] for n in names))) * repetitions
    rng.shuffle(combos)

    trials: List[TrialSpec] = []
    for i, combo in enumerate(combos):
        levels = dict(zip(names, combo))
        expected, conditions = derive(levels) if derive is not None else (None, ())
        trials.append(
            TrialSpec(
                trial_index=i,
                task_id=task_id,
                factors=tuple(zip(names, combo)),
                expected_response=expected,
                conditions=conditions,
            )
        )
    return trials


def generate_nback_sequence(
    lag: int,
    scored_trials: int,
    rng: random.Random,
    n_positions: int = 9,
    target_probability: float = 0.3,
) -> List[int]:
    """
    Positions for an n-back run of length ``lag + scored_trials``.

    The first ``lag`` positions are independent. After that each position is
    either a repeat of the one ``lag`` back (probability ``target_probability``)
    or a position that is guaranteed to differ from it.
    """
    validate_nback(lag, scored_trials, n_positions, target_probability)

    sequence: List[int] = [rng.randrange(n_positions) for _ in range(lag)]
    for i in range(lag, lag + scored_trials):
        back = sequence[i - lag]
        if rng.random() < target_probability:
            sequence.append(back)
        else:
            others = [p for p in range(n_positions) if p != back]
            sequence.append(rng.choice(others))
    return sequence


def validate_nback(lag: int, scored_trials: int, n_positions: int, target_probability: float) -> None:
    """Check n-back parameters before any position is drawn."""
    if not isinstance(lag, int) or not MIN_LAG <= lag <= MAX_LAG:
        raise ConfigError(f"lag must be between {MIN_LAG} and {MAX_LAG}, got {lag!r}")
    if not isinstance(scored_trials, int) or scored_trials <= 0:
        raise ConfigError(f"scored_trials must be a positive integer, got {scored_trials!r}")
    if n_positions < 2:
        raise ConfigError("n-back needs at least two stimulus positions")
    if not 0.0 <= target_probability <= 1.0:
        raise ConfigError(f"target_probability must be within [0, 1], got {target_probability!r}")


def build_nback_block(sequence: Sequence[int], lag: int, task_id: str = "nback") -> List[TrialSpec]:
    if not isinstance(lag, int) or not MIN_LAG <= lag <= MAX_LAG:
        raise ConfigError(f"lag must be between {MIN_LAG} and {MAX_LAG}, got {lag!r}")
    trials: List[TrialSpec] = []
    for i, position in enumerate(sequence):
        if i < lag:
            # no history yet, nothing to compare against
            is_target = None
            expected = None
        else:
            is_target = sequence[i] == sequence[i - lag]
            expected = "match" if is_target else "nonmatch"
        trials.append(
            TrialSpec(
                trial_index=i,
                task_id=task_id,
                factors=(("cell", str(position)),),
                expected_response=expected,
                is_target=is_target,
                stimulus=position,
            )
        )
    return trials


def combination_counts(trials: Sequence[TrialSpec]) -> Counter:
    """How often each crossed combination occurs; a balanced block has one distinct count."""
    return Counter(t.combination() for t in trials)
