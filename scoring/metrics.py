"""Turns a finished RunState into a ScoreReport."""
import math
from typing import Dict, List, Optional, Sequence, Tuple

from data.models import DetectionScore, RecordedResponse, RunState, ScoreReport
from battery.tasks import MATCH, TaskDefinition
from scoring.sdt import CORRECT_REJECTION, FALSE_ALARM, HIT, MISS, classify, d_prime


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean; 0.0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def population_sd(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    m = mean(values)
    return math.sqrt(sum((x - m) ** 2 for x in values) / len(values))


def safe_rate(numerator: int, denominator: int) -> float:
    """numerator / denominator, or 0.0 when there is nothing to divide by."""
    return numerator / denominator if denominator else 0.0


def scored_responses(run: RunState, detection: bool) -> List[RecordedResponse]:
    """
    Responses that count towards the score.

    Choice tests score every trial. Detection tests drop the lag trials at
    the start of the run.
    """
    if detection:
        # lag trials have no n-back reference and are never scored
        return [r for r in run.responses if r.trial.is_target is not None]
    return list(run.responses)


def detection_outcomes(responses: Sequence[RecordedResponse], target_response: str = MATCH) -> List[str]:
    """Classify each response as hit / miss / false alarm / correct rejection."""
    return [classify(r.response == target_response, bool(r.trial.is_target)) for r in responses]


def compute_detection(run: RunState, outcomes: Sequence[str]) -> DetectionScore:
    """
    Signal-detection summary of a detection run.

    Rates with an empty denominator are 0.0; d' uses clipped z-scores, so it
    is always finite. sensitivity is d' clamped to >= 0.
    """
    hits = outcomes.count(HIT)
    misses = outcomes.count(MISS)
    false_alarms = outcomes.count(FALSE_ALARM)
    correct_rejections = outcomes.count(CORRECT_REJECTION)

    hit_rate = safe_rate(hits, hits + misses)
    fa_rate = safe_rate(false_alarms, false_alarms + correct_rejections)
    dp = d_prime(hit_rate, fa_rate)
    lag = sum(1 for t in run.trials if t.is_target is None)
    return DetectionScore(
        lag=lag,
        hits=hits,
        misses=misses,
        false_alarms=false_alarms,
        correct_rejections=correct_rejections,
        hit_rate=hit_rate,
        false_alarm_rate=fa_rate,
        d_prime=dp,
        sensitivity=max(0.0, dp),
    )


def _levels(run: RunState, factor: str) -> List[str]:
    """Levels of ``factor`` in order of first appearance in the run."""
    seen: List[str] = []
    for trial in run.trials:
        level = trial.level(factor)
        if level is not None and level not in seen:
            seen.append(level)
    return seen


def _correct_rts(pairs: Sequence[Tuple[RecordedResponse, bool]], factor: str, level: str) -> List[int]:
    """RTs of correct, answered responses at one factor level."""
    return [
        r.reaction_time_ms
        for r, ok in pairs
        if ok and r.response is not None and r.trial.level(factor) == level
    ]


def score_run(run: RunState, task: TaskDefinition) -> ScoreReport:
    """
    Aggregate a run's responses.

    Steps:
    1) pick the scored responses and decide which are correct
       (detection tests decide by hit / correct rejection)
    2) RT statistics over correct, answered trials only
    3) per-factor RT lists, means and accuracy
    4) effects: mean RT of the slow level minus mean RT of the fast level

    Every rate and mean over an empty set is 0.0, so the report never holds
    NaN or inf. An effect keeps that rule too: a level without correct RTs
    contributes a mean of 0. Efficiencies are the effects clamped at zero;
    the signed values are kept in raw_effects_ms.
    """
    # 1) scored subset and correctness
    responses = scored_responses(run, task.detection)

    detection: Optional[DetectionScore] = None
    if task.detection:
        outcomes = detection_outcomes(responses)
        flags = [o in (HIT, CORRECT_REJECTION) for o in outcomes]
        detection = compute_detection(run, outcomes)
    else:
        flags = [r.correct for r in responses]

    # 2) overall RT
    pairs = list(zip(responses, flags))
    correct_rts = [r.reaction_time_ms for r, ok in pairs if ok and r.response is not None]

    # 3) per factor level
    factor_rts: Dict[str, Dict[str, List[int]]] = {}
    factor_rt: Dict[str, Dict[str, float]] = {}
    factor_accuracy: Dict[str, Dict[str, float]] = {}
    for factor in task.rt_factors:
        factor_rts[factor] = {}
        factor_rt[factor] = {}
        factor_accuracy[factor] = {}
        for level in _levels(run, factor):
            rts = _correct_rts(pairs, factor, level)
            factor_rts[factor][level] = rts
            factor_rt[factor][level] = mean(rts)
            at_level = [ok for r, ok in pairs if r.trial.level(factor) == level]
            factor_accuracy[factor][level] = safe_rate(sum(at_level), len(at_level))

    # 4) effects
    raw_effects: Dict[str, float] = {}
    for effect in task.effects:
        slow = _correct_rts(pairs, effect.factor, effect.slow_level)
        fast = _correct_rts(pairs, effect.factor, effect.fast_level)
        raw_effects[effect.name] = mean(slow) - mean(fast)
    efficiencies = {name: max(0.0, value) for name, value in raw_effects.items()}

    correct = sum(flags)
    return ScoreReport(
        task_id=run.task_id,
        run_id=run.run_id,
        total_trials=run.total,
        scored_trials=len(responses),
        correct=correct,
        accuracy=safe_rate(correct, len(responses)),
        mean_rt_ms=mean(correct_rts),
        rt_sd_ms=population_sd(correct_rts),
        factor_rt_ms=factor_rt,
        factor_rts_ms=factor_rts,
        factor_accuracy=factor_accuracy,
        efficiencies=efficiencies,
        raw_effects_ms=raw_effects,
        detection=detection,
    )
