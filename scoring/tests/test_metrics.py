"""
Tests for score_run on hand-built runs.

Runs are assembled directly from TrialSpec/RecordedResponse so each
expected number can be checked by hand.
"""
import json

import pytest

from data.models import RUN_COMPLETE, RecordedResponse, RunState, TrialSpec
from battery.tasks import TASK_REGISTRY
from scoring.metrics import mean, population_sd, safe_rate, score_run
from scoring.sdt import Z_CLIP


def _ant_trial(i, cue, flanking, direction="left"):
    return TrialSpec(
        trial_index=i,
        task_id="attention_network",
        factors=(("cue", cue), ("flanking", flanking), ("direction", direction), ("position", "above")),
        expected_response=direction,
    )


def _answer(trial, response, rt):
    return RecordedResponse(
        trial=trial,
        response=response,
        correct=response is not None and response == trial.expected_response,
        reaction_time_ms=rt,
        responded_at_ms=rt,
    )


def _run(task_id, pairs):
    trials = tuple(t for t, _ in pairs)
    run = RunState(run_id="r1", task_id=task_id, trials=trials, started_ms=0, status=RUN_COMPLETE)
    run.responses = [r for _, r in pairs]
    run.current_index = len(trials)
    return run


def _nback_trial(i, is_target):
    expected = None if is_target is None else ("match" if is_target else "nonmatch")
    return TrialSpec(
        trial_index=i,
        task_id="nback",
        factors=(("cell", "0"),),
        expected_response=expected,
        is_target=is_target,
        stimulus=0,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

class TestHelpers:
    def test_mean_of_empty_is_zero(self):
        assert mean([]) == 0.0

    def test_population_sd(self):
        assert population_sd([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
        assert population_sd([5]) == 0.0

    def test_safe_rate(self):
        assert safe_rate(3, 4) == 0.75
        assert safe_rate(0, 0) == 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Choice tests
# ─────────────────────────────────────────────────────────────────────────────

class TestScoreChoiceRun:
    def test_rts_only_from_correct_answers(self):
        t0 = _ant_trial(0, "none", "congruent")
        t1 = _ant_trial(1, "center", "congruent")
        t2 = _ant_trial(2, "center", "incongruent")
        t3 = _ant_trial(3, "spatial", "incongruent")
        run = _run("attention_network", [
            (t0, _answer(t0, "left", 600)),
            (t1, _answer(t1, "left", 500)),
            (t2, _answer(t2, "right", 300)),  # wrong
            (t3, _answer(t3, None, 1700)),    # timeout
        ])
        report = score_run(run, TASK_REGISTRY["attention_network"])
        assert report.correct == 2
        assert report.accuracy == 0.5
        assert report.mean_rt_ms == pytest.approx(550.0)
        assert report.rt_sd_ms == pytest.approx(50.0)
        assert report.factor_rt_ms["cue"] == {"none": 600.0, "center": 500.0, "spatial": 0.0}
        assert report.factor_accuracy["cue"]["center"] == 0.5
        assert report.efficiencies["alerting"] == pytest.approx(100.0)
        # no correct spatial trial: spatial mean is 0, effect is center - 0
        assert report.raw_effects_ms["orienting"] == pytest.approx(500.0)
        assert report.efficiencies["orienting"] == pytest.approx(500.0)
        # no correct incongruent trial: 0 - 550, clamped
        assert report.raw_effects_ms["executive"] == pytest.approx(-550.0)
        assert report.efficiencies["executive"] == 0.0

    def test_rt_lists_per_level(self):
        t0 = _ant_trial(0, "none", "congruent")
        t1 = _ant_trial(1, "none", "neutral")
        t2 = _ant_trial(2, "none", "neutral")
        t3 = _ant_trial(3, "center", "neutral")
        run = _run("attention_network", [
            (t0, _answer(t0, "left", 610)),
            (t1, _answer(t1, "right", 300)),  # wrong
            (t2, _answer(t2, "left", 590)),
            (t3, _answer(t3, None, 1700)),
        ])
        report = score_run(run, TASK_REGISTRY["attention_network"])
        assert report.factor_rts_ms["cue"]["none"] == (610, 590)
        assert report.factor_rts_ms["cue"]["center"] == ()
        assert report.factor_rt_ms["cue"]["none"] == pytest.approx(600.0)
        assert report.as_dict()["factor_rts_ms"]["cue"]["none"] == [610, 590]

    def test_report_cannot_be_edited(self):
        t0 = _ant_trial(0, "none", "congruent")
        run = _run("attention_network", [(t0, _answer(t0, "left", 450))])
        report = score_run(run, TASK_REGISTRY["attention_network"])
        with pytest.raises(TypeError):
            report.efficiencies["alerting"] = 999.0
        with pytest.raises(TypeError):
            report.factor_rt_ms["cue"]["none"] = 1.0
        with pytest.raises(TypeError):
            report.raw_effects_ms["executive"] = 1.0
        payload = report.as_dict()
        payload["efficiencies"]["alerting"] = 999.0
        assert report.efficiencies["alerting"] == pytest.approx(450.0)

    def test_empty_response_set(self):
        run = _run("stroop", [])
        report = score_run(run, TASK_REGISTRY["stroop"])
        assert report.total_trials == 0
        assert report.accuracy == 0.0
        assert report.mean_rt_ms == 0.0
        assert report.efficiencies == {"interference": 0.0}

    def test_as_dict_is_plain_data(self):
        t0 = _ant_trial(0, "none", "neutral")
        run = _run("attention_network", [(t0, _answer(t0, "left", 450))])
        payload = score_run(run, TASK_REGISTRY["attention_network"]).as_dict()
        assert payload["task_id"] == "attention_network"
        assert payload["detection"] is None
        assert payload["factor_rt_ms"]["flanking"]["neutral"] == 450.0
        assert type(payload["efficiencies"]) is dict
        assert json.loads(json.dumps(payload))["raw_effects_ms"]["alerting"] == 450.0


# ─────────────────────────────────────────────────────────────────────────────
# Detection
# ─────────────────────────────────────────────────────────────────────────────

class TestScoreDetectionRun:
    def test_counts_and_rates(self):
        trials = [
            _nback_trial(0, None),
            _nback_trial(1, None),
            _nback_trial(2, True),
            _nback_trial(3, True),
            _nback_trial(4, False),
            _nback_trial(5, False),
            _nback_trial(6, False),
            _nback_trial(7, False),
        ]
        answers = ["match", None, "match", None, "match", "nonmatch", None, None]
        run = _run("nback", [(t, _answer(t, a, 400)) for t, a in zip(trials, answers)])
        report = score_run(run, TASK_REGISTRY["nback"])
        d = report.detection
        assert d.lag == 2
        assert (d.hits, d.misses, d.false_alarms, d.correct_rejections) == (1, 1, 1, 3)
        assert d.hit_rate == 0.5
        assert d.false_alarm_rate == 0.25
        assert report.scored_trials == 6
        assert report.correct == 4
        assert report.accuracy == pytest.approx(4 / 6)
        # correct answered trials: the hit and the explicit "nonmatch"
        assert report.mean_rt_ms == 400.0

    def test_perfect_detection_is_clipped(self):
        trials = [_nback_trial(0, None), _nback_trial(1, True), _nback_trial(2, False)]
        answers = [None, "match", None]
        run = _run("nback", [(t, _answer(t, a, 300)) for t, a in zip(trials, answers)])
        d = score_run(run, TASK_REGISTRY["nback"]).detection
        assert d.d_prime == pytest.approx(2 * Z_CLIP)
        assert d.sensitivity == d.d_prime

    def test_no_targets_gives_zero_hit_rate(self):
        trials = [_nback_trial(0, None), _nback_trial(1, False), _nback_trial(2, False)]
        run = _run("nback", [(t, _answer(t, None, 2000)) for t in trials])
        d = score_run(run, TASK_REGISTRY["nback"]).detection
        assert d.hit_rate == 0.0
        assert d.false_alarm_rate == 0.0
        assert d.d_prime == 0.0
        assert d.sensitivity == 0.0
