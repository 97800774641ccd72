import pytest

from data.models import RUN_RUNNING, RecordedResponse, RunState, TrialSpec


def _trial(index):
    return TrialSpec(
        trial_index=index,
        task_id="stroop",
        factors=(("word", "RED"), ("ink", "blue")),
        expected_response="blue",
    )


def _response(trial, response="blue", rt=500):
    return RecordedResponse(
        trial=trial,
        response=response,
        correct=response == trial.expected_response,
        reaction_time_ms=rt,
        responded_at_ms=rt,
    )


class TestRunState:
    def _run(self, n=3):
        return RunState(run_id="r1", task_id="stroop", trials=tuple(_trial(i) for i in range(n)), started_ms=0)

    def test_new_run_state(self):
        run = self._run()
        assert run.status == RUN_RUNNING
        assert run.is_active
        assert run.total == 3
        assert run.current_trial.trial_index == 0

    def test_append_in_order(self):
        run = self._run()
        run.append_response(_response(run.trials[0]))
        run.current_index = 1
        run.append_response(_response(run.trials[1], None, 3000))
        assert [r.trial.trial_index for r in run.responses] == [0, 1]

    def test_response_for_a_later_trial_is_rejected(self):
        run = self._run()
        with pytest.raises(RuntimeError):
            run.append_response(_response(run.trials[2]))
        assert run.responses == []

    def test_second_response_for_same_trial_is_rejected(self):
        run = self._run()
        run.append_response(_response(run.trials[0]))
        with pytest.raises(RuntimeError):
            run.append_response(_response(run.trials[0], "red", 600))
        assert len(run.responses) == 1

    def test_current_trial_past_the_end(self):
        run = self._run(1)
        run.current_index = 1
        assert run.current_trial is None


class TestTrialSpec:
    def test_level_reads_factors_then_conditions(self):
        trial = TrialSpec(
            trial_index=0,
            task_id="stroop",
            factors=(("word", "RED"), ("ink", "red")),
            expected_response="red",
            conditions=(("congruency", "congruent"),),
        )
        assert trial.level("ink") == "red"
        assert trial.level("congruency") == "congruent"
        assert trial.level("cue") is None
        assert trial.combination() == ("RED", "red")
