"""Unit tests for the response window and response recording."""
import pytest

from data.models import TrialSpec
from battery.recorder import ResponseRecorder


def _trial(expected="left", index=0):
    return TrialSpec(
        trial_index=index,
        task_id="attention_network",
        factors=(("direction", expected),),
        expected_response=expected,
    )


class TestResponseRecorder:
    def _open(self, onset=1000, duration=1700, expected="left"):
        recorder = ResponseRecorder(["left", "right"])
        recorded = []
        recorder.open_window(_trial(expected), onset, duration, recorded.append)
        return recorder, recorded

    def test_submit_without_window_is_ignored(self):
        recorder = ResponseRecorder(["left", "right"])
        assert recorder.submit("left", 500) is None

    def test_submit_at_onset_records_zero_rt(self):
        recorder, recorded = self._open(onset=1000)
        result = recorder.submit("left", 1000)
        assert result is not None
        assert result.reaction_time_ms == 0
        assert recorded == [result]

    def test_reaction_time_relative_to_onset(self):
        recorder, _ = self._open(onset=1000)
        result = recorder.submit("right", 1432)
        assert result.reaction_time_ms == 432
        assert result.correct is False

    def test_correct_when_matching_expected(self):
        recorder, _ = self._open(expected="right")
        assert recorder.submit("right", 1200).correct is True

    def test_submit_at_window_close_is_rejected(self):
        recorder, recorded = self._open(onset=1000, duration=1700)
        assert recorder.submit("left", 2700) is None
        assert recorded == []
        assert recorder.is_open

    def test_submit_before_onset_is_rejected(self):
        recorder, recorded = self._open(onset=1000)
        assert recorder.submit("left", 999) is None
        assert recorded == []

    def test_invalid_value_keeps_window_open(self):
        recorder, recorded = self._open()
        assert recorder.submit("up", 1100) is None
        assert recorder.is_open
        assert recorder.submit("left", 1200) is not None
        assert len(recorded) == 1

    def test_only_first_response_is_recorded(self):
        recorder, recorded = self._open()
        recorder.submit("left", 1100)
        assert recorder.submit("right", 1150) is None
        assert len(recorded) == 1
        assert not recorder.is_open

    def test_expire_records_null_response_with_full_duration(self):
        recorder, recorded = self._open(onset=1000, duration=1700)
        result = recorder.expire(2700)
        assert result.response is None
        assert result.is_timeout
        assert result.correct is False
        assert result.reaction_time_ms == 1700
        assert recorded == [result]

    def test_expire_after_response_does_nothing(self):
        recorder, recorded = self._open()
        recorder.submit("left", 1100)
        assert recorder.expire(2700) is None
        assert len(recorded) == 1

    def test_abandon_records_nothing(self):
        recorder, recorded = self._open()
        recorder.abandon()
        assert not recorder.is_open
        assert recorder.submit("left", 1100) is None
        assert recorded == []

    def test_opening_twice_is_a_programming_error(self):
        recorder, _ = self._open()
        with pytest.raises(RuntimeError):
            recorder.open_window(_trial(index=1), 3000, 1700, lambda r: None)
