import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional

from data.models import RecordedResponse, TrialSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseWindow:
    """Interval [onset_ms, onset_ms + duration_ms) in which one trial accepts a response."""
    trial: TrialSpec
    onset_ms: int
    duration_ms: int
    on_record: Callable[[RecordedResponse], None]

    @property
    def closes_at_ms(self) -> int:
        return self.onset_ms + self.duration_ms

    def accepts(self, now_ms: int) -> bool:
        # closing instant belongs to the timeout
        return self.onset_ms <= now_ms < self.closes_at_ms


class ResponseRecorder:
    """
    Captures at most one response per trial.

    The recorder only states facts: what was pressed, when, and whether it
    equals the trial's expected response. A missing response is always
    recorded as incorrect; hit/miss/correct-rejection is decided when scoring.
    """

    def __init__(self, valid_responses: Iterable[str]) -> None:
        self.valid_responses: FrozenSet[str] = frozenset(valid_responses)
        self._window: Optional[ResponseWindow] = None

    @property
    def is_open(self) -> bool:
        """True from open_window() until a response, a timeout or abandon()."""
        return self._window is not None

    @property
    def window(self) -> Optional[ResponseWindow]:
        return self._window

    def open_window(
        self,
        trial: TrialSpec,
        onset_ms: int,
        duration_ms: int,
        on_record: Callable[[RecordedResponse], None],
    ) -> None:
        """
        Start accepting a response for ``trial``.

        on_record is called exactly once: with the submitted response or with
        the timeout record from expire(). Opening a second window while one is
        still open is a programming error.
        """
        if self._window is not None:
            raise RuntimeError(f"Response window for trial {self._window.trial.trial_index} still open")
        self._window = ResponseWindow(trial, onset_ms, duration_ms, on_record)

    def submit(self, response: str, now_ms: int) -> Optional[RecordedResponse]:
        """
        Record ``response`` if the open window accepts it at ``now_ms``.

        Returns None (and changes nothing) when:
        - no window is open
        - the value is not a valid response for this test
        - now_ms is before onset, or at/after the window close
        """
        window = self._window
        if window is None:
            logger.debug("Ignoring %r: no open response window", response)
            return None
        if response not in self.valid_responses:
            logger.debug("Ignoring %r: not a valid response", response)
            return None
        if not window.accepts(now_ms):
            logger.debug("Ignoring %r at %s: window is [%s, %s)", response, now_ms, window.onset_ms, window.closes_at_ms)
            return None

        recorded = RecordedResponse(
            trial=window.trial,
            response=response,
            correct=response == window.trial.expected_response,
            reaction_time_ms=now_ms - window.onset_ms,
            responded_at_ms=now_ms,
        )
        self._close(recorded)
        return recorded

    def expire(self, now_ms: int) -> Optional[RecordedResponse]:
        """
        Close the window with a null response.

        RT is the full window duration and the record is always incorrect;
        whether silence was a miss or a correct rejection is decided when scoring.
        """
        window = self._window
        if window is None:
            return None
        recorded = RecordedResponse(
            trial=window.trial,
            response=None,
            correct=False,
            reaction_time_ms=window.duration_ms,
            responded_at_ms=now_ms,
        )
        self._close(recorded)
        return recorded

    def abandon(self) -> None:
        """Close the window without recording anything (run aborted)."""
        self._window = None

    def _close(self, recorded: RecordedResponse) -> None:
        window = self._window
        self._window = None
        window.on_record(recorded)
