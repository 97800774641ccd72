import logging
import uuid
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from config.settings import ConfigError, PhaseTimings
from data.models import (
    RUN_CANCELLED,
    RUN_COMPLETE,
    PhaseEvent,
    ProgressEvent,
    RecordedResponse,
    RunState,
    TrialSpec,
)
from battery.recorder import ResponseRecorder
from battery.scheduler import Scheduler, Timer

logger = logging.getLogger(__name__)


PHASE_IDLE = "IDLE"
PHASE_FIXATION = "FIXATION"      # fixation cross only
PHASE_CUE = "CUE"                # warning / spatial cue
PHASE_PRE_TARGET = "PRE_TARGET"  # gap completing the cue-target interval
PHASE_TARGET = "TARGET"          # stimulus on screen, response window open
PHASE_ITI = "ITI"                # inter-trial interval
PHASE_COMPLETE = "COMPLETE"
PHASE_CANCELLED = "CANCELLED"

# ITI wraps around to the next trial's FIXATION (or COMPLETE after the last one)
NEXT_PHASE = {
    PHASE_FIXATION: PHASE_CUE,
    PHASE_CUE: PHASE_PRE_TARGET,
    PHASE_PRE_TARGET: PHASE_TARGET,
    PHASE_TARGET: PHASE_ITI,
    PHASE_ITI: PHASE_FIXATION,
}

SKIPPABLE_PHASES = (PHASE_FIXATION, PHASE_CUE, PHASE_PRE_TARGET)


def has_cue(trial: TrialSpec, timings: PhaseTimings) -> bool:
    """True when the trial shows a cue: a cue level other than "none" and a non-zero cue duration."""
    cue = trial.level("cue")
    return cue is not None and cue != "none" and timings.cue_ms > 0


def phase_duration(phase: str, trial: TrialSpec, timings: PhaseTimings) -> int:
    """
    How long ``phase`` lasts for this trial, in ms.

    The cue-target interval is measured from cue onset, so PRE_TARGET is
    whatever is left of it after the cue (or all of it without a cue).
    A duration of 0 means the phase is skipped.
    """
    if phase == PHASE_FIXATION:
        return timings.fixation_ms
    if phase == PHASE_CUE:
        return timings.cue_ms if has_cue(trial, timings) else 0
    if phase == PHASE_PRE_TARGET:
        if has_cue(trial, timings):
            return timings.cue_target_interval_ms - timings.cue_ms
        return timings.cue_target_interval_ms
    if phase == PHASE_TARGET:
        return timings.target_ms
    if phase == PHASE_ITI:
        return timings.iti_ms
    raise ValueError(f"Unknown phase: {phase}")


def phase_plan(trial: TrialSpec, timings: PhaseTimings) -> List[str]:
    """Phases the trial will actually pass through, in order."""
    plan = []
    phase = PHASE_FIXATION
    while True:
        if phase not in SKIPPABLE_PHASES or phase_duration(phase, trial, timings) > 0:
            plan.append(phase)
        if phase == PHASE_ITI:
            return plan
        phase = NEXT_PHASE[phase]


class PresentationTimeline:
    """
    Runs a list of trials phase by phase on a Scheduler.

    Every phase entry schedules exactly one timer; when it fires the machine
    looks up the next phase in NEXT_PHASE and enters it. Timers carry the run
    token, trial index and phase they were scheduled for, so a callback left
    over from a cancelled or finished run does nothing.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        recorder: ResponseRecorder,
        timings: PhaseTimings,
        describe: Optional[Callable[[TrialSpec, str], Dict[str, Any]]] = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        on_phase: Optional[Callable[[PhaseEvent], None]] = None,
        on_run_complete: Optional[Callable[[RunState], None]] = None,
    ) -> None:
        self.scheduler = scheduler
        self.recorder = recorder
        self.timings = timings
        self.describe = describe
        self.on_progress = on_progress
        self.on_phase = on_phase
        self.on_run_complete = on_run_complete

        self.run: Optional[RunState] = None
        self.phase: str = PHASE_IDLE
        self.phase_started_ms: int = 0
        self._timer: Optional[Timer] = None

    # ------------------------------------------------------------------
    # Host-facing API
    # ------------------------------------------------------------------

    def start(self, trials: List[TrialSpec], task_id: str) -> RunState:
        """
        Begin a new run at the scheduler's current time.

        An active run is cancelled first. Raises ConfigError for an empty trial
        list or invalid timings before anything is scheduled.
        """
        if not trials:
            raise ConfigError("Cannot start a run without trials")
        self.timings.validate()
        if self.run is not None and self.run.is_active:
            self.cancel()

        now_ms = self.scheduler.now_ms
        self.run = RunState(
            run_id=uuid.uuid4().hex,
            task_id=task_id,
            trials=tuple(trials),
            started_ms=now_ms,
        )
        logger.info("Run %s started: %s, %d trials", self.run.run_id, task_id, len(trials))
        self._enter(self._first_phase(PHASE_FIXATION), trial_start=True)
        return self.run

    def submit(self, response: str, now_ms: Optional[int] = None) -> Optional[RecordedResponse]:
        """
        Forward a response to the recorder.

        With ``now_ms`` the clock is first advanced to that time, so a timeout
        due at or before the key press wins. Returns the RecordedResponse or
        None when the input was ignored.
        """
        if now_ms is not None:
            # let any timer due by now (including the window timeout) fire first
            self.scheduler.advance_to(now_ms)
        if self.run is None or not self.run.is_active:
            return None
        return self.recorder.submit(response, self.scheduler.now_ms)

    def cancel(self) -> None:
        """Stop the active run: drop its timer, close the window unrecorded, mark it cancelled."""
        run = self.run
        if run is None or not run.is_active:
            return
        if self._timer is not None:
            self.scheduler.cancel(self._timer)
            self._timer = None
        self.recorder.abandon()
        run.status = RUN_CANCELLED
        self.phase = PHASE_CANCELLED
        logger.info("Run %s cancelled at trial %d/%d", run.run_id, run.current_index, run.total)

    def get_phase(self) -> str:
        """Current phase name (IDLE before the first run)."""
        return self.phase

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _first_phase(self, phase: str) -> str:
        trial = self.run.current_trial
        while phase in SKIPPABLE_PHASES and phase_duration(phase, trial, self.timings) == 0:
            phase = NEXT_PHASE[phase]
        return phase

    def _enter(self, phase: str, trial_start: bool = False) -> None:
        """
        Enter ``phase`` for the current trial.

        1) notify listeners (progress on a trial's first phase, then the phase event)
        2) open the response window when the phase is TARGET
        3) schedule the single timer that ends the phase
        """
        run = self.run
        trial = run.current_trial
        now_ms = self.scheduler.now_ms
        duration = phase_duration(phase, trial, self.timings)

        self.phase = phase
        self.phase_started_ms = now_ms
        logger.debug("Run %s trial %d: %s for %d ms", run.run_id, trial.trial_index, phase, duration)

        if trial_start and self.on_progress is not None:
            self.on_progress(ProgressEvent(run.run_id, trial.trial_index, run.total))
        if self.on_phase is not None:
            stimulus = self.describe(trial, phase) if self.describe is not None else {}
            self.on_phase(PhaseEvent(run.run_id, trial.trial_index, phase, now_ms, duration, stimulus))
        if self.run is not run or not run.is_active:
            # a listener aborted or replaced the run
            return

        if phase == PHASE_TARGET:
            self.recorder.open_window(trial, now_ms, duration, partial(self._on_recorded, run.run_id))

        self._timer = self.scheduler.call_later(
            duration, self._on_phase_elapsed, run.run_id, trial.trial_index, phase
        )

    def _advance(self) -> None:
        """Leave the current phase; after ITI move to the next trial or complete the run."""
        run = self.run
        current = self.phase

        if current == PHASE_TARGET and len(run.responses) != run.current_index + 1:
            raise RuntimeError(f"Trial {run.current_index} left TARGET without a recorded response")

        if current == PHASE_ITI:
            run.current_index += 1
            if run.current_index >= run.total:
                self._complete()
                return
            self._enter(self._first_phase(PHASE_FIXATION), trial_start=True)
            return

        self._enter(self._first_phase(NEXT_PHASE[current]))

    def _on_phase_elapsed(self, run_id: str, trial_index: int, phase: str) -> None:
        run = self.run
        if run is None or run.run_id != run_id or not run.is_active:
            logger.debug("Dropping stale timer for run %s", run_id)
            return
        if run.current_index != trial_index or self.phase != phase:
            logger.debug("Dropping stale timer for trial %d %s", trial_index, phase)
            return

        self._timer = None
        if phase == PHASE_TARGET and self.recorder.is_open:
            self.recorder.expire(self.scheduler.now_ms)
        self._advance()

    def _on_recorded(self, run_id: str, recorded: RecordedResponse) -> None:
        """Recorder callback: store the response and, if configured, cut TARGET short."""
        run = self.run
        if run is None or run.run_id != run_id or not run.is_active:
            return
        run.append_response(recorded)

        if recorded.response is None:
            # timeout: the TARGET timer is already advancing the machine
            return
        if self.timings.advance_on_response and self.phase == PHASE_TARGET:
            if self._timer is not None:
                self.scheduler.cancel(self._timer)
                self._timer = None
            self._advance()

    def _complete(self) -> None:
        run = self.run
        run.status = RUN_COMPLETE
        self.phase = PHASE_COMPLETE
        self._timer = None
        logger.info("Run %s complete: %d responses", run.run_id, len(run.responses))
        if self.on_run_complete is not None:
            self.on_run_complete(run)
