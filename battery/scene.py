import logging
import random
from typing import Callable, List, Optional

from config.settings import BatterySettings
from data.models import PhaseEvent, ProgressEvent, RecordedResponse, RunState, ScoreReport
from battery.recorder import ResponseRecorder
from battery.scheduler import Scheduler
from battery.state_machine import PresentationTimeline
from battery.tasks import get_task
from scoring.metrics import score_run

logger = logging.getLogger(__name__)


class AssessmentSession:
    """
    One test as the host sees it.

    Ties together:
    - trial generation (task catalogue + trial_generator)
    - the presentation timeline and its response recorder
    - scoring once the last trial is done

    The host pushes clock ticks through update() and key presses through
    submit(); it listens on on_progress / on_phase / on_complete.
    """

    def __init__(
        self,
        task_id: str,
        settings: Optional[BatterySettings] = None,
        scheduler: Optional[Scheduler] = None,
        seed: Optional[int] = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
        on_phase: Optional[Callable[[PhaseEvent], None]] = None,
        on_complete: Optional[Callable[[ScoreReport], None]] = None,
    ):
        self.task = get_task(task_id)
        self.settings = settings or BatterySettings()
        self.config = self.settings.for_task(task_id)
        self.scheduler = scheduler or Scheduler()
        self.seed = seed if seed is not None else self.settings.seed
        self.on_complete = on_complete

        self.recorder = ResponseRecorder(self.task.responses(self.config))
        self.timeline = PresentationTimeline(
            scheduler=self.scheduler,
            recorder=self.recorder,
            timings=self.config.timings,
            describe=self.task.describe,
            on_progress=on_progress,
            on_phase=on_phase,
            on_run_complete=self._on_run_complete,
        )
        self.report: Optional[ScoreReport] = None

    def start(self, now_ms: Optional[int] = None) -> RunState:
        """
        Generate a fresh trial list and start running it.

        Any ConfigError surfaces here, before a single timer is scheduled.
        """
        if now_ms is not None:
            self.scheduler.advance_to(now_ms)
        self.config.timings.validate()
        rng = random.Random(self.seed)
        trials = self.task.build(self.config, rng)
        self.report = None
        return self.timeline.start(trials, self.task.task_id)

    def update(self, now_ms: int) -> None:
        """Advance the clock to now_ms, firing every phase change due by then."""
        self.scheduler.advance_to(now_ms)

    def submit(self, response: str, now_ms: Optional[int] = None) -> Optional[RecordedResponse]:
        """Submit a response value; see PresentationTimeline.submit()."""
        return self.timeline.submit(response, now_ms)

    def cancel(self) -> None:
        """Abort the run. No report is produced."""
        self.timeline.cancel()

    @property
    def run(self) -> Optional[RunState]:
        """The current (or last) RunState, None before start()."""
        return self.timeline.run

    @property
    def phase(self) -> str:
        return self.timeline.get_phase()

    def is_finished(self) -> bool:
        """True once the run has completed or been cancelled."""
        run = self.timeline.run
        return run is not None and not run.is_active

    def get_results(self) -> List[RecordedResponse]:
        """Copy of the responses recorded so far, in trial order."""
        run = self.timeline.run
        return list(run.responses) if run is not None else []

    def _on_run_complete(self, run: RunState) -> None:
        """Score the finished run once and hand the report to the host."""
        self.report = score_run(run, self.task)
        logger.info(
            "Run %s scored: accuracy=%.3f mean_rt=%.1f",
            run.run_id,
            self.report.accuracy,
            self.report.mean_rt_ms,
        )
        if self.on_complete is not None:
            self.on_complete(self.report)
