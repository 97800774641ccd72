import logging
from typing import Optional

import pygame

from config.settings import BatterySettings
from data.models import PhaseEvent, ProgressEvent, ScoreReport
from battery.input import InputManager
from battery.renderer import Renderer
from battery.scene import AssessmentSession
from battery.scheduler import Scheduler

logger = logging.getLogger(__name__)


class BatteryApp:
    """pygame host: real clock and keyboard in, text frames out."""

    def __init__(self, settings: BatterySettings, task_id: str, seed: Optional[int] = None) -> None:
        pygame.init()
        window = settings.window
        self.screen = pygame.display.set_mode((window.width, window.height))
        pygame.display.set_caption(window.title)
        self.clock = pygame.time.Clock()
        self.fps = window.fps

        self.renderer = Renderer(self.screen)
        self.input = InputManager(task_id)
        self.progress: Optional[ProgressEvent] = None
        self.phase_event: Optional[PhaseEvent] = None
        self.report: Optional[ScoreReport] = None

        self.session = AssessmentSession(
            task_id,
            settings=settings,
            scheduler=Scheduler(now_ms=pygame.time.get_ticks()),
            seed=seed,
            on_progress=self._on_progress,
            on_phase=self._on_phase,
            on_complete=self._on_complete,
        )

    def run(self) -> Optional[ScoreReport]:
        """Run the test to the end; returns the report, or None if aborted."""
        try:
            self._loop()
        finally:
            pygame.quit()
        return self.report

    def _loop(self) -> None:
        self.session.start()
        running = True
        while running:
            self.clock.tick(self.fps)
            now_ms = pygame.time.get_ticks()

            for event in pygame.event.get():
                if self.input.is_abort(event):
                    self.session.cancel()
                    running = False
                    break
                response = self.input.read_response(event)
                if response is not None:
                    self.session.submit(response, now_ms)

            self.session.update(now_ms)
            self._render()

            if self.session.is_finished():
                running = False

    def _render(self) -> None:
        self.renderer.clear()
        self.renderer.draw_progress(self.progress)
        self.renderer.draw_phase(self.phase_event)
        if self.progress is None or self.progress.trial_index == 0:
            self.renderer.draw_message(self.session.task.label)
        self.renderer.present()

    def _on_progress(self, event: ProgressEvent) -> None:
        self.progress = event

    def _on_phase(self, event: PhaseEvent) -> None:
        self.phase_event = event

    def _on_complete(self, report: ScoreReport) -> None:
        self.report = report
