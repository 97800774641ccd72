import pygame
from typing import Optional

from data.models import PhaseEvent, ProgressEvent
from battery.state_machine import PHASE_CUE, PHASE_FIXATION, PHASE_PRE_TARGET, PHASE_TARGET


class Renderer:
    """
    Draws the current phase as plain text: fixation cross, cue marker,
    arrow row, color word or grid cell number. No timing, no scoring.
    """

    def __init__(self, screen: pygame.Surface):
        self.screen = screen
        self.w, self.h = screen.get_size()

        self.font_big = pygame.font.SysFont(None, 72)
        self.font_small = pygame.font.SysFont(None, 28)

        self.center = (self.w // 2, self.h // 2)
        self.bg_color = (15, 15, 20)
        self.ui_color = (230, 230, 230)

        self.color_map = {
            "red": (220, 60, 60),
            "green": (60, 200, 120),
            "blue": (70, 120, 240),
            "yellow": (240, 210, 60),
            "purple": (170, 90, 210),
        }

    def clear(self) -> None:
        self.screen.fill(self.bg_color)

    def present(self) -> None:
        pygame.display.flip()

    def _text(self, text: str, pos, font=None, color=None) -> None:
        surf = (font or self.font_big).render(text, True, color or self.ui_color)
        self.screen.blit(surf, surf.get_rect(center=pos))

    def draw_progress(self, progress: Optional[ProgressEvent]) -> None:
        """Trial counter in the top-right corner."""
        if progress is None:
            return
        self._text(
            f"{progress.trial_index + 1} / {progress.total}",
            (self.w - 80, 30),
            font=self.font_small,
        )

    def draw_message(self, message: str) -> None:
        self._text(message, (self.center[0], self.h - 60), font=self.font_small)

    def draw_phase(self, event: Optional[PhaseEvent]) -> None:
        """Draw the stimulus descriptor of the current phase."""
        if event is None:
            return
        stim = event.stimulus
        cx, cy = self.center
        offset = self.h // 5

        if stim.get("fixation") and event.phase in (PHASE_FIXATION, PHASE_CUE, PHASE_PRE_TARGET, PHASE_TARGET):
            self._text("+", (cx, cy))

        if event.phase == PHASE_CUE:
            for location in stim.get("cue_locations", []):
                dy = {"above": -offset, "below": offset}.get(location, 0)
                self._text("*", (cx, cy + dy))

        if event.phase != PHASE_TARGET:
            return
        if "arrows" in stim:
            dy = -offset if stim.get("position") == "above" else offset
            self._text(stim["arrows"], (cx, cy + dy))
        elif "word" in stim:
            self._text(stim["word"], (cx, cy), color=self.color_map.get(stim["ink"], self.ui_color))
        elif "cell" in stim:
            self._text(f"[{stim['cell'] + 1}]", (cx, cy))
