from typing import Dict, Optional

import pygame

from battery.tasks import MATCH, NONMATCH, TASK_ATTENTION, TASK_NBACK, TASK_STROOP


# Keyboard layouts per test: pygame key -> response value
KEYMAPS: Dict[str, Dict[int, str]] = {
    TASK_ATTENTION: {
        pygame.K_f: "left",
        pygame.K_LEFT: "left",
        pygame.K_j: "right",
        pygame.K_RIGHT: "right",
    },
    TASK_STROOP: {
        pygame.K_r: "red",
        pygame.K_b: "blue",
        pygame.K_g: "green",
        pygame.K_y: "yellow",
        pygame.K_p: "purple",
    },
    TASK_NBACK: {
        pygame.K_f: MATCH,
        pygame.K_j: NONMATCH,
    },
}


class InputManager:
    """
    Translates pygame KEYDOWN events into response values for one test.

    Nothing is queued: a key press is either a response right now or it is
    dropped. Whether the response window is open is the recorder's business.
    """

    def __init__(self, task_id: str):
        self.key_to_response = KEYMAPS[task_id]

    def read_response(self, event) -> Optional[str]:
        """Response value for a mapped KEYDOWN, otherwise None."""
        if event.type != pygame.KEYDOWN:
            return None
        return self.key_to_response.get(event.key)

    @staticmethod
    def is_abort(event) -> bool:
        """Window closed or Escape pressed."""
        if event.type == pygame.QUIT:
            return True
        return event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE
