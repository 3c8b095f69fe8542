from __future__ import annotations

import logging

from domain.models import PointerEvent
from domain.ports.pointer import PointerHandler, PointerListenerScope

logger = logging.getLogger(__name__)


class WindowPointerScope(PointerListenerScope):
    """Window-level pointer capture.

    The host forwards every window pointer move/up here, including events that
    land outside the canvas surface. Events are dropped while nothing is attached.
    """

    def __init__(self) -> None:
        self._on_move: PointerHandler | None = None
        self._on_up: PointerHandler | None = None
        self.attach_count = 0
        self.detach_count = 0

    @property
    def is_attached(self) -> bool:
        return self._on_up is not None

    def attach(self, on_move: PointerHandler, on_up: PointerHandler) -> None:
        if self.is_attached:
            logger.debug("Replacing already attached window pointer listeners")
        self._on_move = on_move
        self._on_up = on_up
        self.attach_count += 1

    def detach(self) -> None:
        if not self.is_attached:
            return
        self._on_move = None
        self._on_up = None
        self.detach_count += 1

    def dispatch_move(self, event: PointerEvent) -> None:
        if self._on_move is not None:
            self._on_move(event)

    def dispatch_up(self, event: PointerEvent) -> None:
        if self._on_up is not None:
            self._on_up(event)
