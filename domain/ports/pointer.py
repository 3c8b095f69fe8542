from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from domain.models import PointerEvent

PointerHandler = Callable[[PointerEvent], None]


class PointerListenerScope(Protocol):
    def attach(self, on_move: PointerHandler, on_up: PointerHandler) -> None: ...

    def detach(self) -> None: ...

    @property
    def is_attached(self) -> bool: ...
