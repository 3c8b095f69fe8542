from __future__ import annotations

from domain.models import Scene

DEFAULT_HISTORY_LIMIT = 100


class SceneHistory:
    """Bounded full-snapshot undo stack of committed scenes."""

    def __init__(self, initial: Scene, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._limit = max(1, limit)
        self._frames: list[Scene] = [initial]
        self._index = 0

    @property
    def current(self) -> Scene:
        return self._frames[self._index]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._frames) - 1

    def __len__(self) -> int:
        return len(self._frames)

    def push(self, scene: Scene) -> bool:
        if scene == self.current:
            return False
        frames = self._frames[: self._index + 1]
        frames.append(scene)
        if len(frames) > self._limit:
            frames = frames[-self._limit :]
        self._frames = frames
        self._index = len(frames) - 1
        return True

    def reset(self, scene: Scene) -> None:
        self._frames = [scene]
        self._index = 0

    def undo(self) -> Scene | None:
        if not self.can_undo:
            return None
        self._index -= 1
        return self.current

    def redo(self) -> Scene | None:
        if not self.can_redo:
            return None
        self._index += 1
        return self.current
