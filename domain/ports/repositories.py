from __future__ import annotations

from typing import Any, Protocol

from domain.models import Scene


class SceneRepository(Protocol):
    def load(self, key: str) -> dict[str, Any]: ...

    def save(self, scene: Scene, key: str) -> None: ...

    def list_keys(self) -> list[str]: ...


class SceneSink(Protocol):
    def submit(self, scene: Scene) -> None: ...
