from __future__ import annotations

import asyncio
import logging

from domain.models import Scene
from domain.ports.repositories import SceneRepository, SceneSink

logger = logging.getLogger(__name__)


class LatestSceneWriter(SceneSink):
    """Last-write-wins persistence of committed scenes.

    ``submit`` never waits for storage. While a save is in flight, newer
    submissions overwrite the single pending slot, so only the newest snapshot
    is written next. Without a running event loop the save happens inline.
    """

    def __init__(self, repository: SceneRepository, key: str) -> None:
        self._repository = repository
        self._key = key
        self._pending: Scene | None = None
        self._task: asyncio.Task[None] | None = None
        self.saved_count = 0
        self.failed_count = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def submit(self, scene: Scene) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save(scene)
            return
        self._pending = scene
        if self._task is None or self._task.done():
            self._task = loop.create_task(self._drain())

    async def flush(self) -> None:
        while self._task is not None and not self._task.done():
            await self._task
        if self._pending is not None:
            await self._drain()

    async def _drain(self) -> None:
        while self._pending is not None:
            scene, self._pending = self._pending, None
            try:
                await asyncio.to_thread(self._repository.save, scene, self._key)
            except Exception:
                self.failed_count += 1
                logger.exception("Failed to persist scene %s", self._key)
            else:
                self.saved_count += 1

    def _save(self, scene: Scene) -> None:
        try:
            self._repository.save(scene, self._key)
        except Exception:
            self.failed_count += 1
            logger.exception("Failed to persist scene %s", self._key)
        else:
            self.saved_count += 1
