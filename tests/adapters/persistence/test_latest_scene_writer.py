from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from adapters.persistence.latest_scene_writer import LatestSceneWriter
from domain.models import Scene
from tests.helpers.scene_fixtures import make_element, make_scene


class _MemoryRepository:
    def __init__(self, failures: int = 0) -> None:
        self.saved: list[tuple[str, Scene]] = []
        self._failures = failures

    def load(self, key: str) -> dict[str, Any]:
        raise FileNotFoundError(key)

    def save(self, scene: Scene, key: str) -> None:
        if self._failures:
            self._failures -= 1
            raise OSError("disk full")
        self.saved.append((key, scene))

    def list_keys(self) -> list[str]:
        return sorted({key for key, _ in self.saved})


def _scene(label: str) -> Scene:
    return make_scene([make_element(label)])


def test_submit_without_loop_saves_inline() -> None:
    repo = _MemoryRepository()
    writer = LatestSceneWriter(repo, "board")

    writer.submit(_scene("a"))

    assert repo.saved == [("board", _scene("a"))]
    assert writer.saved_count == 1


def test_burst_of_submissions_persists_only_newest() -> None:
    repo = _MemoryRepository()
    writer = LatestSceneWriter(repo, "board")

    async def scenario() -> None:
        for label in ("a", "b", "c"):
            writer.submit(_scene(label))
        assert writer.has_pending
        await writer.flush()

    asyncio.run(scenario())

    assert repo.saved == [("board", _scene("c"))]
    assert not writer.has_pending


def test_failed_save_is_logged_and_next_submission_still_persists(
    caplog: pytest.LogCaptureFixture,
) -> None:
    repo = _MemoryRepository(failures=1)
    writer = LatestSceneWriter(repo, "board")

    async def scenario() -> None:
        writer.submit(_scene("a"))
        await writer.flush()
        writer.submit(_scene("b"))
        await writer.flush()

    with caplog.at_level(logging.ERROR):
        asyncio.run(scenario())

    assert writer.failed_count == 1
    assert repo.saved == [("board", _scene("b"))]
    assert "Failed to persist scene board" in caplog.text
