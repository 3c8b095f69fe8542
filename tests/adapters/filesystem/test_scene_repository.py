from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from adapters.filesystem.scene_repository import FileSystemSceneRepository
from domain.models import RelationType, Viewport
from domain.services.scene_mapper import load_scene
from tests.helpers.scene_fixtures import make_container, make_element, make_scene, relation


def test_save_then_load_round_trips_scene(tmp_path: Path) -> None:
    repo = FileSystemSceneRepository(tmp_path / "scenes")
    scene = make_scene(
        [make_container("c"), make_element("r", x=5, y=5, z_index=1)],
        [relation(RelationType.PARENT, "r", "c")],
        Viewport(x=3, y=4, zoom=0.5),
    )

    repo.save(scene, "board")

    assert load_scene(repo.load("board")) == scene
    assert repo.list_keys() == ["board"]
    raw = orjson.loads((tmp_path / "scenes" / "board.json").read_bytes())
    assert raw["elements"][1]["zIndex"] == 1
    assert raw["relations"][0]["fromId"] == "r"
    assert not (tmp_path / "scenes" / "board.json.tmp").exists()


def test_overwrite_replaces_previous_scene(tmp_path: Path) -> None:
    repo = FileSystemSceneRepository(tmp_path)
    repo.save(make_scene([make_element("a")]), "board")

    repo.save(make_scene([make_element("b")]), "board")

    assert [item["id"] for item in repo.load("board")["elements"]] == ["b"]


def test_missing_scene_raises_file_not_found(tmp_path: Path) -> None:
    repo = FileSystemSceneRepository(tmp_path)

    with pytest.raises(FileNotFoundError):
        repo.load("nothing")
    assert FileSystemSceneRepository(tmp_path / "absent").list_keys() == []


@pytest.mark.parametrize("key", ["", "../escape", "a/b", ".hidden"])
def test_unsafe_keys_are_rejected(tmp_path: Path, key: str) -> None:
    with pytest.raises(ValueError):
        FileSystemSceneRepository(tmp_path).path_for(key)
