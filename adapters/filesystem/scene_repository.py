from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from filelock import FileLock

from adapters.filesystem.json_utils import dump_scene_bytes, load_json, write_bytes_atomic
from domain.models import Scene
from domain.ports.repositories import SceneRepository

SCENE_SUFFIX = ".json"
_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def validate_scene_key(key: str) -> str:
    normalized = str(key or "").strip()
    if not _KEY_PATTERN.match(normalized) or ".." in normalized:
        msg = f"Invalid scene key: {key!r}"
        raise ValueError(msg)
    return normalized


class FileSystemSceneRepository(SceneRepository):
    def __init__(self, root: Path) -> None:
        self._root = root

    def path_for(self, key: str) -> Path:
        return self._root / f"{validate_scene_key(key)}{SCENE_SUFFIX}"

    def load(self, key: str) -> dict[str, Any]:
        path = self.path_for(key)
        if not path.exists():
            raise FileNotFoundError(path)
        return load_json(path)

    def save(self, scene: Scene, key: str) -> None:
        path = self.path_for(key)
        lock_path = path.with_suffix(f"{path.suffix}.lock")
        path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(str(lock_path)):
            write_bytes_atomic(path, dump_scene_bytes(scene))

    def list_keys(self) -> list[str]:
        if not self._root.exists():
            return []
        return sorted(
            path.stem
            for path in self._root.iterdir()
            if path.is_file() and path.suffix == SCENE_SUFFIX
        )
