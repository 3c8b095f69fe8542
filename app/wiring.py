from __future__ import annotations

from adapters.filesystem.scene_repository import FileSystemSceneRepository
from adapters.persistence.latest_scene_writer import LatestSceneWriter
from adapters.pointer.window_scope import WindowPointerScope
from adapters.s3.scene_repository import S3SceneRepository
from app.config import AppSettings
from domain.ports.repositories import SceneRepository
from domain.services.interaction import InteractionController
from domain.services.scene_mapper import create_default_scene, load_scene


def build_scene_repository(settings: AppSettings) -> SceneRepository:
    if settings.canvas.storage == "s3":
        s3 = settings.canvas.s3
        if not s3.bucket:
            msg = "canvas.s3.bucket is required when storage is s3"
            raise ValueError(msg)
        return S3SceneRepository.from_settings(s3)
    return FileSystemSceneRepository(settings.canvas.scenes_dir)


def open_editing_session(
    settings: AppSettings,
    repository: SceneRepository,
    key: str,
) -> tuple[InteractionController, WindowPointerScope, LatestSceneWriter]:
    try:
        scene = load_scene(repository.load(key))
    except FileNotFoundError:
        scene = create_default_scene()
    scope = WindowPointerScope()
    writer = LatestSceneWriter(repository, key)
    controller = InteractionController(
        scene,
        scope=scope,
        sink=writer,
        config=settings.canvas.to_controller_config(),
    )
    return controller, scope, writer
