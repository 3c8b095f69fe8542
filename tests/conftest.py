from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from app.config import AppSettings, CanvasSettings, S3Settings


def _clear_canvas_env() -> None:
    for key in list(os.environ):
        if key.startswith("CANVAS_"):
            os.environ.pop(key, None)


_clear_canvas_env()


@pytest.fixture(autouse=True)
def clear_canvas_env() -> Generator[None, None, None]:
    _clear_canvas_env()
    yield
    _clear_canvas_env()


@pytest.fixture
def s3_settings() -> S3Settings:
    return S3Settings(
        bucket="canvas-bucket",
        prefix="scenes/",
        region="us-east-1",
        endpoint_url="http://stubbed-s3.local",
        access_key_id="test",
        secret_access_key="test",
        session_token=None,
        use_path_style=True,
    )


@pytest.fixture
def canvas_settings(tmp_path: Path, s3_settings: S3Settings) -> CanvasSettings:
    return CanvasSettings(
        title="Test Canvas",
        storage="filesystem",
        scenes_dir=tmp_path / "scenes",
        s3=s3_settings,
        max_scene_bytes=64 * 1024,
    )


@pytest.fixture
def canvas_settings_factory(
    canvas_settings: CanvasSettings,
) -> Callable[..., CanvasSettings]:
    def _factory(**overrides: object) -> CanvasSettings:
        return canvas_settings.model_copy(update=overrides)

    return _factory


@pytest.fixture
def app_settings(canvas_settings: CanvasSettings) -> AppSettings:
    return AppSettings(canvas=canvas_settings)


@pytest.fixture
def app_settings_factory(
    canvas_settings_factory: Callable[..., CanvasSettings],
) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        return AppSettings(canvas=canvas_settings_factory(**overrides))

    return _factory
