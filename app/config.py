from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from domain.services.eraser import ERASER_DEFAULT_SIZE, EraserMode
from domain.services.history import DEFAULT_HISTORY_LIMIT
from domain.services.interaction import ControllerConfig

DEFAULT_CONFIG_PATH = Path("config/canvas/app.yaml")


class S3Settings(BaseModel):
    bucket: str = ""
    prefix: str = ""
    region: str | None = None
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    use_path_style: bool = False


class CanvasSettings(BaseModel):
    title: str = "Whiteboard Canvas"
    storage: Literal["filesystem", "s3"] = "filesystem"
    scenes_dir: Path = Path("data/scenes")
    s3: S3Settings = S3Settings()
    max_scene_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=1)
    group_padding: float = Field(default=40.0, ge=0)
    min_element_width: float = Field(default=120.0, gt=0)
    min_element_height: float = Field(default=80.0, gt=0)
    eraser_mode: EraserMode = EraserMode.WHOLE_STROKE
    eraser_size: float = ERASER_DEFAULT_SIZE

    @field_validator("storage", mode="before")
    @classmethod
    def normalize_storage(cls, value: object) -> str:
        return str(value).strip().lower() if value else "filesystem"

    @field_validator("eraser_mode", mode="before")
    @classmethod
    def normalize_eraser_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper().replace("-", "_")
        return value

    def to_controller_config(self) -> ControllerConfig:
        return ControllerConfig(
            min_element_width=self.min_element_width,
            min_element_height=self.min_element_height,
            group_padding=self.group_padding,
            history_limit=self.history_limit,
            eraser_mode=self.eraser_mode,
            eraser_size=self.eraser_size,
        )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CANVAS_", env_nested_delimiter="__")

    canvas: CanvasSettings = CanvasSettings()

    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("CANVAS_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
