from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import cast

import orjson
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import ORJSONResponse
from pydantic import ValidationError

from adapters.filesystem.scene_repository import validate_scene_key
from app.config import AppSettings, load_settings
from app.wiring import build_scene_repository
from domain.errors import SceneValidationError
from domain.models import Scene
from domain.ports.repositories import SceneRepository
from domain.services.extract_scene_view import extract_scene_view
from domain.services.scene_mapper import (
    create_default_scene,
    load_scene,
    map_scene_to_state,
    validate_scene,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanvasContext:
    settings: AppSettings
    scene_repo: SceneRepository


def create_app(settings: AppSettings, scene_repo: SceneRepository | None = None) -> FastAPI:
    app = FastAPI(title=settings.canvas.title)
    app.state.context = CanvasContext(
        settings=settings,
        scene_repo=scene_repo or build_scene_repository(settings),
    )

    @app.get("/health")
    def health() -> ORJSONResponse:
        return ORJSONResponse({"status": "ok"})

    @app.get("/api/scenes")
    def api_list_scenes(context: CanvasContext = Depends(get_context)) -> ORJSONResponse:
        return ORJSONResponse({"scenes": context.scene_repo.list_keys()})

    @app.get("/api/scenes/{scene_id}")
    def api_scene(
        scene_id: str,
        context: CanvasContext = Depends(get_context),
    ) -> ORJSONResponse:
        return ORJSONResponse(read_scene(context, scene_id).to_dict())

    @app.get("/api/scenes/{scene_id}/graph")
    def api_scene_graph(
        scene_id: str,
        context: CanvasContext = Depends(get_context),
    ) -> ORJSONResponse:
        return ORJSONResponse(extract_scene_view(read_scene(context, scene_id)))

    @app.put("/api/scenes/{scene_id}")
    async def api_save_scene(
        scene_id: str,
        request: Request,
        context: CanvasContext = Depends(get_context),
    ) -> ORJSONResponse:
        key = require_scene_key(scene_id)
        body = await request.body()
        if len(body) > context.settings.canvas.max_scene_bytes:
            raise HTTPException(status_code=413, detail="Scene payload too large")
        if not body:
            raise HTTPException(status_code=400, detail="Empty scene payload")
        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Scene payload is not valid JSON") from exc
        try:
            scene = Scene.model_validate(payload)
            validate_scene(scene)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid scene: {exc}") from exc
        except SceneValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        normalized = map_scene_to_state(scene).to_scene()
        await asyncio.to_thread(context.scene_repo.save, normalized, key)
        logger.info("Saved scene %s with %d elements", key, len(normalized.elements))
        return ORJSONResponse(normalized.to_dict())

    return app


def get_context(request: Request) -> CanvasContext:
    return cast(CanvasContext, request.app.state.context)


def require_scene_key(scene_id: str) -> str:
    try:
        return validate_scene_key(scene_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def read_scene(context: CanvasContext, scene_id: str) -> Scene:
    key = require_scene_key(scene_id)
    try:
        payload = context.scene_repo.load(key)
    except FileNotFoundError:
        logger.info("Scene %s not found; serving an empty scene", key)
        return create_default_scene()
    except orjson.JSONDecodeError:
        logger.warning("Scene %s is not valid JSON; serving an empty scene", key)
        return create_default_scene()
    return load_scene(payload)


app = create_app(load_settings())
