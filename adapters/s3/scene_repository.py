from __future__ import annotations

from collections.abc import Iterable
from typing import Any, cast

import orjson
from botocore.client import BaseClient  # type: ignore[import-untyped]
from botocore.exceptions import ClientError  # type: ignore[import-untyped]
from botocore.response import StreamingBody  # type: ignore[import-untyped]

from adapters.filesystem.json_utils import dump_scene_bytes
from adapters.filesystem.scene_repository import SCENE_SUFFIX, validate_scene_key
from adapters.s3.s3_client import create_s3_client
from domain.models import Scene
from domain.ports.repositories import SceneRepository

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3SceneRepository(SceneRepository):
    def __init__(self, client: BaseClient, bucket: str, prefix: str = "") -> None:
        self._client = client
        self._bucket = bucket
        self._prefix = self._normalize_prefix(prefix)

    @classmethod
    def from_settings(cls, settings: Any) -> S3SceneRepository:
        client = create_s3_client(
            region=settings.region,
            endpoint_url=settings.endpoint_url,
            access_key_id=settings.access_key_id,
            secret_access_key=settings.secret_access_key,
            session_token=settings.session_token,
            use_path_style=settings.use_path_style,
        )
        return cls(client, settings.bucket, settings.prefix)

    def build_key(self, key: str) -> str:
        return f"{self._prefix}{validate_scene_key(key)}{SCENE_SUFFIX}"

    def load(self, key: str) -> dict[str, Any]:
        object_key = self.build_key(key)
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=object_key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _MISSING_CODES:
                raise FileNotFoundError(object_key) from exc
            raise
        content = orjson.loads(self._read_body(response.get("Body")))
        return content if isinstance(content, dict) else {}

    def save(self, scene: Scene, key: str) -> None:
        self._client.put_object(
            Bucket=self._bucket,
            Key=self.build_key(key),
            Body=dump_scene_bytes(scene),
            ContentType="application/json",
        )

    def list_keys(self) -> list[str]:
        keys: list[str] = []
        for object_key in self._iter_object_keys():
            name = object_key[len(self._prefix) :]
            if "/" in name or not name.endswith(SCENE_SUFFIX):
                continue
            keys.append(name[: -len(SCENE_SUFFIX)])
        return sorted(keys)

    def _iter_object_keys(self) -> Iterable[str]:
        token: str | None = None
        while True:
            payload: dict[str, Any] = {"Bucket": self._bucket, "Prefix": self._prefix}
            if token:
                payload["ContinuationToken"] = token
            response = self._client.list_objects_v2(**payload)
            for entry in response.get("Contents", []) or []:
                key = entry.get("Key")
                if key:
                    yield key
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")

    def _read_body(self, body: Any) -> bytes:
        if isinstance(body, bytes | bytearray):
            return bytes(body)
        if isinstance(body, StreamingBody):
            return cast(bytes, body.read())
        if hasattr(body, "read"):
            return cast(bytes, body.read())
        return b""

    def _normalize_prefix(self, prefix: str) -> str:
        normalized = prefix.lstrip("/")
        if normalized in {".", "./"}:
            return ""
        if normalized and not normalized.endswith("/"):
            normalized = f"{normalized}/"
        return normalized
