from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

SCENE_VERSION = 2
TEMPLATE_VERSION = 1


def to_finite_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _require_finite(value: float, field_name: str) -> float:
    if not math.isfinite(value):
        msg = f"{field_name} must be a finite number"
        raise ValueError(msg)
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ElementKind(str, Enum):
    RECTANGLE = "RECTANGLE"
    ELLIPSE = "ELLIPSE"
    DIAMOND = "DIAMOND"
    TEXT = "TEXT"
    PENCIL = "PENCIL"
    CONTAINER = "CONTAINER"
    CARD = "CARD"


class RelationType(str, Enum):
    PARENT = "PARENT"
    CONNECTOR = "CONNECTOR"
    EXTERNAL_LINK = "EXTERNAL_LINK"


class BlockKind(str, Enum):
    H1 = "H1"
    H2 = "H2"
    H3 = "H3"
    BODY = "BODY"
    IMAGE = "IMAGE"


class BlockAlign(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class Block(CamelModel):
    id: str = Field(..., min_length=1)
    order: int | float = 0
    kind: BlockKind = BlockKind.BODY
    align: BlockAlign = BlockAlign.LEFT
    text: str = ""
    image_url: str = ""
    height_px: Optional[float] = None
    font_size_px: Optional[float] = None
    padding_y: Optional[float] = None
    padding_x: Optional[float] = None
    margin_bottom_px: Optional[float] = None

    @field_validator("order", mode="before")
    @classmethod
    def coerce_order(cls, value: object) -> int | float:
        # Legacy decks carry missing or garbage order values; those sort as 0.
        number = to_finite_number(value)
        if number is None:
            return 0
        return int(number) if number.is_integer() else number

    @field_validator("text", "image_url", mode="before")
    @classmethod
    def coerce_text(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("align", mode="before")
    @classmethod
    def coerce_align(cls, value: object) -> BlockAlign:
        if isinstance(value, BlockAlign):
            return value
        try:
            return BlockAlign(str(value).strip().lower())
        except ValueError:
            return BlockAlign.LEFT

    @field_validator(
        "height_px", "font_size_px", "padding_y", "padding_x", "margin_bottom_px", mode="before"
    )
    @classmethod
    def coerce_metric(cls, value: object) -> float | None:
        return to_finite_number(value)


def parse_blocks(raw_blocks: object) -> list[Block]:
    if not isinstance(raw_blocks, list):
        return []
    blocks: list[Block] = []
    for raw_block in raw_blocks:
        if isinstance(raw_block, Block):
            blocks.append(raw_block)
            continue
        try:
            blocks.append(Block.model_validate(raw_block))
        except ValidationError:
            logger.warning("Dropping malformed card block: %r", raw_block)
    return blocks


class CardTemplate(CamelModel):
    version: int = TEMPLATE_VERSION
    subject: str = ""
    blocks: List[Block] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def coerce_version(cls, value: object) -> int:
        return TEMPLATE_VERSION if not isinstance(value, int) or isinstance(value, bool) else value

    @field_validator("subject", mode="before")
    @classmethod
    def coerce_subject(cls, value: object) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("blocks", mode="before")
    @classmethod
    def drop_malformed_blocks(cls, value: object) -> list[Block]:
        return parse_blocks(value)


class StrokePoint(CamelModel):
    x: float
    y: float

    @field_validator("x", "y", mode="after")
    @classmethod
    def ensure_finite(cls, value: float) -> float:
        return _require_finite(value, "stroke point")


class StrokeData(CamelModel):
    points: List[StrokePoint] = Field(default_factory=list)


def normalize_stroke_data(value: object) -> StrokeData | None:
    if isinstance(value, StrokeData):
        return value
    if not isinstance(value, Mapping):
        return None
    raw_points = value.get("points")
    if not isinstance(raw_points, list):
        return None
    points: list[StrokePoint] = []
    for raw in raw_points:
        if isinstance(raw, StrokePoint):
            points.append(raw)
            continue
        if not isinstance(raw, Mapping):
            continue
        x = to_finite_number(raw.get("x"))
        y = to_finite_number(raw.get("y"))
        if x is None or y is None:
            continue
        points.append(StrokePoint(x=x, y=y))
    if len(points) < 2:
        return None
    return StrokeData(points=points)


class ElementStyle(CamelModel):
    fill: Optional[str] = None
    stroke: Optional[str] = None
    stroke_width: Optional[float] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None


class Element(CamelModel):
    id: str = Field(..., min_length=1)
    kind: ElementKind
    x: float = 0.0
    y: float = 0.0
    width: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)
    z_index: int | float = 0
    style: Optional[ElementStyle] = None
    text: Optional[str] = None
    template: Optional[CardTemplate] = None
    stroke: Optional[StrokeData] = None

    @field_validator("template", mode="before")
    @classmethod
    def tolerate_template(cls, value: object) -> object:
        if value is None or isinstance(value, CardTemplate | Mapping):
            return value
        logger.warning("Dropping malformed card template: %r", value)
        return None

    @field_validator("stroke", mode="before")
    @classmethod
    def tolerate_stroke(cls, value: object) -> StrokeData | None:
        if value is None:
            return None
        stroke = normalize_stroke_data(value)
        if stroke is None:
            logger.warning("Dropping malformed pencil stroke: %r", value)
        return stroke

    @field_validator("x", "y", "width", "height", "z_index", mode="after")
    @classmethod
    def ensure_finite(cls, value: float) -> float:
        return _require_finite(value, "element geometry")


class Relation(CamelModel):
    id: str = Field(..., min_length=1)
    type: RelationType
    from_id: str = Field(..., min_length=1)
    to_id: str = Field(..., min_length=1)
    meta: dict[str, Any] = Field(default_factory=dict)

    def key(self) -> tuple[str, str, str]:
        return (self.type.value, self.from_id, self.to_id)


class Viewport(CamelModel):
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0

    @field_validator("x", "y", mode="after")
    @classmethod
    def ensure_finite_pan(cls, value: float) -> float:
        return _require_finite(value, "viewport pan")

    @field_validator("zoom", mode="after")
    @classmethod
    def ensure_positive_zoom(cls, value: float) -> float:
        _require_finite(value, "viewport zoom")
        if value <= 0:
            msg = "viewport zoom must be positive"
            raise ValueError(msg)
        return value

    def screen_to_scene(self, point: Point) -> Point:
        return Point((point.x - self.x) / self.zoom, (point.y - self.y) / self.zoom)


class Scene(CamelModel):
    version: int = SCENE_VERSION
    elements: List[Element] = Field(default_factory=list)
    relations: List[Relation] = Field(default_factory=list)
    viewport: Viewport = Field(default_factory=Viewport)

    @field_validator("version", mode="after")
    @classmethod
    def ensure_supported_version(cls, value: int) -> int:
        if value != SCENE_VERSION:
            msg = f"Unsupported scene version: {value}"
            raise ValueError(msg)
        return value


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Bounds:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


class ResizeHandle(str, Enum):
    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"


@dataclass(frozen=True)
class PointerEvent:
    screen_x: float
    screen_y: float
    target_id: str | None = None
    handle: ResizeHandle | None = None
    shift: bool = False

    @property
    def screen_point(self) -> Point:
        return Point(self.screen_x, self.screen_y)


@dataclass
class RuntimeNode:
    element: Element
    parent_id: str | None = None
    position: Point = Point(0.0, 0.0)

    @classmethod
    def from_element(cls, element: Element, parent_id: str | None = None) -> RuntimeNode:
        return cls(element=element, parent_id=parent_id, position=Point(element.x, element.y))

    @property
    def id(self) -> str:
        return self.element.id

    @property
    def kind(self) -> ElementKind:
        return self.element.kind

    @property
    def z_index(self) -> float:
        return self.element.z_index

    @property
    def width(self) -> float:
        return max(0.0, self.element.width)

    @property
    def height(self) -> float:
        return max(0.0, self.element.height)

    def to_element(self) -> Element:
        return self.element.model_copy(update={"x": self.position.x, "y": self.position.y})
