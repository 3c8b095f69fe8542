from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from domain.models import Element, ElementKind, ElementStyle
from domain.services.block_ordering import create_default_template, derive_card_label

DEFAULT_FONT_SIZE = 14.0
DEFAULT_FONT_FAMILY = "Inter"


class CanvasTool(str, Enum):
    SELECT = "SELECT"
    HAND = "HAND"
    CONNECTOR = "CONNECTOR"
    CARD = "CARD"
    CONTAINER = "CONTAINER"
    RECTANGLE = "RECTANGLE"
    ELLIPSE = "ELLIPSE"
    DIAMOND = "DIAMOND"
    TEXT = "TEXT"
    PENCIL = "PENCIL"
    ERASER = "ERASER"


@dataclass(frozen=True)
class KindDefaults:
    width: float
    height: float
    text: str
    fill: str
    stroke: str
    stroke_width: float


KIND_DEFAULTS: dict[ElementKind, KindDefaults] = {
    ElementKind.CARD: KindDefaults(460, 320, "Card", "#ffffff", "#d4d4d8", 1),
    ElementKind.CONTAINER: KindDefaults(560, 400, "Component Group", "#f8fafc", "#94a3b8", 1),
    ElementKind.RECTANGLE: KindDefaults(260, 160, "Rectangle", "#fee2e2", "#e11d48", 2),
    ElementKind.ELLIPSE: KindDefaults(240, 160, "Ellipse", "#dcfce7", "#16a34a", 2),
    ElementKind.DIAMOND: KindDefaults(220, 170, "Decision", "#fef3c7", "#d97706", 2),
    ElementKind.TEXT: KindDefaults(260, 90, "Type here...", "transparent", "transparent", 0),
    ElementKind.PENCIL: KindDefaults(120, 80, "", "transparent", "#334155", 2),
}

KIND_LABELS: dict[ElementKind, str] = {
    ElementKind.CARD: "Card",
    ElementKind.CONTAINER: "Container",
    ElementKind.RECTANGLE: "Rectangle",
    ElementKind.ELLIPSE: "Ellipse",
    ElementKind.DIAMOND: "Diamond",
    ElementKind.TEXT: "Text",
    ElementKind.PENCIL: "Pencil Stroke",
}

_TOOL_TO_KIND: dict[CanvasTool, ElementKind] = {
    CanvasTool.CARD: ElementKind.CARD,
    CanvasTool.CONTAINER: ElementKind.CONTAINER,
    CanvasTool.RECTANGLE: ElementKind.RECTANGLE,
    CanvasTool.ELLIPSE: ElementKind.ELLIPSE,
    CanvasTool.DIAMOND: ElementKind.DIAMOND,
    CanvasTool.TEXT: ElementKind.TEXT,
    CanvasTool.PENCIL: ElementKind.PENCIL,
}


def get_element_kind_for_tool(tool: CanvasTool) -> ElementKind | None:
    return _TOOL_TO_KIND.get(tool)


def is_placement_tool(tool: CanvasTool) -> bool:
    kind = get_element_kind_for_tool(tool)
    return kind is not None and kind != ElementKind.PENCIL


def get_kind_label(kind: ElementKind) -> str:
    return KIND_LABELS[kind]


def can_assign_parent_for_kind(kind: ElementKind) -> bool:
    return kind != ElementKind.CONTAINER


def supports_plain_text_editing(kind: ElementKind) -> bool:
    return kind != ElementKind.PENCIL


def create_default_element(
    kind: ElementKind,
    x: float,
    y: float,
    z_index: float,
    id_factory: Callable[[], str],
) -> Element:
    defaults = KIND_DEFAULTS[kind]
    template = create_default_template(id_factory) if kind == ElementKind.CARD else None
    return Element(
        id=id_factory(),
        kind=kind,
        x=x,
        y=y,
        width=defaults.width,
        height=defaults.height,
        z_index=z_index,
        text=derive_card_label(template) if template else defaults.text,
        template=template,
        style=ElementStyle(
            fill=defaults.fill,
            stroke=defaults.stroke,
            stroke_width=defaults.stroke_width,
            font_size=DEFAULT_FONT_SIZE,
            font_family=DEFAULT_FONT_FAMILY,
        ),
    )
