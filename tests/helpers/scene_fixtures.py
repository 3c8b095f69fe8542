from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from adapters.pointer.window_scope import WindowPointerScope
from domain.models import (
    Element,
    ElementKind,
    Point,
    Relation,
    RelationType,
    RuntimeNode,
    Scene,
    Viewport,
)
from domain.services.interaction import ControllerConfig, InteractionController


class SequentialIds:
    def __init__(self, prefix: str = "id") -> None:
        self._prefix = prefix
        self._counter = 0

    def __call__(self) -> str:
        self._counter += 1
        return f"{self._prefix}-{self._counter}"


class RecordingSink:
    def __init__(self) -> None:
        self.submitted: list[Scene] = []

    def submit(self, scene: Scene) -> None:
        self.submitted.append(scene)


def make_element(
    element_id: str,
    kind: ElementKind = ElementKind.RECTANGLE,
    *,
    x: float = 0.0,
    y: float = 0.0,
    width: float = 100.0,
    height: float = 80.0,
    z_index: float = 0,
    **extra: Any,
) -> Element:
    return Element(
        id=element_id,
        kind=kind,
        x=x,
        y=y,
        width=width,
        height=height,
        z_index=z_index,
        **extra,
    )


def make_container(element_id: str, **kwargs: Any) -> Element:
    kwargs.setdefault("width", 400.0)
    kwargs.setdefault("height", 400.0)
    return make_element(element_id, ElementKind.CONTAINER, **kwargs)


def make_node(
    element_id: str,
    kind: ElementKind = ElementKind.RECTANGLE,
    *,
    parent_id: str | None = None,
    **kwargs: Any,
) -> RuntimeNode:
    element = make_element(element_id, kind, **kwargs)
    return RuntimeNode(
        element=element,
        parent_id=parent_id,
        position=Point(element.x, element.y),
    )


def relation(
    relation_type: RelationType,
    from_id: str,
    to_id: str,
    relation_id: str | None = None,
) -> Relation:
    return Relation(
        id=relation_id or f"{relation_type.value.lower()}-{from_id}-{to_id}",
        type=relation_type,
        from_id=from_id,
        to_id=to_id,
    )


def make_scene(
    elements: Iterable[Element],
    relations: Iterable[Relation] = (),
    viewport: Viewport | None = None,
) -> Scene:
    return Scene(
        elements=list(elements),
        relations=list(relations),
        viewport=viewport or Viewport(),
    )


def relation_keys(scene: Scene) -> set[tuple[str, str, str]]:
    return {item.key() for item in scene.relations}


def build_controller(
    scene: Scene | None = None,
    **config: Any,
) -> tuple[InteractionController, WindowPointerScope, RecordingSink]:
    scope = WindowPointerScope()
    sink = RecordingSink()
    controller = InteractionController(
        scene,
        scope=scope,
        sink=sink,
        id_factory=SequentialIds(),
        config=ControllerConfig(**config),
    )
    return controller, scope, sink
