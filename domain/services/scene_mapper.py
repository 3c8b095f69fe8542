from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from domain.errors import GeometryError, SceneValidationError
from domain.models import (
    SCENE_VERSION,
    Bounds,
    Element,
    ElementKind,
    Point,
    Relation,
    RelationType,
    RuntimeNode,
    Scene,
    Viewport,
)
from domain.services.geometry import get_node_absolute_bounds, to_absolute_position

logger = logging.getLogger(__name__)


@dataclass
class SceneGraph:
    nodes: dict[str, RuntimeNode] = field(default_factory=dict)
    connectors: list[Relation] = field(default_factory=list)
    external_links: list[Relation] = field(default_factory=list)
    viewport: Viewport = field(default_factory=Viewport)

    def ordered_nodes(self) -> list[RuntimeNode]:
        return list(self.nodes.values())

    def absolute_position(self, node_id: str) -> Point:
        return to_absolute_position(node_id, self.nodes)

    def absolute_bounds(self, node_id: str) -> Bounds:
        return get_node_absolute_bounds(node_id, self.nodes)

    def children_of(self, parent_id: str) -> list[RuntimeNode]:
        return [node for node in self.nodes.values() if node.parent_id == parent_id]

    def next_z_index(self) -> float:
        return max((node.z_index for node in self.nodes.values()), default=0) + 1

    def add_node(self, node: RuntimeNode) -> None:
        self.nodes[node.id] = node

    def to_scene(self) -> Scene:
        return build_scene(self.ordered_nodes(), self.external_links, self.viewport, self.connectors)


def create_default_scene() -> Scene:
    return Scene(version=SCENE_VERSION, elements=[], relations=[], viewport=Viewport())


def validate_scene(scene: Scene) -> None:
    counts = Counter(element.id for element in scene.elements)
    duplicates = sorted(element_id for element_id, count in counts.items() if count > 1)
    if duplicates:
        msg = f"Duplicate element ids: {', '.join(duplicates)}"
        raise SceneValidationError(msg)

    element_ids = set(counts)
    parented: set[str] = set()
    for relation in scene.relations:
        if relation.from_id not in element_ids:
            msg = f"Relation {relation.id} references missing element {relation.from_id}"
            raise SceneValidationError(msg)
        # External link targets belong to the ticket store and are never resolved here.
        if relation.type != RelationType.EXTERNAL_LINK and relation.to_id not in element_ids:
            msg = f"Relation {relation.id} references missing element {relation.to_id}"
            raise SceneValidationError(msg)
        if relation.type == RelationType.PARENT:
            if relation.from_id in parented:
                msg = f"Element {relation.from_id} has more than one parent"
                raise SceneValidationError(msg)
            parented.add(relation.from_id)


def load_scene(payload: Mapping[str, Any] | None) -> Scene:
    if not isinstance(payload, Mapping):
        logger.warning("Scene payload is not an object; using an empty scene.")
        return create_default_scene()
    version = payload.get("version")
    if version != SCENE_VERSION:
        logger.warning("Unrecognized scene version %r; using an empty scene.", version)
        return create_default_scene()
    try:
        scene = Scene.model_validate(payload)
        validate_scene(scene)
    except ValidationError as exc:
        logger.warning("Scene failed schema validation; using an empty scene: %s", exc)
        return create_default_scene()
    except SceneValidationError as exc:
        logger.warning("Scene failed validation; using an empty scene: %s", exc)
        return create_default_scene()
    return scene


def map_scene_to_state(scene: Scene) -> SceneGraph:
    ordered = sorted(scene.elements, key=lambda element: element.z_index)
    nodes = {element.id: RuntimeNode.from_element(element) for element in ordered}

    for relation in scene.relations:
        if relation.type != RelationType.PARENT:
            continue
        child = nodes.get(relation.from_id)
        parent = nodes.get(relation.to_id)
        if child is None or parent is None or child.id == parent.id:
            continue
        if parent.kind != ElementKind.CONTAINER:
            logger.warning(
                "Dropping parent relation %s: %s is not a container", relation.id, parent.id
            )
            continue
        child.parent_id = parent.id

    _flatten_nested_containers(nodes)

    return SceneGraph(
        nodes=nodes,
        connectors=[
            relation for relation in scene.relations if relation.type == RelationType.CONNECTOR
        ],
        external_links=[
            relation for relation in scene.relations if relation.type == RelationType.EXTERNAL_LINK
        ],
        viewport=scene.viewport,
    )


def build_scene(
    nodes: Iterable[RuntimeNode],
    external_links: Iterable[Relation],
    viewport: Viewport,
    connectors: Iterable[Relation] = (),
) -> Scene:
    node_list = list(nodes)
    elements: list[Element] = [node.to_element() for node in node_list]
    element_ids = {element.id for element in elements}
    relations: list[Relation] = []

    for node in node_list:
        if node.parent_id and node.parent_id in element_ids and node.parent_id != node.id:
            relations.append(
                Relation(
                    id=f"parent-{node.id}",
                    type=RelationType.PARENT,
                    from_id=node.id,
                    to_id=node.parent_id,
                )
            )

    seen_connectors: set[tuple[str, str, str]] = set()
    for connector in connectors:
        if connector.from_id == connector.to_id:
            continue
        if connector.from_id not in element_ids or connector.to_id not in element_ids:
            continue
        if connector.key() in seen_connectors:
            continue
        seen_connectors.add(connector.key())
        relations.append(connector.model_copy(update={"type": RelationType.CONNECTOR}))

    seen_links: set[tuple[str, str]] = set()
    for link in external_links:
        if link.from_id not in element_ids:
            continue
        pair = (link.from_id, link.to_id)
        if pair in seen_links:
            continue
        seen_links.add(pair)
        relations.append(
            Relation(
                id=link.id,
                type=RelationType.EXTERNAL_LINK,
                from_id=link.from_id,
                to_id=link.to_id,
                meta=dict(link.meta),
            )
        )

    return Scene(version=SCENE_VERSION, elements=elements, relations=relations, viewport=viewport)


def _flatten_nested_containers(nodes: dict[str, RuntimeNode]) -> None:
    # Containers are roots by policy; nested ones are lifted to their absolute position.
    nested = [
        node for node in nodes.values() if node.kind == ElementKind.CONTAINER and node.parent_id
    ]
    if not nested:
        return
    lifted: dict[str, Point] = {}
    for node in nested:
        try:
            lifted[node.id] = to_absolute_position(node.id, nodes)
        except GeometryError:
            lifted[node.id] = node.position
    for node in nested:
        logger.warning("Flattening nested container %s to the root level", node.id)
        node.parent_id = None
        node.position = lifted[node.id]
