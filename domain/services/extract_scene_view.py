from __future__ import annotations

from collections import Counter
from typing import Any

from domain.models import ElementKind, RelationType, Scene
from domain.services.block_ordering import derive_card_label, ensure_template
from domain.services.scene_mapper import map_scene_to_state


def extract_scene_view(scene: Scene) -> dict[str, Any]:
    graph = map_scene_to_state(scene)
    nodes: list[dict[str, Any]] = []
    for node in graph.ordered_nodes():
        label = node.element.text or ""
        if node.kind == ElementKind.CARD:
            label = derive_card_label(ensure_template(node.element.template))
        nodes.append(
            {
                "id": node.id,
                "kind": node.kind.value,
                "label": label,
                "parentId": node.parent_id,
                "zIndex": node.z_index,
                "bounds": graph.absolute_bounds(node.id).to_dict(),
            }
        )
    return {
        "nodes": nodes,
        "edges": [
            {"id": relation.id, "source": relation.from_id, "target": relation.to_id}
            for relation in graph.connectors
        ],
        "externalLinks": [
            {"elementId": relation.from_id, "ticketId": relation.to_id}
            for relation in graph.external_links
        ],
        "viewport": graph.viewport.to_dict(),
    }


def summarize_scene(scene: Scene) -> dict[str, Any]:
    kinds = Counter(element.kind.value for element in scene.elements)
    relations = Counter(relation.type.value for relation in scene.relations)
    return {
        "version": scene.version,
        "elements": len(scene.elements),
        "kinds": dict(sorted(kinds.items())),
        "containers": kinds.get(ElementKind.CONTAINER.value, 0),
        "parented": relations.get(RelationType.PARENT.value, 0),
        "connectors": relations.get(RelationType.CONNECTOR.value, 0),
        "external_links": relations.get(RelationType.EXTERNAL_LINK.value, 0),
    }
