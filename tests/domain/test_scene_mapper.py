from __future__ import annotations

import logging

import pytest

from domain.errors import SceneValidationError
from domain.models import ElementKind, Point, RelationType, Viewport
from domain.services.scene_mapper import (
    build_scene,
    create_default_scene,
    load_scene,
    map_scene_to_state,
    validate_scene,
)
from tests.helpers.scene_fixtures import (
    make_container,
    make_element,
    make_node,
    make_scene,
    relation,
    relation_keys,
)


def _grouped_scene():
    return make_scene(
        [
            make_element("r", x=50, y=40, z_index=1),
            make_container("c", x=10, y=20, z_index=0),
            make_element("t", ElementKind.TEXT, x=500, y=500, z_index=2, text="note"),
        ],
        [
            relation(RelationType.PARENT, "r", "c"),
            relation(RelationType.CONNECTOR, "r", "t"),
            relation(RelationType.EXTERNAL_LINK, "t", "TICKET-7"),
        ],
        Viewport(x=12, y=-4, zoom=1.5),
    )


def test_map_scene_resolves_parents_and_sorts_by_z() -> None:
    graph = map_scene_to_state(_grouped_scene())

    assert [node.id for node in graph.ordered_nodes()] == ["c", "r", "t"]
    assert graph.nodes["r"].parent_id == "c"
    assert graph.absolute_position("r") == Point(60, 60)
    assert [child.id for child in graph.children_of("c")] == ["r"]
    assert len(graph.connectors) == 1
    assert graph.external_links[0].to_id == "TICKET-7"
    assert graph.viewport.zoom == 1.5


def test_round_trip_preserves_elements_and_relation_keys() -> None:
    scene = _grouped_scene()

    rebuilt = map_scene_to_state(scene).to_scene()
    again = map_scene_to_state(rebuilt).to_scene()

    assert {element.id: element for element in again.elements} == {
        element.id: element for element in scene.elements
    }
    assert relation_keys(again) == relation_keys(scene)
    assert again.viewport == scene.viewport


def test_parent_relation_ids_are_derived_from_child() -> None:
    rebuilt = map_scene_to_state(_grouped_scene()).to_scene()

    parents = [item for item in rebuilt.relations if item.type == RelationType.PARENT]
    assert [item.id for item in parents] == ["parent-r"]


def test_child_bounds_are_not_clipped_to_container() -> None:
    scene = make_scene(
        [make_container("c", width=50, height=50), make_element("r", x=30, y=30, width=200, z_index=1)],
        [relation(RelationType.PARENT, "r", "c")],
    )

    graph = map_scene_to_state(scene)

    assert graph.absolute_bounds("r").width == 200


def test_parent_relation_to_non_container_is_dropped(caplog: pytest.LogCaptureFixture) -> None:
    scene = make_scene(
        [make_element("a"), make_element("b", z_index=1)],
        [relation(RelationType.PARENT, "b", "a")],
    )

    with caplog.at_level(logging.WARNING):
        graph = map_scene_to_state(scene)

    assert graph.nodes["b"].parent_id is None
    assert "not a container" in caplog.text


def test_nested_containers_flatten_to_root() -> None:
    scene = make_scene(
        [
            make_container("outer", x=100, y=100),
            make_container("inner", x=10, y=10, z_index=1),
            make_element("leaf", x=5, y=5, z_index=2),
        ],
        [
            relation(RelationType.PARENT, "inner", "outer"),
            relation(RelationType.PARENT, "leaf", "inner"),
        ],
    )

    graph = map_scene_to_state(scene)

    assert graph.nodes["inner"].parent_id is None
    assert graph.nodes["inner"].position == Point(110, 110)
    assert graph.nodes["leaf"].parent_id == "inner"
    assert graph.absolute_position("leaf") == Point(115, 115)


def test_build_scene_drops_invalid_connectors_and_duplicate_links() -> None:
    nodes = [make_node("a"), make_node("b")]
    connectors = [
        relation(RelationType.CONNECTOR, "a", "b", "c1"),
        relation(RelationType.CONNECTOR, "a", "b", "c2"),
        relation(RelationType.CONNECTOR, "a", "a", "self"),
        relation(RelationType.CONNECTOR, "a", "gone", "dangling"),
    ]
    links = [
        relation(RelationType.EXTERNAL_LINK, "a", "T-1", "l1"),
        relation(RelationType.EXTERNAL_LINK, "a", "T-1", "l2"),
        relation(RelationType.EXTERNAL_LINK, "gone", "T-2", "l3"),
    ]

    scene = build_scene(nodes, links, Viewport(), connectors)

    assert [item.id for item in scene.relations] == ["c1", "l1"]


def test_validate_scene_rejects_broken_references() -> None:
    duplicate = make_scene([make_element("a"), make_element("a")])
    dangling = make_scene([make_element("a")], [relation(RelationType.CONNECTOR, "a", "b")])
    two_parents = make_scene(
        [make_container("c1"), make_container("c2"), make_element("r")],
        [
            relation(RelationType.PARENT, "r", "c1", "p1"),
            relation(RelationType.PARENT, "r", "c2", "p2"),
        ],
    )

    for scene in (duplicate, dangling, two_parents):
        with pytest.raises(SceneValidationError):
            validate_scene(scene)


def test_external_link_ticket_ids_are_not_resolved() -> None:
    scene = make_scene([make_element("a")], [relation(RelationType.EXTERNAL_LINK, "a", "JIRA-1")])

    validate_scene(scene)


def test_load_scene_degrades_to_empty_scene(caplog: pytest.LogCaptureFixture) -> None:
    valid = _grouped_scene().to_dict()
    unknown_version = {**valid, "version": 99}
    dangling = {
        **valid,
        "relations": [{"id": "x", "type": "CONNECTOR", "fromId": "r", "toId": "missing"}],
    }
    bad_geometry = {**valid, "elements": [{"id": "a", "kind": "RECTANGLE", "width": -5}]}

    with caplog.at_level(logging.WARNING):
        for payload in (None, unknown_version, dangling, bad_geometry):
            assert load_scene(payload) == create_default_scene()

    assert "version" in caplog.text
    assert load_scene(valid) == _grouped_scene()


def test_load_scene_reads_camel_case_payload() -> None:
    payload = {
        "version": 2,
        "elements": [
            {
                "id": "card",
                "kind": "CARD",
                "x": 1,
                "y": 2,
                "width": 460,
                "height": 320,
                "zIndex": 3,
                "template": {
                    "subject": "Hello",
                    "blocks": [{"id": "b", "order": 0, "kind": "BODY", "heightPx": 90}],
                },
            }
        ],
        "relations": [],
        "viewport": {"x": 0, "y": 0, "zoom": 1},
    }

    scene = load_scene(payload)

    element = scene.elements[0]
    assert element.z_index == 3
    assert element.template is not None
    assert element.template.blocks[0].height_px == 90
    assert scene.to_dict()["elements"][0]["zIndex"] == 3


def test_load_scene_keeps_elements_with_legacy_card_blocks_and_strokes(
    caplog: pytest.LogCaptureFixture,
) -> None:
    payload = {
        "version": 2,
        "elements": [
            {"id": "r", "kind": "RECTANGLE", "width": 100, "height": 80},
            {
                "id": "card",
                "kind": "CARD",
                "width": 460,
                "height": 320,
                "zIndex": 1,
                "template": {
                    "subject": None,
                    "blocks": [
                        {"id": "title", "order": 0, "kind": "H1", "text": None, "align": "justify"},
                        {"order": 1, "kind": "BODY", "text": "no id"},
                        {"id": "body", "order": 2, "kind": "BODY", "text": "Details"},
                    ],
                },
            },
            {
                "id": "pen",
                "kind": "PENCIL",
                "width": 30,
                "height": 30,
                "zIndex": 2,
                "stroke": {"points": [{"x": 1, "y": 1}, {"x": "bad"}, {"x": 9, "y": 9}]},
            },
            {"id": "scribble", "kind": "PENCIL", "zIndex": 3, "stroke": "garbage"},
        ],
        "relations": [],
    }

    with caplog.at_level(logging.WARNING):
        scene = load_scene(payload)

    assert [element.id for element in scene.elements] == ["r", "card", "pen", "scribble"]
    card = scene.elements[1]
    assert card.template is not None
    assert [block.id for block in card.template.blocks] == ["title", "body"]
    assert card.template.blocks[0].text == ""
    assert card.template.blocks[0].align.value == "left"
    assert [(point.x, point.y) for point in scene.elements[2].stroke.points] == [(1, 1), (9, 9)]
    assert scene.elements[3].stroke is None
    assert "Dropping malformed card block" in caplog.text
    assert "empty scene" not in caplog.text
