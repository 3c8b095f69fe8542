from __future__ import annotations

import pytest

from domain.errors import OrderingError
from domain.models import Block, BlockKind, CardTemplate
from domain.services.block_ordering import (
    DEFAULT_SUBJECT,
    create_block,
    create_default_template,
    derive_card_label,
    ensure_template,
    get_required_body_block_id,
    move_by_id,
    move_by_index,
    normalize_block_metrics,
    normalize_order,
    require_body_block_id,
)
from tests.helpers.scene_fixtures import SequentialIds


def _blocks(*specs: tuple[str, object]) -> list[Block]:
    return [Block.model_validate({"id": block_id, "order": order}) for block_id, order in specs]


def _ids(blocks: list[Block]) -> list[str]:
    return [block.id for block in blocks]


def test_normalize_order_is_stable_and_contiguous() -> None:
    ordered = normalize_order(_blocks(("a", 2), ("b", 0), ("c", 0)))

    assert _ids(ordered) == ["b", "c", "a"]
    assert [block.order for block in ordered] == [0, 1, 2]


def test_invalid_orders_sort_as_zero() -> None:
    ordered = normalize_order(_blocks(("a", 1), ("b", "oops"), ("c", None), ("d", float("nan"))))

    assert _ids(ordered) == ["b", "c", "d", "a"]


def test_move_by_index_reinserts_and_renumbers() -> None:
    moved = move_by_index(_blocks(("a", 0), ("b", 1), ("c", 2)), 0, 2)

    assert _ids(moved) == ["b", "c", "a"]
    assert [block.order for block in moved] == [0, 1, 2]


def test_move_by_index_out_of_range_returns_normalized_input() -> None:
    blocks = _blocks(("a", 5), ("b", 1))

    assert _ids(move_by_index(blocks, 0, 9)) == ["b", "a"]
    assert _ids(move_by_index(blocks, -1, 0)) == ["b", "a"]


def test_move_by_id_ignores_unknown_ids() -> None:
    blocks = _blocks(("a", 0), ("b", 1), ("c", 2))

    assert _ids(move_by_id(blocks, "c", "a")) == ["c", "a", "b"]
    assert _ids(move_by_id(blocks, "zzz", "a")) == ["a", "b", "c"]


def test_ensure_template_is_idempotent() -> None:
    raw = {
        "blocks": [
            {"id": "body", "order": 3, "kind": "BODY", "text": "Details"},
            {"id": "title", "order": 1, "kind": "H1", "text": "Headline"},
        ]
    }

    once = ensure_template(raw)
    twice = ensure_template(once)

    assert twice == once
    assert _ids(once.blocks) == ["title", "body"]
    assert once.subject == "Headline"


def test_ensure_template_subject_fallbacks() -> None:
    image_first = ensure_template(
        {"blocks": [{"id": "img", "kind": "IMAGE"}, {"id": "h", "kind": "H2", "text": " Hi "}]}
    )

    assert image_first.subject == "Hi"
    assert ensure_template(None).subject == DEFAULT_SUBJECT
    assert ensure_template({"subject": "Kept", "blocks": []}).subject == "Kept"


def test_ensure_template_drops_malformed_blocks() -> None:
    template = ensure_template({"blocks": [{"id": ""}, 5, {"id": "ok", "kind": "BODY"}]})

    assert _ids(template.blocks) == ["ok"]


def test_required_body_block_needs_exactly_one_body() -> None:
    one = CardTemplate(blocks=[Block(id="h", kind=BlockKind.H1), Block(id="b", kind=BlockKind.BODY)])
    two = CardTemplate(blocks=[Block(id="b1", kind=BlockKind.BODY), Block(id="b2", kind=BlockKind.BODY)])
    none = CardTemplate(blocks=[Block(id="h", kind=BlockKind.H1)])

    assert get_required_body_block_id(one) == "b"
    assert get_required_body_block_id(two) is None
    assert get_required_body_block_id(none) is None
    assert require_body_block_id(one) == "b"
    with pytest.raises(OrderingError):
        require_body_block_id(two)


def test_create_block_uses_kind_defaults() -> None:
    ids = SequentialIds("block")

    heading = create_block(BlockKind.H1, ids, 0)
    image = create_block(BlockKind.IMAGE, ids, 1)

    assert heading.id == "block-1"
    assert heading.height_px == 56
    assert heading.font_size_px == 30
    assert image.height_px == 140
    assert image.text == ""
    assert image.image_url == ""
    assert image.order == 1


def test_default_template_has_heading_and_body() -> None:
    template = create_default_template(SequentialIds())

    assert [block.kind for block in template.blocks] == [BlockKind.H1, BlockKind.BODY]
    assert get_required_body_block_id(template) == template.blocks[1].id
    assert template.subject == "H1 text"


def test_block_metrics_are_clamped() -> None:
    block = Block(id="b", kind=BlockKind.BODY, height_px=1000, font_size_px=2, padding_y=-4)

    metrics = normalize_block_metrics(block)

    assert metrics.height_px == 420
    assert metrics.font_size_px == 10
    assert metrics.padding_y == 0
    assert metrics.padding_x == 10
    assert metrics.margin_bottom_px == 8


def test_card_label_fallbacks() -> None:
    image_only = CardTemplate(subject="", blocks=[Block(id="img", kind=BlockKind.IMAGE)])

    assert derive_card_label(None) == "Card"
    assert derive_card_label(image_only) == "Image Card"
    assert derive_card_label(CardTemplate(subject="x" * 200)) == "x" * 80


@pytest.mark.parametrize(
    ("count", "source", "destination"),
    [
        (0, 0, 0),
        (1, 0, 0),
        (2, 0, 1),
        (4, 0, 3),
        (4, 3, 0),
        (5, 1, 3),
        (5, 4, 2),
        (5, 2, 2),
    ],
)
def test_move_by_index_inverse_restores_sequence(
    count: int, source: int, destination: int
) -> None:
    blocks = _blocks(*((f"b{index}", count - index) for index in range(count)))
    original = _ids(normalize_order(blocks))

    moved = move_by_index(blocks, source, destination)
    restored = move_by_index(moved, destination, source)

    assert _ids(restored) == original
    for sequence in (moved, restored):
        assert [block.order for block in sequence] == list(range(count))


@pytest.mark.parametrize(
    "orders",
    [[], [7], [3, 3, 3], [5, -1, "x", None, 2.5], [float("inf"), 0, 10]],
)
def test_normalize_order_yields_contiguous_orders(orders: list[object]) -> None:
    blocks = _blocks(*((f"b{index}", order) for index, order in enumerate(orders)))

    ordered = normalize_order(blocks)

    assert [block.order for block in ordered] == list(range(len(orders)))
    assert sorted(_ids(ordered)) == sorted(_ids(blocks))
