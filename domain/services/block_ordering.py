from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from domain.errors import OrderingError
from domain.models import (
    TEMPLATE_VERSION,
    Block,
    BlockAlign,
    BlockKind,
    CardTemplate,
    parse_blocks,
)

DEFAULT_SUBJECT = "Subject line..."
DEFAULT_CARD_LABEL = "Card"
IMAGE_CARD_LABEL = "Image Card"
CARD_LABEL_MAX_LENGTH = 80

BLOCK_MIN_HEIGHT = 32.0
BLOCK_MAX_HEIGHT = 420.0
BLOCK_MIN_FONT_SIZE = 10.0
BLOCK_MAX_FONT_SIZE = 48.0
BLOCK_MAX_PADDING = 24.0
BLOCK_MAX_MARGIN_BOTTOM = 48.0

IdFactory = Callable[[], str]


@dataclass(frozen=True)
class BlockMetrics:
    height_px: float
    font_size_px: float
    padding_y: float
    padding_x: float
    margin_bottom_px: float

    def as_update(self) -> dict[str, float]:
        return {
            "height_px": self.height_px,
            "font_size_px": self.font_size_px,
            "padding_y": self.padding_y,
            "padding_x": self.padding_x,
            "margin_bottom_px": self.margin_bottom_px,
        }


_DEFAULT_METRICS: dict[BlockKind, BlockMetrics] = {
    BlockKind.H1: BlockMetrics(56, 30, 8, 10, 8),
    BlockKind.H2: BlockMetrics(46, 24, 8, 10, 8),
    BlockKind.H3: BlockMetrics(40, 20, 8, 10, 8),
    BlockKind.BODY: BlockMetrics(84, 16, 8, 10, 8),
    BlockKind.IMAGE: BlockMetrics(140, 14, 6, 6, 10),
}


def clamp(value: float, minimum: float, maximum: float) -> float:
    return min(maximum, max(minimum, value))


def default_block_metrics(kind: BlockKind) -> BlockMetrics:
    return _DEFAULT_METRICS[kind]


def normalize_block_metrics(block: Block) -> BlockMetrics:
    defaults = default_block_metrics(block.kind)

    def pick(value: float | None, fallback: float) -> float:
        return fallback if value is None else value

    return BlockMetrics(
        height_px=clamp(pick(block.height_px, defaults.height_px), BLOCK_MIN_HEIGHT, BLOCK_MAX_HEIGHT),
        font_size_px=clamp(
            pick(block.font_size_px, defaults.font_size_px), BLOCK_MIN_FONT_SIZE, BLOCK_MAX_FONT_SIZE
        ),
        padding_y=clamp(pick(block.padding_y, defaults.padding_y), 0, BLOCK_MAX_PADDING),
        padding_x=clamp(pick(block.padding_x, defaults.padding_x), 0, BLOCK_MAX_PADDING),
        margin_bottom_px=clamp(
            pick(block.margin_bottom_px, defaults.margin_bottom_px), 0, BLOCK_MAX_MARGIN_BOTTOM
        ),
    )


def normalize_order(blocks: Sequence[Block]) -> list[Block]:
    indexed = sorted(enumerate(blocks), key=lambda pair: (pair[1].order, pair[0]))
    return [block.model_copy(update={"order": index}) for index, (_, block) in enumerate(indexed)]


def move_by_index(blocks: Sequence[Block], source_index: int, destination_index: int) -> list[Block]:
    ordered = normalize_order(blocks)
    if source_index == destination_index:
        return ordered
    if not 0 <= source_index < len(ordered) or not 0 <= destination_index < len(ordered):
        return ordered
    moved = ordered.pop(source_index)
    ordered.insert(destination_index, moved)
    return [block.model_copy(update={"order": index}) for index, block in enumerate(ordered)]


def move_by_id(blocks: Sequence[Block], source_id: str, target_id: str) -> list[Block]:
    ordered = normalize_order(blocks)
    ids = [block.id for block in ordered]
    if source_id not in ids or target_id not in ids:
        return ordered
    return move_by_index(ordered, ids.index(source_id), ids.index(target_id))


def ensure_template(raw: CardTemplate | Mapping[str, Any] | None) -> CardTemplate:
    if isinstance(raw, CardTemplate):
        blocks = list(raw.blocks)
        subject = raw.subject
    elif isinstance(raw, Mapping):
        blocks = parse_blocks(raw.get("blocks"))
        subject_value = raw.get("subject")
        subject = subject_value if isinstance(subject_value, str) else ""
    else:
        blocks = []
        subject = ""

    ordered = normalize_order(blocks)
    if not subject.strip():
        subject = _subject_fallback(ordered) or DEFAULT_SUBJECT
    return CardTemplate(version=TEMPLATE_VERSION, subject=subject, blocks=ordered)


def get_required_body_block_id(template: CardTemplate) -> str | None:
    body_blocks = [block for block in template.blocks if block.kind == BlockKind.BODY]
    if len(body_blocks) != 1:
        return None
    return body_blocks[0].id


def require_body_block_id(template: CardTemplate) -> str:
    block_id = get_required_body_block_id(template)
    if block_id is None:
        count = sum(1 for block in template.blocks if block.kind == BlockKind.BODY)
        msg = f"Required body block is ambiguous: {count} body blocks"
        raise OrderingError(msg)
    return block_id


def create_block(kind: BlockKind, id_factory: IdFactory, order: int) -> Block:
    if kind == BlockKind.IMAGE:
        text = ""
    elif kind == BlockKind.BODY:
        text = "Body copy..."
    else:
        text = f"{kind.value} text"
    return Block(
        id=id_factory(),
        order=order,
        kind=kind,
        align=BlockAlign.LEFT,
        text=text,
        image_url="",
        **default_block_metrics(kind).as_update(),
    )


def create_default_template(id_factory: IdFactory) -> CardTemplate:
    return ensure_template(
        CardTemplate(
            blocks=[
                create_block(BlockKind.H1, id_factory, 0),
                create_block(BlockKind.BODY, id_factory, 1),
            ]
        )
    )


def derive_card_label(template: CardTemplate | None) -> str:
    if template is None:
        return DEFAULT_CARD_LABEL
    subject = template.subject.strip()
    if subject:
        return subject[:CARD_LABEL_MAX_LENGTH]
    fallback = _subject_fallback(template.blocks)
    if fallback:
        return fallback[:CARD_LABEL_MAX_LENGTH]
    if any(block.kind == BlockKind.IMAGE for block in template.blocks):
        return IMAGE_CARD_LABEL
    return DEFAULT_CARD_LABEL


def _subject_fallback(blocks: Sequence[Block]) -> str:
    for block in blocks:
        if block.kind != BlockKind.IMAGE and block.text.strip():
            return block.text.strip()
    return ""

