from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from domain.errors import GeometryError
from domain.models import (
    Block,
    BlockKind,
    Bounds,
    CardTemplate,
    Element,
    ElementKind,
    Point,
    PointerEvent,
    Relation,
    RelationType,
    ResizeHandle,
    RuntimeNode,
    Scene,
    Viewport,
)
from domain.ports.pointer import PointerListenerScope
from domain.ports.repositories import SceneSink
from domain.services.block_ordering import (
    create_block,
    derive_card_label,
    ensure_template,
    get_required_body_block_id,
    move_by_id,
    normalize_block_metrics,
    normalize_order,
)
from domain.services.element_catalog import (
    KIND_DEFAULTS,
    CanvasTool,
    can_assign_parent_for_kind,
    create_default_element,
    get_element_kind_for_tool,
    is_placement_tool,
)
from domain.services.eraser import (
    ERASER_DEFAULT_MODE,
    ERASER_DEFAULT_SIZE,
    EraserMode,
    clamp_eraser_size,
    does_stroke_intersect_eraser,
    split_stroke_points_by_eraser,
    to_absolute_stroke_points,
)
from domain.services.freehand import FreehandDraft, create_freehand_draft, finalize_freehand_element
from domain.services.geometry import (
    pad_bounds,
    pick_drop_container_for_node,
    resize_bounds,
    should_reconcile_container_membership_after_drop,
    to_parent_relative_position,
    union_bounds,
)
from domain.services.history import DEFAULT_HISTORY_LIMIT, SceneHistory
from domain.services.scene_mapper import SceneGraph, create_default_scene, map_scene_to_state

logger = logging.getLogger(__name__)

_METRIC_FIELDS = {"height_px", "font_size_px", "padding_y", "padding_x", "margin_bottom_px"}
_EDITABLE_ELEMENT_FIELDS = {"text", "style", "width", "height", "z_index"}
_EDITABLE_BLOCK_FIELDS = {"text", "align", "kind", "image_url"} | _METRIC_FIELDS


class InteractionState(str, Enum):
    IDLE = "IDLE"
    DRAGGING = "DRAGGING"
    RESIZING = "RESIZING"
    CONNECTING = "CONNECTING"
    PANNING = "PANNING"
    FREEHAND_DRAWING = "FREEHAND_DRAWING"
    ERASING = "ERASING"


@dataclass(frozen=True)
class ControllerConfig:
    min_element_width: float = 120.0
    min_element_height: float = 80.0
    group_padding: float = 40.0
    duplicate_offset: float = 40.0
    history_limit: int = DEFAULT_HISTORY_LIMIT
    eraser_mode: EraserMode = ERASER_DEFAULT_MODE
    eraser_size: float = ERASER_DEFAULT_SIZE
    min_zoom: float = 0.1
    max_zoom: float = 4.0
    zoom_step: float = 1.2


@dataclass
class DragSession:
    start_screen: Point
    start_positions: dict[str, Point]
    moved: bool = False


@dataclass
class ResizeSession:
    node_id: str
    handle: ResizeHandle
    start_screen: Point
    start_bounds: Bounds
    changed: bool = False


@dataclass
class ConnectSession:
    source_id: str
    preview: Point


@dataclass
class PanSession:
    start_screen: Point
    start_viewport: Viewport
    moved: bool = False


@dataclass
class EraseSession:
    changed: bool = False


@dataclass
class Clipboard:
    nodes: list[RuntimeNode] = field(default_factory=list)
    links: list[Relation] = field(default_factory=list)


def _default_id() -> str:
    return uuid.uuid4().hex


class InteractionController:
    """Stateful editing session over a scene graph.

    Pointer-down arrives from the canvas surface. Pointer move/up arrive through
    the window-level listener scope, which is attached only while a non-idle
    interaction is running.
    """

    def __init__(
        self,
        scene: Scene | None = None,
        *,
        scope: PointerListenerScope,
        sink: SceneSink | None = None,
        id_factory: Callable[[], str] | None = None,
        config: ControllerConfig | None = None,
    ) -> None:
        self.config = config or ControllerConfig()
        self.graph: SceneGraph = map_scene_to_state(scene or create_default_scene())
        self.history = SceneHistory(self.graph.to_scene(), self.config.history_limit)
        self.tool = CanvasTool.SELECT
        self.state = InteractionState.IDLE
        self.eraser_mode = self.config.eraser_mode
        self.eraser_size = clamp_eraser_size(self.config.eraser_size)
        self._scope = scope
        self._sink = sink
        self._new_id = id_factory or _default_id
        self._selection: dict[str, None] = {}
        self._clipboard = Clipboard()
        self._drag: DragSession | None = None
        self._resize: ResizeSession | None = None
        self._connect: ConnectSession | None = None
        self._pan: PanSession | None = None
        self._erase: EraseSession | None = None
        self.freehand_draft: FreehandDraft | None = None

    # Selection and tools

    @property
    def selected_ids(self) -> list[str]:
        return list(self._selection)

    @property
    def connection_preview(self) -> tuple[str, Point] | None:
        if self._connect is None:
            return None
        return self._connect.source_id, self._connect.preview

    def select(self, node_ids: Iterable[str], *, additive: bool = False) -> None:
        if not additive:
            self._selection.clear()
        for node_id in node_ids:
            if node_id in self.graph.nodes:
                self._selection[node_id] = None

    def clear_selection(self) -> None:
        self._selection.clear()

    def set_tool(self, tool: CanvasTool) -> None:
        if self.state != InteractionState.IDLE:
            self.cancel_interaction()
        self.tool = tool

    # Pointer handling

    def pointer_down(self, event: PointerEvent) -> None:
        if self.state != InteractionState.IDLE:
            logger.debug("Ignoring pointer-down while %s", self.state.value)
            return
        point = self._to_scene(event)
        target = self.graph.nodes.get(event.target_id) if event.target_id else None

        if self.tool == CanvasTool.PENCIL:
            self.freehand_draft = create_freehand_draft(point)
            self._enter(InteractionState.FREEHAND_DRAWING)
        elif self.tool == CanvasTool.ERASER:
            self._erase = EraseSession()
            self._enter(InteractionState.ERASING)
            self._erase.changed = self._erase_at(point)
        elif self.tool == CanvasTool.HAND:
            self._start_pan(event)
        elif self.tool == CanvasTool.CONNECTOR:
            if target is not None:
                self._connect = ConnectSession(source_id=target.id, preview=point)
                self._enter(InteractionState.CONNECTING)
        elif is_placement_tool(self.tool):
            if target is None:
                self._place_element(point)
        elif target is not None and event.handle is not None:
            self._start_resize(target, event)
        elif target is not None:
            self._start_drag(target, event)
        else:
            self.clear_selection()
            self._start_pan(event)

    def pointer_move(self, event: PointerEvent) -> None:
        if self.state == InteractionState.DRAGGING and self._drag is not None:
            self._update_drag(event)
        elif self.state == InteractionState.RESIZING and self._resize is not None:
            self._update_resize(event)
        elif self.state == InteractionState.CONNECTING and self._connect is not None:
            self._connect.preview = self._to_scene(event)
        elif self.state == InteractionState.PANNING and self._pan is not None:
            self._update_pan(event)
        elif self.state == InteractionState.FREEHAND_DRAWING and self.freehand_draft is not None:
            self.freehand_draft.append(self._to_scene(event))
        elif self.state == InteractionState.ERASING and self._erase is not None:
            if self._erase_at(self._to_scene(event)):
                self._erase.changed = True

    def pointer_up(self, event: PointerEvent) -> None:
        state = self.state
        try:
            if state == InteractionState.DRAGGING:
                self._finish_drag()
            elif state == InteractionState.RESIZING:
                if self._resize is not None and self._resize.changed:
                    self.commit()
            elif state == InteractionState.CONNECTING:
                self._finish_connect(event)
            elif state == InteractionState.PANNING:
                if self._pan is not None and self._pan.moved:
                    self.commit(push_history=False)
            elif state == InteractionState.FREEHAND_DRAWING:
                self._finish_freehand()
            elif state == InteractionState.ERASING:
                if self._erase is not None and self._erase.changed:
                    self.commit()
        finally:
            self._exit()

    def cancel_interaction(self) -> None:
        if self._drag is not None:
            for node_id, start in self._drag.start_positions.items():
                node = self.graph.nodes.get(node_id)
                if node is not None:
                    node.position = start
        if self._resize is not None:
            node = self.graph.nodes.get(self._resize.node_id)
            if node is not None:
                self._apply_bounds(node, self._resize.start_bounds)
        if self._pan is not None:
            self.graph.viewport = self._pan.start_viewport
        self._exit()

    # Commands

    def commit(self, push_history: bool = True) -> Scene:
        scene = self.graph.to_scene()
        if self._sink is not None:
            self._sink.submit(scene)
        if push_history and self.history.push(scene):
            logger.debug("Committed scene with %d elements", len(scene.elements))
        return scene

    def undo(self) -> bool:
        if self.state != InteractionState.IDLE:
            return False
        scene = self.history.undo()
        if scene is None:
            return False
        self._apply_scene(scene)
        return True

    def redo(self) -> bool:
        if self.state != InteractionState.IDLE:
            return False
        scene = self.history.redo()
        if scene is None:
            return False
        self._apply_scene(scene)
        return True

    def add_element(self, element: Element, parent_id: str | None = None) -> RuntimeNode:
        node = RuntimeNode.from_element(element)
        self.graph.add_node(node)
        if parent_id is not None:
            self.assign_parent(node.id, parent_id, commit=False)
        return node

    def update_element(self, node_id: str, **changes: Any) -> bool:
        node = self.graph.nodes.get(node_id)
        unknown = set(changes) - _EDITABLE_ELEMENT_FIELDS
        if node is None or unknown:
            logger.warning("Rejected element update for %s: %s", node_id, sorted(unknown))
            return False
        payload = node.element.model_dump()
        payload.update(changes)
        try:
            node.element = Element.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Rejected element update for %s: %s", node_id, exc)
            return False
        self.commit()
        return True

    def move_element(self, node_id: str, x: float, y: float) -> bool:
        node = self.graph.nodes.get(node_id)
        if node is None:
            return False
        node.position = Point(x, y)
        self.commit()
        return True

    def assign_parent(self, node_id: str, parent_id: str | None, *, commit: bool = True) -> bool:
        node = self.graph.nodes.get(node_id)
        if node is None or not can_assign_parent_for_kind(node.kind):
            return False
        if parent_id is not None:
            parent = self.graph.nodes.get(parent_id)
            if parent is None or parent.kind != ElementKind.CONTAINER or parent.id == node.id:
                logger.warning("Cannot parent %s into %s", node_id, parent_id)
                return False
        if node.parent_id == parent_id:
            return False
        self._reparent(node, parent_id)
        if commit:
            self.commit()
        return True

    def group_selection(self) -> str | None:
        members = [
            self.graph.nodes[node_id]
            for node_id in self._selection
            if node_id in self.graph.nodes
            and can_assign_parent_for_kind(self.graph.nodes[node_id].kind)
        ]
        if len(members) < 2:
            return None
        absolute = {node.id: self.graph.absolute_bounds(node.id) for node in members}
        bounds = pad_bounds(union_bounds(absolute.values()), self.config.group_padding)
        z_index = min(node.z_index for node in members) - 1
        container = create_default_element(
            ElementKind.CONTAINER, bounds.x, bounds.y, z_index, self._new_id
        ).model_copy(update={"width": bounds.width, "height": bounds.height})
        container_node = RuntimeNode.from_element(container)
        self._insert_before(container_node, {node.id for node in members})

        for node in members:
            node_bounds = absolute[node.id]
            node.parent_id = container.id
            node.position = Point(node_bounds.x - bounds.x, node_bounds.y - bounds.y)

        self.select([container.id])
        self.commit()
        return container.id

    def delete_elements(self, node_ids: Iterable[str]) -> int:
        removed = self._remove_nodes(node_ids)
        if removed:
            self.commit()
        return removed

    def delete_selection(self) -> int:
        return self.delete_elements(self.selected_ids)

    def add_connector(self, source_id: str, target_id: str) -> str | None:
        if source_id == target_id:
            return None
        if source_id not in self.graph.nodes or target_id not in self.graph.nodes:
            return None
        if any(
            connector.from_id == source_id and connector.to_id == target_id
            for connector in self.graph.connectors
        ):
            return None
        relation = Relation(
            id=self._new_id(), type=RelationType.CONNECTOR, from_id=source_id, to_id=target_id
        )
        self.graph.connectors.append(relation)
        self.commit()
        return relation.id

    def delete_connector(self, relation_id: str) -> bool:
        remaining = [item for item in self.graph.connectors if item.id != relation_id]
        if len(remaining) == len(self.graph.connectors):
            return False
        self.graph.connectors = remaining
        self.commit()
        return True

    def set_external_links(self, node_id: str, ticket_ids: Iterable[str]) -> bool:
        if node_id not in self.graph.nodes:
            return False
        kept = [link for link in self.graph.external_links if link.from_id != node_id]
        seen: set[str] = set()
        for ticket_id in ticket_ids:
            if not ticket_id or ticket_id in seen:
                continue
            seen.add(ticket_id)
            kept.append(
                Relation(
                    id=self._new_id(),
                    type=RelationType.EXTERNAL_LINK,
                    from_id=node_id,
                    to_id=ticket_id,
                )
            )
        self.graph.external_links = kept
        self.commit()
        return True

    def linked_ticket_ids(self, node_id: str) -> list[str]:
        return [link.to_id for link in self.graph.external_links if link.from_id == node_id]

    def copy_selection(self) -> int:
        nodes = [self.graph.nodes[node_id] for node_id in self._selection if node_id in self.graph.nodes]
        ids = {node.id for node in nodes}
        # Clipboard positions are absolute; the parent may be gone by paste time.
        self._clipboard = Clipboard(
            nodes=[
                RuntimeNode(
                    element=node.element,
                    parent_id=node.parent_id,
                    position=self.graph.absolute_position(node.id),
                )
                for node in nodes
            ],
            links=[link for link in self.graph.external_links if link.from_id in ids],
        )
        return len(nodes)

    def paste(self) -> list[str]:
        copied = {node.id: node for node in self._clipboard.nodes}
        sources: list[RuntimeNode] = []
        for node in self._clipboard.nodes:
            parent = copied.get(node.parent_id) if node.parent_id else None
            if parent is not None:
                position = Point(
                    node.position.x - parent.position.x, node.position.y - parent.position.y
                )
                parent_id: str | None = parent.id
            elif node.parent_id in self.graph.nodes:
                position = to_parent_relative_position(node.position, node.parent_id, self.graph.nodes)
                parent_id = node.parent_id
            else:
                position = node.position
                parent_id = None
            sources.append(RuntimeNode(element=node.element, parent_id=parent_id, position=position))
        return self._duplicate(sources, self._clipboard.links)

    def duplicate_selection(self) -> list[str]:
        nodes = [self.graph.nodes[node_id] for node_id in self._selection if node_id in self.graph.nodes]
        ids = {node.id for node in nodes}
        links = [link for link in self.graph.external_links if link.from_id in ids]
        return self._duplicate(nodes, links)

    # Card blocks

    def add_block(self, card_id: str, kind: BlockKind) -> str | None:
        created: list[Block] = []

        def append(template: CardTemplate) -> CardTemplate:
            block = create_block(kind, self._new_id, len(template.blocks))
            created.append(block)
            return template.model_copy(update={"blocks": [*template.blocks, block]})

        if not self._update_template(card_id, append):
            return None
        return created[0].id

    def update_block(self, card_id: str, block_id: str, **changes: Any) -> bool:
        node = self.graph.nodes.get(card_id)
        template = node.element.template if node is not None else None
        if template is None or all(block.id != block_id for block in template.blocks):
            return False
        unknown = set(changes) - _EDITABLE_BLOCK_FIELDS
        if unknown:
            logger.warning("Rejected block update %s: %s", block_id, sorted(unknown))
            return False

        def apply(template: CardTemplate) -> CardTemplate:
            blocks: list[Block] = []
            for block in template.blocks:
                if block.id != block_id:
                    blocks.append(block)
                    continue
                payload = block.model_dump()
                payload.update(changes)
                updated = Block.model_validate(payload)
                if _METRIC_FIELDS & set(changes):
                    metrics = normalize_block_metrics(updated)
                    updated = updated.model_copy(update=metrics.as_update())
                blocks.append(updated)
            return template.model_copy(update={"blocks": blocks})

        try:
            return self._update_template(card_id, apply)
        except ValidationError as exc:
            logger.warning("Rejected block update %s on card %s: %s", block_id, card_id, exc)
            return False

    def delete_block(self, card_id: str, block_id: str) -> bool:
        node = self.graph.nodes.get(card_id)
        if node is None or node.kind != ElementKind.CARD:
            return False
        template = ensure_template(node.element.template)
        if get_required_body_block_id(template) == block_id:
            logger.warning("Refusing to delete the only body block %s of card %s", block_id, card_id)
            return False
        if all(block.id != block_id for block in template.blocks):
            return False
        return self._update_template(
            card_id,
            lambda current: current.model_copy(
                update={"blocks": [block for block in current.blocks if block.id != block_id]}
            ),
        )

    def reorder_blocks(self, card_id: str, source_id: str, target_id: str) -> bool:
        if source_id == target_id:
            return False
        return self._update_template(
            card_id,
            lambda template: template.model_copy(
                update={"blocks": move_by_id(template.blocks, source_id, target_id)}
            ),
        )

    # Viewport

    def set_viewport(self, viewport: Viewport) -> None:
        self.graph.viewport = viewport
        self.commit(push_history=False)

    def reset_viewport(self) -> None:
        self.set_viewport(Viewport())

    def zoom_in(self) -> None:
        self._zoom_by(self.config.zoom_step)

    def zoom_out(self) -> None:
        self._zoom_by(1 / self.config.zoom_step)

    # Internals

    def _enter(self, state: InteractionState) -> None:
        self.state = state
        self._scope.attach(self.pointer_move, self.pointer_up)

    def _exit(self) -> None:
        self.state = InteractionState.IDLE
        self._drag = None
        self._resize = None
        self._connect = None
        self._pan = None
        self._erase = None
        self.freehand_draft = None
        self._scope.detach()

    def _to_scene(self, event: PointerEvent) -> Point:
        return self.graph.viewport.screen_to_scene(event.screen_point)

    def _screen_delta(self, start: Point, event: PointerEvent) -> tuple[float, float]:
        zoom = self.graph.viewport.zoom
        return (event.screen_x - start.x) / zoom, (event.screen_y - start.y) / zoom

    def _place_element(self, point: Point) -> None:
        kind = get_element_kind_for_tool(self.tool)
        if kind is None:
            return
        defaults = KIND_DEFAULTS[kind]
        z_index = 0 if kind == ElementKind.CONTAINER else self.graph.next_z_index()
        element = create_default_element(
            kind,
            point.x - defaults.width / 2,
            point.y - defaults.height / 2,
            z_index,
            self._new_id,
        )
        self.graph.add_node(RuntimeNode.from_element(element))
        self.select([element.id])
        self.tool = CanvasTool.SELECT
        self.commit()

    def _start_drag(self, target: RuntimeNode, event: PointerEvent) -> None:
        if event.shift:
            self.select([target.id], additive=True)
        elif target.id not in self._selection:
            self.select([target.id])
        # Children move with a selected container already.
        start_positions = {
            node_id: self.graph.nodes[node_id].position
            for node_id in self._selection
            if self.graph.nodes[node_id].parent_id not in self._selection
        }
        self._drag = DragSession(start_screen=event.screen_point, start_positions=start_positions)
        self._enter(InteractionState.DRAGGING)

    def _update_drag(self, event: PointerEvent) -> None:
        assert self._drag is not None
        dx, dy = self._screen_delta(self._drag.start_screen, event)
        for node_id, start in self._drag.start_positions.items():
            node = self.graph.nodes.get(node_id)
            if node is not None:
                node.position = Point(start.x + dx, start.y + dy)
        self._drag.moved = dx != 0 or dy != 0

    def _finish_drag(self) -> None:
        if self._drag is None or not self._drag.moved:
            return
        dropped = list(self._drag.start_positions)
        if should_reconcile_container_membership_after_drop(dropped):
            self._reconcile_membership(dropped[0])
        self.commit()

    def _reconcile_membership(self, node_id: str) -> None:
        node = self.graph.nodes.get(node_id)
        if node is None or not can_assign_parent_for_kind(node.kind):
            return
        container = pick_drop_container_for_node(node, self.graph.nodes)
        target_id = container.id if container is not None else None
        if target_id != node.parent_id:
            self._reparent(node, target_id)

    def _reparent(self, node: RuntimeNode, parent_id: str | None) -> None:
        absolute = self.graph.absolute_position(node.id)
        node.parent_id = parent_id
        if parent_id is None:
            node.position = absolute
        else:
            node.position = to_parent_relative_position(absolute, parent_id, self.graph.nodes)

    def _start_resize(self, target: RuntimeNode, event: PointerEvent) -> None:
        if event.handle is None:
            return
        self.select([target.id])
        self._resize = ResizeSession(
            node_id=target.id,
            handle=event.handle,
            start_screen=event.screen_point,
            start_bounds=Bounds(target.position.x, target.position.y, target.width, target.height),
        )
        self._enter(InteractionState.RESIZING)

    def _update_resize(self, event: PointerEvent) -> None:
        assert self._resize is not None
        node = self.graph.nodes.get(self._resize.node_id)
        if node is None:
            return
        dx, dy = self._screen_delta(self._resize.start_screen, event)
        try:
            bounds = resize_bounds(
                self._resize.start_bounds,
                self._resize.handle,
                dx,
                dy,
                min_width=self.config.min_element_width,
                min_height=self.config.min_element_height,
            )
        except GeometryError as exc:
            logger.warning("Ignoring resize update for %s: %s", node.id, exc)
            return
        self._apply_bounds(node, bounds)
        self._resize.changed = bounds != self._resize.start_bounds

    def _apply_bounds(self, node: RuntimeNode, bounds: Bounds) -> None:
        node.position = Point(bounds.x, bounds.y)
        node.element = node.element.model_copy(update={"width": bounds.width, "height": bounds.height})

    def _finish_connect(self, event: PointerEvent) -> None:
        if self._connect is None:
            return
        target_id = event.target_id
        if target_id is None or target_id == self._connect.source_id:
            return
        self.add_connector(self._connect.source_id, target_id)

    def _start_pan(self, event: PointerEvent) -> None:
        self._pan = PanSession(start_screen=event.screen_point, start_viewport=self.graph.viewport)
        self._enter(InteractionState.PANNING)

    def _update_pan(self, event: PointerEvent) -> None:
        assert self._pan is not None
        dx = event.screen_x - self._pan.start_screen.x
        dy = event.screen_y - self._pan.start_screen.y
        start = self._pan.start_viewport
        self.graph.viewport = start.model_copy(update={"x": start.x + dx, "y": start.y + dy})
        self._pan.moved = dx != 0 or dy != 0

    def _finish_freehand(self) -> None:
        if self.freehand_draft is None:
            return
        element = finalize_freehand_element(
            self.freehand_draft.points, self.graph.next_z_index(), self._new_id
        )
        if element is None:
            return
        self.graph.add_node(RuntimeNode.from_element(element))
        self.commit()

    def _erase_at(self, point: Point) -> bool:
        radius = self.eraser_size / 2
        doomed: list[str] = []
        replacements: list[tuple[RuntimeNode, list[list[Point]]]] = []
        for node in self.graph.nodes.values():
            if node.kind != ElementKind.PENCIL or node.element.stroke is None:
                continue
            origin = self.graph.absolute_position(node.id)
            points = to_absolute_stroke_points(
                origin, [Point(item.x, item.y) for item in node.element.stroke.points]
            )
            if not does_stroke_intersect_eraser(points, point, radius):
                continue
            if self.eraser_mode == EraserMode.WHOLE_STROKE:
                doomed.append(node.id)
                continue
            runs = split_stroke_points_by_eraser(points, point, radius)
            if len(runs) == 1 and len(runs[0]) == len(points):
                continue
            replacements.append((node, runs))
            doomed.append(node.id)

        if not doomed:
            return False
        for original, runs in replacements:
            for run in runs:
                piece = finalize_freehand_element(run, original.z_index, self._new_id)
                if piece is None:
                    continue
                piece = piece.model_copy(update={"style": original.element.style})
                self.add_element(piece, parent_id=original.parent_id)
        self._remove_nodes(doomed)
        return True

    def _remove_nodes(self, node_ids: Iterable[str]) -> int:
        doomed = {node_id for node_id in node_ids if node_id in self.graph.nodes}
        if not doomed:
            return 0
        # Orphaned children stay where they are on screen.
        for node in self.graph.nodes.values():
            if node.id not in doomed and node.parent_id in doomed:
                node.position = self.graph.absolute_position(node.id)
                node.parent_id = None
        for node_id in doomed:
            del self.graph.nodes[node_id]
        self.graph.connectors = [
            relation
            for relation in self.graph.connectors
            if relation.from_id not in doomed and relation.to_id not in doomed
        ]
        self.graph.external_links = [
            relation
            for relation in self.graph.external_links
            if relation.from_id not in doomed and relation.to_id not in doomed
        ]
        for node_id in doomed:
            self._selection.pop(node_id, None)
        return len(doomed)

    def _duplicate(self, sources: list[RuntimeNode], links: list[Relation]) -> list[str]:
        if not sources:
            return []
        id_map = {node.id: self._new_id() for node in sources}
        offset = self.config.duplicate_offset
        clones: list[RuntimeNode] = []
        for node in sources:
            cloned_parent = node.parent_id in id_map if node.parent_id else False
            if cloned_parent:
                parent_id = id_map[node.parent_id]  # type: ignore[index]
                position = node.position
            else:
                parent_id = node.parent_id if node.parent_id in self.graph.nodes else None
                position = Point(node.position.x + offset, node.position.y + offset)
            element = node.element.model_copy(
                update={"id": id_map[node.id], "z_index": node.z_index + 1}
            )
            clones.append(RuntimeNode(element=element, parent_id=parent_id, position=position))

        for clone in clones:
            self.graph.add_node(clone)
        for link in links:
            if link.from_id in id_map:
                self.graph.external_links.append(
                    link.model_copy(update={"id": self._new_id(), "from_id": id_map[link.from_id]})
                )
        self.select(clone.id for clone in clones)
        self.commit()
        return [clone.id for clone in clones]

    def _update_template(
        self,
        card_id: str,
        updater: Callable[[CardTemplate], CardTemplate],
    ) -> bool:
        node = self.graph.nodes.get(card_id)
        if node is None or node.kind != ElementKind.CARD:
            logger.warning("Element %s is not a card", card_id)
            return False
        updated = updater(ensure_template(node.element.template))
        normalized = updated.model_copy(update={"blocks": normalize_order(updated.blocks)})
        node.element = node.element.model_copy(
            update={"template": normalized, "text": derive_card_label(normalized)}
        )
        self.commit()
        return True

    def _insert_before(self, node: RuntimeNode, member_ids: set[str]) -> None:
        reordered: dict[str, RuntimeNode] = {}
        for existing_id, existing in self.graph.nodes.items():
            if existing_id in member_ids and node.id not in reordered:
                reordered[node.id] = node
            reordered[existing_id] = existing
        if node.id not in reordered:
            reordered[node.id] = node
        self.graph.nodes = reordered

    def _zoom_by(self, factor: float) -> None:
        viewport = self.graph.viewport
        zoom = min(self.config.max_zoom, max(self.config.min_zoom, viewport.zoom * factor))
        self.set_viewport(viewport.model_copy(update={"zoom": zoom}))

    def _apply_scene(self, scene: Scene) -> None:
        self.graph = map_scene_to_state(scene)
        for node_id in list(self._selection):
            if node_id not in self.graph.nodes:
                self._selection.pop(node_id)
        if self._sink is not None:
            self._sink.submit(scene)
