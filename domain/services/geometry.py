from __future__ import annotations

import math
from collections.abc import Collection, Iterable, Mapping, Sequence

from domain.errors import GeometryError
from domain.models import Bounds, ElementKind, Point, ResizeHandle, RuntimeNode

NodeMap = Mapping[str, RuntimeNode]

ORIGIN = Point(0.0, 0.0)


def to_absolute_position(node_id: str, nodes: NodeMap) -> Point:
    node = nodes.get(node_id)
    if node is None:
        return ORIGIN
    x, y = node.position.x, node.position.y
    seen = {node_id}
    parent_id = node.parent_id
    while parent_id:
        if parent_id in seen:
            msg = f"Parent cycle detected at node {parent_id}"
            raise GeometryError(msg)
        parent = nodes.get(parent_id)
        if parent is None:
            break
        seen.add(parent_id)
        x += parent.position.x
        y += parent.position.y
        parent_id = parent.parent_id
    return Point(x, y)


def get_node_absolute_bounds(node_id: str, nodes: NodeMap) -> Bounds:
    node = nodes.get(node_id)
    if node is None:
        return Bounds(0.0, 0.0, 0.0, 0.0)
    origin = to_absolute_position(node_id, nodes)
    return Bounds(origin.x, origin.y, node.width, node.height)


def to_parent_relative_position(absolute: Point, parent_id: str, nodes: NodeMap) -> Point:
    if parent_id not in nodes:
        return absolute
    parent_origin = to_absolute_position(parent_id, nodes)
    return Point(absolute.x - parent_origin.x, absolute.y - parent_origin.y)


def is_point_inside_bounds(point: Point, bounds: Bounds) -> bool:
    # Inclusive edges keep drop decisions stable on border pixels.
    return (
        bounds.x <= point.x <= bounds.right
        and bounds.y <= point.y <= bounds.bottom
    )


def bounds_overlap(left: Bounds, right: Bounds) -> bool:
    return (
        left.x <= right.right
        and right.x <= left.right
        and left.y <= right.bottom
        and right.y <= left.bottom
    )


def is_node_ancestor(ancestor_id: str, child_id: str, nodes: NodeMap) -> bool:
    child = nodes.get(child_id)
    current = child.parent_id if child else None
    seen: set[str] = set()
    while current and current not in seen:
        if current == ancestor_id:
            return True
        seen.add(current)
        parent = nodes.get(current)
        current = parent.parent_id if parent else None
    return False


def pick_drop_container_for_node(
    dragged: RuntimeNode,
    nodes: NodeMap | Sequence[RuntimeNode],
) -> RuntimeNode | None:
    if dragged.kind == ElementKind.CONTAINER:
        return None
    node_map = _as_node_map(nodes)
    dragged_bounds = get_node_absolute_bounds(dragged.id, node_map)

    best: RuntimeNode | None = None
    best_key: tuple[float, int] | None = None
    for index, node in enumerate(node_map.values()):
        if node.kind != ElementKind.CONTAINER or node.id == dragged.id:
            continue
        if is_node_ancestor(dragged.id, node.id, node_map):
            continue
        if not bounds_overlap(dragged_bounds, get_node_absolute_bounds(node.id, node_map)):
            continue
        key = (float(node.z_index), index)
        if best_key is None or key > best_key:
            best, best_key = node, key
    return best


def should_reconcile_container_membership_after_drop(selected_ids: Collection[str]) -> bool:
    return len(set(selected_ids)) == 1


def union_bounds(bounds: Iterable[Bounds]) -> Bounds:
    items = list(bounds)
    if not items:
        raise GeometryError("Cannot compute union bounds of an empty selection")
    min_x = min(item.x for item in items)
    min_y = min(item.y for item in items)
    max_x = max(item.right for item in items)
    max_y = max(item.bottom for item in items)
    return Bounds(min_x, min_y, max_x - min_x, max_y - min_y)


def pad_bounds(bounds: Bounds, padding: float) -> Bounds:
    return Bounds(
        bounds.x - padding,
        bounds.y - padding,
        bounds.width + padding * 2,
        bounds.height + padding * 2,
    )


def resize_bounds(
    start: Bounds,
    handle: ResizeHandle | str,
    dx: float,
    dy: float,
    *,
    min_width: float,
    min_height: float,
) -> Bounds:
    if not all(math.isfinite(value) for value in (start.x, start.y, start.width, start.height, dx, dy)):
        raise GeometryError("Resize input must be finite")
    try:
        resolved = ResizeHandle(handle)
    except ValueError as exc:
        msg = f"Unknown resize handle: {handle}"
        raise GeometryError(msg) from exc

    moves_left = resolved in {ResizeHandle.NW, ResizeHandle.SW}
    moves_top = resolved in {ResizeHandle.NW, ResizeHandle.NE}

    if moves_left:
        width = max(min_width, start.width - dx)
        x = start.right - width
    else:
        width = max(min_width, start.width + dx)
        x = start.x

    if moves_top:
        height = max(min_height, start.height - dy)
        y = start.bottom - height
    else:
        height = max(min_height, start.height + dy)
        y = start.y

    return Bounds(x, y, width, height)


def _as_node_map(nodes: NodeMap | Sequence[RuntimeNode]) -> NodeMap:
    if isinstance(nodes, Mapping):
        return nodes
    return {node.id: node for node in nodes}
