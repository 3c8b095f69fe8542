from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from domain.models import Element, ElementKind, Point, StrokeData, StrokePoint
from domain.services.element_catalog import create_default_element

MIN_POINT_DISTANCE = 2.0
STROKE_PADDING = 6.0
MIN_STROKE_WIDTH = 12.0
MIN_STROKE_HEIGHT = 12.0


@dataclass
class FreehandDraft:
    points: list[Point] = field(default_factory=list)

    def append(self, point: Point) -> None:
        if not self.points:
            self.points.append(point)
            return
        last = self.points[-1]
        if math.hypot(point.x - last.x, point.y - last.y) < MIN_POINT_DISTANCE:
            return
        self.points.append(point)


def create_freehand_draft(point: Point) -> FreehandDraft:
    return FreehandDraft(points=[point])


def get_stroke_bounds(points: Sequence[Point]) -> tuple[float, float, float, float]:
    xs = [point.x for point in points]
    ys = [point.y for point in points]
    return min(xs), min(ys), max(xs), max(ys)


def finalize_freehand_element(
    points: Sequence[Point],
    z_index: float,
    id_factory: Callable[[], str],
) -> Element | None:
    if len(points) < 2:
        return None
    min_x, min_y, max_x, max_y = get_stroke_bounds(points)
    width = max(MIN_STROKE_WIDTH, max_x - min_x + STROKE_PADDING * 2)
    height = max(MIN_STROKE_HEIGHT, max_y - min_y + STROKE_PADDING * 2)
    base = create_default_element(
        ElementKind.PENCIL,
        min_x - STROKE_PADDING,
        min_y - STROKE_PADDING,
        z_index,
        id_factory,
    )
    local_points = [
        StrokePoint(x=point.x - min_x + STROKE_PADDING, y=point.y - min_y + STROKE_PADDING)
        for point in points
    ]
    return base.model_copy(
        update={"width": width, "height": height, "stroke": StrokeData(points=local_points)}
    )


def to_svg_polyline_points(stroke: StrokeData | None) -> str:
    if stroke is None or not stroke.points:
        return ""
    return " ".join(f"{point.x:g},{point.y:g}" for point in stroke.points)
