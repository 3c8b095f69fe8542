from __future__ import annotations

import math
from collections.abc import Sequence
from enum import Enum

from domain.models import Point


class EraserMode(str, Enum):
    WHOLE_STROKE = "WHOLE_STROKE"
    PARTIAL = "PARTIAL"


ERASER_DEFAULT_MODE = EraserMode.WHOLE_STROKE
ERASER_DEFAULT_SIZE = 16.0
ERASER_MIN_SIZE = 6.0
ERASER_MAX_SIZE = 48.0


def clamp_eraser_size(size: float) -> float:
    return min(ERASER_MAX_SIZE, max(ERASER_MIN_SIZE, size))


def distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def distance_to_segment(point: Point, start: Point, end: Point) -> float:
    dx = end.x - start.x
    dy = end.y - start.y
    length_squared = dx * dx + dy * dy
    if length_squared == 0:
        return distance(point, start)
    t = ((point.x - start.x) * dx + (point.y - start.y) * dy) / length_squared
    t = min(1.0, max(0.0, t))
    return distance(point, Point(start.x + t * dx, start.y + t * dy))


def is_point_inside_eraser(point: Point, center: Point, radius: float) -> bool:
    return distance(point, center) <= radius


def to_absolute_stroke_points(origin: Point, points: Sequence[Point]) -> list[Point]:
    return [Point(origin.x + point.x, origin.y + point.y) for point in points]


def does_stroke_intersect_eraser(points: Sequence[Point], center: Point, radius: float) -> bool:
    if len(points) < 2:
        return False
    for previous, current in zip(points, points[1:]):
        if is_point_inside_eraser(previous, center, radius):
            return True
        if distance_to_segment(center, previous, current) <= radius:
            return True
    return is_point_inside_eraser(points[-1], center, radius)


def split_stroke_points_by_eraser(
    points: Sequence[Point],
    center: Point,
    radius: float,
) -> list[list[Point]]:
    runs: list[list[Point]] = []
    current: list[Point] = []
    for point in points:
        if is_point_inside_eraser(point, center, radius):
            if len(current) >= 2:
                runs.append(current)
            current = []
            continue
        current.append(point)
    if len(current) >= 2:
        runs.append(current)
    return runs
