from __future__ import annotations


class CanvasError(Exception):
    pass


class SceneValidationError(CanvasError):
    pass


class GeometryError(CanvasError):
    pass


class OrderingError(CanvasError):
    pass
