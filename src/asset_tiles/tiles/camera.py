"""Camera framing for tile renders."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

__all__ = ["BoundingBox", "CameraTransform", "frame_bounds", "look_at"]

Vector = tuple[float, float, float]

_VIEW_DIRECTION: Vector = (1.0, 1.0, 1.0)
_UP_VECTOR: Vector = (-1.0, 1.0, -1.0)
_FALLBACK_UPS: tuple[Vector, ...] = ((0.0, 1.0, 0.0), (0.0, 0.0, 1.0), (1.0, 0.0, 0.0))


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned bounding volume of a renderable resource."""

    minimum: Vector
    maximum: Vector

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]] | np.ndarray) -> "BoundingBox":
        array = np.asarray(points, dtype=float)
        if array.ndim != 2 or array.shape[1] < 3 or not len(array):
            raise ValueError("Bounding boxes need at least one 3D point")
        low = array[:, :3].min(axis=0)
        high = array[:, :3].max(axis=0)
        return cls(
            (float(low[0]), float(low[1]), float(low[2])),
            (float(high[0]), float(high[1]), float(high[2])),
        )

    @property
    def center(self) -> np.ndarray:
        return (np.asarray(self.minimum, dtype=float) + np.asarray(self.maximum, dtype=float)) * 0.5

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(np.asarray(self.maximum, dtype=float) - np.asarray(self.minimum, dtype=float)))


@dataclass(frozen=True, slots=True)
class CameraTransform:
    """Camera placement handed to the scene collaborator."""

    eye: Vector
    target: Vector
    up: Vector

    @property
    def view_matrix(self) -> np.ndarray:
        """Return the 4x4 world-to-camera matrix."""

        return look_at(self.eye, self.target, self.up)

    @property
    def world_matrix(self) -> np.ndarray:
        """Return the 4x4 camera-to-world matrix."""

        return np.linalg.inv(self.view_matrix)


def frame_bounds(bounds: BoundingBox) -> CameraTransform:
    """Place a camera looking at *bounds* from the (+x, +y, +z) diagonal.

    The eye sits at ``center + normalize(1, 1, 1) * diagonal / sqrt(2)``.
    Degenerate boxes are treated as having a unit diagonal.
    """

    center = bounds.center
    diagonal = bounds.diagonal
    if not math.isfinite(diagonal) or diagonal <= 0.0:
        diagonal = 1.0

    direction = np.asarray(_VIEW_DIRECTION, dtype=float)
    direction /= np.linalg.norm(direction)
    eye = center + direction * (diagonal / math.sqrt(2.0))

    up = _choose_up(center - eye)
    return CameraTransform(_as_vector(eye), _as_vector(center), _as_vector(up))


def look_at(
    eye: Sequence[float],
    target: Sequence[float],
    up: Sequence[float],
) -> np.ndarray:
    """Return a right-handed world-to-camera matrix (camera looks down -Z)."""

    eye_v = np.asarray(eye, dtype=float)
    forward = np.asarray(target, dtype=float) - eye_v
    length = np.linalg.norm(forward)
    if length == 0:
        raise ValueError("Camera eye and target coincide")
    forward /= length

    up_v = np.asarray(up, dtype=float)
    right = np.cross(forward, up_v)
    right_length = np.linalg.norm(right)
    if right_length < 1e-9:
        raise ValueError("Camera up vector is parallel to the view direction")
    right /= right_length
    true_up = np.cross(right, forward)

    matrix = np.identity(4, dtype=float)
    matrix[0, :3] = right
    matrix[1, :3] = true_up
    matrix[2, :3] = -forward
    matrix[:3, 3] = -matrix[:3, :3] @ eye_v
    return matrix


def _choose_up(forward: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(forward)
    direction = forward / norm if norm else np.asarray(_VIEW_DIRECTION, dtype=float)
    for candidate in (_UP_VECTOR, *_FALLBACK_UPS):
        up = np.asarray(candidate, dtype=float)
        up /= np.linalg.norm(up)
        if abs(float(direction @ up)) < 0.999:
            return up
    return np.asarray(_FALLBACK_UPS[0], dtype=float)  # pragma: no cover - unreachable


def _as_vector(values: np.ndarray) -> Vector:
    return (float(values[0]), float(values[1]), float(values[2]))
