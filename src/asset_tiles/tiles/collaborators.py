"""Interfaces of the engine services the tile pipeline depends on."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .camera import BoundingBox, CameraTransform

__all__ = ["OffscreenRenderer", "ResourceLoader", "SceneModel"]


@runtime_checkable
class ResourceLoader(Protocol):
    """Asynchronous resource loading with polled readiness."""

    def load(self, path: str) -> Any:
        """Start loading *path* and return an opaque handle."""

    def unload(self, handle: Any) -> None:
        """Release *handle*."""

    def is_ready(self, handle: Any) -> bool:
        """Return ``True`` once *handle* finished loading successfully."""

    def is_failure(self, handle: Any) -> bool:
        """Return ``True`` when loading *handle* failed."""


@runtime_checkable
class OffscreenRenderer(Protocol):
    """Offscreen render target with asynchronous GPU read-back.

    Only the main tick may call these methods.
    """

    def resize(self, width: int, height: int) -> None:
        """Resize the offscreen color target."""

    def render(self) -> None:
        """Render the offscreen scene into the color target."""

    def blit_to_readable_texture(self) -> Any:
        """Copy the color target into a CPU-readable texture and return it."""

    def readback(self, texture: Any) -> bytearray | memoryview:
        """Request the pixels of *texture*.

        The returned RGBA8 buffer only holds valid data once the renderer's
        frame delay has elapsed.
        """

    def destroy_texture(self, texture: Any) -> None:
        """Release a texture returned by :meth:`blit_to_readable_texture`."""


@runtime_checkable
class SceneModel(Protocol):
    """Offscreen scene the tile renders are composed in."""

    def instantiate(self, resource: Any) -> Any | None:
        """Instantiate *resource* at the origin and return its entity."""

    def destroy(self, entity: Any) -> None:
        """Remove *entity* from the scene."""

    def set_camera_transform(self, camera: CameraTransform) -> None:
        """Place the scene camera."""

    def bounding_volume(self, resource: Any) -> BoundingBox | None:
        """Return the bounds of a loaded model resource."""

    def primary_model(self, entity: Any) -> Any | None:
        """Return the model resource rendered by a prefab *entity*."""
