"""CPU implementations of the loader, scene and offscreen renderer.

These collaborators let the tile subsystem run without an engine or a GPU:
meshes are loaded with :mod:`trimesh` on a thread pool and rasterised with
numpy and Pillow. The read-back buffer is filled as soon as it is requested;
the pipeline still honours the configured frame delay.
"""

from __future__ import annotations

import json
import logging
import math
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import Any

import numpy as np
import trimesh
from PIL import Image, ImageDraw

from ..config import TileConfig, get_config
from .camera import BoundingBox, CameraTransform
from .errors import LoadFailure
from .requests import AssetKind, classify_path
from .router import TileRouter

__all__ = [
    "MeshResource",
    "PrefabResource",
    "ResourceHandle",
    "SoftwareRenderer",
    "SoftwareResourceLoader",
    "SoftwareScene",
    "build_software_router",
    "load_mesh_resource",
    "load_prefab_resource",
]

logger = logging.getLogger(__name__)

Color = tuple[int, int, int, int]


@dataclass(slots=True)
class MeshResource:
    """Triangle mesh loaded from disk."""

    path: Path
    vertices: np.ndarray
    faces: np.ndarray
    bounds: BoundingBox


@dataclass(slots=True)
class PrefabResource:
    """Prefab document listing the models it instantiates."""

    path: Path
    models: tuple[str, ...]

    @property
    def primary_model(self) -> str | None:
        return self.models[0] if self.models else None


class ResourceHandle:
    """Reference-counted handle to a resource loading in the background."""

    __slots__ = ("path", "refs", "_future")

    def __init__(self, path: str, future: Future) -> None:
        self.path = path
        self.refs = 1
        self._future = future

    def __repr__(self) -> str:
        return f"ResourceHandle({self.path!r}, refs={self.refs})"

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def value(self) -> Any:
        """Return the loaded resource, or ``None`` while loading or on failure."""

        if not self._future.done() or self._future.cancelled():
            return None
        if self._future.exception() is not None:
            return None
        return self._future.result()

    @property
    def failed(self) -> bool:
        if not self._future.done():
            return False
        if self._future.cancelled() or self._future.exception() is not None:
            return True
        return self._future.result() is None

    def cancel(self) -> None:
        self._future.cancel()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until loading finished; returns ``False`` on timeout."""

        try:
            self._future.exception(timeout=timeout)
        except TimeoutError:
            return False
        except CancelledError:
            return True
        return True


def load_mesh_resource(path: Path) -> MeshResource:
    """Load *path* as a single triangle mesh."""

    try:
        mesh = trimesh.load(path, force="mesh")
    except Exception as exc:  # noqa: BLE001 - trimesh raises a wide range of errors
        raise LoadFailure(f"Unable to load mesh {path!s}: {exc}") from exc

    if isinstance(mesh, trimesh.Scene):
        if not mesh.geometry:
            raise LoadFailure(f"{path!s} contains no geometry")
        mesh = trimesh.util.concatenate(tuple(mesh.geometry.values()))

    if not isinstance(mesh, trimesh.Trimesh) or mesh.vertices is None or mesh.faces is None:
        raise LoadFailure(f"{path!s} is not a triangle mesh")

    vertices = np.asarray(mesh.vertices, dtype=float)
    faces = np.asarray(mesh.faces, dtype=np.int32)
    if not len(vertices) or not len(faces):
        raise LoadFailure(f"{path!s} has no renderable triangles")

    return MeshResource(path, vertices, faces, BoundingBox.from_points(vertices))


def load_prefab_resource(path: Path) -> PrefabResource:
    """Load a prefab document.

    Prefabs are JSON objects with an ``entities`` list; every entity with a
    ``model`` entry contributes a model path, resolved relative to the
    prefab. The first one is the prefab's primary renderable.
    """

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise LoadFailure(f"Unable to read prefab {path!s}: {exc}") from exc

    entities = document.get("entities") if isinstance(document, dict) else None
    if not isinstance(entities, list):
        raise LoadFailure(f"Prefab {path!s} has no entity list")

    models: list[str] = []
    for entity in entities:
        model = entity.get("model") if isinstance(entity, dict) else None
        if not isinstance(model, str) or not model.strip():
            continue
        candidate = Path(model.strip())
        if not candidate.is_absolute():
            candidate = path.parent / candidate
        models.append(candidate.as_posix())

    return PrefabResource(path, tuple(models))


class SoftwareResourceLoader:
    """Load meshes and prefabs on a background thread pool."""

    def __init__(self, *, max_workers: int = 1) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tile-load")
        self._handles: dict[str, ResourceHandle] = {}
        self._lock = threading.Lock()

    def load(self, path: str) -> ResourceHandle:
        with self._lock:
            handle = self._handles.get(path)
            if handle is not None:
                handle.refs += 1
                return handle
            handle = ResourceHandle(path, self._executor.submit(_load_resource, Path(path)))
            self._handles[path] = handle
            return handle

    def unload(self, handle: ResourceHandle) -> None:
        with self._lock:
            handle.refs -= 1
            if handle.refs > 0:
                return
            if self._handles.get(handle.path) is handle:
                del self._handles[handle.path]
        handle.cancel()

    def is_ready(self, handle: ResourceHandle) -> bool:
        return handle.value is not None

    def is_failure(self, handle: ResourceHandle) -> bool:
        return handle.failed

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)


def _load_resource(path: Path) -> MeshResource | PrefabResource:
    if classify_path(path) is AssetKind.PREFAB:
        return load_prefab_resource(path)
    return load_mesh_resource(path)


@dataclass(slots=True)
class _SceneEntity:
    model: ResourceHandle
    owns_model: bool


class SoftwareScene:
    """Offscreen scene holding the entities a tile render draws."""

    def __init__(self, loader: SoftwareResourceLoader) -> None:
        self._loader = loader
        self._entities: dict[int, _SceneEntity] = {}
        self._ids = count(1)
        self._camera: CameraTransform | None = None

    @property
    def camera(self) -> CameraTransform | None:
        return self._camera

    @property
    def entity_count(self) -> int:
        return len(self._entities)

    def instantiate(self, resource: ResourceHandle) -> int | None:
        value = resource.value
        if isinstance(value, MeshResource):
            entity = _SceneEntity(resource, owns_model=False)
        elif isinstance(value, PrefabResource):
            primary = value.primary_model
            if primary is None:
                logger.warning("Prefab %s has no model to render", value.path)
                return None
            entity = _SceneEntity(self._loader.load(primary), owns_model=True)
        else:
            return None

        entity_id = next(self._ids)
        self._entities[entity_id] = entity
        return entity_id

    def destroy(self, entity: int) -> None:
        record = self._entities.pop(entity, None)
        if record is not None and record.owns_model:
            self._loader.unload(record.model)

    def set_camera_transform(self, camera: CameraTransform) -> None:
        self._camera = camera

    def bounding_volume(self, resource: ResourceHandle) -> BoundingBox | None:
        value = resource.value
        if isinstance(value, MeshResource):
            return value.bounds
        return None

    def primary_model(self, entity: int) -> ResourceHandle | None:
        record = self._entities.get(entity)
        return record.model if record is not None else None

    def meshes(self) -> list[MeshResource]:
        """Return the loaded meshes of every entity in the scene."""

        meshes: list[MeshResource] = []
        for record in self._entities.values():
            value = record.model.value
            if isinstance(value, MeshResource):
                meshes.append(value)
        return meshes


class SoftwareRenderer:
    """Rasterise the offscreen scene into an RGBA color target."""

    def __init__(
        self,
        scene: SoftwareScene,
        *,
        background: Color = (18, 22, 28, 255),
        base_color: Color = (120, 170, 220, 255),
        highlight_color: Color = (180, 220, 255, 255),
        shadow_color: Color = (70, 110, 160, 255),
        field_of_view: float = 90.0,
    ) -> None:
        self._scene = scene
        self._background = background
        self._base_color = np.array(base_color, dtype=float)
        self._highlight_color = np.array(highlight_color, dtype=float)
        self._shadow_color = np.array(shadow_color, dtype=float)
        self._focal = 1.0 / math.tan(math.radians(field_of_view) / 2.0)
        self._size = (1, 1)
        self._target = Image.new("RGBA", self._size, background)
        self._textures: dict[int, Image.Image] = {}
        self._texture_ids = count(1)

    @property
    def live_textures(self) -> int:
        return len(self._textures)

    def resize(self, width: int, height: int) -> None:
        self._size = (max(1, int(width)), max(1, int(height)))

    def render(self) -> None:
        self._target = self._rasterize(self._scene.meshes(), self._scene.camera)

    def blit_to_readable_texture(self) -> int:
        texture = next(self._texture_ids)
        self._textures[texture] = self._target.copy()
        return texture

    def readback(self, texture: int) -> bytearray:
        return bytearray(self._textures[texture].tobytes())

    def destroy_texture(self, texture: int) -> None:
        self._textures.pop(texture, None)

    # ------------------------------------------------------------------
    # Rasterisation
    # ------------------------------------------------------------------
    def _rasterize(
        self,
        meshes: list[MeshResource],
        camera: CameraTransform | None,
    ) -> Image.Image:
        width, height = self._size
        supersample = 2
        canvas_width = width * supersample
        canvas_height = height * supersample
        image = Image.new("RGBA", (canvas_width, canvas_height), self._background)

        if camera is not None and meshes:
            draw = ImageDraw.Draw(image, "RGBA")
            view = camera.view_matrix
            light_dir = np.array([0.45, 0.55, 0.7], dtype=float)
            light_dir /= np.linalg.norm(light_dir)
            scale = 0.5 * min(canvas_width, canvas_height) * self._focal

            polygons: list[tuple[float, list[tuple[float, float]], tuple[int, ...]]] = []
            for mesh in meshes:
                homogeneous = np.c_[mesh.vertices, np.ones(len(mesh.vertices))]
                eye_space = (homogeneous @ view.T)[:, :3]
                depth = -eye_space[:, 2]

                with np.errstate(divide="ignore", invalid="ignore"):
                    screen = np.zeros((len(eye_space), 2), dtype=float)
                    screen[:, 0] = eye_space[:, 0] / depth * scale + canvas_width / 2
                    screen[:, 1] = canvas_height / 2 - eye_space[:, 1] / depth * scale

                triangles = eye_space[mesh.faces]
                normals = np.cross(
                    triangles[:, 1] - triangles[:, 0],
                    triangles[:, 2] - triangles[:, 0],
                )
                lengths = np.linalg.norm(normals, axis=1)
                valid = lengths > 0
                normals[valid] /= lengths[valid][:, None]
                intensity = np.abs(normals @ light_dir)
                visible = (depth[mesh.faces] > 1e-6).all(axis=1)
                face_depths = depth[mesh.faces].mean(axis=1)

                for index in np.flatnonzero(visible):
                    face = mesh.faces[index]
                    polygon = [(screen[idx, 0], screen[idx, 1]) for idx in face]
                    color = _lerp_color(self._shadow_color, self._highlight_color, intensity[index])
                    color = _lerp_color(color, self._base_color, 0.35)
                    polygons.append(
                        (float(face_depths[index]), polygon, tuple(int(value) for value in color))
                    )

            polygons.sort(key=lambda item: item[0], reverse=True)
            for _, polygon, color in polygons:
                draw.polygon(polygon, fill=color)

        return image.resize((width, height), Image.Resampling.LANCZOS)


def build_software_router(config: TileConfig | None = None) -> TileRouter:
    """Return a :class:`TileRouter` wired to the software collaborators.

    The router owns the loader; :meth:`TileRouter.shutdown` stops its thread
    pool.
    """

    loader = SoftwareResourceLoader()
    scene = SoftwareScene(loader)
    renderer = SoftwareRenderer(scene)
    return TileRouter(
        loader=loader,
        scene=scene,
        renderer=renderer,
        config=config or get_config(),
        closers=(loader.close,),
    )


def _lerp_color(start: np.ndarray, end: np.ndarray, factor: float) -> np.ndarray:
    clamped = float(np.clip(factor, 0.0, 1.0))
    return start + (end - start) * clamped
