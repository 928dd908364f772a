"""Asynchronous tile generation for images, models and prefabs."""

from __future__ import annotations

from .cache import PlaceholderSet, TileCache
from .camera import BoundingBox, CameraTransform, frame_bounds
from .collaborators import OffscreenRenderer, ResourceLoader, SceneModel
from .encoder import TileEncoder
from .errors import DecodeFailure, EncodeFailure, LoadFailure, TileError
from .pipeline import InFlightTile, RenderAdmission, Stage, StagedRenderPipeline
from .requests import AssetKind, TileRequest, classify_path, content_hash
from .resampler import ImageResampler
from .router import TileListener, TileRouter
from .worker import ResizeQueue, ResizeWorker, WorkerState

__all__ = [
    "AssetKind",
    "BoundingBox",
    "CameraTransform",
    "DecodeFailure",
    "EncodeFailure",
    "ImageResampler",
    "InFlightTile",
    "LoadFailure",
    "OffscreenRenderer",
    "PlaceholderSet",
    "RenderAdmission",
    "ResizeQueue",
    "ResizeWorker",
    "ResourceLoader",
    "SceneModel",
    "Stage",
    "StagedRenderPipeline",
    "TileCache",
    "TileEncoder",
    "TileError",
    "TileListener",
    "TileRequest",
    "TileRouter",
    "WorkerState",
    "classify_path",
    "content_hash",
    "frame_bounds",
]
