"""
Scene backend contract and the default trimesh-backed implementation.

The placement engine talks to a rendering collaborator only through
:class:`SceneBackend`. :class:`TrimeshScene` keeps one box mesh per part so
world bounds are computed from real geometry, rotation included.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Dict, Hashable, Protocol, Tuple

import numpy as np
import trimesh
from scipy.spatial.transform import Rotation

from shelfcut.contracts import IDENTITY_QUAT, Node

logger = logging.getLogger(__name__)

AABB = Tuple[np.ndarray, np.ndarray]  # (min xyz, max xyz)


class SceneBackend(Protocol):
    def instantiate(self, node: Node) -> Hashable: ...

    def retire(self, handle: Hashable) -> None: ...

    def set_transform(
        self, handle: Hashable, position: np.ndarray, orientation: np.ndarray
    ) -> None: ...

    def get_world_aabb(self, handle: Hashable) -> AABB: ...

    def set_visible(self, handle: Hashable, visible: bool) -> None: ...

    def is_visible(self, handle: Hashable) -> bool: ...


@dataclass
class _SceneObject:
    node_id: str
    mesh: trimesh.Trimesh
    position: np.ndarray
    orientation: np.ndarray
    visible: bool = True


class TrimeshScene:
    """In-memory scene of box meshes, one per instantiated part."""

    def __init__(self) -> None:
        self._objects: Dict[int, _SceneObject] = {}
        self._handles = itertools.count(1)

    def __len__(self) -> int:
        return len(self._objects)

    def instantiate(self, node: Node) -> int:
        dims = node.dimensions
        mesh = trimesh.creation.box(extents=[dims.width, dims.height, dims.depth])
        handle = next(self._handles)
        self._objects[handle] = _SceneObject(
            node_id=node.id,
            mesh=mesh,
            position=np.zeros(3),
            orientation=np.array(IDENTITY_QUAT, dtype=float),
        )
        return handle

    def retire(self, handle: int) -> None:
        if self._objects.pop(handle, None) is None:
            logger.debug("Retire of unknown scene handle %s ignored", handle)

    def set_transform(self, handle: int, position, orientation) -> None:
        obj = self._objects[handle]
        obj.position = np.asarray(position, dtype=float).copy()
        obj.orientation = np.asarray(orientation, dtype=float).copy()

    def get_world_aabb(self, handle: int) -> AABB:
        obj = self._objects[handle]
        rotation = Rotation.from_quat(obj.orientation).as_matrix()
        vertices = obj.mesh.vertices @ rotation.T + obj.position
        return vertices.min(axis=0), vertices.max(axis=0)

    def set_visible(self, handle: int, visible: bool) -> None:
        self._objects[handle].visible = bool(visible)

    def is_visible(self, handle: int) -> bool:
        return self._objects[handle].visible
