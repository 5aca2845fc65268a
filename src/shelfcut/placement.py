"""
World placement of parts: transforms, floor constraint and collisions.

Every instantiated part owns a :class:`Transform` and a scene handle. World
bounds always come from the scene backend, so rotated parts are measured by
their real extents rather than their nominal dimensions.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Hashable, List, Mapping, Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from shelfcut.contracts import (
    WORLD_AXES,
    Dimensions,
    Measurement,
    Node,
    SimulatorConfig,
    Transform,
)
from shelfcut.errors import NodeNotFoundError
from shelfcut.scene import AABB, SceneBackend
from shelfcut.tree import Forest

logger = logging.getLogger(__name__)

_AXIS_INDEX = {axis: i for i, axis in enumerate(WORLD_AXES)}
_MAX_NEIGHBOURS = 3


def _axis_index(axis: str) -> int:
    try:
        return _AXIS_INDEX[axis]
    except KeyError:
        raise ValueError(f"Axis must be one of {WORLD_AXES}, got {axis!r}") from None


def _eroded(aabb: AABB, tol: float) -> AABB:
    lo, hi = aabb
    return lo + tol, hi - tol


def boxes_intersect(a: AABB, b: AABB) -> bool:
    """Inclusive AABB test: touching faces count as intersecting."""
    return bool(np.all(a[0] <= b[1]) and np.all(a[1] >= b[0]))


class PlacementEngine:
    """Transforms and scene handles for every instantiated part."""

    def __init__(self, scene: SceneBackend, config: Optional[SimulatorConfig] = None):
        self.scene = scene
        self.config = config or SimulatorConfig()
        self._transforms: Dict[str, Transform] = {}
        self._handles: Dict[str, Hashable] = {}

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._handles

    @property
    def transforms(self) -> Mapping[str, Transform]:
        return self._transforms

    def node_ids(self) -> List[str]:
        return list(self._handles)

    # ─── Instances ───────────────────────────────────────────────────────

    def place(self, node: Node, transform: Transform, visible: bool = True) -> None:
        """Instantiate ``node`` if needed and move it to ``transform``."""
        if node.id not in self._handles:
            self._handles[node.id] = self.scene.instantiate(node)
        self.set_transform(node.id, transform)
        self.set_visible(node.id, visible)

    def retire(self, node_id: str) -> None:
        handle = self._handles.pop(node_id, None)
        self._transforms.pop(node_id, None)
        if handle is not None:
            self.scene.retire(handle)

    def clear(self) -> None:
        for node_id in list(self._handles):
            self.retire(node_id)

    def rebuild(
        self,
        forest: Forest,
        positions: Mapping[str, Mapping[str, float]],
        quaternions: Mapping[str, Mapping[str, float]],
    ) -> None:
        """Replace every instance with the placements recorded in a snapshot."""
        self.clear()
        for node in forest.all_nodes():
            if node.id not in positions:
                continue
            transform = Transform.from_payload(positions[node.id], quaternions.get(node.id))
            self.place(node, transform, visible=node.is_active)

    def payloads(self) -> Tuple[Dict[str, Dict[str, float]], Dict[str, Dict[str, float]]]:
        positions = {i: t.position_payload() for i, t in self._transforms.items()}
        quaternions = {i: t.quaternion_payload() for i, t in self._transforms.items()}
        return positions, quaternions

    def _handle(self, node_id: str) -> Hashable:
        try:
            return self._handles[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def get_transform(self, node_id: str) -> Optional[Transform]:
        transform = self._transforms.get(node_id)
        return transform.copy() if transform is not None else None

    def set_transform(self, node_id: str, transform: Transform) -> None:
        handle = self._handle(node_id)
        self._transforms[node_id] = transform.copy()
        self.scene.set_transform(handle, transform.position, transform.quaternion)

    def set_visible(self, node_id: str, visible: bool) -> None:
        self.scene.set_visible(self._handle(node_id), visible)

    def is_visible(self, node_id: str) -> bool:
        handle = self._handles.get(node_id)
        return handle is not None and self.scene.is_visible(handle)

    def visible_ids(self) -> List[str]:
        return [node_id for node_id in self._handles if self.is_visible(node_id)]

    def world_aabb(self, node_id: str) -> AABB:
        return self.scene.get_world_aabb(self._handle(node_id))

    # ─── Constraints ─────────────────────────────────────────────────────

    def colliding_with(self, node_id: str) -> List[str]:
        tol = self.config.collision_tolerance_mm
        candidate = _eroded(self.world_aabb(node_id), tol)
        hits = []
        for other_id in self.visible_ids():
            if other_id == node_id:
                continue
            if boxes_intersect(candidate, _eroded(self.world_aabb(other_id), tol)):
                hits.append(other_id)
        return hits

    def check_collision(self, node_id: str) -> bool:
        tol = self.config.collision_tolerance_mm
        candidate = _eroded(self.world_aabb(node_id), tol)
        for other_id in self.visible_ids():
            if other_id == node_id:
                continue
            if boxes_intersect(candidate, _eroded(self.world_aabb(other_id), tol)):
                return True
        return False

    def enforce_floor_constraint(self, node_id: str) -> float:
        """Lift the part so it does not sink below y = 0; returns the lift."""
        min_y = float(self.world_aabb(node_id)[0][1])
        if min_y >= 0:
            return 0.0
        transform = self._transforms[node_id].copy()
        transform.position[1] -= min_y
        self.set_transform(node_id, transform)
        return -min_y

    def height_above_floor(self, node_id: str) -> float:
        return float(self.world_aabb(node_id)[0][1])

    def _apply_or_revert(self, node_id: str, transform: Transform) -> bool:
        previous = self._transforms[node_id].copy()
        self.set_transform(node_id, transform)
        self.enforce_floor_constraint(node_id)
        if self.check_collision(node_id):
            self.set_transform(node_id, previous)
            logger.debug("Move of %s reverted: collision", node_id)
            return False
        return True

    def nudge(self, node_id: str, axis: str, direction: int) -> bool:
        """Move one step along a world axis; False when reverted by a collision."""
        index = _axis_index(axis)
        transform = self._transforms[node_id].copy()
        transform.position[index] += int(direction) * self.config.move_step_mm
        return self._apply_or_revert(node_id, transform)

    def rotate_quarter(self, node_id: str, axis: str, direction: int = 1) -> bool:
        """Quarter turn about a world axis through the part's centre."""
        index = _axis_index(axis)
        rotvec = np.zeros(3)
        rotvec[index] = int(direction) * self.config.rotate_step_rad
        step = Rotation.from_rotvec(rotvec)
        transform = self._transforms[node_id].copy()
        transform.quaternion = (step * Rotation.from_quat(transform.quaternion)).as_quat()
        return self._apply_or_revert(node_id, transform)

    # ─── Layout helpers ──────────────────────────────────────────────────

    def initial_board_position(self, dimensions: Dimensions) -> np.ndarray:
        """Where a new board goes: on the floor, behind every visible part."""
        max_z = 0.0
        for node_id in self.visible_ids():
            max_z = max(max_z, float(self.world_aabb(node_id)[1][2]))
        z = max_z + dimensions.depth / 2 + self.config.new_board_spacing_mm
        return np.array([0.0, dimensions.height / 2, z])

    def measure_neighbours(self, node_id: str, axis: str) -> List[Measurement]:
        """Nearest visible parts on each side of ``node_id`` along ``axis``.

        Parts that overlap the mover along ``axis`` are skipped. At most three
        per side are returned, nearest first.
        """
        index = _axis_index(axis)
        lo, hi = self.world_aabb(node_id)
        centre = (lo[index] + hi[index]) / 2
        positive: List[Tuple[float, str]] = []
        negative: List[Tuple[float, str]] = []

        for other_id in self.visible_ids():
            if other_id == node_id:
                continue
            other_lo, other_hi = self.world_aabb(other_id)
            if lo[index] > other_hi[index]:
                dist = lo[index] - other_hi[index]
            else:
                dist = other_lo[index] - hi[index]
            if dist < 0:
                continue
            if centre < (other_lo[index] + other_hi[index]) / 2:
                positive.append((float(dist), other_id))
            else:
                negative.append((float(dist), other_id))

        measurements: List[Measurement] = []
        for direction, targets in ((1, positive), (-1, negative)):
            targets.sort()
            for rank, (dist, other_id) in enumerate(targets[:_MAX_NEIGHBOURS]):
                measurements.append(
                    Measurement(
                        target_id=other_id,
                        axis=axis,
                        direction=direction,
                        distance=dist,
                        rank=rank,
                    )
                )
        return measurements


class DragSession:
    """One drag of one part: ``idle -> dragging -> committed | reverted``."""

    def __init__(
        self,
        engine: PlacementEngine,
        node_id: str,
        on_commit: Optional[Callable[[], None]] = None,
    ):
        self.engine = engine
        self.node_id = node_id
        self.on_commit = on_commit
        self.state = "idle"
        self.colliding = False
        self.colliding_ids: List[str] = []
        self.last_valid: Optional[Transform] = None

    def begin(self) -> None:
        if self.state != "idle":
            raise RuntimeError(f"Drag already {self.state}")
        self.last_valid = self.engine.get_transform(self.node_id)
        if self.last_valid is None:
            raise NodeNotFoundError(self.node_id)
        self.colliding = False
        self.state = "dragging"

    def update(self, position=None, quaternion=None) -> bool:
        """Apply an intermediate transform; returns the collision state."""
        if self.state != "dragging":
            raise RuntimeError("Drag is not in progress")
        transform = self.engine.get_transform(self.node_id)
        if position is not None:
            transform.position = np.asarray(position, dtype=float).reshape(3)
        if quaternion is not None:
            transform.quaternion = np.asarray(quaternion, dtype=float).reshape(4)
        self.engine.set_transform(self.node_id, transform)
        self.engine.enforce_floor_constraint(self.node_id)

        self.colliding_ids = self.engine.colliding_with(self.node_id)
        self.colliding = bool(self.colliding_ids)
        if not self.colliding:
            self.last_valid = self.engine.get_transform(self.node_id)
        return self.colliding

    def end(self) -> bool:
        """Finish the drag; returns True when the move was committed."""
        if self.state != "dragging":
            raise RuntimeError("Drag is not in progress")
        self.colliding_ids = []
        if self.colliding:
            self.engine.set_transform(self.node_id, self.last_valid)
            self.state = "reverted"
            logger.debug("Drag of %s reverted to last valid placement", self.node_id)
            return False
        self.state = "committed"
        if self.on_commit is not None:
            self.on_commit()
        return True
