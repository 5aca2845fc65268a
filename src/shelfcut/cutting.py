"""
Guillotine cut and merge state machine.

A cut deactivates an active leaf and hangs two new leaves beneath it that
partition its footprint along one axis. Merge is the inverse for a parent
whose children are both leaves. These functions mutate only the forest; the
world transforms they compute are returned for the placement engine to apply.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Mapping, Optional

import numpy as np
from scipy.spatial.transform import Rotation

from shelfcut.contracts import AXES, ORIGINS, Dimensions, Node, Snapshot, Transform
from shelfcut.errors import InvalidCutError, InvalidStateError, MergeBlockedError
from shelfcut.tree import Forest

logger = logging.getLogger(__name__)

# Local direction the two pieces move apart in, per cut axis.
_CUT_DIRECTION = {
    "width": np.array([1.0, 0.0, 0.0]),
    "depth": np.array([0.0, 0.0, 1.0]),
}


@dataclass
class CutOutcome:
    parent: Node
    first: Node
    second: Node
    transforms: Dict[str, Transform] = field(default_factory=dict)


@dataclass
class MergeOutcome:
    parent: Node
    removed: List[Node]
    transform: Transform
    transform_source: str  # "retained" | "snapshot" | "default"


def resolve_cut_value(node: Node, axis: str, origin: str, value: object) -> float:
    """Convert a user cut value into the first child's extent along ``axis``.

    Raises:
        InvalidCutError: unknown axis/origin, non-numeric value, or a value
            that would leave an empty piece.
    """
    if axis not in AXES:
        raise InvalidCutError(f"Cut axis must be one of {AXES}, got {axis!r}")
    if origin not in ORIGINS:
        raise InvalidCutError(f"Cut origin must be one of {ORIGINS}, got {origin!r}")
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidCutError(f"Cut value must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidCutError("Cut value must be finite")

    extent = node.dimensions.extent(axis)
    if origin == "end":
        value = extent - value
    if not 0 < value < extent:
        raise InvalidCutError(
            f"Cut at {value:g} mm is outside (0, {extent:g}) for {axis} of '{node.label}'"
        )
    return value


def _split(node: Node, axis: str, value: float):
    dims, bounds = node.dimensions, node.bounds
    if axis == "width":
        rest = dims.width - value
        return (
            (replace(dims, width=value), replace(bounds, width=value)),
            (replace(dims, width=rest), replace(bounds, x=bounds.x + value, width=rest)),
        )
    rest = dims.depth - value
    return (
        (replace(dims, depth=value), replace(bounds, depth=value)),
        (replace(dims, depth=rest), replace(bounds, y=bounds.y + value, depth=rest)),
    )


def child_transforms(
    parent_transform: Transform,
    parent: Dimensions,
    axis: str,
    first: Dimensions,
    second: Dimensions,
    gap_mm: float,
) -> List[Transform]:
    """World transforms of the two pieces, pushed apart by half the kerf gap each."""
    extent = parent.extent(axis)
    rotation = Rotation.from_quat(parent_transform.quaternion)
    direction = _CUT_DIRECTION[axis]
    offsets = (
        -((extent - first.extent(axis)) / 2 + gap_mm / 2),
        (extent - second.extent(axis)) / 2 + gap_mm / 2,
    )
    return [
        Transform(
            parent_transform.position + rotation.apply(direction * offset),
            parent_transform.quaternion.copy(),
        )
        for offset in offsets
    ]


def cut(
    forest: Forest,
    transforms: Mapping[str, Transform],
    node_id: str,
    axis: str,
    origin: str,
    value: object,
    *,
    new_id: Callable[[], str],
    gap_mm: float = 5.0,
) -> CutOutcome:
    """Split an active leaf in two along ``axis``.

    Args:
        forest: Forest holding the node.
        transforms: Current world transforms keyed by node id.
        node_id: Active leaf to cut.
        axis: ``"width"`` or ``"depth"``.
        origin: ``"start"`` measures ``value`` from the low edge, ``"end"``
            from the high edge.
        value: Distance of the cut from ``origin`` in mm.
        new_id: Supplier of fresh node ids.
        gap_mm: Kerf gap inserted between the pieces in world space.

    Returns:
        CutOutcome with the deactivated parent, both children and their
        transforms. The parent's own transform is left in place.

    Raises:
        NodeNotFoundError: ``node_id`` does not exist.
        InvalidStateError: the node is not an active leaf.
        InvalidCutError: bad axis, origin or value.
    """
    node = forest.node(node_id)
    if not node.is_active or not node.is_leaf:
        raise InvalidStateError(f"Only an active part can be cut: '{node.label}'")
    value = resolve_cut_value(node, axis, origin, value)

    (dims1, bounds1), (dims2, bounds2) = _split(node, axis, value)
    first = Node(
        id=new_id(), wood_name=f"{node.wood_name}_1", dimensions=dims1, bounds=bounds1
    )
    second = Node(
        id=new_id(), wood_name=f"{node.wood_name}_2", dimensions=dims2, bounds=bounds2
    )

    parent_transform = transforms.get(node_id) or Transform()
    t1, t2 = child_transforms(parent_transform, node.dimensions, axis, dims1, dims2, gap_mm)

    node.is_active = False
    forest.attach_children(node_id, first, second)
    logger.debug(
        "Cut %s along %s at %.3f -> %s, %s", node_id, axis, value, first.id, second.id
    )
    return CutOutcome(
        parent=node, first=first, second=second, transforms={first.id: t1, second.id: t2}
    )


def check_mergeable(forest: Forest, parent_id: str) -> Node:
    """Raise unless ``parent_id`` has exactly two leaf children."""
    parent = forest.node(parent_id)
    if len(parent.children) != 2:
        raise InvalidStateError(f"'{parent.label}' has no cut to merge")
    for child in forest.children_of(parent):
        if child.children:
            raise MergeBlockedError(child.label)
    return parent


def _snapshot_transform(snapshot: Optional[Snapshot], node_id: str) -> Optional[Transform]:
    if snapshot is None or node_id not in snapshot.positions:
        return None
    return Transform.from_payload(
        snapshot.positions[node_id], snapshot.quaternions.get(node_id)
    )


def merge(
    forest: Forest,
    transforms: Mapping[str, Transform],
    parent_id: str,
    *,
    latest: Optional[Snapshot] = None,
) -> MergeOutcome:
    """Undo the cut below ``parent_id`` and reactivate it.

    The parent's placement is its retained transform, else its entry in
    ``latest``, else the origin with identity orientation.
    """
    parent = check_mergeable(forest, parent_id)
    removed = forest.detach_children(parent_id)
    parent.is_active = True
    parent.is_waste = False

    transform = transforms.get(parent_id)
    source = "retained"
    if transform is None:
        transform = _snapshot_transform(latest, parent_id)
        source = "snapshot"
    if transform is None:
        logger.warning("No placement recorded for %s; merging at the origin", parent_id)
        transform = Transform()
        source = "default"
    return MergeOutcome(
        parent=parent, removed=removed, transform=transform.copy(), transform_source=source
    )


def hide_as_waste(forest: Forest, node_id: str) -> Node:
    node = forest.node(node_id)
    if not node.is_active or not node.is_leaf:
        raise InvalidStateError(f"'{node.label}' is not an active part")
    node.is_active = False
    node.is_waste = True
    return node


def restore_from_waste(forest: Forest, node_id: str) -> Node:
    node = forest.node(node_id)
    if not node.is_waste:
        raise InvalidStateError(f"'{node.label}' is not in the waste list")
    node.is_waste = False
    node.is_active = True
    return node


def waste_parts(forest: Forest) -> List[Node]:
    return [node for node in forest.all_nodes() if node.is_waste]
