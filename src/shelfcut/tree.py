"""
Cut-tree forest: one binary tree per physical board.

Nodes live in an arena keyed by id and reference their children by id, so
lookups never walk ownership cycles. The nested ``layouts`` wire form (one
recursive node dict per root) is produced and parsed here as well.
"""

from __future__ import annotations

import copy
import itertools
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from shapely.geometry import box

from shelfcut.contracts import Bounds, Dimensions, Node
from shelfcut.errors import LayoutFormatError, NodeNotFoundError

logger = logging.getLogger(__name__)

_AREA_TOL = 1e-6


@dataclass
class Lookup:
    """Result of a forest lookup; every field is ``None`` when not found."""

    node: Optional[Node] = None
    parent: Optional[Node] = None
    root: Optional[Node] = None

    @property
    def found(self) -> bool:
        return self.node is not None


class IdAllocator:
    """Hands out part ids that are never reused, even after undo."""

    def __init__(self, prefix: str = "part"):
        self.prefix = prefix
        self._counter = itertools.count(1)
        self._issued: set = set()

    def reserve(self, ids: Iterable[str]) -> None:
        self._issued.update(ids)

    def next_id(self) -> str:
        while True:
            candidate = f"{self.prefix}_{next(self._counter)}"
            if candidate not in self._issued:
                self._issued.add(candidate)
                return candidate


class Forest:
    """All board trees of a workspace."""

    def __init__(self) -> None:
        self._nodes: Dict[str, Node] = {}
        self._roots: List[str] = []

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # ─── Lookup ──────────────────────────────────────────────────────────

    def get(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def node(self, node_id: str) -> Node:
        found = self._nodes.get(node_id)
        if found is None:
            raise NodeNotFoundError(node_id)
        return found

    def find(self, node_id: str) -> Lookup:
        """Locate a node with its parent and root. Never raises."""
        node = self._nodes.get(node_id)
        if node is None:
            return Lookup()
        parent = self._nodes.get(node.parent_id) if node.parent_id else None
        root = node
        while root.parent_id is not None:
            root = self._nodes[root.parent_id]
        return Lookup(node=node, parent=parent, root=root)

    def root_ids(self) -> List[str]:
        return list(self._roots)

    def roots(self) -> List[Node]:
        return [self._nodes[root_id] for root_id in self._roots]

    def children_of(self, node: Node) -> List[Node]:
        return [self._nodes[child_id] for child_id in node.children]

    def iter_subtree(self, node_id: str) -> Iterator[Node]:
        """Depth-first, pre-order walk from ``node_id``."""
        stack = [self.node(node_id)]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children_of(current)))

    def all_nodes(self) -> List[Node]:
        nodes: List[Node] = []
        for root_id in self._roots:
            nodes.extend(self.iter_subtree(root_id))
        return nodes

    def get_active_leaves(self, root_id: str) -> List[Node]:
        return [
            n for n in self.iter_subtree(root_id) if n.is_active and n.is_leaf
        ]

    # ─── Mutation ────────────────────────────────────────────────────────

    def add_root(self, node: Node) -> None:
        if node.id in self._nodes:
            raise ValueError(f"Duplicate node id: {node.id}")
        node.parent_id = None
        self._nodes[node.id] = node
        self._roots.append(node.id)

    def attach_children(self, parent_id: str, first: Node, second: Node) -> None:
        parent = self.node(parent_id)
        if parent.children:
            raise ValueError(f"Node {parent_id} already has children")
        for child in (first, second):
            if child.id in self._nodes:
                raise ValueError(f"Duplicate node id: {child.id}")
        for child in (first, second):
            child.parent_id = parent_id
            self._nodes[child.id] = child
        parent.children = [first.id, second.id]

    def detach_children(self, parent_id: str) -> List[Node]:
        """Remove a node's children (and their subtrees) from the arena."""
        parent = self.node(parent_id)
        removed: List[Node] = []
        for child_id in parent.children:
            removed.extend(self.iter_subtree(child_id))
        for node in removed:
            del self._nodes[node.id]
        parent.children = []
        return removed

    def remove_root(self, root_id: str) -> List[Node]:
        root = self.node(root_id)
        if not root.is_root:
            raise ValueError(f"Node {root_id} is not a root")
        removed = list(self.iter_subtree(root_id))
        for node in removed:
            del self._nodes[node.id]
        self._roots.remove(root_id)
        return removed

    def clear(self) -> None:
        self._nodes.clear()
        self._roots.clear()

    def copy(self) -> "Forest":
        clone = Forest()
        clone._nodes = copy.deepcopy(self._nodes)
        clone._roots = list(self._roots)
        return clone

    # ─── Wire form ───────────────────────────────────────────────────────

    def to_layouts(self) -> Dict[str, Dict[str, Any]]:
        return {root_id: self._node_to_wire(self._nodes[root_id]) for root_id in self._roots}

    def _node_to_wire(self, node: Node) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": node.id,
            "woodName": node.wood_name,
            "displayName": node.display_name,
            "meshId": node.id,
            "isActive": bool(node.is_active),
            "isWaste": bool(node.is_waste),
            "bounds": node.bounds.to_dict(),
            "dimensions": node.dimensions.to_dict(),
            "children": [self._node_to_wire(c) for c in self.children_of(node)],
        }
        if node.original_dimensions is not None:
            payload["originalDimensions"] = node.original_dimensions.to_dict()
        return payload

    @classmethod
    def from_layouts(cls, layouts: Mapping[str, Any]) -> "Forest":
        """Build a forest from the nested wire form.

        Raises:
            LayoutFormatError: a node is missing fields, carries non-numeric
                sizes, reuses an id or has a child count other than 0 or 2.
        """
        if not isinstance(layouts, Mapping):
            raise LayoutFormatError("'layouts' must be a mapping")
        forest = cls()
        for key, raw_root in layouts.items():
            root = forest._parse_node(raw_root, parent_id=None, fallback_id=str(key))
            forest._roots.append(root.id)
        return forest

    def _parse_node(
        self,
        raw: Any,
        parent_id: Optional[str],
        fallback_id: Optional[str] = None,
    ) -> Node:
        if not isinstance(raw, Mapping):
            raise LayoutFormatError("Layout node must be a mapping")
        node_id = str(raw.get("id") or fallback_id or "").strip()
        if not node_id:
            raise LayoutFormatError("Layout node has no id")
        if node_id in self._nodes:
            raise LayoutFormatError(f"Duplicate node id in layout: {node_id}")

        dimensions = _parse_dimensions(raw.get("dimensions"), node_id, "dimensions")
        bounds = _parse_bounds(raw.get("bounds"), node_id)
        raw_children = raw.get("children", [])
        if not isinstance(raw_children, list) or len(raw_children) not in (0, 2):
            raise LayoutFormatError(
                f"Node {node_id} must have exactly 0 or 2 children"
            )

        original = None
        if parent_id is None:
            if raw.get("originalDimensions") is not None:
                original = _parse_dimensions(
                    raw["originalDimensions"], node_id, "originalDimensions"
                )
            else:
                logger.debug("Root %s has no originalDimensions; using dimensions", node_id)
                original = copy.deepcopy(dimensions)

        node = Node(
            id=node_id,
            wood_name=str(raw.get("woodName", "")),
            display_name=str(raw.get("displayName") or ""),
            dimensions=dimensions,
            bounds=bounds,
            original_dimensions=original,
            is_active=bool(raw.get("isActive", False)),
            is_waste=bool(raw.get("isWaste", False)),
            parent_id=parent_id,
        )
        self._nodes[node_id] = node
        node.children = [
            self._parse_node(child, parent_id=node_id).id for child in raw_children
        ]
        return node


def _number(value: Any, where: str) -> float:
    if isinstance(value, bool):
        raise LayoutFormatError(f"{where} must be a number")
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise LayoutFormatError(f"{where} must be a number") from None
    if not math.isfinite(result):
        raise LayoutFormatError(f"{where} must be finite")
    return result


def _parse_dimensions(raw: Any, node_id: str, key: str) -> Dimensions:
    if not isinstance(raw, Mapping):
        raise LayoutFormatError(f"Node {node_id} is missing '{key}'")
    sizes = {}
    for name in ("width", "height", "depth"):
        value = _number(raw.get(name), f"{node_id}.{key}.{name}")
        if value <= 0:
            raise LayoutFormatError(f"{node_id}.{key}.{name} must be positive")
        sizes[name] = value
    return Dimensions(**sizes)


def _parse_bounds(raw: Any, node_id: str) -> Bounds:
    if not isinstance(raw, Mapping):
        raise LayoutFormatError(f"Node {node_id} is missing 'bounds'")
    return Bounds(
        x=_number(raw.get("x"), f"{node_id}.bounds.x"),
        y=_number(raw.get("y"), f"{node_id}.bounds.y"),
        width=_number(raw.get("width"), f"{node_id}.bounds.width"),
        depth=_number(raw.get("depth"), f"{node_id}.bounds.depth"),
    )


# ─── Invariant checks ────────────────────────────────────────────────────────


def _bounds_box(bounds: Bounds):
    return box(bounds.x, bounds.y, bounds.x + bounds.width, bounds.y + bounds.depth)


def _check_partition(parent: Node, first: Node, second: Node) -> List[str]:
    issues = []
    a, b, p = first.bounds, second.bounds, parent.bounds
    box_a, box_b, box_p = _bounds_box(a), _bounds_box(b), _bounds_box(p)
    if box_a.intersection(box_b).area > _AREA_TOL:
        issues.append(f"Children of {parent.id} overlap")
    if abs(box_a.area + box_b.area - box_p.area) > _AREA_TOL:
        issues.append(f"Children of {parent.id} do not cover the parent area")
    if box_a.union(box_b).symmetric_difference(box_p).area > _AREA_TOL:
        issues.append(f"Children of {parent.id} extend outside the parent")

    width_split = math.isclose(a.y, b.y) and math.isclose(a.depth, b.depth)
    depth_split = math.isclose(a.x, b.x) and math.isclose(a.width, b.width)
    if not (width_split or depth_split):
        issues.append(f"Children of {parent.id} are not split along one axis")
    return issues


def validate_forest(forest: Forest) -> List[str]:
    """Check the structural invariants of every tree.

    Returns:
        List of issue strings (empty = ok).
    """
    issues: List[str] = []
    for root in forest.roots():
        if root.original_dimensions is None:
            issues.append(f"Root {root.id} has no original dimensions")
        height = root.dimensions.height
        active_on_path: Dict[str, int] = {root.id: int(root.is_active)}

        for node in forest.iter_subtree(root.id):
            if node.id != root.id and node.original_dimensions is not None:
                issues.append(f"Non-root {node.id} carries original dimensions")
            if len(node.children) not in (0, 2):
                issues.append(f"Node {node.id} has {len(node.children)} children")
            if not math.isclose(node.dimensions.width, node.bounds.width) or not math.isclose(
                node.dimensions.depth, node.bounds.depth
            ):
                issues.append(f"Node {node.id} dimensions disagree with bounds")
            if not math.isclose(node.dimensions.height, height):
                issues.append(f"Node {node.id} height differs from its board")
            if node.children and (node.is_active or node.is_waste):
                issues.append(f"Cut node {node.id} is flagged active or waste")

            children = forest.children_of(node)
            for child in children:
                active_on_path[child.id] = active_on_path[node.id] + int(child.is_active)
                if active_on_path[child.id] > 1:
                    issues.append(f"More than one active node on the path to {child.id}")
            if len(children) == 2:
                issues.extend(_check_partition(node, children[0], children[1]))
    return issues
