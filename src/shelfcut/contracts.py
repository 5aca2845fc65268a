"""Contracts shared by the cut-tree, placement and history engines."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]
Quat = Tuple[float, float, float, float]  # (x, y, z, w), scalar last

AXES = ("width", "depth")
ORIGINS = ("start", "end")
WORLD_AXES = ("x", "y", "z")
IDENTITY_QUAT: Quat = (0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True)
class SimulatorConfig:
    """Tunables for cutting, diagnostics, placement and history."""

    cut_gap_mm: float = 5.0  # kerf gap inserted between freshly cut pieces
    min_clearance_mm: float = 4.0
    edge_tolerance_mm: float = 0.01
    collision_tolerance_mm: float = 0.01
    max_history: int = 20
    min_cut_mm: float = 4.0
    move_step_mm: float = 1.0
    rotate_step_rad: float = math.pi / 2
    new_board_spacing_mm: float = 50.0


@dataclass
class Dimensions:
    """Physical size of a board or part (mm)."""

    width: float
    height: float
    depth: float

    def extent(self, axis: str) -> float:
        if axis not in AXES:
            raise ValueError(f"Unknown cut axis: {axis!r}")
        return float(getattr(self, axis))

    def to_dict(self) -> Dict[str, float]:
        return {"width": self.width, "height": self.height, "depth": self.depth}


@dataclass
class Bounds:
    """Footprint of a part on its root board's original face."""

    x: float
    y: float
    width: float
    depth: float

    @property
    def area(self) -> float:
        return self.width * self.depth

    def extent(self, axis: str) -> float:
        if axis not in AXES:
            raise ValueError(f"Unknown cut axis: {axis!r}")
        return float(getattr(self, axis))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "depth": self.depth}


@dataclass
class Node:
    """A board (root) or a part derived from it by guillotine cuts.

    Attributes:
        id: Stable identifier, never reused within a workspace.
        wood_name: Internal name tied to the original board.
        dimensions: Physical size; width/depth mirror ``bounds``.
        bounds: Footprint on the root's original face.
        display_name: Optional user label, unique across the forest when set.
        original_dimensions: Uncut board size, roots only.
        is_active: Leaf currently placed and visible.
        is_waste: Leaf set aside but restorable.
        children: Ids of exactly zero or two child nodes.
        parent_id: Id of the parent node, ``None`` for roots.
    """

    id: str
    wood_name: str
    dimensions: Dimensions
    bounds: Bounds
    display_name: str = ""
    original_dimensions: Optional[Dimensions] = None
    is_active: bool = True
    is_waste: bool = False
    children: List[str] = field(default_factory=list)
    parent_id: Optional[str] = None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def label(self) -> str:
        return self.display_name or self.wood_name


@dataclass(eq=False)
class Transform:
    """World placement of a part: box centre plus orientation quaternion."""

    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    quaternion: np.ndarray = field(
        default_factory=lambda: np.array(IDENTITY_QUAT, dtype=float)
    )

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.quaternion = np.asarray(self.quaternion, dtype=float).reshape(4)

    def copy(self) -> "Transform":
        return Transform(self.position.copy(), self.quaternion.copy())

    def same_as(self, other: "Transform") -> bool:
        return bool(
            np.array_equal(self.position, other.position)
            and np.array_equal(self.quaternion, other.quaternion)
        )

    def position_payload(self) -> Dict[str, float]:
        x, y, z = (float(v) for v in self.position)
        return {"x": x, "y": y, "z": z}

    def quaternion_payload(self) -> Dict[str, float]:
        x, y, z, w = (float(v) for v in self.quaternion)
        return {"_x": x, "_y": y, "_z": z, "_w": w}

    @classmethod
    def from_payload(
        cls,
        position: Dict[str, float],
        quaternion: Optional[Dict[str, float]] = None,
    ) -> "Transform":
        pos = [position["x"], position["y"], position["z"]]
        if quaternion is None:
            quat: Sequence[float] = IDENTITY_QUAT
        else:
            quat = [quaternion["_x"], quaternion["_y"], quaternion["_z"], quaternion["_w"]]
        return cls(np.array(pos, dtype=float), np.array(quat, dtype=float))


@dataclass
class Snapshot:
    """Independent copy of forest layouts and every instantiated transform."""

    layouts: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    positions: Dict[str, Dict[str, float]] = field(default_factory=dict)
    quaternions: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def same_state(self, other: "Snapshot") -> bool:
        return (
            self.layouts == other.layouts
            and self.positions == other.positions
            and self.quaternions == other.quaternions
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layouts": self.layouts,
            "positions": self.positions,
            "quaternions": self.quaternions,
        }


@dataclass
class LayoutWarning:
    """A diagnostic finding on one board's cut layout."""

    rule_name: str  # "clearance" | "work_efficiency"
    severity: str  # "warning"
    message: str
    root_id: str


@dataclass(frozen=True)
class CutLine:
    """Boundary between the two children of a cut node, in root-face mm."""

    parent_id: str
    orientation: str  # "vertical" (width cut) | "horizontal" (depth cut)
    position: float
    start: float
    length: float


@dataclass(frozen=True)
class CutRange:
    """Allowed band and default for a cut value along one axis."""

    minimum: float
    maximum: float
    default: float


@dataclass(frozen=True)
class Measurement:
    """Free distance from a part to a neighbour along one world axis."""

    target_id: str
    axis: str
    direction: int  # +1 towards larger coordinates, -1 towards smaller
    distance: float
    rank: int


@dataclass
class CommandResult:
    """Outcome of one dispatched workspace command."""

    ok: bool
    message: str = ""
    node_ids: List[str] = field(default_factory=list)
    cancelled: bool = False
    data: Dict[str, Any] = field(default_factory=dict)
