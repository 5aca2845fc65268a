"""
Read-only checks over a board's cut layout.

Two rules are evaluated per root board:

- clearance: two active parts sit closer than the saw needs (touching
  included) without overlapping;
- work_efficiency: the active parts do not reach both the left and the right
  edge of the original board, which costs extra cuts.

The slider band, cut preview coordinate and cut-line geometry used by
layout collaborators live here as well.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from shelfcut.contracts import (
    AXES,
    Bounds,
    CutLine,
    CutRange,
    LayoutWarning,
    Node,
    SimulatorConfig,
)
from shelfcut.tree import Forest

logger = logging.getLogger(__name__)

_LINE_TOL = 0.1


def _span(bounds: Bounds, axis: str):
    if axis == "width":
        return bounds.x, bounds.x + bounds.width
    return bounds.y, bounds.y + bounds.depth


def _overlaps(a: Bounds, b: Bounds, axis: str) -> bool:
    a0, a1 = _span(a, axis)
    b0, b1 = _span(b, axis)
    return max(a0, b0) < min(a1, b1)


def _separation(a: Bounds, b: Bounds, axis: str) -> float:
    a0, a1 = _span(a, axis)
    b0, b1 = _span(b, axis)
    return max(a0, b0) - min(a1, b1)


def pair_too_close(a: Bounds, b: Bounds, min_clearance_mm: float) -> bool:
    """True when ``a`` and ``b`` face each other closer than ``min_clearance_mm``."""
    for aligned, orthogonal in (("width", "depth"), ("depth", "width")):
        if _overlaps(a, b, orthogonal):
            gap = _separation(a, b, aligned)
            if 0 <= gap < min_clearance_mm:
                return True
    return False


def has_clearance_issue(
    forest: Forest, root_id: str, config: Optional[SimulatorConfig] = None
) -> bool:
    cfg = config or SimulatorConfig()
    if forest.get(root_id) is None:
        return False
    parts = forest.get_active_leaves(root_id)
    for i, first in enumerate(parts):
        for second in parts[i + 1:]:
            if pair_too_close(first.bounds, second.bounds, cfg.min_clearance_mm):
                return True
    return False


def has_efficiency_warning(
    forest: Forest, root_id: str, config: Optional[SimulatorConfig] = None
) -> bool:
    cfg = config or SimulatorConfig()
    root = forest.get(root_id)
    if root is None or root.original_dimensions is None:
        return False
    parts = forest.get_active_leaves(root_id)
    if len(parts) < 2:
        return False

    board_width = root.original_dimensions.width
    tol = cfg.edge_tolerance_mm
    on_left = any(abs(p.bounds.x) < tol for p in parts)
    on_right = any(abs(p.bounds.x + p.bounds.width - board_width) < tol for p in parts)
    return not (on_left and on_right)


def collect_layout_warnings(
    forest: Forest, config: Optional[SimulatorConfig] = None
) -> List[LayoutWarning]:
    """Run every layout rule over every board."""
    cfg = config or SimulatorConfig()
    warnings: List[LayoutWarning] = []
    for root in forest.roots():
        if has_clearance_issue(forest, root.id, cfg):
            warnings.append(
                LayoutWarning(
                    rule_name="clearance",
                    severity="warning",
                    message=(
                        f"Parts on '{root.label}' are closer than "
                        f"{cfg.min_clearance_mm:g} mm; leave room for the saw"
                    ),
                    root_id=root.id,
                )
            )
        if has_efficiency_warning(forest, root.id, cfg):
            warnings.append(
                LayoutWarning(
                    rule_name="work_efficiency",
                    severity="warning",
                    message=(
                        f"Parts on '{root.label}' do not reach both board edges; "
                        "aligning them saves cuts"
                    ),
                    root_id=root.id,
                )
            )
    logger.debug("Layout check produced %d warnings", len(warnings))
    return warnings


# ─── Cut previews ────────────────────────────────────────────────────────────


def cut_value_range(node: Node, axis: str, min_cut_mm: float = 4.0) -> CutRange:
    extent = node.dimensions.extent(axis)
    maximum = extent - min_cut_mm if extent > min_cut_mm * 2 else min_cut_mm
    # Half-up rounding, not banker's rounding.
    default = float(math.floor(extent / 2 + 0.5))
    default = min(max(default, min_cut_mm), maximum)
    return CutRange(minimum=min_cut_mm, maximum=maximum, default=default)


def cut_position(node: Node, axis: str, origin: str, value: float) -> float:
    """Absolute coordinate of a prospective cut on the root board's face."""
    if axis not in AXES:
        raise ValueError(f"Unknown cut axis: {axis!r}")
    offset = node.dimensions.extent(axis) - value if origin == "end" else value
    start, _ = _span(node.bounds, axis)
    return start + offset


def cut_lines(forest: Forest, root_id: str) -> List[CutLine]:
    lines: List[CutLine] = []
    for node in forest.iter_subtree(root_id):
        if len(node.children) != 2:
            continue
        a, b = (child.bounds for child in forest.children_of(node))
        vertical = abs(a.y - b.y) < _LINE_TOL and abs(a.depth - b.depth) < _LINE_TOL
        if vertical:
            lower = a if a.x < b.x else b
            lines.append(
                CutLine(
                    parent_id=node.id,
                    orientation="vertical",
                    position=lower.x + lower.width,
                    start=a.y,
                    length=node.dimensions.depth,
                )
            )
        else:
            lower = a if a.y < b.y else b
            lines.append(
                CutLine(
                    parent_id=node.id,
                    orientation="horizontal",
                    position=lower.y + lower.depth,
                    start=a.x,
                    length=node.dimensions.width,
                )
            )
    return lines
