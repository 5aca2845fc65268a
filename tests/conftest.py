"""
Shared test fixtures for the cut-tree, placement and workspace tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shelfcut.contracts import Bounds, Dimensions, Node, SimulatorConfig, Transform
from shelfcut.placement import PlacementEngine
from shelfcut.scene import TrimeshScene
from shelfcut.tree import Forest
from shelfcut.workspace import Workspace

BOARD_HEIGHT = 18.0


def make_node(node_id, x, y, width, depth, *, active=True, wood_name=None, root=False):
    dims = Dimensions(width=width, height=BOARD_HEIGHT, depth=depth)
    return Node(
        id=node_id,
        wood_name=wood_name or node_id,
        dimensions=dims,
        bounds=Bounds(x=x, y=y, width=width, depth=depth),
        original_dimensions=Dimensions(width, BOARD_HEIGHT, depth) if root else None,
        is_active=active,
    )


@pytest.fixture
def config():
    """Default simulator tunables."""
    return SimulatorConfig()


@pytest.fixture
def forest_with_parts():
    """Build a one-board forest whose active leaves have the given bounds.

    Leaves hang off a chain of inactive holder nodes, so any number of
    parts can be attached. Bounds are taken as given and need not
    partition the board.
    """

    def _build(board_width, parts, board_depth=50.0):
        forest = Forest()
        root = make_node("root", 0.0, 0.0, board_width, board_depth, active=False, root=True)
        forest.add_root(root)
        parent_id = root.id
        remaining = list(parts)
        index = 0
        while remaining:
            x, y, w, d = remaining.pop(0)
            leaf = make_node(f"leaf_{index}", x, y, w, d)
            if len(remaining) == 1:
                x2, y2, w2, d2 = remaining.pop(0)
                other = make_node(f"leaf_{index + 1}", x2, y2, w2, d2)
            elif remaining:
                other = make_node(f"holder_{index}", 0.0, 0.0, board_width, board_depth, active=False)
            else:
                other = make_node(f"spare_{index}", 0.0, 0.0, 1.0, 1.0, active=False)
            forest.attach_children(parent_id, leaf, other)
            parent_id = other.id
            index += 2
        return forest

    return _build


@pytest.fixture
def placement():
    """Placement engine over an empty trimesh scene."""
    return PlacementEngine(TrimeshScene(), SimulatorConfig())


@pytest.fixture
def place_box(placement):
    """Place an axis-aligned box given its min corner and size."""

    def _place(node_id, lo, size):
        lo = np.asarray(lo, dtype=float)
        size = np.asarray(size, dtype=float)
        node = Node(
            id=node_id,
            wood_name=node_id,
            dimensions=Dimensions(width=size[0], height=size[1], depth=size[2]),
            bounds=Bounds(0.0, 0.0, size[0], size[2]),
        )
        placement.place(node, Transform(lo + size / 2))
        return node

    return _place


@pytest.fixture
def workspace():
    """An empty workspace that accepts every confirmation."""
    return Workspace()


@pytest.fixture
def board_workspace(workspace):
    """Workspace holding one 300 x 18 x 200 mm board named 'Shelf'."""
    result = workspace.add_board("Shelf", 300, BOARD_HEIGHT, 200)
    assert result.ok, result.message
    return workspace


@pytest.fixture
def board_id(board_workspace):
    return board_workspace.forest.root_ids()[0]
