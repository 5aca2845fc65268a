"""
Workspace context and command dispatcher.

A :class:`Workspace` owns one session's state: the forest, the placement
engine with its scene, the undo history and the id allocator. Commands are
small dataclasses run through :func:`dispatch`, which turns engine errors
into a failed :class:`CommandResult` and leaves the state untouched.

Every successful mutating command is bracketed by a snapshot before and
after; pushed snapshots are also written to the autosave store.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from shelfcut import cutting, diagnostics
from shelfcut.contracts import (
    Bounds,
    CommandResult,
    CutLine,
    CutRange,
    Dimensions,
    LayoutWarning,
    Measurement,
    Node,
    SimulatorConfig,
    Snapshot,
    Transform,
)
from shelfcut.errors import (
    InvalidDimensionsError,
    InvalidStateError,
    NodeNotFoundError,
    ShelfcutError,
)
from shelfcut.history import HistoryManager
from shelfcut.naming import next_name, unique_display_name, unique_wood_name
from shelfcut.persistence import (
    Document,
    JsonFileStore,
    default_filename,
    normalise_filename,
    parse_document,
    read_document,
    write_document,
)
from shelfcut.placement import DragSession, PlacementEngine
from shelfcut.scene import SceneBackend, TrimeshScene
from shelfcut.tree import Forest, IdAllocator

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]


# ─── Commands ────────────────────────────────────────────────────────────────


@dataclass
class AddBoard:
    name: str
    width: Any
    height: Any
    depth: Any


@dataclass
class DeleteBoard:
    """Delete the board that ``node_id`` belongs to, with all its parts."""

    node_id: str


@dataclass
class Cut:
    node_id: str
    axis: str  # "width" | "depth"
    origin: str  # "start" | "end"
    value: Any


@dataclass
class Merge:
    parent_id: str


@dataclass
class HidePart:
    node_id: str


@dataclass
class RestorePart:
    node_id: str


@dataclass
class RenamePart:
    node_id: str
    name: str


@dataclass
class Nudge:
    node_id: str
    axis: str  # "x" | "y" | "z"
    direction: int  # +1 or -1


@dataclass
class Rotate:
    node_id: str
    axis: str
    direction: int = 1


@dataclass
class Undo:
    pass


@dataclass
class ResetAll:
    pass


@dataclass
class LoadDocument:
    path: Optional[Path] = None
    payload: Optional[Mapping[str, Any]] = None


def _accept_all(message: str) -> bool:
    return True


def _positive_dimension(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidDimensionsError(f"{name} must be a positive number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidDimensionsError(f"{name} must be a positive number") from None
    if not math.isfinite(number) or number <= 0:
        raise InvalidDimensionsError(f"{name} must be a positive number")
    return number


# ─── Workspace ───────────────────────────────────────────────────────────────


class Workspace:
    """One independent editing session."""

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        scene: Optional[SceneBackend] = None,
        store: Optional[JsonFileStore] = None,
        confirm: Optional[ConfirmFn] = None,
    ):
        self.config = config or SimulatorConfig()
        self.scene = scene if scene is not None else TrimeshScene()
        self.store = store
        self.confirm = confirm or _accept_all
        self.forest = Forest()
        self.placement = PlacementEngine(self.scene, self.config)
        self.history = HistoryManager(self.config.max_history)
        self.ids = IdAllocator()
        self.history.save_snapshot(self.snapshot())

    @classmethod
    def from_store(cls, store: JsonFileStore, **kwargs) -> "Workspace":
        """Open a session from the autosave slot; a corrupt slot starts empty."""
        workspace = cls(store=store, **kwargs)
        try:
            document = store.load()
        except ShelfcutError as exc:
            logger.error("Ignoring unreadable autosave %s: %s", store.path, exc)
            document = None
        if document is not None:
            workspace._replace_state(document.forest, document.snapshot)
            logger.info("Restored %d boards from %s", len(document.forest.roots()), store.path)
        workspace.history.reset()
        workspace._commit_snapshot()
        return workspace

    # ─── State plumbing ──────────────────────────────────────────────────

    def snapshot(self) -> Snapshot:
        positions, quaternions = self.placement.payloads()
        return Snapshot(
            layouts=self.forest.to_layouts(), positions=positions, quaternions=quaternions
        )

    def _commit_snapshot(self) -> bool:
        snapshot = self.snapshot()
        pushed = self.history.save_snapshot(snapshot)
        if pushed and self.store is not None:
            self.store.save(snapshot)
        return pushed

    def _replace_state(self, forest: Forest, snapshot: Snapshot) -> None:
        self.forest = forest
        self.ids.reserve(node.id for node in forest.all_nodes())
        self.placement.rebuild(forest, snapshot.positions, snapshot.quaternions)

    def _confirm(self, message: str) -> bool:
        return bool(self.confirm(message))

    def _cancelled(self) -> CommandResult:
        return CommandResult(ok=False, message="Cancelled", cancelled=True)

    def _require_placed(self, node_id: str) -> Node:
        node = self.forest.node(node_id)
        if node_id not in self.placement or not self.placement.is_visible(node_id):
            raise InvalidStateError(f"'{node.label}' is not placed in the scene")
        return node

    # ─── Commands ────────────────────────────────────────────────────────

    def add_board(self, name: str, width: Any, height: Any, depth: Any) -> CommandResult:
        dims = Dimensions(
            width=_positive_dimension(width, "Width"),
            height=_positive_dimension(height, "Height"),
            depth=_positive_dimension(depth, "Depth"),
        )
        self._commit_snapshot()
        wood_name = unique_wood_name(self.forest, (name or "").strip())
        node = Node(
            id=self.ids.next_id(),
            wood_name=wood_name,
            dimensions=dims,
            bounds=Bounds(x=0.0, y=0.0, width=dims.width, depth=dims.depth),
            original_dimensions=Dimensions(dims.width, dims.height, dims.depth),
        )
        position = self.placement.initial_board_position(dims)
        self.forest.add_root(node)
        self.placement.place(node, Transform(position))
        self._commit_snapshot()
        logger.info("Added board %s (%s) %gx%gx%g", node.id, wood_name, *dims.to_dict().values())
        return CommandResult(
            ok=True,
            message=f"Added '{wood_name}'",
            node_ids=[node.id],
            data={"suggested_name": next_name(wood_name)},
        )

    def delete_board(self, node_id: str) -> CommandResult:
        lookup = self.forest.find(node_id)
        if not lookup.found:
            raise NodeNotFoundError(node_id)
        root = lookup.root
        if not self._confirm(f"Delete '{root.wood_name}' and every part cut from it?"):
            return self._cancelled()
        self._commit_snapshot()
        removed = self.forest.remove_root(root.id)
        for node in removed:
            self.placement.retire(node.id)
        self._commit_snapshot()
        return CommandResult(
            ok=True, message=f"Deleted '{root.wood_name}'", node_ids=[n.id for n in removed]
        )

    def cut(self, node_id: str, axis: str, origin: str, value: Any) -> CommandResult:
        self._commit_snapshot()
        outcome = cutting.cut(
            self.forest,
            self.placement.transforms,
            node_id,
            axis,
            origin,
            value,
            new_id=self.ids.next_id,
            gap_mm=self.config.cut_gap_mm,
        )
        if node_id in self.placement:
            self.placement.set_visible(node_id, False)
        for child in (outcome.first, outcome.second):
            self.placement.place(child, outcome.transforms[child.id])
        self._commit_snapshot()
        return CommandResult(
            ok=True,
            message=f"Cut '{outcome.parent.label}'",
            node_ids=[outcome.first.id, outcome.second.id],
        )

    def merge(self, parent_id: str) -> CommandResult:
        parent = cutting.check_mergeable(self.forest, parent_id)
        if not self._confirm(f"Undo this cut and merge the parts back into '{parent.label}'?"):
            return self._cancelled()
        self._commit_snapshot()
        outcome = cutting.merge(
            self.forest, self.placement.transforms, parent_id, latest=self.history.latest()
        )
        for node in outcome.removed:
            self.placement.retire(node.id)
        self.placement.place(outcome.parent, outcome.transform)
        self._commit_snapshot()
        return CommandResult(
            ok=True,
            message=f"Merged '{outcome.parent.label}'",
            node_ids=[parent_id],
            data={"transform_source": outcome.transform_source},
        )

    def hide_part(self, node_id: str) -> CommandResult:
        self._commit_snapshot()
        node = cutting.hide_as_waste(self.forest, node_id)
        if node_id in self.placement:
            self.placement.set_visible(node_id, False)
        self._commit_snapshot()
        return CommandResult(ok=True, message=f"Moved '{node.label}' to waste", node_ids=[node_id])

    def restore_part(self, node_id: str) -> CommandResult:
        node = self.forest.node(node_id)
        if not node.is_waste:
            raise InvalidStateError(f"'{node.label}' is not in the waste list")
        if not self._confirm(f"Bring '{node.label}' back from the waste list?"):
            return self._cancelled()
        self._commit_snapshot()
        cutting.restore_from_waste(self.forest, node_id)
        if node_id in self.placement:
            self.placement.set_visible(node_id, True)
        else:
            logger.warning("No placement recorded for %s; restoring beside the boards", node_id)
            position = self.placement.initial_board_position(node.dimensions)
            self.placement.place(node, Transform(position))
        self._commit_snapshot()
        return CommandResult(ok=True, message=f"Restored '{node.label}'", node_ids=[node_id])

    def rename_part(self, node_id: str, name: str) -> CommandResult:
        node = self.forest.node(node_id)
        self._commit_snapshot()
        node.display_name = unique_display_name(
            self.forest, (name or "").strip(), exclude_id=node_id
        )
        self._commit_snapshot()
        return CommandResult(
            ok=True,
            message=f"Renamed to '{node.label}'",
            node_ids=[node_id],
            data={"display_name": node.display_name},
        )

    def _move(self, node_id: str, apply: Callable[[], bool]) -> CommandResult:
        self._require_placed(node_id)
        self._commit_snapshot()
        if not apply():
            return CommandResult(
                ok=False,
                message="Blocked by another part",
                node_ids=[node_id],
                data={"reverted": True},
            )
        self._commit_snapshot()
        return CommandResult(ok=True, node_ids=[node_id], data={"reverted": False})

    def nudge(self, node_id: str, axis: str, direction: int) -> CommandResult:
        return self._move(node_id, lambda: self.placement.nudge(node_id, axis, direction))

    def rotate(self, node_id: str, axis: str, direction: int = 1) -> CommandResult:
        return self._move(
            node_id, lambda: self.placement.rotate_quarter(node_id, axis, direction)
        )

    def undo(self) -> CommandResult:
        previous = self.history.undo()
        if previous is None:
            return CommandResult(ok=False, message="Nothing to undo")
        self._replace_state(Forest.from_layouts(previous.layouts), previous)
        if self.store is not None:
            self.store.save(previous)
        return CommandResult(ok=True, message="Undone")

    def reset_all(self) -> CommandResult:
        if not self._confirm("Reset all boards and parts? This cannot be undone."):
            return self._cancelled()
        if self.store is not None:
            self.store.clear()
        self.placement.clear()
        self.forest = Forest()
        self.history.reset()
        self._commit_snapshot()
        return CommandResult(ok=True, message="Reset")

    def load_document(
        self, path: Optional[Path] = None, payload: Optional[Mapping[str, Any]] = None
    ) -> CommandResult:
        if (path is None) == (payload is None):
            raise ValueError("Pass exactly one of path or payload")
        if not self._confirm("Discard the current work and load the document?"):
            return self._cancelled()
        document: Document = read_document(path) if path is not None else parse_document(payload)
        self._replace_state(document.forest, document.snapshot)
        self.history.reset()
        self._commit_snapshot()
        return CommandResult(
            ok=True,
            message="Loaded",
            node_ids=self.forest.root_ids(),
        )

    def begin_drag(self, node_id: str) -> DragSession:
        """Start dragging a placed part; a committed drag records a snapshot."""
        self._require_placed(node_id)
        session = DragSession(self.placement, node_id, on_commit=self._commit_snapshot)
        session.begin()
        return session

    # ─── Outward interface ───────────────────────────────────────────────

    def get_forest(self) -> Forest:
        return self.forest.copy()

    def get_active_leaves(self, root_id: str) -> List[Node]:
        return self.forest.get_active_leaves(root_id)

    def get_transform(self, node_id: str) -> Optional[Transform]:
        return self.placement.get_transform(node_id)

    def get_bounds(self, node_id: str) -> Optional[Bounds]:
        node = self.forest.get(node_id)
        if node is None:
            return None
        b = node.bounds
        return Bounds(b.x, b.y, b.width, b.depth)

    def has_clearance_issue(self, root_id: str) -> bool:
        return diagnostics.has_clearance_issue(self.forest, root_id, self.config)

    def has_efficiency_warning(self, root_id: str) -> bool:
        return diagnostics.has_efficiency_warning(self.forest, root_id, self.config)

    def layout_warnings(self) -> List[LayoutWarning]:
        return diagnostics.collect_layout_warnings(self.forest, self.config)

    def cut_range(self, node_id: str, axis: str) -> CutRange:
        return diagnostics.cut_value_range(self.forest.node(node_id), axis, self.config.min_cut_mm)

    def cut_lines(self, root_id: str) -> List[CutLine]:
        return diagnostics.cut_lines(self.forest, root_id)

    def waste_parts(self) -> List[Node]:
        return cutting.waste_parts(self.forest)

    def measure(self, node_id: str, axis: str) -> List[Measurement]:
        self._require_placed(node_id)
        return self.placement.measure_neighbours(node_id, axis)

    def save_to_file(self, path: Path) -> Path:
        """Write the live state; a directory gets a timestamped file name."""
        path = Path(path)
        if path.is_dir():
            path = path / default_filename()
        else:
            path = path.with_name(normalise_filename(path.name))
        written = write_document(path, self.snapshot())
        logger.info("Saved layout to %s", written)
        return written


# ─── Dispatch ────────────────────────────────────────────────────────────────


_HANDLERS: Dict[Type, Callable[[Workspace, Any], CommandResult]] = {
    AddBoard: lambda ws, c: ws.add_board(c.name, c.width, c.height, c.depth),
    DeleteBoard: lambda ws, c: ws.delete_board(c.node_id),
    Cut: lambda ws, c: ws.cut(c.node_id, c.axis, c.origin, c.value),
    Merge: lambda ws, c: ws.merge(c.parent_id),
    HidePart: lambda ws, c: ws.hide_part(c.node_id),
    RestorePart: lambda ws, c: ws.restore_part(c.node_id),
    RenamePart: lambda ws, c: ws.rename_part(c.node_id, c.name),
    Nudge: lambda ws, c: ws.nudge(c.node_id, c.axis, c.direction),
    Rotate: lambda ws, c: ws.rotate(c.node_id, c.axis, c.direction),
    Undo: lambda ws, c: ws.undo(),
    ResetAll: lambda ws, c: ws.reset_all(),
    LoadDocument: lambda ws, c: ws.load_document(path=c.path, payload=c.payload),
}


def dispatch(workspace: Workspace, command: Any) -> CommandResult:
    """Run one command to completion.

    Engine errors become ``CommandResult(ok=False)`` with the error message;
    the workspace is left as it was before the command.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unknown command: {type(command).__name__}")
    try:
        return handler(workspace, command)
    except (ShelfcutError, ValueError) as exc:
        logger.info("%s rejected: %s", type(command).__name__, exc)
        return CommandResult(ok=False, message=str(exc))
