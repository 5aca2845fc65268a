"""Public API for the board cut-tree, placement and undo engine."""

from shelfcut.contracts import CommandResult, SimulatorConfig, Snapshot
from shelfcut.errors import ShelfcutError
from shelfcut.persistence import JsonFileStore
from shelfcut.tree import Forest
from shelfcut.workspace import (
    AddBoard,
    Cut,
    DeleteBoard,
    HidePart,
    LoadDocument,
    Merge,
    Nudge,
    RenamePart,
    ResetAll,
    RestorePart,
    Rotate,
    Undo,
    Workspace,
    dispatch,
)

__all__ = [
    "AddBoard",
    "CommandResult",
    "Cut",
    "DeleteBoard",
    "Forest",
    "HidePart",
    "JsonFileStore",
    "LoadDocument",
    "Merge",
    "Nudge",
    "RenamePart",
    "ResetAll",
    "RestorePart",
    "Rotate",
    "ShelfcutError",
    "SimulatorConfig",
    "Snapshot",
    "Undo",
    "Workspace",
    "dispatch",
]
