"""
Saved-state documents.

A document is one JSON object::

    {
      "layouts":     {"<rootId>": <node>, ...},
      "positions":   {"<nodeId>": {"x": .., "y": .., "z": ..}, ...},
      "quaternions": {"<nodeId>": {"_x": .., "_y": .., "_z": .., "_w": ..}, ...}
    }

The same shape is used for files, for the autosave store and for undo
snapshots.
"""

from __future__ import annotations

import json
import os
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from shelfcut.contracts import Snapshot, Transform
from shelfcut.errors import LayoutFormatError, StorageError
from shelfcut.tree import Forest, validate_forest

logger = logging.getLogger(__name__)

FILENAME_PREFIX = "wood_shelf_data"
_POSITION_KEYS = ("x", "y", "z")
_QUATERNION_KEYS = ("_x", "_y", "_z", "_w")


@dataclass
class Document:
    forest: Forest
    snapshot: Snapshot


def _vector(raw: Any, keys, where: str) -> Dict[str, float]:
    if not isinstance(raw, Mapping):
        raise LayoutFormatError(f"{where} must be an object")
    out = {}
    for key in keys:
        value = raw.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise LayoutFormatError(f"{where}.{key} must be a number")
        if not math.isfinite(value):
            raise LayoutFormatError(f"{where}.{key} must be finite")
        out[key] = float(value)
    return out


def parse_document(payload: Any) -> Document:
    """Validate a decoded document and build its forest.

    Placements for ids that are not in the layout are dropped. A placement
    without a quaternion gets the identity orientation.

    Raises:
        LayoutFormatError: the payload is not a document, a node is invalid
            or a board breaks the cut-tree invariants.
    """
    if not isinstance(payload, Mapping):
        raise LayoutFormatError("Document must be a JSON object")
    layouts = payload.get("layouts")
    positions = payload.get("positions")
    if not isinstance(layouts, Mapping) or not isinstance(positions, Mapping):
        raise LayoutFormatError("Document needs 'layouts' and 'positions' objects")
    quaternions = payload.get("quaternions") or {}
    if not isinstance(quaternions, Mapping):
        raise LayoutFormatError("'quaternions' must be an object")

    forest = Forest.from_layouts(layouts)
    issues = validate_forest(forest)
    if issues:
        raise LayoutFormatError("Invalid layout: " + "; ".join(issues))
    snapshot = Snapshot(layouts=forest.to_layouts())
    for node_id, raw in positions.items():
        if node_id not in forest:
            logger.debug("Dropping placement for unknown part %s", node_id)
            continue
        snapshot.positions[node_id] = _vector(raw, _POSITION_KEYS, f"positions.{node_id}")
        if node_id in quaternions:
            snapshot.quaternions[node_id] = _vector(
                quaternions[node_id], _QUATERNION_KEYS, f"quaternions.{node_id}"
            )
        else:
            snapshot.quaternions[node_id] = Transform().quaternion_payload()
    return Document(forest=forest, snapshot=snapshot)


def read_document(path: Path) -> Document:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except json.JSONDecodeError as exc:
        raise LayoutFormatError(f"{path} is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise StorageError(f"Cannot read {path}: {exc}") from exc
    return parse_document(payload)


def write_document(path: Path, snapshot: Snapshot) -> Path:
    """Write ``snapshot`` next to ``path`` and swap it in, so a failed write
    leaves the previous file intact."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(snapshot.to_dict(), f, indent=2)
        os.replace(tmp, path)
    except OSError as exc:
        raise StorageError(f"Cannot write {path}: {exc}") from exc
    finally:
        if tmp.exists():
            tmp.unlink()
    return path


def default_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{FILENAME_PREFIX}_{now:%Y%m%d_%H%M}.json"


def normalise_filename(user_input: Optional[str], now: Optional[datetime] = None) -> str:
    name = (user_input or "").strip()
    if not name:
        return default_filename(now)
    if not name.endswith(".json"):
        name += ".json"
    return name


class JsonFileStore:
    """Autosave slot holding the latest snapshot in a single JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, snapshot: Snapshot) -> bool:
        """Write ``snapshot``; failures are logged and reported as False."""
        try:
            write_document(self.path, snapshot)
        except (StorageError, TypeError, ValueError) as exc:
            logger.error("Autosave to %s failed: %s", self.path, exc)
            return False
        return True

    def load(self) -> Optional[Document]:
        """Return the stored document, or None when nothing is saved yet."""
        if not self.path.exists():
            return None
        return read_document(self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Could not clear autosave %s: %s", self.path, exc)
