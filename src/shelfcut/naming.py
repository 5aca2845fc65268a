"""Board and part naming rules."""

from __future__ import annotations

import re
from typing import Optional, Set

from shelfcut.tree import Forest

_TRAILING_A_TO_Y = re.compile(r"^(.*)([A-Y])$", re.IGNORECASE)
_LABEL = re.compile(r"^([^-]+)-?(\d*)$")


def next_name(name: str) -> str:
    """Suggest the name following ``name``: ``ShelfA`` -> ``ShelfB``, ``Z`` -> ``ZA``."""
    match = _TRAILING_A_TO_Y.match(name)
    if match:
        base, char = match.groups()
        return base + chr(ord(char) + 1)
    return name + "A"


def unique_wood_name(forest: Forest, requested: str) -> str:
    """Step ``requested`` through :func:`next_name` until no root uses it."""
    taken = {root.wood_name for root in forest.roots()}
    name = requested
    while name in taken:
        name = next_name(name)
    return name


def _display_names(forest: Forest, exclude_id: Optional[str]) -> Set[str]:
    return {
        node.display_name
        for node in forest.all_nodes()
        if node.id != exclude_id and node.display_name
    }


def unique_display_name(
    forest: Forest, base_name: str, exclude_id: Optional[str] = None
) -> str:
    """Return ``base_name`` or the first free ``base_name-N`` (N >= 2).

    The empty string is always allowed and clears the label.
    """
    if not base_name:
        return ""
    taken = _display_names(forest, exclude_id)
    if base_name not in taken:
        return base_name
    i = 2
    while f"{base_name}-{i}" in taken:
        i += 1
    return f"{base_name}-{i}"


def part_label(name: str) -> str:
    # "Side-1" -> "S1", "Shelf" -> "S"
    if not name:
        return ""
    match = _LABEL.match(name)
    if match:
        base, number = match.groups()
        return base[:1] + number
    return name[:1]
