"""Exception types raised by the shelfcut engines."""


class ShelfcutError(Exception):
    """Base exception for cut-tree, placement and persistence failures."""


class InvalidDimensionsError(ShelfcutError, ValueError):
    """Board dimensions are non-numeric or not strictly positive."""


class NodeNotFoundError(ShelfcutError, LookupError):
    """No node with the requested id exists in the forest."""

    def __init__(self, node_id: str):
        super().__init__(f"Part not found: {node_id}")
        self.node_id = node_id


class InvalidCutError(ShelfcutError, ValueError):
    """Cut request violates the guillotine preconditions."""


class InvalidStateError(ShelfcutError):
    """Node is not in the state the operation requires."""


class MergeBlockedError(ShelfcutError):
    """Merge refused because a child has been cut further."""

    def __init__(self, part_name: str):
        super().__init__(
            f"Part '{part_name}' has been cut further; merge that cut first"
        )
        self.part_name = part_name


class LayoutFormatError(ShelfcutError, ValueError):
    """Persisted layout document is corrupt or structurally invalid."""


class StorageError(ShelfcutError):
    """Reading or writing a persisted document failed."""
