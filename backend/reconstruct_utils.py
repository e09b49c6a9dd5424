"""Warning collection, fatal error type and geometry helpers for reconstruction."""

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from snapshot_models import SnapshotNode

logger = logging.getLogger(__name__)


class ReconstructionError(Exception):
    """
    Fatal reconstruction failure: the snapshot root is missing or unusable.

    Same payload shape as HostCommandError: { code, message, details }.
    """

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        self.payload = {"code": code, "message": message, "details": self.details}
        super().__init__(message)


class ReconstructionWarnings:
    """Append-only list of human-readable lossy-conversion notes."""

    def __init__(self):
        self._items: List[str] = []

    def add(self, message: str) -> None:
        logger.warning(f"⚠️ {message}")
        self._items.append(message)

    def as_list(self) -> List[str]:
        return list(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)


def compute_relative_position(node: SnapshotNode, parent: SnapshotNode) -> Tuple[float, float]:
    """Offset of `node`'s bounding-box origin from its parent's."""
    child_box = node.absolute_bounding_box
    parent_box = parent.absolute_bounding_box
    if child_box is None or parent_box is None:
        return 0.0, 0.0
    return child_box.x - parent_box.x, child_box.y - parent_box.y


def clamp_size(value: Optional[float]) -> float:
    """Host nodes cannot be smaller than 1px on either axis."""
    return max(1.0, float(value or 1))
