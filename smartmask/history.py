"""Linear undo/redo over editor snapshots."""
from typing import List, Optional, Tuple

from smartmask.types import Snapshot


class EditHistory:
    """
    Append-only snapshot list with a cursor.

    The list is never empty and the cursor always points into it. Pushing
    while the cursor is behind the end discards the snapshots after it.

    Args:
        initial: First snapshot. Default: empty snapshot.
    """

    def __init__(self, initial: Optional[Snapshot] = None) -> None:
        self._snapshots: List[Snapshot] = [initial or Snapshot()]
        self._index: int = 0

    def push(self, snapshot: Snapshot) -> None:
        """
        Make ``snapshot`` the new current state.

        Discards any redo states after the cursor.
        """
        del self._snapshots[self._index + 1:]
        self._snapshots.append(snapshot)
        self._index = len(self._snapshots) - 1

    def undo(self) -> bool:
        """Step back one snapshot. Returns False at the oldest snapshot."""
        if self._index > 0:
            self._index -= 1
            return True
        return False

    def redo(self) -> bool:
        """Step forward one snapshot. Returns False at the newest snapshot."""
        if self._index < len(self._snapshots) - 1:
            self._index += 1
            return True
        return False

    def reset(self, snapshot: Optional[Snapshot] = None) -> None:
        """Replace the whole stack with a single snapshot (empty by default)."""
        self._snapshots = [snapshot or Snapshot()]
        self._index = 0

    @property
    def current(self) -> Snapshot:
        return self._snapshots[self._index]

    @property
    def index(self) -> int:
        return self._index

    @property
    def snapshots(self) -> Tuple[Snapshot, ...]:
        return tuple(self._snapshots)

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._snapshots) - 1

    def __len__(self) -> int:
        return len(self._snapshots)
