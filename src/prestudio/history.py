"""Linear undo/redo history over immutable values."""

import logging
from enum import Enum
from typing import Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HistoryAction(str, Enum):
    """Transitions accepted by `History.dispatch`."""
    UNDO = "undo"
    REDO = "redo"
    SET = "set"
    RESET = "reset"


class History(Generic[T]):
    """Undo/redo container around a single present value.

    The container never copies the values it holds; it only shelves
    references. Callers build a new value for every change and hand it to
    `set`, which is the only way new states enter the history.

    Internally the redo stack is kept with the nearest entry last so both
    stacks push and pop in O(1); `future` exposes it nearest-first.
    """

    def __init__(self, present: T, limit: Optional[int] = None) -> None:
        """Initialize the history.

        Args:
            present: The starting value.
            limit: Maximum number of undo entries kept. None means unbounded.
        """
        if limit is not None and limit < 1:
            raise ValueError("History limit must be positive")
        self._limit = limit
        self._past: List[T] = []
        self._present = present
        self._redo: List[T] = []

    @property
    def present(self) -> T:
        return self._present

    @property
    def past(self) -> List[T]:
        """Undo entries, oldest first."""
        return list(self._past)

    @property
    def future(self) -> List[T]:
        """Redo entries, nearest first."""
        return list(reversed(self._redo))

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def dispatch(self, action: HistoryAction, payload: Optional[T] = None) -> T:
        """Apply one transition and return the resulting present value."""
        action = HistoryAction(action)

        if action == HistoryAction.UNDO:
            if not self._past:
                return self._present
            self._redo.append(self._present)
            self._present = self._past.pop()

        elif action == HistoryAction.REDO:
            if not self._redo:
                return self._present
            self._past.append(self._present)
            self._present = self._redo.pop()

        elif action == HistoryAction.SET:
            if payload is self._present:
                return self._present
            self._past.append(self._present)
            if self._limit is not None and len(self._past) > self._limit:
                del self._past[0]
            self._present = payload
            self._redo.clear()

        elif action == HistoryAction.RESET:
            self._past = []
            self._present = payload
            self._redo = []

        logger.debug(
            f"History {action.value}: past={len(self._past)} future={len(self._redo)}"
        )
        return self._present

    def set(self, value: T) -> T:
        """Commit a new present value and drop the redo entries."""
        return self.dispatch(HistoryAction.SET, value)

    def undo(self) -> T:
        return self.dispatch(HistoryAction.UNDO)

    def redo(self) -> T:
        return self.dispatch(HistoryAction.REDO)

    def reset(self, value: T) -> T:
        """Replace the whole history; nothing can be undone afterwards."""
        return self.dispatch(HistoryAction.RESET, value)
