"""
SnapshotPair -- two-slot holder for optimistic updates.

The confirmed value and at most one candidate live side by side.
``confirm()`` makes the candidate the confirmed value, ``rollback()``
discards it; both are an index flip, never a copy.  Not thread-safe on its
own: the owning service serializes access.
"""

from typing import Generic, TypeVar

T = TypeVar("T")


class SnapshotPair(Generic[T]):
    __slots__ = ("_slots", "_confirmed_index", "_pending")

    def __init__(self, confirmed: T):
        self._slots: list[T | None] = [confirmed, None]
        self._confirmed_index = 0
        self._pending = False

    @property
    def confirmed(self) -> T:
        value = self._slots[self._confirmed_index]
        assert value is not None
        return value

    @property
    def candidate(self) -> T | None:
        if not self._pending:
            return None
        return self._slots[1 - self._confirmed_index]

    @property
    def working(self) -> T:
        """The value a viewer should see: the candidate while one is pending."""
        candidate = self.candidate
        return candidate if candidate is not None else self.confirmed

    @property
    def has_candidate(self) -> bool:
        return self._pending

    def propose(self, candidate: T) -> None:
        if self._pending:
            raise RuntimeError("A candidate is already pending confirmation")
        self._slots[1 - self._confirmed_index] = candidate
        self._pending = True

    def confirm(self) -> T:
        if not self._pending:
            raise RuntimeError("No candidate to confirm")
        self._confirmed_index = 1 - self._confirmed_index
        self._slots[1 - self._confirmed_index] = None
        self._pending = False
        return self.confirmed

    def rollback(self) -> T:
        if not self._pending:
            raise RuntimeError("No candidate to roll back")
        self._slots[1 - self._confirmed_index] = None
        self._pending = False
        return self.confirmed
