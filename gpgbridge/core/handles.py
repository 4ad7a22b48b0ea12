"""Opaque handle table for host objects reachable from engine callbacks."""

import itertools
import weakref
from typing import Generic, TypeVar

T = TypeVar("T")


class HandleTable(Generic[T]):
    """
    Maps small integer ids to host objects.

    The engine receives the id as its callback handle instead of an object
    address, and callbacks resolve it back here. Values are held weakly: the
    table never keeps a data object or relay alive, so the owner's finalizer
    still runs when the owner is dropped.

    Ids start at 1 because the engine hands a NULL handle back as None.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._objects: weakref.WeakValueDictionary[int, T] = weakref.WeakValueDictionary()

    def register(self, obj: T) -> int:
        """
        Register an object.

        Args:
            obj: Object to expose to callbacks.

        Returns:
            The id to pass to the engine.
        """
        handle = next(self._ids)
        self._objects[handle] = obj
        return handle

    def get(self, handle: int | None) -> T | None:
        """Resolve an id, returning None for unknown or dropped objects."""
        if handle is None:
            return None
        return self._objects.get(handle)

    def discard(self, handle: int) -> None:
        """Forget an id. No-op if already gone."""
        self._objects.pop(handle, None)

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, handle: int) -> bool:
        return handle in self._objects
