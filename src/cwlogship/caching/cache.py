"""
Bounded LRU caches and the delivery context that owns them.

The delivery engine never keeps resolution or cursor state in module globals;
everything lives in a ``DeliveryContext`` created by the pipeline and passed
explicitly to the components that need it, so tests can build a fresh one
and shutdown can clear it.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Generic, Hashable, Iterator, TypeVar

from ..core.models import Destination, DestinationState

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Bounded mapping with least-recently-used eviction.

    Uses ``collections.OrderedDict`` for O(1) lookups and eviction. Owned by
    a single task, so no locking is done.
    """

    def __init__(self, capacity: int = 1000) -> None:
        """
        Initialize the cache with specified capacity.

        Args:
            capacity: Maximum number of items in cache
        """
        if capacity <= 0:
            raise ValueError("Capacity must be positive")

        self._capacity = capacity
        self._ordered_dict: OrderedDict[K, V] = OrderedDict()

    def get(self, key: K) -> V | None:
        """Get value from cache, or None if not found."""
        if key in self._ordered_dict:
            # Move to end (most recently used)
            self._ordered_dict.move_to_end(key)
            return self._ordered_dict[key]
        return None

    def set(self, key: K, value: V) -> None:
        if key in self._ordered_dict:
            self._ordered_dict.move_to_end(key)
        elif len(self._ordered_dict) >= self._capacity:
            # Remove least recently used item
            self._ordered_dict.popitem(last=False)
        self._ordered_dict[key] = value

    def pop(self, key: K) -> V | None:
        return self._ordered_dict.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._ordered_dict

    def __len__(self) -> int:
        return len(self._ordered_dict)

    def __iter__(self) -> Iterator[K]:
        return iter(self._ordered_dict)

    def clear(self) -> None:
        self._ordered_dict.clear()

    @property
    def capacity(self) -> int:
        return self._capacity


class DeliveryContext:
    """Caches shared by naming and delivery for one pipeline instance.

    ``destinations`` maps each ``Destination`` to its ``DestinationState``;
    cursor state is keyed strictly by destination, never by the container
    that produced a message. ``retention`` maps a group name to the retention
    days configured for it.
    """

    def __init__(self, capacity: int = 10_000) -> None:
        self.destinations: LRUCache[Destination, DestinationState] = LRUCache(
            capacity
        )
        self.retention: LRUCache[str, int] = LRUCache(capacity)

    def state_for(self, destination: Destination) -> DestinationState:
        """Return the state for ``destination``, creating it on first use."""
        state = self.destinations.get(destination)
        if state is None:
            state = DestinationState()
            self.destinations.set(destination, state)
        return state

    def cached_cursor(self, destination: Destination) -> tuple[bool, str | None]:
        """Return ``(known, cursor)`` without creating state."""
        state = self.destinations.get(destination)
        if state is None or not state.cursor_known:
            return False, None
        return True, state.cursor

    def register_retention(self, group: str, days: int) -> None:
        self.retention.set(group, days)

    def retention_for(self, group: str) -> int | None:
        return self.retention.get(group)

    def clear(self) -> None:
        self.destinations.clear()
        self.retention.clear()


__all__ = ["DeliveryContext", "LRUCache"]
