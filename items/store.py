"""
items/store.py -- The concurrency-safe item repository.

ItemStore owns the item collection exclusively. Nothing else may build or
change an Item that is visible through it.

Concurrency model (single writer, lock-free readers):
  Every mutation runs the whole read-current-state -> modify -> persist cycle
  while holding one exclusive lock. Two mutations therefore never interleave
  their read-modify-write, and the backend never sees two concurrent writes.

  The collection is an immutable tuple of frozen Items. A mutation builds a
  NEW tuple, persists it, and only then publishes it by rebinding
  self._items. Readers (list_items, get_item) take no lock: they read one
  reference and always see a complete, committed snapshot -- never a state
  that is mid-persist.

Failure model:
  If the backend raises StorageFailureError, the new tuple is simply never
  published, so memory stays at its pre-operation value and matches what is
  on disk. The error then propagates to the caller. No operation reports
  success with memory and storage diverged.

Usage:
    store = ItemStore(SqlItemBackend("sqlite:///itemvault.db"))
    item = store.create_item("Widget", "A widget")
    store.patch_item(item.id, name="Gadget")
    store.delete_item(item.id)
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Sequence

from core.errors import ItemNotFoundError
from items.backends import ItemBackend
from items.models import SEED_ITEMS, Item

logger = logging.getLogger("itemvault.items")

_PATCHABLE_FIELDS = frozenset({"name", "description"})


class ItemStore:
    """Repository for Item records backed by a wholesale-rewrite backend.

    Args:
        backend: Persists the collection. Initialized (and seeded, when the
                 collection is created for the first time) on construction.
        seed:    Items written when the backend's collection is brand new.
    """

    def __init__(self, backend: ItemBackend, seed: Sequence[Item] = SEED_ITEMS) -> None:
        self._backend = backend
        self._write_lock = threading.Lock()
        backend.initialize(seed)
        self._items: tuple[Item, ...] = tuple(backend.load())
        logger.info("Item store loaded (%d items)", len(self._items))

    # ------------------------------------------------------------------
    # Reads (no lock -- see module docstring)
    # ------------------------------------------------------------------

    def list_items(self) -> list[Item]:
        """Return a snapshot of all items in insertion order."""
        return list(self._items)

    def get_item(self, item_id: int) -> Item:
        """Return the item with the given id. Raises ItemNotFoundError."""
        snapshot = self._items
        return snapshot[_index_of(snapshot, item_id)]

    # ------------------------------------------------------------------
    # Mutations (exclusive section)
    # ------------------------------------------------------------------

    def create_item(self, name: str, description: str) -> Item:
        """Append a new item with id = max(existing ids) + 1 (or 1 when empty)."""
        with self._write_lock:
            current = self._items
            next_id = max((i.id for i in current), default=0) + 1
            item = Item(id=next_id, name=name, description=description)
            self._commit(current + (item,))
        logger.info("Created item %d", item.id)
        return item

    def replace_item(self, item_id: int, name: str, description: str) -> Item:
        """Overwrite every mutable field of an item. Raises ItemNotFoundError."""
        with self._write_lock:
            current = self._items
            index = _index_of(current, item_id)
            item = dataclasses.replace(current[index], name=name, description=description)
            self._commit(current[:index] + (item,) + current[index + 1 :])
        logger.info("Replaced item %d", item_id)
        return item

    def patch_item(self, item_id: int, **fields: str | None) -> Item:
        """Overwrite only the fields that are present and non-empty.

        patch_item(3, name="X") keeps item 3's description. A call with no
        usable fields is a no-op that returns the item unchanged (and does not
        touch storage). Raises ItemNotFoundError, or ValueError for a field
        name other than name/description.
        """
        unknown = set(fields) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown item fields: {sorted(unknown)!r}")
        changes = {k: v for k, v in fields.items() if v}

        with self._write_lock:
            current = self._items
            index = _index_of(current, item_id)
            if not changes:
                return current[index]
            item = dataclasses.replace(current[index], **changes)
            self._commit(current[:index] + (item,) + current[index + 1 :])
        logger.info("Patched item %d (%s)", item_id, ", ".join(sorted(changes)))
        return item

    def delete_item(self, item_id: int) -> Item:
        """Remove an item and return it. Raises ItemNotFoundError."""
        with self._write_lock:
            current = self._items
            index = _index_of(current, item_id)
            removed = current[index]
            self._commit(current[:index] + current[index + 1 :])
        logger.info("Deleted item %d", item_id)
        return removed

    def close(self) -> None:
        self._backend.close()

    def _commit(self, items: tuple[Item, ...]) -> None:
        """Persist then publish. Caller must hold self._write_lock.

        If save() raises, self._items is never rebound.
        """
        self._backend.save(items)
        self._items = items


def _index_of(items: tuple[Item, ...], item_id: int) -> int:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    raise ItemNotFoundError(item_id)
