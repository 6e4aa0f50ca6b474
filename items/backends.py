"""
items/backends.py -- Wholesale persistence for the item collection.

ItemStore keeps the authoritative copy in memory and hands the complete,
already-modified collection to a backend on every mutation. A backend's only
job is to make that write all-or-nothing:

  SqlItemBackend  -- SQLAlchemy Core. save() deletes and re-inserts every row
                     inside one transaction; any failure rolls the whole
                     transaction back.
  JsonItemBackend -- A single JSON file. save() writes a sibling .tmp file and
                     os.replace()s it over the target, so the file on disk is
                     always either the old collection or the new one.

Failure semantics (shared by both):
  load() / initialize() raise StorageUnavailableError.
  save() raises StorageFailureError. The previous persisted state is intact.

Usage:
    backend = SqlItemBackend("sqlite:///itemvault.db")
    backend.initialize(seed=SEED_ITEMS)   # seeds only on first creation
    items = backend.load()
    backend.save(items)
    backend.close()
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.database import make_engine
from core.errors import StorageFailureError, StorageUnavailableError
from items.models import Item

logger = logging.getLogger("itemvault.items")


class ItemBackend(Protocol):
    def initialize(self, seed: Sequence[Item] = ()) -> None: ...

    def load(self) -> list[Item]: ...

    def save(self, items: Sequence[Item]) -> None: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# SQLAlchemy backend
# ---------------------------------------------------------------------------

_metadata = MetaData()

_items = Table(
    "items",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
)


class SqlItemBackend:
    """Items stored as rows of an `items` table.

    Row order: ids are always assigned as max + 1 and replacements keep their
    id, so ascending id order is insertion order.
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)

    def initialize(self, seed: Sequence[Item] = ()) -> None:
        """Create the table. Seed rows are written only if the table is new."""
        try:
            is_new = not inspect(self.engine).has_table(_items.name)
            _metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not open item database: {exc}") from exc
        if is_new and seed:
            _write_seed(self, seed)
            logger.info("Seeded %d default items", len(seed))

    def load(self) -> list[Item]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(_items.select().order_by(_items.c.id)).fetchall()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError("Item database is unavailable.") from exc
        return [_row_to_item(r) for r in rows]

    def save(self, items: Sequence[Item]) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(_items.delete())
                if items:
                    conn.execute(_items.insert(), [item.to_dict() for item in items])
        except SQLAlchemyError as exc:
            logger.error("Item save failed, transaction rolled back: %s", exc)
            raise StorageFailureError("Could not persist items.") from exc

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# JSON file backend
# ---------------------------------------------------------------------------


class JsonItemBackend:
    """Items stored as a JSON array in a single file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def initialize(self, seed: Sequence[Item] = ()) -> None:
        """Create the file if it does not exist, containing the seed items."""
        if self.path.exists():
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(f"Could not create {self.path.parent}: {exc}") from exc
        _write_seed(self, seed)
        logger.info("%s created with %d items", self.path, len(seed))

    def load(self) -> list[Item]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageUnavailableError(f"Could not load {self.path}: {exc}") from exc
        try:
            return [
                Item(id=int(r["id"]), name=str(r["name"]), description=str(r.get("description", "")))
                for r in raw
            ]
        except (TypeError, KeyError, ValueError) as exc:
            raise StorageUnavailableError(f"{self.path} does not hold an item list.") from exc

    def save(self, items: Sequence[Item]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump([item.to_dict() for item in items], f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.error("Item save to %s failed: %s", self.path, exc)
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise StorageFailureError(f"Could not persist items to {self.path}.") from exc

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _row_to_item(row) -> Item:
    return Item(id=row.id, name=row.name, description=row.description)


def _write_seed(backend: ItemBackend, seed: Sequence[Item]) -> None:
    """Write the initial collection. Failing here means the store never opened."""
    try:
        backend.save(seed)
    except StorageFailureError as exc:
        raise StorageUnavailableError(f"Could not write initial items: {exc}") from exc
