"""
items/models.py -- Domain dataclass for item records.

Items are frozen: the only way to "change" one is for ItemStore to build a
replacement under its write lock. Readers holding an Item can never see it
change underneath them.
"""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Item:
    """A single managed record. id is assigned by ItemStore on insert."""

    id: int
    name: str
    description: str

    def to_dict(self) -> dict:
        return asdict(self)


# Written when an item collection is created for the first time.
SEED_ITEMS: tuple[Item, ...] = (
    Item(id=1, name="Item 1", description="Description 1"),
    Item(id=2, name="Item 2", description="Description 2"),
)
