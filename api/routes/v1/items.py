"""
api/routes/v1/items.py -- Item CRUD routes for the ItemVault REST API.

Routes:
  GET    /items            -- list all items           (any authenticated role)
  GET    /items/{item_id}  -- single item              (public)
  POST   /items            -- create                   (Admin)
  PUT    /items/{item_id}  -- full overwrite           (Admin)
  PATCH  /items/{item_id}  -- overwrite given fields   (Admin)
  DELETE /items/{item_id}  -- remove, returns the item (Admin)

Visibility: reading one item by id is public; listing the collection requires
a token. Every write requires the Admin role.

Handlers are plain `def` so Starlette runs them in its thread pool; ItemStore
serializes the mutations itself. Not-found and storage errors propagate as
domain exceptions and are rendered by api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ItemCreate, ItemPatch, ItemResponse
from auth.dependencies import require_admin, require_any_role
from auth.models import Identity
from items.store import ItemStore

router = APIRouter()


def _store(request: Request) -> ItemStore:
    return request.app.state.items


@router.get("/items", response_model=list[ItemResponse])
def list_items(
    store: ItemStore = Depends(_store),
    identity: Identity = Depends(require_any_role),
) -> list[ItemResponse]:
    """Return every item in insertion order."""
    return [ItemResponse.from_item(i) for i in store.list_items()]


@router.get("/items/{item_id}", response_model=ItemResponse)
def get_item(item_id: int, store: ItemStore = Depends(_store)) -> ItemResponse:
    """Return one item. No authentication required."""
    return ItemResponse.from_item(store.get_item(item_id))


@router.post("/items", response_model=ItemResponse, status_code=201)
def create_item(
    body: ItemCreate,
    store: ItemStore = Depends(_store),
    identity: Identity = Depends(require_admin),
) -> ItemResponse:
    """Create an item. The id is assigned by the store."""
    return ItemResponse.from_item(store.create_item(body.name, body.description))


@router.put("/items/{item_id}", response_model=ItemResponse)
def replace_item(
    item_id: int,
    body: ItemCreate,
    store: ItemStore = Depends(_store),
    identity: Identity = Depends(require_admin),
) -> ItemResponse:
    """Overwrite name and description of an existing item."""
    return ItemResponse.from_item(store.replace_item(item_id, body.name, body.description))


@router.patch("/items/{item_id}", response_model=ItemResponse)
def patch_item(
    item_id: int,
    body: ItemPatch,
    store: ItemStore = Depends(_store),
    identity: Identity = Depends(require_admin),
) -> ItemResponse:
    """Overwrite only the non-empty fields in the body; an empty body changes nothing."""
    return ItemResponse.from_item(store.patch_item(item_id, name=body.name, description=body.description))


@router.delete("/items/{item_id}", response_model=ItemResponse)
def delete_item(
    item_id: int,
    store: ItemStore = Depends(_store),
    identity: Identity = Depends(require_admin),
) -> ItemResponse:
    """Delete an item and return the removed record."""
    return ItemResponse.from_item(store.delete_item(item_id))
