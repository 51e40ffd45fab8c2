"""Entity Store Routes — tenant-scoped CRUD surface over the six relations.

Invariants:
    - The store is always built from the bound Context (get_entity_store);
      no request field can choose the organization
    - GET /entities query params other than entity_type/limit/after are
      filters checked against the store's column allow-list
    - Reads retry once on StoreError; writes never retry

Design Decisions:
    - Keyset pagination exposed as ?after=<id>, returned as next_after
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hera_core.api.dependencies import get_entity_store
from hera_core.config import get_settings
from hera_core.core.domain_types import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from hera_core.infrastructure.database import get_db, read_with_retry
from hera_core.schemas.entities import (
    DynamicFieldSet, EntityCreate, EntityResponse, EntityUpdate,
    RelationshipCreate, TransactionCreate,
)
from hera_core.services.entity_store import (
    EntityStore, serialize_entity, serialize_field,
    serialize_relationship, serialize_transaction,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["entities"])

RESERVED_QUERY_PARAMS = {"entity_type", "limit", "after"}


def _backoff() -> int:
    return get_settings().store_retry_backoff_ms


@router.post(
    "/entities", response_model=EntityResponse, status_code=status.HTTP_201_CREATED,
)
async def create_entity(
    body: EntityCreate, store: EntityStore = Depends(get_entity_store),
):
    entity = await store.create_entity(body.to_spec())
    return serialize_entity(entity)


@router.get("/entities")
async def list_entities(
    request: Request,
    entity_type: str | None = Query(None, max_length=100),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    after: UUID | None = None,
    store: EntityStore = Depends(get_entity_store),
    db: AsyncSession = Depends(get_db),
):
    """One keyset page of entities in the caller's organization."""
    filters = {
        key: value for key, value in request.query_params.items()
        if key not in RESERVED_QUERY_PARAMS
    }
    query = store.get_entities(entity_type, filters, page_size=limit)
    rows = await read_with_retry(db, lambda: query.page(after, limit), _backoff())
    return {
        "items": [serialize_entity(e) for e in rows],
        "next_after": str(rows[-1].id) if len(rows) == limit else None,
    }


@router.get("/entities/{entity_id}", response_model=EntityResponse)
async def get_entity(
    entity_id: UUID,
    include_fields: bool = False,
    store: EntityStore = Depends(get_entity_store),
    db: AsyncSession = Depends(get_db),
):
    entity = await read_with_retry(db, lambda: store.get_entity(entity_id), _backoff())
    data = serialize_entity(entity)
    if include_fields:
        data["dynamic_fields"] = await read_with_retry(
            db, lambda: store.get_dynamic_fields(entity_id), _backoff(),
        )
    return data


@router.patch("/entities/{entity_id}", response_model=EntityResponse)
async def update_entity(
    entity_id: UUID, body: EntityUpdate,
    store: EntityStore = Depends(get_entity_store),
):
    entity = await store.update_entity(entity_id, body.to_changes())
    return serialize_entity(entity)


@router.delete("/entities/{entity_id}")
async def delete_entity(
    entity_id: UUID, store: EntityStore = Depends(get_entity_store),
):
    """Delete an entity and its fields; report edges left dangling."""
    return {"deleted": await store.delete_entity(entity_id)}


@router.get("/entities/{entity_id}/fields")
async def get_dynamic_fields(
    entity_id: UUID,
    store: EntityStore = Depends(get_entity_store),
    db: AsyncSession = Depends(get_db),
):
    fields = await read_with_retry(
        db, lambda: store.get_dynamic_fields(entity_id), _backoff(),
    )
    return {"entity_id": str(entity_id), "fields": fields}


@router.put("/entities/{entity_id}/fields/{field_name}")
async def set_dynamic_field(
    entity_id: UUID, field_name: str, body: DynamicFieldSet,
    store: EntityStore = Depends(get_entity_store),
):
    field = await store.set_dynamic_field(
        entity_id, field_name, body.value, body.smart_code,
    )
    return serialize_field(field)


@router.post("/relationships", status_code=status.HTTP_201_CREATED)
async def create_relationship(
    body: RelationshipCreate, store: EntityStore = Depends(get_entity_store),
):
    rel = await store.create_relationship(
        body.from_entity_id, body.to_entity_id,
        body.relationship_type, body.smart_code, body.metadata,
    )
    return serialize_relationship(rel)


@router.get("/relationships/dangling")
async def list_dangling_relationships(
    store: EntityStore = Depends(get_entity_store),
    db: AsyncSession = Depends(get_db),
):
    rels = await read_with_retry(db, store.find_dangling_relationships, _backoff())
    return {"items": [serialize_relationship(r) for r in rels]}


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: TransactionCreate, store: EntityStore = Depends(get_entity_store),
):
    txn, lines = await store.create_transaction(body.header(), body.line_specs())
    return serialize_transaction(txn, lines)
