"""Entity Store — tenant-scoped CRUD over entities, dynamic fields, relationships, transactions.

Invariants:
    - Constructed per request with (db, organization_id); the org id is never
      taken from call arguments, and every query ANDs organization_id = org
    - A caller filter carrying organization_id is dropped, never merged
    - Every write validates its smart code first (core/smart_code.py), rejects, never coerces
    - Compound writes (entity + fields, header + lines, entity + fields delete)
      commit once; a failure rolls the whole unit back
    - A given transaction total is non-negative and matches the sum of its
      non-GL lines within 0.01
    - Deleting an entity removes only its dynamic fields; relationships and
      transactions referencing it are left dangling and reported
    - Cross-tenant errors carry no foreign ids or data

Design Decisions:
    - Bulk DELETE statements instead of ORM cascades: row counts are reported
      and no lazy load is triggered in async context
    - EntityQuery is re-iterable and pages with a keyset on id, so large result
      sets never materialize at once
"""

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator, Mapping
from uuid import UUID

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from hera_core.core.domain_types import (
    DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, EntityStatus, FieldType,
)
from hera_core.core.errors import (
    CrossTenantError, MalformedExpressionError, NotFoundError,
    TypeMismatchError, ValidationError,
)
from hera_core.core.expression_guard import check_path
from hera_core.core.smart_code import parse as parse_smart_code
from hera_core.models import (
    DynamicField, Entity, Organization, Relationship, Transaction, TransactionLine,
)

logger = logging.getLogger(__name__)

ORGANIZATION_KEY = "organization_id"
FILTERABLE_COLUMNS = {
    "entity_type": Entity.entity_type,
    "entity_name": Entity.entity_name,
    "entity_code": Entity.entity_code,
    "smart_code": Entity.smart_code,
    "status": Entity.status,
}
UPDATABLE_FIELDS = ("entity_name", "entity_code", "status", "smart_code", "metadata")
TOTAL_TOLERANCE = Decimal("0.01")
GL_SEGMENT = ".GL."


# ─── Serialization ───────────────────────────────────────────────

def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _amount(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def serialize_entity(entity: Entity) -> dict:
    return {
        "id": str(entity.id),
        "organization_id": str(entity.organization_id),
        "entity_type": entity.entity_type,
        "entity_name": entity.entity_name,
        "entity_code": entity.entity_code,
        "smart_code": entity.smart_code,
        "status": entity.status,
        "metadata": dict(entity.metadata_ or {}),
        "created_at": _iso(entity.created_at),
        "updated_at": _iso(entity.updated_at),
    }


def serialize_field(field: DynamicField) -> dict:
    return {
        "entity_id": str(field.entity_id),
        "field_name": field.field_name,
        "field_type": field.field_type,
        "value": field.value,
        "smart_code": field.smart_code,
    }


def serialize_relationship(rel: Relationship) -> dict:
    return {
        "id": str(rel.id),
        "from_entity_id": str(rel.from_entity_id),
        "to_entity_id": str(rel.to_entity_id),
        "relationship_type": rel.relationship_type,
        "smart_code": rel.smart_code,
        "metadata": dict(rel.metadata_ or {}),
    }


def serialize_transaction(txn: Transaction, lines: list[TransactionLine]) -> dict:
    return {
        "id": str(txn.id),
        "transaction_type": txn.transaction_type,
        "transaction_code": txn.transaction_code,
        "transaction_date": _iso(txn.transaction_date),
        "source_entity_id": str(txn.source_entity_id) if txn.source_entity_id else None,
        "target_entity_id": str(txn.target_entity_id) if txn.target_entity_id else None,
        "total_amount": _amount(txn.total_amount),
        "smart_code": txn.smart_code,
        "status": txn.status,
        "lines": [
            {
                "id": str(line.id),
                "line_number": line.line_number,
                "entity_id": str(line.entity_id) if line.entity_id else None,
                "quantity": _amount(line.quantity),
                "unit_price": _amount(line.unit_price),
                "line_amount": _amount(line.line_amount),
                "smart_code": line.smart_code,
            }
            for line in lines
        ],
    }


# ─── Value helpers ───────────────────────────────────────────────

def infer_field_type(value: Any) -> FieldType:
    """bool is checked before number: bool is an int subclass."""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return FieldType.NUMBER
    if isinstance(value, str):
        return FieldType.TEXT
    if isinstance(value, (dict, list)):
        return FieldType.JSON
    raise ValidationError("unsupported dynamic field value", field="value")


def _assign_value(field: DynamicField, field_type: FieldType, value: Any) -> None:
    field.field_value_text = value if field_type == FieldType.TEXT else None
    field.field_value_number = float(value) if field_type == FieldType.NUMBER else None
    field.field_value_boolean = value if field_type == FieldType.BOOLEAN else None
    field.field_value_json = value if field_type == FieldType.JSON else None


def _as_uuid(value: Any, field_name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError("invalid identifier", field=field_name)


def _optional_uuid(value: Any, field_name: str) -> UUID | None:
    return None if value in (None, "") else _as_uuid(value, field_name)


def _decimal(value: Any, field_name: str, default: Decimal | None = None) -> Decimal | None:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError("invalid amount", field=field_name)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("invalid amount", field=field_name)


def _required_text(spec: Mapping[str, Any], key: str) -> str:
    value = spec.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required", field=key)
    return value


def _status(value: Any) -> str:
    try:
        return EntityStatus(value).value
    except ValueError:
        raise ValidationError("invalid status", field="status")


# ─── Lazy entity query ───────────────────────────────────────────

class EntityQuery:
    """Lazy, finite, restartable sequence of entities in one organization.

    Each `async for` starts a fresh keyset scan; nothing is cached between runs.
    """

    def __init__(
        self,
        db: AsyncSession,
        organization_id: UUID,
        entity_type: str | None,
        filters: Mapping[str, Any],
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self._db = db
        self._organization_id = organization_id
        self._entity_type = entity_type
        self._filters = dict(filters)
        self._page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    def _statement(self, after: UUID | None, limit: int):
        stmt = select(Entity).where(Entity.organization_id == self._organization_id)
        if self._entity_type is not None:
            stmt = stmt.where(Entity.entity_type == self._entity_type)
        for key, value in self._filters.items():
            stmt = stmt.where(FILTERABLE_COLUMNS[key] == value)
        if after is not None:
            stmt = stmt.where(Entity.id > after)
        return stmt.order_by(Entity.id).limit(limit)

    async def page(self, after: UUID | None = None, limit: int | None = None) -> list[Entity]:
        """One keyset page: rows with id > after, ordered by id."""
        result = await self._db.execute(self._statement(after, limit or self._page_size))
        return list(result.scalars().all())

    async def __aiter__(self) -> AsyncIterator[Entity]:
        after = None
        while True:
            rows = await self.page(after)
            for row in rows:
                yield row
            if len(rows) < self._page_size:
                return
            after = rows[-1].id

    async def to_list(self, limit: int | None = None) -> list[Entity]:
        collected = []
        async for entity in self:
            collected.append(entity)
            if limit is not None and len(collected) >= limit:
                break
        return collected


# ─── Store ───────────────────────────────────────────────────────

class EntityStore:
    """Tenant-scoped store bound to one organization for the life of a request."""

    def __init__(self, db: AsyncSession, organization_id: UUID | str):
        self.db = db
        self.organization_id = _as_uuid(organization_id, ORGANIZATION_KEY)

    # ── entities ──

    async def create_entity(self, spec: Mapping[str, Any]) -> Entity:
        """Insert an entity (and optional initial dynamic fields) in one commit."""
        smart_code = parse_smart_code(spec.get("smart_code"))
        entity = Entity(
            id=uuid.uuid4(),
            organization_id=self.organization_id,
            entity_type=_required_text(spec, "entity_type"),
            entity_name=_required_text(spec, "entity_name"),
            entity_code=spec.get("entity_code"),
            smart_code=smart_code.value,
            status=_status(spec.get("status") or EntityStatus.ACTIVE.value),
            metadata_=dict(spec.get("metadata") or {}),
        )
        fields = [
            self._new_field(entity.id, name, *self._field_spec(field_spec, smart_code.value))
            for name, field_spec in (spec.get("dynamic_fields") or {}).items()
        ]
        self.db.add(entity)
        self.db.add_all(fields)
        await self.db.commit()
        logger.info("Entity created", extra={"outcome": "created"})
        return entity

    @staticmethod
    def _field_spec(field_spec: Any, default_code: str) -> tuple[Any, str]:
        if isinstance(field_spec, Mapping) and "value" in field_spec:
            return field_spec["value"], field_spec.get("smart_code") or default_code
        return field_spec, default_code

    async def get_entity(self, entity_id: UUID | str) -> Entity:
        entity_id = _as_uuid(entity_id, "entity_id")
        result = await self.db.execute(
            select(Entity).where(
                Entity.id == entity_id,
                Entity.organization_id == self.organization_id,
            ),
        )
        entity = result.scalar_one_or_none()
        if entity is None:
            raise NotFoundError("entity")
        return entity

    def get_entities(
        self,
        entity_type: str | None = None,
        filters: Mapping[str, Any] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> EntityQuery:
        """Lazy query; organization_id in filters is discarded."""
        clean = {}
        for key, value in (filters or {}).items():
            if key == ORGANIZATION_KEY:
                continue
            if key not in FILTERABLE_COLUMNS:
                raise MalformedExpressionError()
            clean[key] = value
        return EntityQuery(self.db, self.organization_id, entity_type, clean, page_size)

    async def update_entity(self, entity_id: UUID | str, changes: Mapping[str, Any]) -> Entity:
        entity = await self.get_entity(entity_id)
        if ORGANIZATION_KEY in changes:
            requested = _optional_uuid(changes[ORGANIZATION_KEY], ORGANIZATION_KEY)
            if requested != self.organization_id:
                raise ValidationError("organization_id is immutable", field=ORGANIZATION_KEY)
        unknown = set(changes) - set(UPDATABLE_FIELDS) - {ORGANIZATION_KEY}
        if unknown:
            raise ValidationError("unsupported update field", field=sorted(unknown)[0])
        if "smart_code" in changes:
            entity.smart_code = parse_smart_code(changes["smart_code"]).value
        if "entity_name" in changes:
            entity.entity_name = _required_text(changes, "entity_name")
        if "entity_code" in changes:
            entity.entity_code = changes["entity_code"]
        if "status" in changes:
            entity.status = _status(changes["status"])
        if "metadata" in changes:
            entity.metadata_ = dict(changes["metadata"] or {})
        await self.db.commit()
        return entity

    async def delete_entity(self, entity_id: UUID | str) -> dict:
        """Delete entity and its dynamic fields only; count edges left dangling."""
        entity = await self.get_entity(entity_id)
        fields_deleted = await self.db.execute(
            delete(DynamicField).where(
                DynamicField.entity_id == entity.id,
                DynamicField.organization_id == self.organization_id,
            ),
        )
        dangling = await self.db.execute(
            select(Relationship.id).where(
                Relationship.organization_id == self.organization_id,
                or_(
                    Relationship.from_entity_id == entity.id,
                    Relationship.to_entity_id == entity.id,
                ),
            ),
        )
        dangling_count = len(dangling.scalars().all())
        await self.db.execute(
            delete(Entity).where(
                Entity.id == entity.id,
                Entity.organization_id == self.organization_id,
            ),
        )
        await self.db.commit()
        logger.info("Entity deleted", extra={"outcome": "deleted"})
        return {
            "entity": 1,
            "dynamic_fields": fields_deleted.rowcount,
            "relationships": dangling_count,
        }

    # ── dynamic fields ──

    def _new_field(
        self, entity_id: UUID, field_name: str, value: Any, smart_code: str,
    ) -> DynamicField:
        check_path(field_name)
        field_type = infer_field_type(value)
        field = DynamicField(
            id=uuid.uuid4(),
            organization_id=self.organization_id,
            entity_id=entity_id,
            field_name=field_name,
            field_type=field_type.value,
            smart_code=parse_smart_code(smart_code).value,
        )
        _assign_value(field, field_type, value)
        return field

    async def set_dynamic_field(
        self, entity_id: UUID | str, field_name: str, value: Any, smart_code: str,
    ) -> DynamicField:
        """Upsert one typed field. The first write fixes the field's type."""
        check_path(field_name)
        code = parse_smart_code(smart_code).value
        field_type = infer_field_type(value)
        entity = await self.get_entity(entity_id)
        result = await self.db.execute(
            select(DynamicField).where(
                DynamicField.entity_id == entity.id,
                DynamicField.field_name == field_name,
                DynamicField.organization_id == self.organization_id,
            ),
        )
        field = result.scalar_one_or_none()
        if field is None:
            field = self._new_field(entity.id, field_name, value, code)
            self.db.add(field)
        else:
            if field.field_type != field_type.value:
                raise TypeMismatchError(field_name, field.field_type, field_type.value)
            _assign_value(field, field_type, value)
            field.smart_code = code
        await self.db.commit()
        return field

    async def get_dynamic_fields(self, entity_id: UUID | str) -> dict[str, Any]:
        entity = await self.get_entity(entity_id)
        result = await self.db.execute(
            select(DynamicField).where(
                DynamicField.entity_id == entity.id,
                DynamicField.organization_id == self.organization_id,
            ).order_by(DynamicField.field_name),
        )
        return {f.field_name: f.value for f in result.scalars().all()}

    # ── relationships ──

    async def _require_in_organization(self, entity_ids: list[UUID]) -> None:
        """NotFound if any id exists nowhere, CrossTenant if any lives in another org."""
        wanted = set(entity_ids)
        if not wanted:
            return
        result = await self.db.execute(
            select(Entity.id, Entity.organization_id).where(Entity.id.in_(wanted)),
        )
        owners = {row.id: row.organization_id for row in result}
        if wanted - set(owners):
            raise NotFoundError("entity")
        if any(org != self.organization_id for org in owners.values()):
            logger.warning("Cross-tenant reference rejected", extra={"outcome": "rejected"})
            raise CrossTenantError()

    async def create_relationship(
        self,
        from_entity_id: UUID | str,
        to_entity_id: UUID | str,
        relationship_type: str,
        smart_code: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> Relationship:
        code = parse_smart_code(smart_code).value
        if not isinstance(relationship_type, str) or not relationship_type.strip():
            raise ValidationError("relationship_type is required", field="relationship_type")
        source = _as_uuid(from_entity_id, "from_entity_id")
        target = _as_uuid(to_entity_id, "to_entity_id")
        await self._require_in_organization([source, target])
        rel = Relationship(
            id=uuid.uuid4(),
            organization_id=self.organization_id,
            from_entity_id=source,
            to_entity_id=target,
            relationship_type=relationship_type,
            smart_code=code,
            metadata_=dict(metadata or {}),
        )
        self.db.add(rel)
        await self.db.commit()
        return rel

    async def find_dangling_relationships(self) -> list[Relationship]:
        """Edges in this org whose from or to endpoint no longer exists."""
        endpoint_exists = lambda column: exists().where(Entity.id == column)  # noqa: E731
        result = await self.db.execute(
            select(Relationship).where(
                Relationship.organization_id == self.organization_id,
                or_(
                    ~endpoint_exists(Relationship.from_entity_id),
                    ~endpoint_exists(Relationship.to_entity_id),
                ),
            ).order_by(Relationship.created_at),
        )
        return list(result.scalars().all())

    # ── transactions ──

    async def create_transaction(
        self, header: Mapping[str, Any], lines: list[Mapping[str, Any]] | None = None,
    ) -> tuple[Transaction, list[TransactionLine]]:
        """Write a header and its lines in one commit; lines inherit the header org."""
        lines = list(lines or [])
        code = parse_smart_code(header.get("smart_code")).value
        txn_id = uuid.uuid4()
        source = _optional_uuid(header.get("source_entity_id"), "source_entity_id")
        target = _optional_uuid(header.get("target_entity_id"), "target_entity_id")

        built: list[TransactionLine] = []
        referenced = [e for e in (source, target) if e is not None]
        for index, raw in enumerate(lines, start=1):
            quantity = _decimal(raw.get("quantity"), "quantity", Decimal("1"))
            unit_price = _decimal(raw.get("unit_price"), "unit_price", Decimal("0"))
            line_amount = _decimal(raw.get("line_amount"), "line_amount", quantity * unit_price)
            entity_id = _optional_uuid(raw.get("entity_id"), "entity_id")
            if entity_id is not None:
                referenced.append(entity_id)
            built.append(TransactionLine(
                id=uuid.uuid4(),
                organization_id=self.organization_id,
                transaction_id=txn_id,
                line_number=int(raw.get("line_number") or index),
                entity_id=entity_id,
                quantity=quantity,
                unit_price=unit_price,
                line_amount=line_amount,
                smart_code=parse_smart_code(raw.get("smart_code"), field="lines.smart_code").value,
                metadata_=dict(raw.get("metadata") or {}),
            ))
        line_total = sum(
            (line.line_amount for line in built if GL_SEGMENT not in line.smart_code),
            Decimal("0"),
        )
        total = _decimal(header.get("total_amount"), "total_amount")
        if total is None:
            total = line_total
        elif total < 0:
            raise ValidationError("total_amount must not be negative", field="total_amount")
        elif built and abs(total - line_total) > TOTAL_TOLERANCE:
            raise ValidationError("total_amount does not match line total", field="total_amount")
        await self._require_in_organization(referenced)

        txn = Transaction(
            id=txn_id,
            organization_id=self.organization_id,
            transaction_type=_required_text(header, "transaction_type"),
            transaction_code=header.get("transaction_code"),
            source_entity_id=source,
            target_entity_id=target,
            total_amount=total,
            smart_code=code,
            status=header.get("status") or "active",
            metadata_=dict(header.get("metadata") or {}),
        )
        if header.get("transaction_date") is not None:
            txn.transaction_date = header["transaction_date"]
        self.db.add(txn)
        await self.db.flush()
        self.db.add_all(built)
        await self.db.commit()
        return txn, built


# ─── Organizations ───────────────────────────────────────────────

async def create_organization(
    db: AsyncSession, organization_name: str, organization_code: str,
    settings: Mapping[str, Any] | None = None,
) -> Organization:
    """Provision a tenant. Not exposed over HTTP."""
    org = Organization(
        id=uuid.uuid4(),
        organization_name=organization_name,
        organization_code=organization_code,
        settings=dict(settings or {}),
    )
    db.add(org)
    await db.commit()
    return org

