"""Entity Store Schemas — Pydantic models for entity, field, relationship and transaction writes.

Invariants:
    - organization_id is never a request field: it comes from the bound Context
    - smart_code grammar is checked by the store (core/smart_code.py), not here,
      so every write path shares one validator and one error kind
    - Extra keys are ignored, so a smuggled organization_id never reaches the store

Design Decisions:
    - Decimal for amounts: exact values flow into Numeric columns
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from hera_core.core.domain_types import EntityStatus


class DynamicFieldValue(BaseModel):
    """Initial dynamic field written together with its entity."""
    value: str | bool | int | float | dict | list
    smart_code: str | None = None


class EntityCreate(BaseModel):
    """Entity creation — required type, name and smart code."""
    entity_type: str = Field(min_length=1, max_length=100)
    entity_name: str = Field(min_length=1, max_length=255)
    entity_code: str | None = Field(None, max_length=100)
    smart_code: str = Field(max_length=255)
    status: EntityStatus = EntityStatus.ACTIVE
    metadata: dict[str, Any] = Field(default_factory=dict)
    dynamic_fields: dict[str, DynamicFieldValue] = Field(default_factory=dict)

    @field_validator("entity_type", "entity_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty or whitespace")
        return v

    def to_spec(self) -> dict:
        spec = self.model_dump(exclude={"dynamic_fields"})
        spec["status"] = self.status.value
        spec["dynamic_fields"] = {
            name: field.model_dump() for name, field in self.dynamic_fields.items()
        }
        return spec


class EntityResponse(BaseModel):
    """Entity response — public-facing entity data."""
    id: UUID
    organization_id: UUID
    entity_type: str
    entity_name: str
    entity_code: str | None = None
    smart_code: str
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    dynamic_fields: dict[str, Any] | None = None


class DynamicFieldSet(BaseModel):
    """Upsert of one dynamic field value."""
    value: str | bool | int | float | dict | list
    smart_code: str = Field(max_length=255)


class RelationshipCreate(BaseModel):
    from_entity_id: UUID
    to_entity_id: UUID
    relationship_type: str = Field(min_length=1, max_length=100)
    smart_code: str = Field(max_length=255)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransactionLineCreate(BaseModel):
    """Line payload. organization_id is inherited from the header, never accepted."""
    line_number: int | None = Field(None, ge=1)
    entity_id: UUID | None = None
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    line_amount: Decimal | None = None
    smart_code: str = Field(max_length=255)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransactionCreate(BaseModel):
    """Header plus lines, written in one store transaction."""
    transaction_type: str = Field(min_length=1, max_length=100)
    transaction_code: str | None = Field(None, max_length=100)
    transaction_date: datetime | None = None
    source_entity_id: UUID | None = None
    target_entity_id: UUID | None = None
    total_amount: Decimal | None = None
    smart_code: str = Field(max_length=255)
    status: str = Field("active", max_length=20)
    metadata: dict[str, Any] = Field(default_factory=dict)
    lines: list[TransactionLineCreate] = Field(default_factory=list, max_length=1000)

    def header(self) -> dict:
        return self.model_dump(exclude={"lines"})

    def line_specs(self) -> list[dict]:
        return [line.model_dump() for line in self.lines]


class EntityUpdate(BaseModel):
    """Partial update. organization_id is accepted only to reject a change."""
    entity_name: str | None = Field(None, min_length=1, max_length=255)
    entity_code: str | None = Field(None, max_length=100)
    status: EntityStatus | None = None
    smart_code: str | None = Field(None, max_length=255)
    metadata: dict[str, Any] | None = None
    organization_id: UUID | None = None

    def to_changes(self) -> dict:
        changes = self.model_dump(exclude_unset=True)
        if self.status is not None:
            changes["status"] = self.status.value
        return changes
