"""Entity ORM — generic business object row (customer, product, service...).

Invariants:
    - organization_id is set at creation and never rewritten
    - smart_code is validated by core/smart_code.py before insert
    - Dynamic fields cascade with the entity; relationships do NOT

Design Decisions:
    - metadata_ attribute maps to the "metadata" column ("metadata" is reserved
      on DeclarativeBase)
    - No relationship() to core_relationships: edges are plain UUID references
      so deleting an entity leaves them dangling instead of cascading
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, ForeignKey, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hera_core.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entity(Base):
    """Universal entity row, scoped by organization_id."""
    __tablename__ = "core_entities"
    __table_args__ = (
        Index("ix_core_entities_org_type", "organization_id", "entity_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    smart_code: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active",
    )
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    dynamic_fields: Mapped[list["DynamicField"]] = relationship(
        "DynamicField", back_populates="entity",
        cascade="all, delete-orphan",
    )
