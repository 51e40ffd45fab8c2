"""DynamicField ORM — one typed attribute value attached to an entity.

Invariants:
    - organization_id equals the owning entity's organization_id
    - Exactly one field_value_* column is populated, matching field_type
    - (entity_id, field_name) is unique; a field's type is fixed at first write
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Float, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hera_core.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DynamicField(Base):
    """Entity-attribute-value row."""
    __tablename__ = "core_dynamic_data"
    __table_args__ = (
        UniqueConstraint("entity_id", "field_name", name="uq_dynamic_entity_field"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("core_entities.id", ondelete="CASCADE"), nullable=False,
    )
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_type: Mapped[str] = mapped_column(String(20), nullable=False)
    field_value_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    field_value_number: Mapped[float | None] = mapped_column(Float, nullable=True)
    field_value_boolean: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    field_value_json: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    smart_code: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    entity: Mapped["Entity"] = relationship(
        "Entity", back_populates="dynamic_fields",
    )

    @property
    def value(self):
        """The populated typed value."""
        return getattr(self, f"field_value_{self.field_type}")
