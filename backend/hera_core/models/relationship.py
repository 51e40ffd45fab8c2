"""Relationship ORM — typed directed edge between two entities of one organization.

Invariants:
    - Both endpoints share the edge's organization_id (checked by EntityStore)
    - from_entity_id / to_entity_id carry no FK: deleting an endpoint leaves
      the edge dangling until find_dangling_relationships() reports it
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hera_core.db.base import Base


class Relationship(Base):
    """Edge row in core_relationships."""
    __tablename__ = "core_relationships"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False,
    )
    from_entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    to_entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    relationship_type: Mapped[str] = mapped_column(String(100), nullable=False)
    smart_code: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
