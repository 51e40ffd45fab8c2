"""ResourceConfigRecord ORM — stored declarative resource configuration.

Invariants:
    - (organization_id, resource_id) is the lookup key; configs are tenant data
    - config JSON is validated by core/resource_config.py on write AND on load
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hera_core.db.base import Base


class ResourceConfigRecord(Base):
    """Row in resource_configs."""
    __tablename__ = "resource_configs"
    __table_args__ = (
        UniqueConstraint("organization_id", "resource_id", name="uq_resource_org_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False,
    )
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    smart_code: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
