"""Organization ORM — the tenant boundary.

Invariants:
    - id roots the scoping of every other relation
    - organization_code is unique across the installation
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from hera_core.db.base import Base


class Organization(Base):
    """Tenant — every entity, edge and transaction belongs to exactly one."""
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organization_name: Mapped[str] = mapped_column(String(255), nullable=False)
    organization_code: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active",
    )
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
