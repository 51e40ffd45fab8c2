"""Transaction ORM — universal transaction header and its lines.

Invariants:
    - Lines inherit organization_id from their header at write time
    - Header and lines are written in one store transaction
    - source/target/line entity references are plain UUIDs (no cascade)

Design Decisions:
    - Numeric for money columns: exact decimal arithmetic for SUM/AVG stats
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, DateTime, JSON, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hera_core.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(Base):
    """Header row in universal_transactions."""
    __tablename__ = "universal_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False, index=True,
    )
    transaction_type: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    source_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    target_entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), nullable=False, default=Decimal("0"),
    )
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

    lines: Mapped[list["TransactionLine"]] = relationship(
        "TransactionLine", back_populates="transaction",
        cascade="all, delete-orphan", order_by="TransactionLine.line_number",
    )


class TransactionLine(Base):
    """Line row in universal_transaction_lines."""
    __tablename__ = "universal_transaction_lines"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False,
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("universal_transactions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), nullable=False, default=Decimal("1"),
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), nullable=False, default=Decimal("0"),
    )
    line_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 4), nullable=False, default=Decimal("0"),
    )
    smart_code: Mapped[str] = mapped_column(String(255), nullable=False)
    metadata_: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )

    transaction: Mapped["Transaction"] = relationship(
        "Transaction", back_populates="lines",
    )
