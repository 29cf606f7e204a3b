from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class ProcessedOrder(Base):
    __tablename__ = "processed_orders"
    __table_args__ = (
        Index("idx_processed_orders_user", "user_id"),
        Index(
            "idx_processed_orders_unapplied",
            "processed_at",
            postgresql_where=text("entitlement_applied = false"),
        ),
    )

    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plan_type: Mapped[str] = mapped_column(String(16), nullable=False)
    payer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    captured_amount: Mapped[str] = mapped_column(String(16), nullable=False)
    captured_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    entitlement_applied: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
    )
    applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ttl: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
