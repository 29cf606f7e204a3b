from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("total_downloads >= 0", name="ck_users_total_downloads_non_negative"),
        CheckConstraint(
            "total_resumes_generated >= 0",
            name="ck_users_total_resumes_non_negative",
        ),
        CheckConstraint(
            "premium_resume_count >= 0",
            name="ck_users_premium_resume_count_non_negative",
        ),
        CheckConstraint(
            "plan_type IS NULL OR plan_type IN ('monthly','yearly')",
            name="ck_users_plan_type",
        ),
        Index("idx_users_email", "email"),
        Index("idx_users_subscription_expiration", "subscription_expiration"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    subscription_start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    subscription_expiration: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    free_resume_used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
    )
    free_download_used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
    )
    total_downloads: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_resumes_generated: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )
    premium_resume_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )
    premium_resume_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    plan_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payment_provider: Mapped[str | None] = mapped_column(String(16), nullable=True)
    payment_customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
