from __future__ import annotations

from sqlalchemy import BigInteger, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class RateLimitRecord(Base):
    __tablename__ = "rate_limits"
    __table_args__ = (
        CheckConstraint("count >= 0", name="ck_rate_limits_count_non_negative"),
        Index("idx_rate_limits_ttl", "ttl"),
    )

    key: Mapped[str] = mapped_column(String(256), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False)
    window_start: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ttl: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
