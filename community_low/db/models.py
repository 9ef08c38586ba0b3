"""SQLAlchemy database models."""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, Numeric, SmallInteger, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from community_low.utils.clock import utcnow


class TrustLevel(enum.IntEnum):
    """Confidence attached to a stored lowest price.

    Lower is better: at an equal price a lower value always wins.
    """

    TRUSTED = 0
    UNVERIFIED = 1

    def is_better_than(self, other: "TrustLevel") -> bool:
        return self < other


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class PriceReport(Base):
    """One immutable price observation from an anonymous reporter."""

    __tablename__ = "price_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    prod_id: Mapped[str] = mapped_column(String(128), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reporter_token: Mapped[str] = mapped_column(String(64), nullable=False)
    page_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    client_observed_at: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # as sent, untrusted
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_price_reports_prod_price_created", "prod_id", "price", "created_at"),
    )


class LowestPrice(Base):
    """Current authoritative lowest price for a product."""

    __tablename__ = "lowest_prices"

    prod_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    min_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    trust_level: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
