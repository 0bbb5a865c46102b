"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class RobuxPricing(Base):
    """
    ORM model for robux_pricing table.

    Holds a single row: the IDR price for every 100 Robux of the RBX5 category.
    """

    __tablename__ = "robux_pricing"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    price_per_hundred: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(
        Text, nullable=False, default="Price per 100 Robux for the 5-day category"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("price_per_hundred > 0", name="ck_price_per_hundred_positive"),
    )

    def __repr__(self) -> str:
        return f"<RobuxPricing(id={self.id}, price_per_hundred={self.price_per_hundred})>"


class RobuxProduct(Base):
    """
    ORM model for robux_products table.

    Preset packages shown on the purchase pages. Prices of the RBX5 category
    follow the pricing rate.
    """

    __tablename__ = "robux_products"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    robux_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal(0)
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("robux_amount >= 1", name="ck_product_robux_positive"),
        CheckConstraint("price >= 0", name="ck_product_price_non_negative"),
        CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_product_discount_range",
        ),
        CheckConstraint(
            "category IN ('robux_5_hari', 'robux_instant')", name="ck_product_category"
        ),
        Index("idx_products_category_active", "category", "is_active"),
        Index("idx_products_robux_amount", "robux_amount"),
    )

    def __repr__(self) -> str:
        return (
            f"<RobuxProduct(id={self.id}, category={self.category}, "
            f"robux_amount={self.robux_amount}, price={self.price})>"
        )


class RobloxUserCache(Base):
    """
    ORM model for roblox_user_cache table.

    Username lookups keyed by the lower-cased username. Rows older than the
    configured TTL are treated as misses and overwritten.
    """

    __tablename__ = "roblox_user_cache"

    username: Mapped[str] = mapped_column(String(50), primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str] = mapped_column(Text, nullable=False, default="")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("username = lower(username)", name="ck_cache_username_lowercase"),
        Index("idx_user_cache_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<RobloxUserCache(username={self.username}, user_id={self.user_id})>"
