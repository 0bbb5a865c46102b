"""
Catalog Service - Pricing rate, RBX5 products and the Roblox username cache.

NO DICTIONARIES - Rows are converted to typed wire or domain models before
leaving this module.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from rbx5.config import settings
from rbx5.db.models import RobloxUserCache, RobuxPricing, RobuxProduct
from rbx5.models.api import ProductItem, RobuxPricingData
from rbx5.models.domain import UserIdentity
from rbx5.services.pricing import reprice_package_amount

logger = get_logger(__name__)

DEFAULT_PRICING_DESCRIPTION = "Price per 100 Robux for the 5-day category"


def _pricing_data(row: RobuxPricing) -> RobuxPricingData:
    return RobuxPricingData(price_per_hundred=row.price_per_hundred, description=row.description)


def _product_item(row: RobuxProduct) -> ProductItem:
    return ProductItem(
        id=str(row.id),
        name=row.name,
        description=row.description,
        robux_amount=row.robux_amount,
        price=row.price,
        discount_percentage=row.discount_percentage,
        is_active=row.is_active,
        category=row.category,
    )


class CatalogService:
    """Reads and writes the storefront catalog tables."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    async def _pricing_row(self) -> RobuxPricing | None:
        result = await self.session.execute(select(RobuxPricing).order_by(RobuxPricing.id).limit(1))
        return result.scalar_one_or_none()

    async def get_pricing(self) -> RobuxPricingData | None:
        """The single pricing record, or None if none was ever set."""
        row = await self._pricing_row()
        return _pricing_data(row) if row else None

    async def update_pricing(
        self, price_per_hundred: Decimal, description: str | None = None
    ) -> tuple[RobuxPricingData, int]:
        """
        Create or update the pricing record and re-price every RBX5 product.

        Returns the stored record and the number of products re-priced.
        """
        if price_per_hundred <= 0:
            raise ValueError(f"price_per_hundred must be positive: {price_per_hundred}")

        row = await self._pricing_row()
        if row is None:
            row = RobuxPricing(
                price_per_hundred=price_per_hundred,
                description=description or DEFAULT_PRICING_DESCRIPTION,
            )
            self.session.add(row)
        else:
            row.price_per_hundred = price_per_hundred
            if description is not None:
                row.description = description

        result = await self.session.execute(
            select(RobuxProduct).where(RobuxProduct.category == settings.rbx5_category)
        )
        products = list(result.scalars().all())
        for product in products:
            product.price = reprice_package_amount(product.robux_amount, price_per_hundred)

        await self.session.flush()
        await self.session.commit()

        logger.info(
            "robux_pricing_updated",
            price_per_hundred=str(price_per_hundred),
            updated_products=len(products),
        )
        return _pricing_data(row), len(products)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    async def list_products(self, category: str | None = None) -> list[ProductItem]:
        """Active products, optionally of one category, by ascending Robux amount."""
        stmt = select(RobuxProduct).where(RobuxProduct.is_active.is_(True))
        if category:
            stmt = stmt.where(RobuxProduct.category == category)
        stmt = stmt.order_by(RobuxProduct.robux_amount)

        result = await self.session.execute(stmt)
        return [_product_item(row) for row in result.scalars().all()]

    # ------------------------------------------------------------------
    # Username cache
    # ------------------------------------------------------------------

    async def get_cached_user(self, username: str) -> UserIdentity | None:
        """Cached lookup for a username, ignoring entries past the TTL."""
        row = await self.session.get(RobloxUserCache, username.lower())
        if row is None:
            return None

        expires_at = row.updated_at + timedelta(seconds=settings.user_cache_ttl_seconds)
        if expires_at <= datetime.now(UTC):
            logger.debug("user_cache_expired", username=row.username)
            return None

        return UserIdentity(
            id=row.user_id,
            username=row.username,
            display_name=row.display_name,
            avatar_url=row.avatar_url or None,
        )

    async def cache_user(self, identity: UserIdentity) -> None:
        """Insert or refresh the cache entry for identity."""
        key = identity.username.lower()
        row = await self.session.get(RobloxUserCache, key)
        if row is None:
            row = RobloxUserCache(username=key)
            self.session.add(row)
        row.user_id = identity.id
        row.display_name = identity.display_name
        row.avatar_url = identity.avatar_url or ""
        row.updated_at = datetime.now(UTC)

        try:
            await self.session.commit()
        except IntegrityError:
            # Another request cached the same username first
            await self.session.rollback()
            logger.info("user_cache_write_conflict", username=key)
