"""
Pricing Engine - Pure price and gamepass-amount computations.

No I/O, no state. All arithmetic is done in Decimal and rounded up to whole
Robux / whole IDR, so results do not depend on binary float representation
(350 Robux needs a 501 Robux gamepass, 500 Robux needs 715).
"""

from collections.abc import Iterable
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from rbx5.config import settings
from rbx5.models.api import CheckoutItemPayload
from rbx5.models.domain import CheckoutTotals, PricingRate, RobuxPackage

GAMEPASS_MARKUP = Decimal(settings.gamepass_markup)
_HUNDRED = Decimal(100)


def _ceil(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def gamepass_amount(robux: int, markup: Decimal = GAMEPASS_MARKUP) -> int:
    """
    Robux price the buyer must set on their gamepass.

    Roblox keeps a marketplace fee on every gamepass sale, so the gamepass is
    priced above the quantity delivered: ceil(robux * 1.43).
    """
    if robux <= 0:
        return 0
    return _ceil(Decimal(robux) * markup)


def price(robux: int, rate: PricingRate | None) -> int:
    """Purchase price in IDR: ceil(robux / 100 * price_per_hundred)."""
    if robux <= 0 or rate is None:
        return 0
    return _ceil(Decimal(robux) / _HUNDRED * rate.price_per_hundred)


def package_final_price(package: RobuxPackage) -> Decimal:
    """Package price after its own discount percentage."""
    if package.discount_percentage:
        return Decimal(package.price) * (1 - package.discount_percentage / _HUNDRED)
    return Decimal(package.price)


def current_price(robux: int, rate: PricingRate | None, package: RobuxPackage | None) -> int:
    """Price shown for the current selection: the live rate first, else the package."""
    if robux > 0 and rate is not None:
        return price(robux, rate)
    if package is not None:
        return _ceil(package_final_price(package))
    return 0


def reprice_package_amount(robux_amount: int, price_per_hundred: Decimal) -> int:
    """Catalog price of an RBX5 product under a new rate."""
    return _ceil(Decimal(robux_amount) / _HUNDRED * price_per_hundred)


def member_discount(amount: int, percentage: Decimal | int | None) -> CheckoutTotals:
    """
    Apply a member-role discount to a checkout amount.

    discount = round(amount * pct / 100), half away from zero.
    """
    pct = Decimal(percentage or 0)
    if not 0 <= pct <= 100:
        raise ValueError(f"Invalid discount percentage: {pct}")
    discount = int((Decimal(amount) * pct / _HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))
    return CheckoutTotals(
        total_amount=amount,
        discount_percentage=pct,
        discount_amount=discount,
        final_amount=amount - discount,
    )


def checkout_totals(
    items: Iterable[CheckoutItemPayload], discount_percentage: Decimal | int | None = None
) -> CheckoutTotals:
    """Base amount of handed-off items (quantity * unit price) with member discount."""
    items = list(items)
    base = sum(item.quantity * item.unit_price for item in items)
    totals = member_discount(base, discount_percentage)
    return CheckoutTotals(
        total_amount=totals.total_amount,
        discount_percentage=totals.discount_percentage,
        discount_amount=totals.discount_amount,
        final_amount=totals.final_amount,
        item_count=len(items),
    )
