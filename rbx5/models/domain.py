"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from decimal import Decimal

from rbx5.exceptions import StorefrontError


@dataclass(frozen=True)
class UserIdentity:
    """Roblox user resolved from a username lookup."""

    id: int
    username: str
    display_name: str
    avatar_url: str | None

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if self.id <= 0:
            raise ValueError(f"Invalid Roblox user id: {self.id}")
        if not self.username:
            raise ValueError("username cannot be empty")


@dataclass(frozen=True)
class Place:
    """A game place owned by a Roblox user."""

    place_id: int
    universe_id: int
    name: str
    visits: int = 0
    thumbnail_url: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class PricingRate:
    """Price in IDR for every 100 Robux."""

    price_per_hundred: Decimal

    def __post_init__(self) -> None:
        if self.price_per_hundred <= 0:
            raise ValueError(f"price_per_hundred must be positive: {self.price_per_hundred}")


@dataclass(frozen=True)
class Gamepass:
    """A gamepass listed under a universe."""

    id: int
    name: str
    price: int | None
    is_for_sale: bool | None = None
    seller_id: int | None = None
    product_id: int | None = None


@dataclass(frozen=True)
class GamepassCheck:
    """Outcome of a single gamepass lookup for an expected price."""

    success: bool
    expected_amount: int
    gamepass: Gamepass | None = None
    message: str | None = None
    all_gamepasses: tuple[Gamepass, ...] = ()


@dataclass(frozen=True)
class GamepassVerificationResult:
    """Last recorded verification, tied to the quantity it was made for."""

    verified_for_quantity: int
    gamepass: Gamepass | None
    success: bool


@dataclass(frozen=True)
class RobuxPackage:
    """Preset RBX5 package from the product catalog."""

    id: str
    name: str
    robux_amount: int
    price: int
    discount_percentage: Decimal = Decimal(0)
    description: str = ""

    def __post_init__(self) -> None:
        if self.robux_amount <= 0:
            raise ValueError(f"Package robux_amount must be positive: {self.robux_amount}")
        if not 0 <= self.discount_percentage <= 100:
            raise ValueError(f"Invalid discount percentage: {self.discount_percentage}")


@dataclass(frozen=True)
class Notice:
    """User-visible message queued for the UI (toast or inline)."""

    severity: str  # success, warning, error
    code: str
    message: str
    surface: str = "toast"

    @classmethod
    def from_error(cls, error: StorefrontError) -> "Notice":
        """Build a notice from a storefront error."""
        return cls(
            severity=error.severity,
            code=type(error).__name__,
            message=error.message,
            surface=error.surface,
        )


@dataclass(frozen=True)
class CheckoutTotals:
    """Totals computed by the checkout page from handed-off items."""

    total_amount: int
    discount_percentage: Decimal
    discount_amount: int
    final_amount: int
    item_count: int = 0
