"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.

Field names are snake_case in Python and camelCase on the wire, matching the
JSON the storefront pages exchange.
"""

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from rbx5.models.domain import Gamepass, Place, PricingRate, RobuxPackage, UserIdentity

# Decimals travel as JSON numbers, not strings
WireDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class WireModel(BaseModel):
    """Base for all JSON bodies: camelCase aliases, population by field name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Serialize with wire aliases, dropping unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ============================================================================
# User Lookup Models
# ============================================================================


class UserInfoResponse(WireModel):
    """GET /api/user-info response."""

    success: bool
    cached: bool | None = None
    id: int | None = None
    username: str | None = None
    display_name: str | None = None
    avatar: str | None = None
    message: str | None = None

    def to_identity(self) -> UserIdentity:
        """Convert a successful response to a UserIdentity."""
        if self.id is None or not self.username:
            raise ValueError("user-info response is missing id or username")
        return UserIdentity(
            id=self.id,
            username=self.username,
            display_name=self.display_name or self.username,
            avatar_url=self.avatar or None,
        )


# ============================================================================
# Place Models
# ============================================================================


class PlaceItem(WireModel):
    """Single place in GET /api/get-user-places."""

    place_id: int
    universe_id: int
    name: str
    description: str | None = None
    visits: int = 0
    thumbnail: str | None = None

    @classmethod
    def from_domain(cls, place: Place) -> "PlaceItem":
        """Build from a Place."""
        return cls(
            place_id=place.place_id,
            universe_id=place.universe_id,
            name=place.name,
            description=place.description,
            visits=place.visits,
            thumbnail=place.thumbnail_url,
        )

    def to_domain(self) -> Place:
        """Convert to a Place."""
        return Place(
            place_id=self.place_id,
            universe_id=self.universe_id,
            name=self.name,
            visits=self.visits,
            thumbnail_url=self.thumbnail,
            description=self.description,
        )


class UserPlacesResponse(WireModel):
    """GET /api/get-user-places response."""

    success: bool
    data: list[PlaceItem] = Field(default_factory=list)
    message: str | None = None


# ============================================================================
# Pricing Models
# ============================================================================


class RobuxPricingData(WireModel):
    """The single pricing record."""

    price_per_hundred: WireDecimal
    description: str | None = None

    def to_domain(self) -> PricingRate:
        """Convert to a PricingRate."""
        return PricingRate(price_per_hundred=self.price_per_hundred)


class RobuxPricingResponse(WireModel):
    """GET/PUT /api/robux-pricing response."""

    success: bool
    data: RobuxPricingData | None = None
    message: str | None = None
    updated_products_count: int | None = None


class UpdatePricingRequest(WireModel):
    """PUT /api/robux-pricing request body. Positivity is checked by the route."""

    price_per_hundred: WireDecimal | None = None
    description: str | None = None


# ============================================================================
# Gamepass Models
# ============================================================================


class GamepassItem(WireModel):
    """Gamepass as returned by /api/check-gamepass."""

    id: int
    name: str | None = None
    price: int | None = None
    is_for_sale: bool | None = None
    seller_id: int | None = None
    product_id: int | None = None

    @classmethod
    def from_domain(cls, gamepass: Gamepass) -> "GamepassItem":
        """Build from a Gamepass."""
        return cls(
            id=gamepass.id,
            name=gamepass.name,
            price=gamepass.price,
            is_for_sale=gamepass.is_for_sale,
            seller_id=gamepass.seller_id,
            product_id=gamepass.product_id,
        )

    def to_domain(self) -> Gamepass:
        """Convert to a Gamepass."""
        return Gamepass(
            id=self.id,
            name=self.name or "",
            price=self.price,
            is_for_sale=self.is_for_sale,
            seller_id=self.seller_id,
            product_id=self.product_id,
        )


class CheckGamepassResponse(WireModel):
    """GET /api/check-gamepass response."""

    success: bool
    message: str | None = None
    gamepass: GamepassItem | None = None
    all_gamepasses: list[GamepassItem] = Field(default_factory=list)
    expected_price: int | None = None
    hint: str | None = None


# ============================================================================
# Product Catalog Models
# ============================================================================


class ProductItem(WireModel):
    """RBX5 package as listed by /api/products."""

    id: str = Field(alias="_id")
    name: str
    description: str = ""
    robux_amount: int
    price: int
    discount_percentage: WireDecimal = Decimal(0)
    is_active: bool = True
    category: str

    def to_domain(self) -> RobuxPackage:
        """Convert to a RobuxPackage."""
        return RobuxPackage(
            id=self.id,
            name=self.name,
            robux_amount=self.robux_amount,
            price=self.price,
            discount_percentage=self.discount_percentage,
            description=self.description,
        )


class ProductsResponse(WireModel):
    """GET /api/products response."""

    success: bool = True
    products: list[ProductItem] = Field(default_factory=list)
    message: str | None = None


# ============================================================================
# Handoff Payloads
# ============================================================================


class PlaceRef(WireModel):
    """Selected place as carried in the checkout payload."""

    place_id: int
    name: str
    universe_id: int


class GamepassRef(WireModel):
    """Verified gamepass as carried in the checkout payload."""

    id: int
    name: str
    price: int | None = None


class Rbx5Details(WireModel):
    """RBX5-specific details consumed by the checkout page."""

    robux_amount: int
    gamepass_amount: int
    selected_place: PlaceRef
    gamepass: GamepassRef | None = None


class CheckoutItemPayload(WireModel):
    """The item written to the checkout handoff store."""

    service_type: str = "robux"
    service_id: str
    service_name: str
    service_image: str = ""
    quantity: int = Field(1, gt=0)
    unit_price: int = Field(..., ge=0)
    roblox_username: str
    service_category: str
    rbx5_details: Rbx5Details


class HomepageHandoff(WireModel):
    """Quantity picked on the homepage calculator, handed to the RBX5 page."""

    robux_amount: int | None = Field(None, ge=0)
    total_price: int | None = None
    from_home_page: bool = False


class HealthResponse(WireModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    version: str
    timestamp: str


class ErrorResponse(WireModel):
    """Body of every failed /api/* call."""

    success: bool = False
    message: str
    hint: str | None = None
