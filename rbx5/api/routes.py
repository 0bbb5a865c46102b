"""
API Routes - FastAPI endpoints called by the RBX5 purchase page.

NO DICTIONARIES - All requests/responses use Pydantic models.

Failures answer with ErrorResponse ({"success": false, "message": ...}) and
the matching status code rather than FastAPI's {"detail": ...} shape, since
the page reads "success" and "message" from every body.
"""

from dataclasses import replace
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from rbx5.api.dependencies import get_catalog_service, get_roblox_gateway
from rbx5.config import settings
from rbx5.db.session import get_db
from rbx5.exceptions import RobloxAPIError
from rbx5.models.api import (
    CheckGamepassResponse,
    ErrorResponse,
    GamepassItem,
    HealthResponse,
    PlaceItem,
    ProductsResponse,
    RobuxPricingResponse,
    UpdatePricingRequest,
    UserInfoResponse,
    UserPlacesResponse,
)
from rbx5.observability.metrics import metrics
from rbx5.services.catalog import CatalogService
from rbx5.services.roblox_gateway import RobloxGateway

logger = get_logger(__name__)

router = APIRouter()

GAMEPASS_RETRY_HINT = "Please try again in a moment or contact an admin if the problem persists."


def _failure(status_code: int, message: str, hint: str | None = None) -> JSONResponse:
    """Failed /api/* answer in the shape the page expects."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, hint=hint).to_wire(),
    )


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


# =============================================================================
# User lookup
# =============================================================================


@router.get(
    "/api/user-info",
    response_model=UserInfoResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_user_info(
    username: str | None = Query(None),
    catalog: CatalogService = Depends(get_catalog_service),
    gateway: RobloxGateway = Depends(get_roblox_gateway),
) -> UserInfoResponse | JSONResponse:
    """
    Resolve a Roblox username.

    Served from the username cache when a fresh entry exists; otherwise
    resolved through Roblox, enriched with the avatar headshot and cached.
    """
    key = (username or "").strip().lower()
    if not key:
        return _failure(status.HTTP_400_BAD_REQUEST, "Username is required")

    try:
        cached = await catalog.get_cached_user(key)
        if cached is not None:
            metrics.record_user_lookup(cached=True, outcome="found")
            logger.info("user_info_cache_hit", username=key)
            return UserInfoResponse(
                success=True,
                cached=True,
                id=cached.id,
                username=cached.username,
                display_name=cached.display_name,
                avatar=cached.avatar_url or "",
            )

        try:
            user = await gateway.resolve_username(key)
        except RobloxAPIError as e:
            metrics.record_user_lookup(cached=False, outcome="upstream_error")
            logger.warning("user_info_upstream_failed", username=key, error=e.message)
            return _failure(
                e.status_code or status.HTTP_502_BAD_GATEWAY,
                "Failed to fetch data from the Roblox API",
            )

        if user is None:
            metrics.record_user_lookup(cached=False, outcome="not_found")
            return _failure(status.HTTP_404_NOT_FOUND, "User not found")

        avatar = await gateway.get_avatar_headshot(user.id)
        user = replace(user, avatar_url=avatar or None)
        await catalog.cache_user(user)

        metrics.record_user_lookup(cached=False, outcome="found")
        logger.info("user_info_resolved", username=key, user_id=user.id)
        return UserInfoResponse(
            success=True,
            cached=False,
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            avatar=avatar,
        )

    except Exception as e:
        metrics.record_error(type(e).__name__, "user_info")
        logger.exception("user_info_failed", username=key)
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An error occurred while looking up the user"
        )


@router.get(
    "/api/get-user-places",
    response_model=UserPlacesResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}},
)
async def get_user_places(
    user_id: str | None = Query(None, alias="userId"),
    gateway: RobloxGateway = Depends(get_roblox_gateway),
) -> UserPlacesResponse | JSONResponse:
    """Public places of a Roblox user (at most roblox_places_limit), with icons."""
    parsed_id = _parse_int(user_id)
    if parsed_id is None or parsed_id <= 0:
        return _failure(status.HTTP_400_BAD_REQUEST, "userId is required")

    try:
        places = await gateway.list_user_games(parsed_id, limit=settings.roblox_places_limit)
    except RobloxAPIError as e:
        logger.warning("user_places_upstream_failed", user_id=parsed_id, error=e.message)
        return _failure(e.status_code or status.HTTP_502_BAD_GATEWAY, "Failed to fetch places")
    except Exception as e:
        metrics.record_error(type(e).__name__, "user_places")
        logger.exception("user_places_failed", user_id=parsed_id)
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An error occurred while fetching places"
        )

    return UserPlacesResponse(success=True, data=[PlaceItem.from_domain(p) for p in places])


# =============================================================================
# Gamepass check
# =============================================================================


@router.get(
    "/api/check-gamepass",
    response_model=CheckGamepassResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def check_gamepass(
    universe_id: str | None = Query(None, alias="universeId"),
    expected_robux: str | None = Query(None, alias="expectedRobux"),
    gateway: RobloxGateway = Depends(get_roblox_gateway),
) -> CheckGamepassResponse | JSONResponse:
    """
    Look for a gamepass priced at exactly expectedRobux in a universe.

    A missing match is a normal answer (200, success=false) listing the
    gamepasses that do exist.
    """
    parsed_universe = _parse_int(universe_id)
    expected = _parse_int(expected_robux)
    if parsed_universe is None or expected is None:
        return _failure(
            status.HTTP_400_BAD_REQUEST, "universeId and expectedRobux are required"
        )

    try:
        gamepasses = await gateway.list_universe_gamepasses(parsed_universe)
    except RobloxAPIError as e:
        metrics.record_gamepass_check("error")
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Failed to fetch gamepasses from Roblox. Error: {e.message}",
            hint=GAMEPASS_RETRY_HINT,
        )
    except Exception as e:
        metrics.record_error(type(e).__name__, "check_gamepass")
        logger.exception("check_gamepass_failed", universe_id=parsed_universe)
        return _failure(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "An error occurred while checking the gamepass"
        )

    listed = [
        GamepassItem(id=gp.id, name=gp.name, price=gp.price, is_for_sale=gp.is_for_sale)
        for gp in gamepasses
    ]
    match = next((gp for gp in gamepasses if gp.price == expected), None)
    if match is not None:
        metrics.record_gamepass_check("found")
        return CheckGamepassResponse(
            success=True,
            message="GamePass found!",
            gamepass=GamepassItem.from_domain(match),
            all_gamepasses=listed,
        )

    metrics.record_gamepass_check("mismatch" if gamepasses else "none")
    return CheckGamepassResponse(
        success=False,
        message=f"GamePass priced at {expected} Robux was not found",
        all_gamepasses=listed,
        expected_price=expected,
    )


# =============================================================================
# Pricing and products
# =============================================================================


@router.get("/api/robux-pricing", response_model=RobuxPricingResponse)
async def get_robux_pricing(
    catalog: CatalogService = Depends(get_catalog_service),
) -> RobuxPricingResponse | JSONResponse:
    """The single pricing record; data is null until one is set."""
    try:
        pricing = await catalog.get_pricing()
    except Exception as e:
        metrics.record_error(type(e).__name__, "robux_pricing")
        logger.exception("robux_pricing_read_failed")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to load Robux pricing")
    return RobuxPricingResponse(success=True, data=pricing)


@router.put(
    "/api/robux-pricing",
    response_model=RobuxPricingResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}},
)
async def update_robux_pricing(
    request: UpdatePricingRequest,
    catalog: CatalogService = Depends(get_catalog_service),
) -> RobuxPricingResponse | JSONResponse:
    """Create or update the rate; every RBX5 product is re-priced to match."""
    price_per_hundred = request.price_per_hundred
    if price_per_hundred is None or not price_per_hundred > 0:
        return _failure(
            status.HTTP_400_BAD_REQUEST, "pricePerHundred must be greater than 0"
        )

    try:
        pricing, updated = await catalog.update_pricing(price_per_hundred, request.description)
    except Exception as e:
        metrics.record_error(type(e).__name__, "robux_pricing_update")
        logger.exception("robux_pricing_update_failed")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update Robux pricing")

    message = "Robux pricing updated"
    if updated:
        message += f" and {updated} RBX5 products re-priced"
    return RobuxPricingResponse(
        success=True, data=pricing, message=message, updated_products_count=updated
    )


@router.get("/api/products", response_model=ProductsResponse, response_model_exclude_none=True)
async def list_products(
    category: str | None = Query(None),
    catalog: CatalogService = Depends(get_catalog_service),
) -> ProductsResponse | JSONResponse:
    """Active products, optionally of one category, by ascending Robux amount."""
    try:
        products = await catalog.list_products(category)
    except Exception as e:
        metrics.record_error(type(e).__name__, "products")
        logger.exception("products_read_failed", category=category)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to load products")
    return ProductsResponse(success=True, products=products, message="Products loaded")


# =============================================================================
# Health
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse | JSONResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    timestamp = datetime.now(UTC).isoformat()
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("health_check_database_failed", error=str(e))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=HealthResponse(
                status="unhealthy",
                database="disconnected",
                version=settings.api_version,
                timestamp=timestamp,
            ).to_wire(),
        )

    return HealthResponse(
        status="healthy",
        database="connected",
        version=settings.api_version,
        timestamp=timestamp,
    )
