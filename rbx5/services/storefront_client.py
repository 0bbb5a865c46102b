"""
Storefront API client.

Typed httpx client for the /api/* routes the RBX5 page calls. Converts
transport and parse failures into TransientNetworkError and
success=false answers into NotFoundError / RemoteServiceError.
"""

from typing import TypeVar

import httpx
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from rbx5.config import settings
from rbx5.exceptions import NotFoundError, RemoteServiceError, TransientNetworkError
from rbx5.models.api import (
    CheckGamepassResponse,
    ProductsResponse,
    RobuxPricingResponse,
    UserInfoResponse,
    UserPlacesResponse,
    WireModel,
)
from rbx5.models.domain import GamepassCheck, Place, PricingRate, RobuxPackage, UserIdentity

logger = get_logger(__name__)

ResponseT = TypeVar("ResponseT", bound=WireModel)


class StorefrontClient:
    """Client for the storefront's own API routes."""

    USER_INFO_PATH = "/api/user-info"
    USER_PLACES_PATH = "/api/get-user-places"
    ROBUX_PRICING_PATH = "/api/robux-pricing"
    CHECK_GAMEPASS_PATH = "/api/check-gamepass"
    PRODUCTS_PATH = "/api/products"

    def __init__(
        self,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.base_url = base_url or settings.storefront_base_url
        self.timeout = timeout or settings.storefront_timeout_seconds
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._http_client

    async def _get(
        self, operation: str, path: str, params: dict[str, str | int], model: type[ResponseT]
    ) -> tuple[int, ResponseT]:
        """GET a route and parse its body. Any status code is accepted."""
        try:
            response = await self.http_client.get(path, params=params)
        except httpx.HTTPError as e:
            logger.warning("storefront_request_failed", operation=operation, error=str(e))
            raise TransientNetworkError(operation, str(e) or type(e).__name__)

        try:
            parsed = model.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.warning(
                "storefront_response_unparseable",
                operation=operation,
                status=response.status_code,
                error=str(e),
            )
            raise TransientNetworkError(
                operation, f"unreadable response (HTTP {response.status_code})"
            )

        return response.status_code, parsed

    async def get_user_info(self, username: str) -> UserIdentity:
        """
        Resolve a Roblox username.

        Raises:
            NotFoundError: the service reports no such user
            TransientNetworkError: transport, parse or server-side failure
        """
        status, body = await self._get(
            "user_lookup", self.USER_INFO_PATH, {"username": username}, UserInfoResponse
        )
        if body.success:
            try:
                return body.to_identity()
            except ValueError as e:
                raise TransientNetworkError("user_lookup", str(e))

        if status >= 500:
            raise TransientNetworkError("user_lookup", body.message or f"HTTP {status}")
        raise NotFoundError("Roblox user", username, body.message or "User not found")

    async def get_user_places(self, user_id: int) -> list[Place]:
        """List the public places owned by a Roblox user."""
        status, body = await self._get(
            "user_places", self.USER_PLACES_PATH, {"userId": user_id}, UserPlacesResponse
        )
        if not body.success:
            raise RemoteServiceError(
                "user_places", body.message or "Failed to load places", status_code=status
            )
        return [item.to_domain() for item in body.data]

    async def get_robux_pricing(self) -> PricingRate | None:
        """Current price per 100 Robux, or None when no rate is configured."""
        status, body = await self._get(
            "robux_pricing", self.ROBUX_PRICING_PATH, {}, RobuxPricingResponse
        )
        if not body.success:
            raise RemoteServiceError(
                "robux_pricing", body.message or "Failed to load pricing", status_code=status
            )
        if body.data is None:
            return None
        try:
            return body.data.to_domain()
        except ValueError as e:
            raise RemoteServiceError("robux_pricing", str(e), status_code=status)

    async def check_gamepass(self, universe_id: int, expected_robux: int) -> GamepassCheck:
        """
        Ask whether a gamepass priced at exactly expected_robux exists.

        A mismatch is a normal outcome (success=False); only failures to get
        an answer raise.
        """
        status, body = await self._get(
            "check_gamepass",
            self.CHECK_GAMEPASS_PATH,
            {"universeId": universe_id, "expectedRobux": expected_robux},
            CheckGamepassResponse,
        )
        if status >= 400:
            raise RemoteServiceError(
                "check_gamepass", body.message or f"HTTP {status}", status_code=status
            )

        all_gamepasses = tuple(item.to_domain() for item in body.all_gamepasses)
        if body.success and body.gamepass is not None:
            return GamepassCheck(
                success=True,
                expected_amount=expected_robux,
                gamepass=body.gamepass.to_domain(),
                message=body.message,
                all_gamepasses=all_gamepasses,
            )
        return GamepassCheck(
            success=False,
            expected_amount=expected_robux,
            message=body.message,
            all_gamepasses=all_gamepasses,
        )

    async def get_packages(self, category: str | None = None) -> list[RobuxPackage]:
        """Preset packages of a category, sorted by Robux amount."""
        category = category or settings.rbx5_category
        status, body = await self._get(
            "products", self.PRODUCTS_PATH, {"category": category}, ProductsResponse
        )
        if status >= 400 or not body.success:
            raise RemoteServiceError(
                "products", body.message or "Failed to load products", status_code=status
            )
        packages = []
        for item in body.products:
            if not item.is_active or item.robux_amount <= 0:
                continue
            try:
                packages.append(item.to_domain())
            except ValueError as e:
                logger.warning("rbx5_package_skipped", product_id=item.id, error=str(e))
        return sorted(packages, key=lambda p: p.robux_amount)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
