"""
Roblox Gateway - httpx client for the public Roblox web APIs.

Used by the /api/* routes. Lookups that the storefront can live without
(avatar headshots, game icons) degrade to empty values; everything else
raises RobloxAPIError carrying the upstream status code.
"""

import asyncio
import time

import httpx
from structlog import get_logger

from rbx5.config import settings
from rbx5.exceptions import RobloxAPIError
from rbx5.models.domain import Gamepass, Place, UserIdentity
from rbx5.observability.metrics import metrics

logger = get_logger(__name__)


class RobloxGateway:
    """Client for users, thumbnails, games and game-pass APIs."""

    USERNAMES_PATH = "/v1/usernames/users"
    AVATAR_HEADSHOT_PATH = "/v1/users/avatar-headshot"
    GAME_ICONS_PATH = "/v1/places/gameicons"

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        retry_base_seconds: float | None = None,
        retry_max_seconds: float | None = None,
        attempts: int | None = None,
    ):
        self._http_client = http_client
        self.retry_base_seconds = (
            settings.gamepass_retry_base_seconds
            if retry_base_seconds is None
            else retry_base_seconds
        )
        self.retry_max_seconds = (
            settings.gamepass_retry_max_seconds if retry_max_seconds is None else retry_max_seconds
        )
        self.attempts = attempts or settings.gamepass_fetch_attempts

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=settings.roblox_timeout_seconds,
                headers={"Accept": "application/json"},
            )
        return self._http_client

    async def _request(
        self, operation: str, method: str, url: str, **kwargs: object
    ) -> httpx.Response:
        """Send one request, recording its outcome. Transport errors propagate."""
        start = time.perf_counter()
        try:
            response = await self.http_client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except httpx.HTTPError:
            metrics.record_roblox_request(operation, "error", time.perf_counter() - start)
            raise
        outcome = "success" if response.is_success else "http_error"
        metrics.record_roblox_request(operation, outcome, time.perf_counter() - start)
        return response

    async def resolve_username(self, username: str) -> UserIdentity | None:
        """
        Resolve a username to a Roblox user (avatar not included).

        Returns None when Roblox knows no such user.

        Raises:
            RobloxAPIError: upstream answered with an error status or failed
        """
        url = f"{settings.roblox_users_url}{self.USERNAMES_PATH}"
        try:
            response = await self._request(
                "resolve_username",
                "POST",
                url,
                json={"usernames": [username], "excludeBannedUsers": False},
            )
        except httpx.HTTPError as e:
            raise RobloxAPIError("usernames", str(e) or type(e).__name__)

        if not response.is_success:
            logger.warning(
                "roblox_username_lookup_failed", username=username, status=response.status_code
            )
            raise RobloxAPIError(
                "usernames", f"HTTP {response.status_code}", status_code=response.status_code
            )

        users = response.json().get("data") or []
        if not users:
            return None

        user = users[0]
        return UserIdentity(
            id=int(user["id"]),
            username=user["name"],
            display_name=user.get("displayName") or user["name"],
            avatar_url=None,
        )

    async def get_avatar_headshot(self, user_id: int) -> str:
        """150x150 headshot URL, or "" when unavailable."""
        url = f"{settings.roblox_thumbnails_url}{self.AVATAR_HEADSHOT_PATH}"
        params = {"userIds": user_id, "size": "150x150", "format": "Png", "isCircular": "false"}
        try:
            response = await self._request("avatar_headshot", "GET", url, params=params)
        except httpx.HTTPError as e:
            logger.warning("roblox_avatar_failed", user_id=user_id, error=str(e))
            return ""
        if not response.is_success:
            logger.warning("roblox_avatar_failed", user_id=user_id, status=response.status_code)
            return ""

        data = response.json().get("data") or []
        return (data[0].get("imageUrl") or "") if data else ""

    async def list_user_games(self, user_id: int, limit: int | None = None) -> list[Place]:
        """
        Public games of a user, oldest first, with game icons.

        Raises:
            RobloxAPIError: the games listing failed
        """
        limit = limit or settings.roblox_places_limit
        url = f"{settings.roblox_games_url}/v2/users/{user_id}/games"
        params = {"accessFilter": 2, "sortOrder": "Asc", "limit": limit}
        try:
            response = await self._request("user_games", "GET", url, params=params)
        except httpx.HTTPError as e:
            raise RobloxAPIError("user-games", str(e) or type(e).__name__)

        if not response.is_success:
            logger.warning("roblox_user_games_failed", user_id=user_id, status=response.status_code)
            raise RobloxAPIError(
                "user-games", f"HTTP {response.status_code}", status_code=response.status_code
            )

        games = (response.json().get("data") or [])[:limit]
        if not games:
            return []

        icons = await self.get_game_icons([int(game["id"]) for game in games])
        return [
            Place(
                place_id=int(game["id"]),
                universe_id=int(game.get("universeId") or game["id"]),
                name=game.get("name") or "",
                visits=int(game.get("placeVisits") or 0),
                thumbnail_url=icons.get(int(game["id"])),
                description=game.get("description"),
            )
            for game in games
        ]

    async def get_game_icons(self, place_ids: list[int]) -> dict[int, str]:
        """Icon URL per place id. Missing or failed lookups are simply absent."""
        if not place_ids:
            return {}
        url = f"{settings.roblox_thumbnails_url}{self.GAME_ICONS_PATH}"
        params = {
            "placeIds": ",".join(str(pid) for pid in place_ids),
            "size": "512x512",
            "format": "Png",
            "isCircular": "false",
        }
        try:
            response = await self._request("game_icons", "GET", url, params=params)
        except httpx.HTTPError as e:
            logger.warning("roblox_game_icons_failed", error=str(e))
            return {}
        if not response.is_success:
            logger.warning("roblox_game_icons_failed", status=response.status_code)
            return {}

        return {
            int(item["targetId"]): item["imageUrl"]
            for item in response.json().get("data") or []
            if item.get("imageUrl")
        }

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_base_seconds * 2 ** (attempt - 1), self.retry_max_seconds)

    async def list_universe_gamepasses(self, universe_id: int) -> list[Gamepass]:
        """
        All game passes of a universe.

        Retries transport errors, error statuses and error bodies with
        exponential backoff.

        Raises:
            RobloxAPIError: every attempt failed
        """
        url = f"{settings.roblox_apis_url}/game-passes/v1/universes/{universe_id}/game-passes"
        params = {"passView": "Full", "pageSize": 100}
        last_error = "no attempt made"

        for attempt in range(1, self.attempts + 1):
            try:
                response = await self._request("universe_gamepasses", "GET", url, params=params)
            except httpx.TimeoutException:
                last_error = "Request timeout"
            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
            else:
                if not response.is_success:
                    last_error = f"HTTP {response.status_code}: {response.reason_phrase}"
                else:
                    try:
                        body = response.json()
                    except ValueError:
                        body = None
                    if not isinstance(body, dict):
                        last_error = "Unreadable response body"
                    elif body.get("errors") or body.get("code") == 0:
                        last_error = body.get("message") or "API returned error"
                    else:
                        passes = body.get("gamePasses") or []
                        logger.info(
                            "roblox_gamepasses_fetched",
                            universe_id=universe_id,
                            count=len(passes),
                            attempt=attempt,
                        )
                        return [
                            Gamepass(
                                id=int(gp["id"]),
                                name=gp.get("name") or gp.get("displayName") or "",
                                price=gp.get("price"),
                                is_for_sale=gp.get("isForSale"),
                                seller_id=(gp.get("creator") or {}).get("creatorId"),
                                product_id=gp.get("productId"),
                            )
                            for gp in passes
                        ]

            logger.warning(
                "roblox_gamepasses_attempt_failed",
                universe_id=universe_id,
                attempt=attempt,
                attempts=self.attempts,
                error=last_error,
            )
            if attempt < self.attempts:
                await asyncio.sleep(self._backoff(attempt))

        logger.error(
            "roblox_gamepasses_failed", universe_id=universe_id, attempts=self.attempts
        )
        raise RobloxAPIError("game-passes", last_error)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
