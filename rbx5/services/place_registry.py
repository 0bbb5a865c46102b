"""
Place Registry - Places owned by the resolved Roblox user.
"""

from collections.abc import Callable, Iterable

from structlog import get_logger

from rbx5.exceptions import StorefrontError, ValidationError
from rbx5.models.domain import Place
from rbx5.services.checkout_state import Event, PlacesFailed, PlacesLoaded, PlacesRequested
from rbx5.services.storefront_client import StorefrontClient

logger = get_logger(__name__)


def find_place(places: Iterable[Place], place_id: int) -> Place:
    """
    Pick a place from the loaded list.

    Raises:
        ValidationError: if place_id is not among the loaded places
    """
    for place in places:
        if place.place_id == place_id:
            return place
    raise ValidationError("place", f"Place {place_id} is not one of the user's places")


class PlaceRegistry:
    """Loads a user's places and dispatches the outcome."""

    def __init__(self, client: StorefrontClient, dispatch: Callable[[Event], None]):
        self.client = client
        self.dispatch = dispatch

    async def load(self, user_id: int) -> None:
        """Fetch places for user_id. Failures become a PlacesFailed event."""
        self.dispatch(PlacesRequested(user_id))
        try:
            places = await self.client.get_user_places(user_id)
        except StorefrontError as e:
            logger.warning("user_places_failed", user_id=user_id, error=e.message)
            self.dispatch(PlacesFailed(user_id, e))
            return

        logger.info("user_places_loaded", user_id=user_id, count=len(places))
        self.dispatch(PlacesLoaded(user_id, tuple(places)))
