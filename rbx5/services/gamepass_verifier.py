"""
Gamepass Verifier - Confirms the buyer created a gamepass at the required price.

A verification is only meaningful for the quantity it was made for; the
reducer records that quantity and invalidates the result when it changes.
"""

from collections.abc import Callable

from structlog import get_logger

from rbx5.exceptions import StorefrontError, ValidationError
from rbx5.models.domain import GamepassCheck
from rbx5.services import pricing
from rbx5.services.checkout_state import (
    Event,
    Rbx5State,
    VerificationFailed,
    VerificationRejected,
    VerificationStarted,
    VerificationSucceeded,
)
from rbx5.services.storefront_client import StorefrontClient

logger = get_logger(__name__)


def rejection_message(check: GamepassCheck) -> str:
    """Buyer-facing explanation for a check that found no matching gamepass."""
    expected = check.expected_amount
    if not check.all_gamepasses:
        return (
            "No GamePass exists in this game yet. "
            f"Please create a GamePass priced at {expected} Robux first."
        )
    found = ", ".join(
        f"{gp.name} ({gp.price} Robux)" if gp.price is not None else f"{gp.name} (not for sale)"
        for gp in check.all_gamepasses
    )
    return (
        f"No GamePass priced at {expected} Robux was found. "
        f"Make sure a GamePass priced at {expected} Robux is created and on sale. "
        f"Found: {found}"
    )


class GamepassVerifier:
    """Runs gamepass checks against the selected place."""

    def __init__(self, client: StorefrontClient, dispatch: Callable[[Event], None]):
        self.client = client
        self.dispatch = dispatch

    async def verify(self, state: Rbx5State) -> GamepassCheck | None:
        """
        Check for a gamepass priced at the amount required by state.robux.

        The quantity captured here is the one recorded as verified; if the
        buyer changes it while the check is in flight, the reducer records
        the result as unsuccessful.

        Raises:
            ValidationError: no place selected or no quantity entered
        """
        place = state.selected_place
        if place is None:
            raise ValidationError("place", "Please select a place first")
        if state.robux <= 0:
            raise ValidationError("robux", "Please enter a Robux amount first")

        quantity = state.robux
        expected = pricing.gamepass_amount(quantity)
        self.dispatch(VerificationStarted(place.place_id, expected))

        try:
            check = await self.client.check_gamepass(place.universe_id, expected)
        except StorefrontError as e:
            logger.warning(
                "gamepass_verification_failed",
                universe_id=place.universe_id,
                expected_amount=expected,
                error=e.message,
            )
            self.dispatch(VerificationFailed(e))
            return None

        if check.success:
            logger.info(
                "gamepass_verified",
                universe_id=place.universe_id,
                quantity=quantity,
                gamepass_id=check.gamepass.id if check.gamepass else None,
            )
            self.dispatch(VerificationSucceeded(place.place_id, quantity, check))
        else:
            logger.info(
                "gamepass_not_found",
                universe_id=place.universe_id,
                expected_amount=expected,
                existing=len(check.all_gamepasses),
            )
            self.dispatch(VerificationRejected(place.place_id, check, rejection_message(check)))
        return check
