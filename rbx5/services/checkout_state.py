"""
Checkout Form State - Immutable RBX5 page state and its reducer.

All state changes go through reduce(state, event). Events are frozen
dataclasses describing something that happened (input changed, a response
arrived); the reducer is the single place that enforces the cross-step
consistency rules:

- a lookup response only applies if it carries the latest dispatched
  request id;
- an identity change clears places, the selected place and any verification;
- a Robux quantity change away from the verified quantity forces the
  verification unsuccessful and queues a warning.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TypeVar

from rbx5.config import settings
from rbx5.exceptions import CheckoutNotReadyError, StateInvalidatedError, StorefrontError
from rbx5.models.api import CheckoutItemPayload, GamepassRef, PlaceRef, Rbx5Details
from rbx5.models.domain import (
    GamepassCheck,
    GamepassVerificationResult,
    Notice,
    Place,
    PricingRate,
    RobuxPackage,
    UserIdentity,
)
from rbx5.services import pricing


@dataclass(frozen=True)
class Rbx5State:
    """Everything the RBX5 page knows at one instant."""

    robux: int = 0
    selected_package: RobuxPackage | None = None
    packages: tuple[RobuxPackage, ...] = ()

    username: str = ""
    user_identity: UserIdentity | None = None
    username_error: str | None = None
    is_searching: bool = False
    lookup_request_id: int | None = None
    identity_version: int = 0

    places: tuple[Place, ...] = ()
    places_error: str | None = None
    is_loading_places: bool = False
    selected_place: Place | None = None

    pricing_rate: PricingRate | None = None
    pricing_error: str | None = None

    is_checking_gamepass: bool = False
    last_gamepass_check: GamepassCheck | None = None
    verification: GamepassVerificationResult | None = None

    notices: tuple[Notice, ...] = ()


# ============================================================================
# Events
# ============================================================================


@dataclass(frozen=True)
class UsernameChanged:
    raw: str


@dataclass(frozen=True)
class LookupCleared:
    """Input emptied or shorter than the minimum; drop identity immediately."""


@dataclass(frozen=True)
class LookupDispatched:
    request_id: int


@dataclass(frozen=True)
class LookupSucceeded:
    request_id: int
    identity: UserIdentity


@dataclass(frozen=True)
class LookupFailed:
    request_id: int
    error: StorefrontError


@dataclass(frozen=True)
class PlacesRequested:
    user_id: int


@dataclass(frozen=True)
class PlacesLoaded:
    user_id: int
    places: tuple[Place, ...]


@dataclass(frozen=True)
class PlacesFailed:
    user_id: int
    error: StorefrontError


@dataclass(frozen=True)
class PlaceSelected:
    place: Place | None


@dataclass(frozen=True)
class PricingLoaded:
    rate: PricingRate | None


@dataclass(frozen=True)
class PricingFailed:
    error: StorefrontError


@dataclass(frozen=True)
class PackagesLoaded:
    packages: tuple[RobuxPackage, ...]


@dataclass(frozen=True)
class RobuxChanged:
    robux: int


@dataclass(frozen=True)
class PackageSelected:
    package: RobuxPackage


@dataclass(frozen=True)
class VerificationStarted:
    place_id: int
    expected_amount: int


@dataclass(frozen=True)
class VerificationSucceeded:
    place_id: int
    quantity: int
    check: GamepassCheck


@dataclass(frozen=True)
class VerificationRejected:
    place_id: int
    check: GamepassCheck
    message: str


@dataclass(frozen=True)
class VerificationFailed:
    error: StorefrontError


@dataclass(frozen=True)
class NoticeRaised:
    notice: Notice


@dataclass(frozen=True)
class NoticesDrained:
    pass


Event = (
    UsernameChanged
    | LookupCleared
    | LookupDispatched
    | LookupSucceeded
    | LookupFailed
    | PlacesRequested
    | PlacesLoaded
    | PlacesFailed
    | PlaceSelected
    | PricingLoaded
    | PricingFailed
    | PackagesLoaded
    | RobuxChanged
    | PackageSelected
    | VerificationStarted
    | VerificationSucceeded
    | VerificationRejected
    | VerificationFailed
    | NoticeRaised
    | NoticesDrained
)

# ============================================================================
# Reducer
# ============================================================================

EventT = TypeVar("EventT")
_handlers: dict[type, Callable[[Rbx5State, object], Rbx5State]] = {}


def _handles(
    event_type: type[EventT],
) -> Callable[[Callable[[Rbx5State, EventT], Rbx5State]], Callable[[Rbx5State, EventT], Rbx5State]]:
    def register(fn: Callable[[Rbx5State, EventT], Rbx5State]) -> Callable[[Rbx5State, EventT], Rbx5State]:
        _handlers[event_type] = fn  # type: ignore[assignment]
        return fn

    return register


def reduce(state: Rbx5State, event: Event) -> Rbx5State:
    """Apply one event. Returns a new state; never mutates."""
    handler = _handlers.get(type(event))
    if handler is None:
        raise TypeError(f"Unhandled event type: {type(event).__name__}")
    return handler(state, event)


def _notify(state: Rbx5State, notice: Notice) -> tuple[Notice, ...]:
    return state.notices + (notice,)


def _without_user(state: Rbx5State) -> Rbx5State:
    """Everything scoped to a user identity goes away with it."""
    return replace(
        state,
        user_identity=None,
        places=(),
        places_error=None,
        is_loading_places=False,
        selected_place=None,
        verification=None,
        last_gamepass_check=None,
    )


def _match_package(packages: tuple[RobuxPackage, ...], robux: int) -> RobuxPackage | None:
    if robux <= 0:
        return None
    return next((p for p in packages if p.robux_amount == robux), None)


def _with_quantity(state: Rbx5State, robux: int) -> Rbx5State:
    """The only transition that changes the Robux quantity."""
    if robux < 0:
        raise ValueError(f"Robux quantity cannot be negative: {robux}")

    new = replace(state, robux=robux, selected_package=_match_package(state.packages, robux))

    verification = state.verification
    if (
        verification is not None
        and verification.success
        and verification.verified_for_quantity != robux
    ):
        warning = StateInvalidatedError(verification.verified_for_quantity, robux)
        new = replace(
            new,
            verification=replace(verification, success=False),
            notices=_notify(state, Notice.from_error(warning)),
        )
    return new


@_handles(UsernameChanged)
def _on_username_changed(state: Rbx5State, event: UsernameChanged) -> Rbx5State:
    return replace(state, username=event.raw)


@_handles(LookupCleared)
def _on_lookup_cleared(state: Rbx5State, event: LookupCleared) -> Rbx5State:
    return replace(
        _without_user(state),
        username_error=None,
        is_searching=False,
        lookup_request_id=None,
    )


@_handles(LookupDispatched)
def _on_lookup_dispatched(state: Rbx5State, event: LookupDispatched) -> Rbx5State:
    return replace(
        state, lookup_request_id=event.request_id, is_searching=True, username_error=None
    )


@_handles(LookupSucceeded)
def _on_lookup_succeeded(state: Rbx5State, event: LookupSucceeded) -> Rbx5State:
    if event.request_id != state.lookup_request_id:
        return state
    return replace(
        _without_user(state),
        user_identity=event.identity,
        username_error=None,
        is_searching=False,
        identity_version=state.identity_version + 1,
    )


@_handles(LookupFailed)
def _on_lookup_failed(state: Rbx5State, event: LookupFailed) -> Rbx5State:
    if event.request_id != state.lookup_request_id:
        return state
    return replace(
        _without_user(state),
        username_error=event.error.message,
        is_searching=False,
    )


def _is_current_user(state: Rbx5State, user_id: int) -> bool:
    return state.user_identity is not None and state.user_identity.id == user_id


@_handles(PlacesRequested)
def _on_places_requested(state: Rbx5State, event: PlacesRequested) -> Rbx5State:
    if not _is_current_user(state, event.user_id):
        return state
    return replace(state, is_loading_places=True, places_error=None)


@_handles(PlacesLoaded)
def _on_places_loaded(state: Rbx5State, event: PlacesLoaded) -> Rbx5State:
    if not _is_current_user(state, event.user_id):
        return state
    return replace(state, places=event.places, places_error=None, is_loading_places=False)


@_handles(PlacesFailed)
def _on_places_failed(state: Rbx5State, event: PlacesFailed) -> Rbx5State:
    if not _is_current_user(state, event.user_id):
        return state
    return replace(state, places=(), places_error=event.error.message, is_loading_places=False)


@_handles(PlaceSelected)
def _on_place_selected(state: Rbx5State, event: PlaceSelected) -> Rbx5State:
    if event.place == state.selected_place:
        return state
    # A verification proves a gamepass under one universe only
    return replace(
        state, selected_place=event.place, verification=None, last_gamepass_check=None
    )


@_handles(PricingLoaded)
def _on_pricing_loaded(state: Rbx5State, event: PricingLoaded) -> Rbx5State:
    return replace(state, pricing_rate=event.rate, pricing_error=None)


@_handles(PricingFailed)
def _on_pricing_failed(state: Rbx5State, event: PricingFailed) -> Rbx5State:
    return replace(
        state,
        pricing_error=event.error.message,
        notices=_notify(state, Notice.from_error(event.error)),
    )


@_handles(PackagesLoaded)
def _on_packages_loaded(state: Rbx5State, event: PackagesLoaded) -> Rbx5State:
    packages = tuple(sorted(event.packages, key=lambda p: p.robux_amount))
    return replace(
        state, packages=packages, selected_package=_match_package(packages, state.robux)
    )


@_handles(RobuxChanged)
def _on_robux_changed(state: Rbx5State, event: RobuxChanged) -> Rbx5State:
    return _with_quantity(state, event.robux)


@_handles(PackageSelected)
def _on_package_selected(state: Rbx5State, event: PackageSelected) -> Rbx5State:
    return replace(_with_quantity(state, event.package.robux_amount), selected_package=event.package)


@_handles(VerificationStarted)
def _on_verification_started(state: Rbx5State, event: VerificationStarted) -> Rbx5State:
    return replace(state, is_checking_gamepass=True, last_gamepass_check=None)


@_handles(VerificationSucceeded)
def _on_verification_succeeded(state: Rbx5State, event: VerificationSucceeded) -> Rbx5State:
    state = replace(state, is_checking_gamepass=False, last_gamepass_check=event.check)
    if state.selected_place is None or state.selected_place.place_id != event.place_id:
        return state

    gamepass = event.check.gamepass
    if event.quantity != state.robux:
        warning = StateInvalidatedError(event.quantity, state.robux)
        return replace(
            state,
            verification=GamepassVerificationResult(
                verified_for_quantity=event.quantity, gamepass=gamepass, success=False
            ),
            notices=_notify(state, Notice.from_error(warning)),
        )

    name = gamepass.name if gamepass else ""
    price = gamepass.price if gamepass else event.check.expected_amount
    return replace(
        state,
        verification=GamepassVerificationResult(
            verified_for_quantity=event.quantity, gamepass=gamepass, success=True
        ),
        notices=_notify(
            state,
            Notice(
                severity="success",
                code="GamepassVerified",
                message=f"GamePass found! Name: {name}, Price: {price} Robux",
            ),
        ),
    )


@_handles(VerificationRejected)
def _on_verification_rejected(state: Rbx5State, event: VerificationRejected) -> Rbx5State:
    return replace(
        state,
        is_checking_gamepass=False,
        last_gamepass_check=event.check,
        notices=_notify(
            state, Notice(severity="error", code="GamepassNotFound", message=event.message)
        ),
    )


@_handles(VerificationFailed)
def _on_verification_failed(state: Rbx5State, event: VerificationFailed) -> Rbx5State:
    return replace(
        state,
        is_checking_gamepass=False,
        notices=_notify(state, Notice.from_error(event.error)),
    )


@_handles(NoticeRaised)
def _on_notice_raised(state: Rbx5State, event: NoticeRaised) -> Rbx5State:
    return replace(state, notices=_notify(state, event.notice))


@_handles(NoticesDrained)
def _on_notices_drained(state: Rbx5State, event: NoticesDrained) -> Rbx5State:
    return replace(state, notices=())


# ============================================================================
# Derived values
# ============================================================================


def required_gamepass_amount(state: Rbx5State) -> int:
    """Gamepass price the buyer must configure for the current quantity."""
    return pricing.gamepass_amount(state.robux)


def current_price(state: Rbx5State) -> int:
    """Price shown for the current selection."""
    return pricing.current_price(state.robux, state.pricing_rate, state.selected_package)


def missing_requirements(state: Rbx5State) -> list[str]:
    """Conditions that keep the checkout action disabled, in page order."""
    missing: list[str] = []
    if state.robux <= 0:
        missing.append("robux quantity")
    if state.user_identity is None:
        missing.append("roblox user")
    if state.selected_place is None:
        missing.append("place")
    verification = state.verification
    if verification is None or not verification.success:
        missing.append("gamepass verification")
    elif verification.verified_for_quantity != state.robux:
        missing.append("gamepass verified for current quantity")
    if state.pricing_rate is None:
        missing.append("pricing rate")
    return missing


def is_form_valid(state: Rbx5State) -> bool:
    """True iff every step's output is present and mutually consistent."""
    return not missing_requirements(state)


def build_checkout_item(state: Rbx5State) -> CheckoutItemPayload:
    """
    Build the checkout payload for the current state.

    Raises:
        CheckoutNotReadyError: if the form is not valid
    """
    missing = missing_requirements(state)
    if missing:
        raise CheckoutNotReadyError(missing)

    # Narrowed by missing_requirements
    assert state.user_identity is not None
    assert state.selected_place is not None
    assert state.verification is not None

    package = state.selected_package
    gamepass = state.verification.gamepass
    return CheckoutItemPayload(
        service_type="robux",
        service_id=package.id if package else f"custom_{state.robux}",
        service_name=package.name if package else f"{state.robux} Robux (5 Hari)",
        quantity=1,
        unit_price=pricing.price(state.robux, state.pricing_rate),
        roblox_username=state.user_identity.username,
        service_category=settings.rbx5_category,
        rbx5_details=Rbx5Details(
            robux_amount=state.robux,
            gamepass_amount=required_gamepass_amount(state),
            selected_place=PlaceRef(
                place_id=state.selected_place.place_id,
                name=state.selected_place.name,
                universe_id=state.selected_place.universe_id,
            ),
            gamepass=(
                GamepassRef(id=gamepass.id, name=gamepass.name, price=gamepass.price)
                if gamepass
                else None
            ),
        ),
    )
