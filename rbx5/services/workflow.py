"""
RBX5 Workflow - Orchestrates the "Robux 5 hari" purchase page.

Owns the Rbx5State, routes every change through the reducer and spawns the
network calls the page makes:

    username input  -> UserLookupService (debounced)
    identity change -> PlaceRegistry.load
    verify button   -> GamepassVerifier.verify
    checkout button -> build_checkout_item -> checkoutData outbox

close() is the page unmount: the debounce timer and every outstanding task
are cancelled.
"""

import asyncio
from collections.abc import Coroutine
from decimal import Decimal
from typing import Any

from structlog import get_logger

from rbx5.config import settings
from rbx5.exceptions import StorefrontError, ValidationError
from rbx5.models.api import CheckoutItemPayload, HomepageHandoff
from rbx5.models.domain import CheckoutTotals, GamepassCheck, Notice
from rbx5.services import pricing
from rbx5.services.checkout_state import (
    Event,
    NoticeRaised,
    NoticesDrained,
    PackageSelected,
    PackagesLoaded,
    PlaceSelected,
    PricingFailed,
    PricingLoaded,
    Rbx5State,
    RobuxChanged,
    build_checkout_item,
    current_price,
    is_form_valid,
    reduce,
    required_gamepass_amount,
)
from rbx5.services.gamepass_verifier import GamepassVerifier
from rbx5.services.handoff import InMemorySessionStore, Outbox, SessionStore
from rbx5.services.place_registry import PlaceRegistry, find_place
from rbx5.services.storefront_client import StorefrontClient
from rbx5.services.user_lookup import UserLookupService

logger = get_logger(__name__)


class Rbx5Workflow:
    """One RBX5 page session."""

    def __init__(
        self,
        client: StorefrontClient | None = None,
        session_store: SessionStore | None = None,
        debounce_seconds: float | None = None,
    ):
        self._owns_client = client is None
        self.client = client or StorefrontClient()
        self.session_store = session_store if session_store is not None else InMemorySessionStore()
        self.state = Rbx5State()

        self.checkout_outbox = Outbox(
            self.session_store, settings.checkout_handoff_key, CheckoutItemPayload
        )
        self.homepage_inbox = Outbox(
            self.session_store, settings.homepage_handoff_key, HomepageHandoff
        )

        self.user_lookup = UserLookupService(
            self.client, self.dispatch, debounce_seconds=debounce_seconds
        )
        self.place_registry = PlaceRegistry(self.client, self.dispatch)
        self.verifier = GamepassVerifier(self.client, self.dispatch)

        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    def dispatch(self, event: Event) -> None:
        """Reduce one event and start any follow-up call it implies."""
        previous = self.state
        self.state = reduce(previous, event)

        identity = self.state.user_identity
        if identity is not None and self.state.identity_version != previous.identity_version:
            self._spawn(self.place_registry.load(identity.id))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._closed:
            coro.close()
            return
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def settle(self) -> None:
        """Wait until no lookup is pending and no spawned task is running."""
        await self.user_lookup.debouncer.join()
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ------------------------------------------------------------------
    # Page lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Consume the homepage handoff, then load pricing and packages."""
        handoff = self.homepage_inbox.take_once()
        if handoff is not None and handoff.from_home_page and handoff.robux_amount:
            logger.info("homepage_handoff_applied", robux=handoff.robux_amount)
            self.set_robux(handoff.robux_amount)

        await asyncio.gather(self._load_pricing(), self._load_packages())

    async def _load_pricing(self) -> None:
        try:
            rate = await self.client.get_robux_pricing()
        except StorefrontError as e:
            logger.warning("robux_pricing_failed", error=e.message)
            self.dispatch(PricingFailed(e))
            return
        if rate is None:
            logger.warning("robux_pricing_missing")
        self.dispatch(PricingLoaded(rate))

    async def _load_packages(self) -> None:
        try:
            packages = await self.client.get_packages(settings.rbx5_category)
        except StorefrontError as e:
            logger.warning("rbx5_packages_failed", error=e.message)
            return
        self.dispatch(PackagesLoaded(tuple(packages)))

    async def close(self) -> None:
        """Cancel the debounce timer and every outstanding task."""
        self._closed = True
        self.user_lookup.cancel()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        if self._owns_client:
            await self.client.close()
        logger.debug("rbx5_workflow_closed", cancelled_tasks=len(tasks))

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def set_username(self, raw: str) -> None:
        self.user_lookup.on_input(raw)

    def set_robux(self, robux: int) -> None:
        """
        Set the Robux quantity.

        Raises:
            ValidationError: if robux is negative
        """
        if robux < 0:
            raise ValidationError("robux", "Robux amount cannot be negative")
        self.dispatch(RobuxChanged(robux))

    def select_package(self, package_id: str) -> None:
        """
        Select a preset package; the quantity follows it.

        Raises:
            ValidationError: if package_id is not a loaded package
        """
        for package in self.state.packages:
            if package.id == package_id:
                self.dispatch(PackageSelected(package))
                return
        raise ValidationError("package", f"Unknown package: {package_id}")

    def select_place(self, place_id: int | None) -> None:
        """Select one of the loaded places, or clear the selection with None."""
        if place_id is None:
            self.dispatch(PlaceSelected(None))
            return
        self.dispatch(PlaceSelected(find_place(self.state.places, place_id)))

    async def verify_gamepass(self) -> GamepassCheck | None:
        """Run a gamepass check. Missing prerequisites become a notice."""
        if self.state.is_checking_gamepass:
            logger.debug("gamepass_check_already_running")
            return None
        try:
            return await self.verifier.verify(self.state)
        except ValidationError as e:
            self.dispatch(NoticeRaised(Notice.from_error(e)))
            return None

    def build_checkout_payload(self) -> CheckoutItemPayload:
        """
        Build the checkout item and hand it to the checkout page.

        Raises:
            CheckoutNotReadyError: if the form is not valid
        """
        item = build_checkout_item(self.state)
        self.checkout_outbox.write(item)
        logger.info(
            "checkout_payload_built",
            service_id=item.service_id,
            unit_price=item.unit_price,
            robux=item.rbx5_details.robux_amount,
        )
        return item

    def drain_notices(self) -> tuple[Notice, ...]:
        """Return queued notices and empty the queue."""
        notices = self.state.notices
        if notices:
            self.dispatch(NoticesDrained())
        return notices

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def is_form_valid(self) -> bool:
        return is_form_valid(self.state)

    @property
    def gamepass_amount(self) -> int:
        return required_gamepass_amount(self.state)

    @property
    def price(self) -> int:
        return current_price(self.state)


def take_checkout(
    store: SessionStore, discount_percentage: Decimal | int | None = None
) -> tuple[CheckoutItemPayload, CheckoutTotals] | None:
    """
    Checkout-page side of the handoff: take the item once and total it.

    Returns None when nothing was handed off (or it was already taken).
    """
    outbox = Outbox(store, settings.checkout_handoff_key, CheckoutItemPayload)
    item = outbox.take_once()
    if item is None:
        return None
    return item, pricing.checkout_totals([item], discount_percentage)
