"""
Tests for the RBX5 form state reducer.

Covers request sequencing for lookups, identity-scoped resets, the quantity
invalidation rule, package matching, the validity predicate and the checkout
payload builder.
"""

from dataclasses import replace

import pytest
from hypothesis import given
from hypothesis import strategies as st

from rbx5.exceptions import CheckoutNotReadyError, NotFoundError, TransientNetworkError
from rbx5.models.domain import (
    Gamepass,
    GamepassCheck,
    GamepassVerificationResult,
    Notice,
    Place,
    PricingRate,
    RobuxPackage,
    UserIdentity,
)
from rbx5.services.checkout_state import (
    LookupCleared,
    LookupDispatched,
    LookupFailed,
    LookupSucceeded,
    NoticeRaised,
    NoticesDrained,
    PackageSelected,
    PackagesLoaded,
    PlaceSelected,
    PlacesFailed,
    PlacesLoaded,
    PlacesRequested,
    PricingFailed,
    PricingLoaded,
    Rbx5State,
    RobuxChanged,
    UsernameChanged,
    VerificationFailed,
    VerificationRejected,
    VerificationStarted,
    VerificationSucceeded,
    build_checkout_item,
    current_price,
    is_form_valid,
    missing_requirements,
    reduce,
    required_gamepass_amount,
)


def run(state: Rbx5State, *events) -> Rbx5State:
    for event in events:
        state = reduce(state, event)
    return state


class TestReduce:
    """Tests for reducer plumbing."""

    def test_returns_new_state(self):
        """The input state is never modified."""
        state = Rbx5State()
        new = reduce(state, RobuxChanged(100))
        assert state.robux == 0
        assert new.robux == 100

    def test_unknown_event(self):
        """Unhandled events are a programming error."""
        with pytest.raises(TypeError, match="Unhandled event type"):
            reduce(Rbx5State(), object())  # type: ignore[arg-type]


class TestUserLookupEvents:
    """Tests for lookup sequencing."""

    def test_username_changed_records_raw_input(self):
        """The raw text is kept as typed."""
        assert reduce(Rbx5State(), UsernameChanged(" Builderman ")).username == " Builderman "

    def test_dispatch_marks_searching(self):
        """A dispatched lookup sets the searching flag and clears the error."""
        state = replace(Rbx5State(), username_error="old error")
        state = reduce(state, LookupDispatched(1))
        assert state.is_searching is True
        assert state.lookup_request_id == 1
        assert state.username_error is None

    def test_success_sets_identity(self, identity: UserIdentity):
        """The latest response sets the identity."""
        state = run(Rbx5State(), LookupDispatched(1), LookupSucceeded(1, identity))
        assert state.user_identity == identity
        assert state.is_searching is False
        assert state.identity_version == 1

    def test_stale_success_is_ignored(
        self, identity: UserIdentity, other_identity: UserIdentity
    ):
        """A response for an overtaken request does not apply."""
        state = run(
            Rbx5State(),
            LookupDispatched(1),
            LookupDispatched(2),
            LookupSucceeded(2, other_identity),
            LookupSucceeded(1, identity),
        )
        assert state.user_identity == other_identity
        assert state.identity_version == 1

    def test_stale_failure_is_ignored(self, identity: UserIdentity):
        """An overtaken failure does not clear the newer identity."""
        state = run(
            Rbx5State(),
            LookupDispatched(1),
            LookupDispatched(2),
            LookupSucceeded(2, identity),
            LookupFailed(1, NotFoundError("Roblox user", "old")),
        )
        assert state.user_identity == identity
        assert state.username_error is None

    def test_failure_sets_inline_error(self, ready_state: Rbx5State):
        """Failure clears the identity and everything scoped to it."""
        state = run(
            ready_state,
            LookupDispatched(5),
            LookupFailed(5, NotFoundError("Roblox user", "x", "User not found")),
        )
        assert state.user_identity is None
        assert state.username_error == "User not found"
        assert state.places == ()
        assert state.selected_place is None
        assert state.verification is None
        assert state.is_searching is False

    def test_cleared_retires_in_flight_request(self, identity: UserIdentity):
        """After clearing, the in-flight response is dropped."""
        state = run(
            Rbx5State(), LookupDispatched(1), LookupCleared(), LookupSucceeded(1, identity)
        )
        assert state.user_identity is None
        assert state.lookup_request_id is None
        assert state.is_searching is False

    def test_cleared_resets_user_scope(self, ready_state: Rbx5State):
        """Clearing drops identity, error, places, place and verification."""
        state = reduce(replace(ready_state, username_error="x"), LookupCleared())
        assert state.user_identity is None
        assert state.username_error is None
        assert state.places == ()
        assert state.selected_place is None
        assert state.verification is None
        assert state.robux == 500

    def test_new_identity_resets_place_and_verification(
        self, ready_state: Rbx5State, other_identity: UserIdentity
    ):
        """A different user invalidates the place and verification."""
        state = run(ready_state, LookupDispatched(7), LookupSucceeded(7, other_identity))
        assert state.user_identity == other_identity
        assert state.selected_place is None
        assert state.verification is None
        assert state.places == ()
        assert state.identity_version == ready_state.identity_version + 1


class TestPlacesEvents:
    """Tests for place loading and selection."""

    def test_loaded_for_current_user(self, identity: UserIdentity, place: Place):
        """Places for the current user are stored."""
        state = run(
            Rbx5State(user_identity=identity),
            PlacesRequested(identity.id),
            PlacesLoaded(identity.id, (place,)),
        )
        assert state.places == (place,)
        assert state.is_loading_places is False

    def test_loading_flag(self, identity: UserIdentity):
        """Requesting places sets the loading flag."""
        state = reduce(Rbx5State(user_identity=identity), PlacesRequested(identity.id))
        assert state.is_loading_places is True

    def test_ignored_for_other_user(self, identity: UserIdentity, place: Place):
        """Places for a user that is no longer current are dropped."""
        state = reduce(Rbx5State(user_identity=identity), PlacesLoaded(999, (place,)))
        assert state.places == ()

    def test_failure_empties_list(self, identity: UserIdentity, place: Place):
        """Failure clears the list and records the error."""
        state = run(
            Rbx5State(user_identity=identity, places=(place,)),
            PlacesFailed(identity.id, TransientNetworkError("user_places", "timeout")),
        )
        assert state.places == ()
        assert state.places_error == "user_places failed: timeout"

    def test_selecting_other_place_clears_verification(
        self, ready_state: Rbx5State, other_place: Place
    ):
        """A verification only holds for the universe it was made in."""
        state = reduce(ready_state, PlaceSelected(other_place))
        assert state.selected_place == other_place
        assert state.verification is None

    def test_reselecting_same_place_keeps_verification(self, ready_state: Rbx5State):
        """Selecting the already-selected place is a no-op."""
        assert reduce(ready_state, PlaceSelected(ready_state.selected_place)) is ready_state


class TestQuantityInvalidation:
    """Tests for the Robux quantity transition."""

    def test_change_invalidates_verification(self, ready_state: Rbx5State):
        """Changing the quantity forces re-verification and warns."""
        state = reduce(ready_state, RobuxChanged(600))

        assert state.robux == 600
        assert state.verification is not None
        assert state.verification.success is False
        assert state.verification.verified_for_quantity == 500
        assert state.verification.gamepass == ready_state.verification.gamepass
        assert not is_form_valid(state)

        assert len(state.notices) == 1
        assert state.notices[0].code == "StateInvalidatedError"
        assert state.notices[0].severity == "warning"
        assert "from 500 to 600" in state.notices[0].message

    def test_same_quantity_keeps_verification(self, ready_state: Rbx5State):
        """Setting the verified quantity again changes nothing."""
        state = reduce(ready_state, RobuxChanged(500))
        assert state.verification == ready_state.verification
        assert state.notices == ()
        assert is_form_valid(state)

    def test_changing_back_does_not_revalidate(self, ready_state: Rbx5State):
        """Returning to the verified quantity still needs a new check."""
        state = run(ready_state, RobuxChanged(600), RobuxChanged(500))
        assert state.verification.success is False
        assert not is_form_valid(state)
        assert len(state.notices) == 1

    def test_clearing_quantity_invalidates(self, ready_state: Rbx5State):
        """Emptying the quantity also invalidates."""
        state = reduce(ready_state, RobuxChanged(0))
        assert state.verification.success is False

    def test_negative_quantity_rejected(self):
        """Quantities are non-negative."""
        with pytest.raises(ValueError, match="cannot be negative"):
            reduce(Rbx5State(), RobuxChanged(-1))

    def test_package_selection_invalidates(self, ready_state: Rbx5State):
        """Picking a package changes the quantity like typing does."""
        state = reduce(ready_state, PackageSelected(ready_state.packages[0]))
        assert state.robux == 100
        assert state.selected_package == ready_state.packages[0]
        assert state.verification.success is False


class TestPackages:
    """Tests for package loading and matching."""

    def test_loaded_packages_are_sorted(self, packages: tuple[RobuxPackage, ...]):
        """Packages are kept in ascending Robux order."""
        state = reduce(Rbx5State(), PackagesLoaded(packages))
        assert [p.robux_amount for p in state.packages] == [100, 500]

    def test_typed_quantity_matches_package(self, packages: tuple[RobuxPackage, ...]):
        """Typing a package's amount selects it."""
        state = run(Rbx5State(), PackagesLoaded(packages), RobuxChanged(500))
        assert state.selected_package is not None
        assert state.selected_package.id == "pkg-500"

    def test_custom_quantity_clears_package(self, packages: tuple[RobuxPackage, ...]):
        """An amount with no package deselects."""
        state = run(Rbx5State(), PackagesLoaded(packages), RobuxChanged(500), RobuxChanged(350))
        assert state.selected_package is None

    def test_packages_loaded_after_quantity(self, packages: tuple[RobuxPackage, ...]):
        """A quantity set before the catalog arrived is matched on load."""
        state = run(Rbx5State(), RobuxChanged(100), PackagesLoaded(packages))
        assert state.selected_package.id == "pkg-100"


class TestVerificationEvents:
    """Tests for verification outcomes."""

    def test_started_sets_flag(self, ready_state: Rbx5State):
        """Starting a check marks it in progress."""
        state = reduce(ready_state, VerificationStarted(ready_state.selected_place.place_id, 715))
        assert state.is_checking_gamepass is True

    def test_success_records_quantity(
        self, ready_state: Rbx5State, found_check: GamepassCheck
    ):
        """Success records the quantity and queues a success notice."""
        state = replace(ready_state, verification=None)
        place_id = state.selected_place.place_id
        state = run(state, VerificationStarted(place_id, 715), VerificationSucceeded(place_id, 500, found_check))

        assert state.verification == GamepassVerificationResult(500, found_check.gamepass, True)
        assert state.is_checking_gamepass is False
        assert state.notices[-1].severity == "success"
        assert "Support 500" in state.notices[-1].message
        assert is_form_valid(state)

    def test_success_for_outdated_quantity(
        self, ready_state: Rbx5State, found_check: GamepassCheck
    ):
        """A result for a quantity that changed meanwhile is not a success."""
        state = replace(ready_state, verification=None, robux=600)
        place_id = state.selected_place.place_id
        state = reduce(state, VerificationSucceeded(place_id, 500, found_check))

        assert state.verification.success is False
        assert state.verification.verified_for_quantity == 500
        assert state.notices[-1].code == "StateInvalidatedError"
        assert not is_form_valid(state)

    def test_success_for_other_place_ignored(
        self, ready_state: Rbx5State, found_check: GamepassCheck
    ):
        """A result for a place that is no longer selected is dropped."""
        state = replace(ready_state, verification=None)
        state = reduce(state, VerificationSucceeded(99999, 500, found_check))
        assert state.verification is None
        assert state.is_checking_gamepass is False

    def test_rejection_keeps_prior_state(self, ready_state: Rbx5State):
        """A mismatch leaves the recorded verification untouched."""
        check = GamepassCheck(success=False, expected_amount=715)
        place_id = ready_state.selected_place.place_id
        state = reduce(ready_state, VerificationRejected(place_id, check, "No GamePass"))

        assert state.verification == ready_state.verification
        assert state.last_gamepass_check == check
        assert state.notices[-1] == Notice("error", "GamepassNotFound", "No GamePass")

    def test_network_failure_is_a_toast(self, ready_state: Rbx5State):
        """Transport failures queue an error notice and change nothing else."""
        error = TransientNetworkError("check_gamepass", "timeout")
        state = reduce(replace(ready_state, is_checking_gamepass=True), VerificationFailed(error))

        assert state.is_checking_gamepass is False
        assert state.verification == ready_state.verification
        assert state.notices[-1].code == "TransientNetworkError"


class TestPricingAndNotices:
    """Tests for pricing events and the notice queue."""

    def test_pricing_loaded(self, rate: PricingRate):
        """The rate is stored."""
        assert reduce(Rbx5State(), PricingLoaded(rate)).pricing_rate == rate

    def test_pricing_failed(self):
        """Failure records an error and queues a notice."""
        state = reduce(Rbx5State(), PricingFailed(TransientNetworkError("robux_pricing", "x")))
        assert state.pricing_error == "robux_pricing failed: x"
        assert len(state.notices) == 1

    def test_notice_raised_and_drained(self):
        """Raised notices queue up until drained."""
        state = run(
            Rbx5State(),
            NoticeRaised(Notice("error", "A", "a")),
            NoticeRaised(Notice("error", "B", "b")),
        )
        assert [n.code for n in state.notices] == ["A", "B"]
        assert reduce(state, NoticesDrained()).notices == ()


class TestValidity:
    """Tests for missing_requirements and is_form_valid."""

    def test_empty_state(self):
        """An empty form lists every requirement."""
        assert missing_requirements(Rbx5State()) == [
            "robux quantity",
            "roblox user",
            "place",
            "gamepass verification",
            "pricing rate",
        ]

    def test_ready_state(self, ready_state: Rbx5State):
        """A consistent form is valid."""
        assert missing_requirements(ready_state) == []
        assert is_form_valid(ready_state)

    def test_stale_success_flag(self, ready_state: Rbx5State, gamepass: Gamepass):
        """A success recorded for another quantity does not count."""
        state = replace(
            ready_state,
            verification=GamepassVerificationResult(600, gamepass, True),
        )
        assert missing_requirements(state) == ["gamepass verified for current quantity"]

    def test_no_rate(self, ready_state: Rbx5State):
        """Without a rate the form is invalid."""
        assert not is_form_valid(replace(ready_state, pricing_rate=None))

    def test_derived_amounts(self, ready_state: Rbx5State):
        """Gamepass amount and price follow the quantity."""
        assert required_gamepass_amount(ready_state) == 715
        assert current_price(ready_state) == 65000

    @given(quantities=st.lists(st.integers(min_value=0, max_value=5000), max_size=10))
    def test_valid_iff_back_at_verified_quantity_without_change(self, quantities: list[int]):
        """After quantity edits the form stays valid only if the quantity never moved."""
        state = Rbx5State(
            robux=500,
            user_identity=UserIdentity(1, "u", "U", None),
            selected_place=Place(place_id=1, universe_id=2, name="p"),
            pricing_rate=PricingRate(13000),
            verification=GamepassVerificationResult(500, Gamepass(1, "g", 715), True),
        )
        for quantity in quantities:
            state = reduce(state, RobuxChanged(quantity))

        assert is_form_valid(state) == all(q == 500 for q in quantities)


class TestBuildCheckoutItem:
    """Tests for build_checkout_item."""

    def test_package_payload(self, ready_state: Rbx5State):
        """The payload for a package order matches the checkout page's shape."""
        item = build_checkout_item(ready_state)
        wire = item.to_wire()

        assert wire == {
            "serviceType": "robux",
            "serviceId": "pkg-500",
            "serviceName": "500 Robux",
            "serviceImage": "",
            "quantity": 1,
            "unitPrice": 65000,
            "robloxUsername": "builderman",
            "serviceCategory": "robux_5_hari",
            "rbx5Details": {
                "robuxAmount": 500,
                "gamepassAmount": 715,
                "selectedPlace": {
                    "placeId": 1818,
                    "name": "Classic: Crossroads",
                    "universeId": 13058,
                },
                "gamepass": {"id": 777, "name": "Support 500", "price": 715},
            },
        }

    def test_custom_quantity_payload(self, ready_state: Rbx5State, gamepass: Gamepass):
        """Without a package the id and name are derived from the quantity."""
        state = replace(
            ready_state,
            robux=350,
            selected_package=None,
            verification=GamepassVerificationResult(350, gamepass, True),
        )
        item = build_checkout_item(state)

        assert item.service_id == "custom_350"
        assert item.service_name == "350 Robux (5 Hari)"
        assert item.unit_price == 45500
        assert item.rbx5_details.gamepass_amount == 501

    def test_not_ready(self, ready_state: Rbx5State):
        """An invalid form cannot be checked out."""
        with pytest.raises(CheckoutNotReadyError) as exc_info:
            build_checkout_item(reduce(ready_state, RobuxChanged(600)))
        assert exc_info.value.missing == ["gamepass verification"]
