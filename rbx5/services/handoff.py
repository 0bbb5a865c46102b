"""
Cross-page Handoff - Typed write-once / take-once outbox.

Pages hand data to each other through a session-scoped string store (the
browser's sessionStorage in the storefront). The Outbox wraps one key of that
store with a pydantic model so producers write typed payloads and consumers
read them exactly once.
"""

from typing import Generic, Protocol, TypeVar

from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from rbx5.models.api import WireModel

logger = get_logger(__name__)

PayloadT = TypeVar("PayloadT", bound=WireModel)


class SessionStore(Protocol):
    """String key/value store scoped to one user session."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemorySessionStore:
    """SessionStore backed by a dict. One instance per user session."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items


class Outbox(Generic[PayloadT]):
    """
    One handoff slot.

    Usage:
        outbox = Outbox(store, "checkoutData", CheckoutItemPayload)
        outbox.write(payload)          # producer page
        payload = outbox.take_once()   # consumer page; slot is now empty
    """

    def __init__(self, store: SessionStore, key: str, model: type[PayloadT]) -> None:
        self.store = store
        self.key = key
        self.model = model

    def write(self, payload: PayloadT) -> None:
        """Write the payload, replacing anything already in the slot."""
        self.store.set(self.key, payload.model_dump_json(by_alias=True, exclude_none=True))
        logger.info("handoff_written", key=self.key, model=self.model.__name__)

    def peek(self) -> PayloadT | None:
        """Read without consuming. Unparseable content reads as empty."""
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            return self.model.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning("handoff_payload_invalid", key=self.key, error=str(e))
            return None

    def take_once(self) -> PayloadT | None:
        """Read and delete. A second call returns None."""
        payload = self.peek()
        self.store.delete(self.key)
        if payload is not None:
            logger.info("handoff_taken", key=self.key, model=self.model.__name__)
        return payload
