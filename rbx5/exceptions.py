"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.

Each class declares where the storefront surfaces it: "inline" next to the
input that caused it, or "toast" as a transient notification.
"""

from typing import ClassVar


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    surface: ClassVar[str] = "toast"
    severity: ClassVar[str] = "error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(StorefrontError):
    """Raised when local input is missing or invalid."""

    surface = "inline"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class CheckoutNotReadyError(ValidationError):
    """Raised when the checkout payload is requested while the form is invalid."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__("checkout", f"Checkout not ready: {', '.join(missing)}")


class NotFoundError(StorefrontError):
    """Raised when a remote lookup found nothing."""

    surface = "inline"

    def __init__(self, resource: str, query: str, message: str | None = None) -> None:
        self.resource = resource
        self.query = query
        super().__init__(message or f"{resource} not found: {query}")


class TransientNetworkError(StorefrontError):
    """Raised when a request fails in transport or its body cannot be parsed."""

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")


class RemoteServiceError(StorefrontError):
    """Raised when a storefront endpoint answers with success=false."""

    def __init__(self, operation: str, message: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(message)


class StateInvalidatedError(StorefrontError):
    """Raised when the Robux quantity changed after a successful gamepass check."""

    severity = "warning"

    def __init__(self, verified_for: int, current: int) -> None:
        self.verified_for = verified_for
        self.current = current
        super().__init__(
            f"Robux quantity changed from {verified_for} to {current}. "
            "Please verify the GamePass again to continue."
        )


class RobloxAPIError(StorefrontError):
    """Raised when a Roblox public API call fails (server side)."""

    def __init__(self, endpoint: str, message: str, status_code: int | None = None) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(f"Roblox API error ({endpoint}): {message}")
