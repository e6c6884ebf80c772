"""couponpilot exception hierarchy."""

from __future__ import annotations


class CouponPilotError(Exception):
    """Base exception for all couponpilot errors."""


class InvalidTransitionError(CouponPilotError):
    """Raised when a run or trial state change violates the state machine.

    Attributes:
        current: The state being left.
        target: The state that was requested.
    """

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal transition {current} -> {target}")


class FieldNotFoundError(CouponPilotError):
    """Raised when the discount-code field cannot be resolved on the page."""

    def __init__(self, selector: str, attempts: int = 0) -> None:
        self.selector = selector
        self.attempts = attempts
        detail = f" after {attempts} attempts" if attempts else ""
        super().__init__(f"Field not found: {selector}{detail}")


class ServiceError(CouponPilotError):
    """Raised when an external service call fails or returns an unusable body.

    Attributes:
        service: Short service name (``locator``, ``classifier``, ``corpus``).
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")
