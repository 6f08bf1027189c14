"""
Domain exceptions raised by services and mapped to the standard error envelope
by the exception handler registered in delivery_api.api.main.
"""
from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base class for business-rule violations."""

    status_code: int = 400
    code: str = "domain_error"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class ConflictError(DomainError):
    status_code = 409
    code = "conflict"


class InsufficientCreditsError(DomainError):
    """Raised when a tenant's balance cannot cover an action."""

    status_code = 402
    code = "insufficient_credits"

    def __init__(self, balance: int, cost: int, action_key: str) -> None:
        super().__init__(
            f"Insufficient credits. Need {cost}, have {balance}",
            details={"balance": balance, "cost": cost, "action_key": action_key},
        )
        self.balance = balance
        self.cost = cost
        self.action_key = action_key


class ExternalServiceError(DomainError):
    """A third-party API (Twilio, Stripe) rejected or failed a call."""

    status_code = 502
    code = "external_service_error"


class PaymentProviderError(DomainError):
    """Stripe failure translated to an HTTP status (402, 429, 400, 500 or 503)."""

    code = "payment_error"

    def __init__(self, message: str, status_code: int = 500, details: Optional[Any] = None) -> None:
        super().__init__(message, details)
        self.status_code = status_code
