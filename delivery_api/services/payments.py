"""
Thin wrapper over the Stripe SDK.

The SDK is synchronous, so calls run in a worker thread. Stripe failures are
translated to PaymentProviderError with an HTTP status matching the failure.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import stripe

from delivery_api.core.errors import DomainError, PaymentProviderError
from delivery_api.core.settings import AppSettings, get_app_settings

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    session_id: str
    checkout_url: Optional[str]


# PUBLIC_INTERFACE
def handle_stripe_error(error: stripe.StripeError, context: str) -> PaymentProviderError:
    """
    Convert a Stripe error to a PaymentProviderError.

    Maps Stripe error types to HTTP status codes:
    - CardError: 402, the card was declined
    - RateLimitError: 429
    - InvalidRequestError: 400
    - AuthenticationError: 500, API key problem on our side
    - APIConnectionError: 503
    - anything else: 500
    """
    logger.error("Stripe error in %s: %s: %s", context, type(error).__name__, error)

    if isinstance(error, stripe.CardError):
        return PaymentProviderError(
            error.user_message or "Your card was declined. Please try a different payment method.",
            status_code=402,
        )
    if isinstance(error, stripe.RateLimitError):
        return PaymentProviderError(
            "Too many payment requests. Please wait a moment and try again.", status_code=429
        )
    if isinstance(error, stripe.InvalidRequestError):
        return PaymentProviderError(
            "Invalid payment request. Please check your details and try again.", status_code=400
        )
    if isinstance(error, stripe.AuthenticationError):
        logger.critical("Stripe authentication failed: %s", error)
        return PaymentProviderError(
            "Payment service configuration error. Please contact support.", status_code=500
        )
    if isinstance(error, stripe.APIConnectionError):
        return PaymentProviderError(
            "Payment service temporarily unavailable. Please try again.", status_code=503
        )
    return PaymentProviderError(
        "Payment processing failed. Please try again or contact support.", status_code=500
    )


class StripeGateway:
    """Creates Checkout sessions and verifies webhook payloads."""

    def __init__(self, settings: Optional[AppSettings] = None) -> None:
        self.settings = settings or get_app_settings()

    def _api_key(self) -> str:
        if not self.settings.STRIPE_SECRET_KEY:
            raise PaymentProviderError("Payments are not configured", status_code=503)
        return self.settings.STRIPE_SECRET_KEY

    # PUBLIC_INTERFACE
    async def create_checkout_session(
        self,
        *,
        mode: str,
        line_items: List[Dict[str, Any]],
        metadata: Dict[str, str],
        customer: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        """Create a hosted Checkout session in payment or subscription mode."""
        params: Dict[str, Any] = {
            "mode": mode,
            "line_items": line_items,
            "metadata": metadata,
            "success_url": self.settings.STRIPE_SUCCESS_URL,
            "cancel_url": self.settings.STRIPE_CANCEL_URL,
            "client_reference_id": metadata.get("tenant_id"),
        }
        if mode == "subscription":
            params["subscription_data"] = {"metadata": metadata}
        if customer:
            params["customer"] = customer
        elif customer_email:
            params["customer_email"] = customer_email

        api_key = self._api_key()
        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, api_key=api_key, **params)
        except stripe.StripeError as e:
            raise handle_stripe_error(e, f"checkout ({mode})") from e
        return CheckoutSession(session_id=session.id, checkout_url=session.url)

    # PUBLIC_INTERFACE
    def construct_webhook_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify and decode a webhook body.

        Without STRIPE_WEBHOOK_SECRET the body is parsed unverified and a warning
        is logged. Returns the event as plain dicts.
        """
        secret = self.settings.STRIPE_WEBHOOK_SECRET
        if secret:
            if not signature:
                raise DomainError("Missing Stripe-Signature header")
            try:
                stripe.Webhook.construct_event(payload, signature, secret)
            except stripe.SignatureVerificationError as e:
                raise DomainError("Invalid signature") from e
            except ValueError as e:
                raise DomainError("Invalid webhook payload") from e
        else:
            logger.warning("STRIPE_WEBHOOK_SECRET not set; accepting unverified webhook payload")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise DomainError("Invalid webhook payload") from e
        if not isinstance(event, dict) or "type" not in event:
            raise DomainError("Invalid webhook payload")
        return event

    # PUBLIC_INTERFACE
    async def retrieve_subscription_status(self, subscription_id: str) -> Optional[str]:
        """Current Stripe status of a subscription, or None when it cannot be fetched."""
        if not self.settings.STRIPE_SECRET_KEY:
            return None
        try:
            subscription = await asyncio.to_thread(
                stripe.Subscription.retrieve, subscription_id, api_key=self.settings.STRIPE_SECRET_KEY
            )
        except stripe.StripeError as e:
            logger.warning("Could not retrieve subscription %s: %s", subscription_id, e)
            return None
        return subscription.status
