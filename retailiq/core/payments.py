"""
Stripe payments client.

Customers, checkout sessions and subscriptions go through the Stripe SDK
with per-request credentials; webhook deliveries are verified with
stripe.Webhook.

Usage:
    from retailiq.core.payments import StripeClient

    payments = StripeClient()
    customer = payments.create_customer(email="a@b.c", metadata={"user_id": "..."})
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import stripe

from retailiq.config import StripeConfig, settings
from retailiq.errors import UpstreamError
from retailiq.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


class SignatureVerificationError(ValueError):
    """Webhook payload does not match its signature header."""


def construct_event(
    payload: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
) -> Dict[str, Any]:
    """
    Verify a webhook delivery and return the decoded event as plain JSON.

    Raises:
        SignatureVerificationError: On a missing, stale or mismatched signature
    """
    if not signature_header:
        raise SignatureVerificationError("No signature")
    try:
        stripe.Webhook.construct_event(payload, signature_header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as exc:
        raise SignatureVerificationError(exc.user_message or str(exc)) from exc
    return json.loads(payload.decode("utf-8"))


class StripeClient:
    """Stripe API client for customers, checkout and subscriptions."""

    def __init__(self, secret_key: Optional[str] = None, api_version: Optional[str] = None) -> None:
        self.config = StripeConfig(
            secret_key=secret_key or settings.stripe.secret_key,
            api_version=api_version or settings.stripe.api_version,
        )

    def _call(self, operation, *args: Any, **params: Any) -> Any:
        self.config.validate()
        try:
            return operation(
                *args,
                api_key=self.config.secret_key,
                stripe_version=self.config.api_version,
                **params,
            )
        except stripe.StripeError as exc:
            message = exc.user_message or str(exc)
            raise UpstreamError(message, detail=message, upstream_status=exc.http_status) from exc

    def create_customer(self, email: Optional[str], metadata: Optional[Dict[str, str]] = None) -> Any:
        customer = self._call(stripe.Customer.create, email=email, metadata=metadata or {})
        logger.info("Created Stripe customer %s", customer.get("id"))
        return customer

    def create_checkout_session(
        self,
        customer: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
    ) -> Any:
        return self._call(
            stripe.checkout.Session.create,
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            customer=customer,
        )

    def retrieve_subscription(self, subscription_id: str) -> Any:
        return self._call(stripe.Subscription.retrieve, subscription_id)

    def cancel_subscription(self, subscription_id: str) -> Any:
        return self._call(stripe.Subscription.cancel, subscription_id)

    def resume_subscription(self, subscription_id: str, billing_cycle_anchor: str = "now") -> Any:
        return self._call(stripe.Subscription.resume, subscription_id, billing_cycle_anchor=billing_cycle_anchor)
