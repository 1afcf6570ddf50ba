"""
Billing services: checkout sessions, admin subscription changes and the
Stripe webhook event handlers.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from retailiq.config import settings
from retailiq.core.payments import StripeClient, construct_event
from retailiq.db import Database, utcnow_iso
from retailiq.errors import UpstreamError
from retailiq.logger import get_logger
from retailiq.messages import msg
from retailiq.services.guard import AuthorizedUser

logger = get_logger(__name__)


def iso_from_unix(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


def _first_item(subscription: dict) -> dict:
    items = (subscription.get("items") or {}).get("data") or [{}]
    return items[0]


def _plan_of(item: dict) -> Optional[str]:
    price = item.get("price") or {}
    return price.get("lookup_key") or price.get("id")


def _invoice_subscription_id(invoice: dict) -> Optional[str]:
    """Subscription an invoice belongs to, read from its first line."""
    lines = (invoice.get("lines") or {}).get("data") or [{}]
    parent = lines[0].get("parent") or {}
    details = parent.get("subscription_item_details") or {}
    return details.get("subscription") or invoice.get("subscription")


class BillingService:
    """Checkout and subscription operations plus webhook bookkeeping."""

    def __init__(self, database: Database, payments: StripeClient) -> None:
        self.db = database
        self.payments = payments
        self._event_handlers: Dict[str, Callable[[dict], None]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.created": self._on_subscription_created,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "invoice.payment_succeeded": self._on_payment_succeeded,
            "invoice.payment_failed": self._on_payment_failed,
            "invoice.payment_action_required": self._on_payment_action_required,
            "customer.subscription.trial_will_end": self._on_trial_will_end,
        }

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def create_checkout_session(self, admin: AuthorizedUser, *, price_id: Optional[str], origin: str = "") -> dict:
        """Create a subscription checkout session, creating the Stripe customer on first use."""
        if not price_id:
            raise ValueError("Price ID is required")

        customer_id = admin.profile.get("stripe_customer_id")
        if not customer_id:
            customer = self.payments.create_customer(email=admin.email, metadata={"user_id": admin.id})
            customer_id = customer["id"]
            self.db.execute(
                "UPDATE profiles SET stripe_customer_id = :customer_id WHERE id = :id",
                {"customer_id": customer_id, "id": admin.id},
            )

        session = self.payments.create_checkout_session(
            customer=customer_id,
            price_id=price_id,
            success_url=f"{origin}/dashboard?success=true",
            cancel_url=f"{origin}/dashboard?canceled=true",
        )
        return {"url": session.get("url")}

    def update_subscription(self, *, subscription_id: Optional[str], tier: Optional[str], status: Optional[str]) -> dict:
        """Cancel or resume a subscription in Stripe according to the requested status.

        Stripe failures are logged and the request still reports success.
        """
        if not subscription_id:
            raise ValueError("Subscription ID is required")

        subscription = self.db.fetch_one(
            "SELECT * FROM user_subscriptions WHERE stripe_subscription_id = :id",
            {"id": subscription_id},
        )
        if not subscription:
            raise ValueError("Subscription not found")

        result: Dict[str, Any] = {"id": subscription_id, "status": status}
        try:
            if status == "canceled" and subscription.get("status") != "canceled":
                result = self.payments.cancel_subscription(subscription_id)
            elif status == "active" and subscription.get("status") == "canceled":
                result = self.payments.resume_subscription(subscription_id, billing_cycle_anchor="now")
        except (UpstreamError, ValueError) as exc:
            logger.error("Stripe API error: %s", exc)

        return {
            "success": True,
            "message": msg("subscription.updated"),
            "subscription_id": subscription_id,
            "tier": tier,
            "status": status,
            "stripeResult": result,
        }

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> str:
        """Verify and dispatch one webhook delivery.

        Raises:
            ValueError: Missing configuration or invalid signature
        """
        secret = settings.stripe.webhook_secret
        if not secret:
            raise ValueError("Missing Stripe configuration")
        event = construct_event(payload, signature, secret)
        self.process_event(event)
        return "ok"

    def process_event(self, event: dict) -> None:
        event_type = event.get("type")
        handler = self._event_handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled event type: %s", event_type)
            return
        obj = (event.get("data") or {}).get("object") or {}
        try:
            handler(obj)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Error handling %s: %s", event_type, exc)

    def _profile_by_customer(self, customer_id: Optional[str]) -> Optional[dict]:
        profile = self.db.fetch_one(
            "SELECT * FROM profiles WHERE stripe_customer_id = :customer_id",
            {"customer_id": customer_id},
        )
        if not profile:
            logger.error("No user found for customer: %s", customer_id)
        return profile

    def _subscription_by_stripe_id(self, stripe_subscription_id: Optional[str]) -> Optional[dict]:
        return self.db.fetch_one(
            "SELECT * FROM user_subscriptions WHERE stripe_subscription_id = :id",
            {"id": stripe_subscription_id},
        )

    def _insert_subscription(self, user_id: str, customer_id: str, subscription: dict) -> None:
        item = _first_item(subscription)
        now = utcnow_iso()
        self.db.execute(
            """
            INSERT INTO user_subscriptions (id, user_id, stripe_subscription_id, stripe_customer_id, status,
                                            current_period_start, current_period_end, subscription_tier,
                                            price_id, created_at, updated_at)
            VALUES (:id, :user_id, :sub_id, :customer_id, :status, :start, :end, :tier, :price_id, :now, :now)
            """,
            {
                "id": str(uuid.uuid4()),
                "user_id": user_id,
                "sub_id": subscription.get("id"),
                "customer_id": customer_id,
                "status": subscription.get("status"),
                "start": iso_from_unix(item.get("current_period_start")),
                "end": iso_from_unix(item.get("current_period_end")),
                "tier": _plan_of(item),
                "price_id": (item.get("price") or {}).get("id"),
                "now": now,
            },
        )

    def _on_checkout_completed(self, session: dict) -> None:
        profile = self._profile_by_customer(session.get("customer"))
        if not profile:
            return
        if session.get("mode") != "subscription" or not session.get("subscription"):
            return

        subscription = self.payments.retrieve_subscription(session["subscription"])
        if self._subscription_by_stripe_id(subscription.get("id")):
            return
        self._insert_subscription(profile["id"], session["customer"], subscription)
        self.db.execute(
            """
            UPDATE profiles
            SET stripe_subscription_id = :sub_id, subscription_status = :status, plan_id = :plan, updated_at = :now
            WHERE id = :id
            """,
            {
                "sub_id": subscription.get("id"),
                "status": subscription.get("status"),
                "plan": _plan_of(_first_item(subscription)),
                "now": utcnow_iso(),
                "id": profile["id"],
            },
        )
        logger.info("Checkout completion processed for %s", profile["id"])

    def _on_subscription_created(self, subscription: dict) -> None:
        profile = self._profile_by_customer(subscription.get("customer"))
        if not profile or self._subscription_by_stripe_id(subscription.get("id")):
            return
        self._insert_subscription(profile["id"], subscription.get("customer"), subscription)

    def _on_subscription_updated(self, subscription: dict) -> None:
        item = _first_item(subscription)
        now = utcnow_iso()
        self.db.execute(
            """
            UPDATE user_subscriptions
            SET status = :status, current_period_start = :start, current_period_end = :end,
                subscription_tier = :tier, price_id = :price_id, canceled_at = :canceled_at, updated_at = :now
            WHERE stripe_subscription_id = :sub_id
            """,
            {
                "status": subscription.get("status"),
                "start": iso_from_unix(item.get("current_period_start")),
                "end": iso_from_unix(item.get("current_period_end")),
                "tier": _plan_of(item),
                "price_id": (item.get("price") or {}).get("id"),
                "canceled_at": iso_from_unix(subscription.get("canceled_at")),
                "now": now,
                "sub_id": subscription.get("id"),
            },
        )
        profile = self._profile_by_customer(subscription.get("customer"))
        if profile:
            self.db.execute(
                "UPDATE profiles SET subscription_status = :status, plan_id = :plan, updated_at = :now WHERE id = :id",
                {"status": subscription.get("status"), "plan": _plan_of(item), "now": now, "id": profile["id"]},
            )

    def _on_subscription_deleted(self, subscription: dict) -> None:
        now = utcnow_iso()
        self.db.execute(
            """
            UPDATE user_subscriptions SET status = 'canceled', canceled_at = :canceled_at, updated_at = :now
            WHERE stripe_subscription_id = :sub_id
            """,
            {"canceled_at": iso_from_unix(subscription.get("canceled_at")), "now": now, "sub_id": subscription.get("id")},
        )
        profile = self._profile_by_customer(subscription.get("customer"))
        if profile:
            self.db.execute(
                "UPDATE profiles SET subscription_status = 'canceled', updated_at = :now WHERE id = :id",
                {"now": now, "id": profile["id"]},
            )

    def _record_payment(self, invoice: dict, status: str, amount_field: str, failure_reason: Optional[str] = None) -> None:
        """Insert a payment row for an invoice, or update the status of an existing one."""
        subscription = self._subscription_by_stripe_id(_invoice_subscription_id(invoice))
        if not subscription:
            logger.info("No subscription found for invoice %s, skipping", invoice.get("id"))
            return

        existing = self.db.fetch_one("SELECT id FROM payments WHERE stripe_invoice_id = :id", {"id": invoice.get("id")})
        if existing:
            if status == "succeeded":
                logger.info("Payment record already exists, skipping")
                return
            self.db.execute(
                """
                UPDATE payments SET status = :status, failure_reason = COALESCE(:reason, failure_reason), updated_at = :now
                WHERE stripe_invoice_id = :invoice_id
                """,
                {"status": status, "reason": failure_reason, "now": utcnow_iso(), "invoice_id": invoice.get("id")},
            )
            return

        self.db.execute(
            """
            INSERT INTO payments (id, user_id, subscription_id, stripe_invoice_id, amount, currency, status,
                                  failure_reason, billing_period_start, billing_period_end, created_at)
            VALUES (:id, :user_id, :subscription_id, :invoice_id, :amount, :currency, :status,
                    :reason, :start, :end, :now)
            """,
            {
                "id": str(uuid.uuid4()),
                "user_id": subscription["user_id"],
                "subscription_id": subscription["id"],
                "invoice_id": invoice.get("id"),
                "amount": invoice.get(amount_field),
                "currency": (invoice.get("currency") or "").upper(),
                "status": status,
                "reason": failure_reason,
                "start": iso_from_unix(invoice.get("period_start")),
                "end": iso_from_unix(invoice.get("period_end")),
                "now": utcnow_iso(),
            },
        )

    def _on_payment_succeeded(self, invoice: dict) -> None:
        self._record_payment(invoice, "succeeded", "amount_paid")

    def _on_payment_failed(self, invoice: dict) -> None:
        reason = (invoice.get("last_finalization_error") or {}).get("message") or "Payment failed"
        self._record_payment(invoice, "failed", "amount_due", failure_reason=reason)

    def _on_payment_action_required(self, invoice: dict) -> None:
        self._record_payment(invoice, "requires_action", "amount_due")

    def _on_trial_will_end(self, subscription: dict) -> None:
        profile = self._profile_by_customer(subscription.get("customer"))
        if not profile:
            return
        logger.info("Trial ending soon for user %s", profile["id"])
        self.db.execute(
            "UPDATE profiles SET trial_ending_notification_sent = :sent, updated_at = :now WHERE id = :id",
            {"sent": True, "now": utcnow_iso(), "id": profile["id"]},
        )
