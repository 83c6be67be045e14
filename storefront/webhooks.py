"""Paystack webhook ingestion.

Paystack signs each callback with ``x-paystack-signature``: the hex
HMAC-SHA512 of the raw request body keyed with the account's secret key.
The signature is checked against the bytes exactly as received; re-encoding
the parsed JSON would change key order or whitespace and break the match.
"""
import hashlib
import hmac
import json
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from . import crud, models
from .config import Settings
from .errors import ConfigurationError, MalformedRequestError, UnauthorizedError
from .paystack import from_minor_units
from .utils import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"
CHARGE_SUCCESS = "charge.success"


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(raw_body, secret), signature)


def authenticate_delivery(raw_body: bytes, signature: Optional[str], settings: Settings) -> None:
    """Reject a delivery before anything in it is trusted.

    Raises ConfigurationError (no shared secret), MalformedRequestError
    (empty body) or UnauthorizedError (signature mismatch).
    """
    if not settings.paystack_secret_key:
        logger.error("Webhook received but PAYSTACK_SECRET_KEY is not configured")
        raise ConfigurationError("Webhook secret is not configured")
    if not raw_body:
        logger.warning("Webhook received with an empty body")
        raise MalformedRequestError("Request body is required")
    if not verify_signature(raw_body, signature, settings.paystack_secret_key):
        logger.warning("Webhook signature mismatch")
        raise UnauthorizedError("Invalid signature")


def _optional_id(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def handle_event(db: Session, event: dict) -> Tuple[Optional[models.Order], bool]:
    """Apply a verified event to the order ledger.

    Returns ``(order, created)``; ``(None, False)`` for events that are
    acknowledged without touching the ledger.
    """
    event_type = event.get("event")
    if event_type != CHARGE_SUCCESS:
        logger.info("Ignoring webhook event %s", event_type)
        return None, False

    data = event.get("data") or {}
    reference = data.get("reference")
    amount = data.get("amount")
    email = (data.get("customer") or {}).get("email")
    if not reference or amount is None or not email:
        raise ValueError("charge.success event is missing reference, amount or customer email")

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        metadata = {}
    product_id = _optional_id(metadata.get("productId"))
    user_id = _optional_id(metadata.get("userId"))
    if user_id is not None and crud.get_user(db, user_id) is None:
        logger.warning("Webhook %s names unknown user %s; storing without user", reference, user_id)
        user_id = None

    order, created = crud.create_paid_order(
        db,
        reference=str(reference),
        amount=from_minor_units(amount),
        email=email,
        product_id=product_id,
        user_id=user_id,
    )
    if created:
        logger.info("Order %s recorded as paid (%s, %s)", order.reference, order.amount, order.email)
    else:
        logger.info("Order %s already recorded; skipping", order.reference)
    return order, created


def parse_event(raw_body: bytes) -> dict:
    event = json.loads(raw_body)
    if not isinstance(event, dict):
        raise ValueError("webhook payload must be a JSON object")
    return event
