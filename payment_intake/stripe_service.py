import logging
from collections.abc import Mapping
from typing import Any, Optional

import stripe

from payment_intake.config import PriceItem, Settings
from payment_intake.errors import ProviderError, SignatureInvalid
from payment_intake.events import USER_ID_METADATA_KEY

logger = logging.getLogger(__name__)


def open_checkout_session(
    settings: Settings,
    price_id: str,
    item: PriceItem,
    client_reference_id: str,
    user_id: Optional[str],
):
    # Amount and currency come from the trusted catalog only.
    try:
        return stripe.checkout.Session.create(
            api_key=settings.stripe_secret_key,
            mode="payment",
            client_reference_id=client_reference_id,
            metadata={
                USER_ID_METADATA_KEY: user_id or "",
                "app": settings.app_tag,
            },
            line_items=[
                {
                    "price_data": {
                        "currency": item.currency,
                        "product_data": {"name": item.name or price_id},
                        "unit_amount": item.amount,
                    },
                    "quantity": 1,
                }
            ],
            success_url=settings.success_url,
            cancel_url=settings.cancel_url,
        )
    except stripe.StripeError as exc:
        logger.warning("stripe rejected checkout session for %s: %s", price_id, exc)
        raise ProviderError(exc.user_message or str(exc)) from exc


def verify_event(payload: bytes, signature: str, secret: str) -> dict:
    """Authenticate a webhook delivery against the exact bytes received."""
    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError as exc:
        raise SignatureInvalid(str(exc)) from exc
    except ValueError as exc:
        raise SignatureInvalid(f"Invalid payload: {exc}") from exc

    return _plain(event)


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, stripe.StripeObject):
        return _plain(value.to_dict())
    return value
