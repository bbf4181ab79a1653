"""Verified Stripe events as a closed set of variants.

Only the event types below touch storage. Everything else parses to
``IgnoredEvent`` and is acknowledged without side effects.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

USER_ID_METADATA_KEY = "user_id"
# Written by checkout sessions created before the key was renamed.
LEGACY_USER_ID_METADATA_KEY = "supabase_user_id"

PAYMENT_INTENT_EVENT_TYPES = (
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "payment_intent.processing",
    "payment_intent.canceled",
)


class CheckoutSessionObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    client_reference_id: Optional[str] = None
    payment_intent: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_status: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("payment_intent", mode="before")
    @classmethod
    def expanded_intent_id(cls, value):
        if isinstance(value, dict):
            return value.get("id")
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def null_metadata(cls, value):
        return value or {}


class PaymentIntentObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    status: Optional[str] = None


class CheckoutSessionData(BaseModel):
    object: CheckoutSessionObject


class PaymentIntentData(BaseModel):
    object: PaymentIntentObject


class CheckoutSessionCompleted(BaseModel):
    type: Literal["checkout.session.completed"]
    data: CheckoutSessionData
    raw: Dict[str, Any]
    created: Optional[int] = None

    def order_fields(self, now: datetime) -> Dict[str, Any]:
        session = self.data.object
        return {
            "user_id": (
                session.metadata.get(USER_ID_METADATA_KEY)
                or session.metadata.get(LEGACY_USER_ID_METADATA_KEY)
                or None
            ),
            "client_reference_id": session.client_reference_id,
            "stripe_checkout_session_id": session.id,
            "stripe_payment_intent_id": session.payment_intent,
            "amount": session.amount_total,
            "currency": session.currency,
            "status": session.payment_status,   # paid | unpaid | no_payment_required
            "raw": self.raw,
            "stripe_event_created": self.created,
            "updated_at": now,
        }


class PaymentIntentUpdated(BaseModel):
    type: Literal[
        "payment_intent.succeeded",
        "payment_intent.payment_failed",
        "payment_intent.processing",
        "payment_intent.canceled",
    ]
    data: PaymentIntentData
    raw: Dict[str, Any]
    created: Optional[int] = None

    def order_fields(self, now: datetime) -> Dict[str, Any]:
        intent = self.data.object
        return {
            "stripe_payment_intent_id": intent.id,
            "amount": intent.amount,
            "currency": intent.currency,
            "status": intent.status,
            "raw": self.raw,
            "stripe_event_created": self.created,
            "updated_at": now,
        }


class IgnoredEvent(BaseModel):
    type: str

    def order_fields(self, now: datetime) -> None:
        return None


HandledEvent = Annotated[
    Union[CheckoutSessionCompleted, PaymentIntentUpdated],
    Field(discriminator="type"),
]
_handled_adapter = TypeAdapter(HandledEvent)

StripeEvent = Union[CheckoutSessionCompleted, PaymentIntentUpdated, IgnoredEvent]


def parse_event(event: Dict[str, Any]) -> StripeEvent:
    """Classify a verified event.

    Raises ``pydantic.ValidationError`` when a handled event type carries a
    malformed object.
    """
    event_type = event.get("type")
    if event_type != "checkout.session.completed" and event_type not in PAYMENT_INTENT_EVENT_TYPES:
        return IgnoredEvent(type=str(event_type))

    data = event.get("data") or {}
    return _handled_adapter.validate_python(
        {
            "type": event_type,
            "data": data,
            "raw": data.get("object"),
            "created": event.get("created"),
        }
    )
