from sqlalchemy import JSON, Column, DateTime, Integer, String

from payment_intake.database import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_checkout_session_id = Column(String, unique=True, index=True, nullable=True)
    stripe_payment_intent_id = Column(String, unique=True, index=True, nullable=True)
    user_id = Column(String, nullable=True)              # best-effort, never an auth boundary
    client_reference_id = Column(String, nullable=True)
    amount = Column(Integer)                             # minor currency units
    currency = Column(String)
    status = Column(String)                              # Stripe payment status
    raw = Column(JSON)                                   # last event object, verbatim
    stripe_event_created = Column(Integer)               # unix time of the event that set the state
    updated_at = Column(DateTime(timezone=True))


IDENTITY_COLUMNS = (
    "stripe_checkout_session_id",
    "stripe_payment_intent_id",
    "user_id",
    "client_reference_id",
)
STATE_COLUMNS = ("amount", "currency", "status", "raw", "stripe_event_created", "updated_at")
KEY_COLUMNS = ("stripe_checkout_session_id", "stripe_payment_intent_id")
