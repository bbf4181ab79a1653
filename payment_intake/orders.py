"""Idempotent order upserts.

Stripe delivers ``checkout.session.completed`` and ``payment_intent.*`` events
independently and in no particular order. The session event knows both the
session id and the payment intent id, the intent events only know their own
id. Rows are therefore matched on whichever external id a fragment carries so
both arrival orders converge on a single order. State columns only move
forward: a fragment from an event created before the one already applied
still fills missing ids but leaves status and amounts alone.
"""
import logging
from typing import Any, Dict

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payment_intake.models import IDENTITY_COLUMNS, KEY_COLUMNS, STATE_COLUMNS, Order

logger = logging.getLogger(__name__)


def upsert_order(db: Session, fields: Dict[str, Any]) -> Order:
    keys = {name: fields[name] for name in KEY_COLUMNS if fields.get(name)}
    if not keys:
        raise ValueError("order fragment carries neither a session nor a payment intent id")

    matches = db.scalars(
        select(Order)
        .where(or_(*(getattr(Order, name) == value for name, value in keys.items())))
        .order_by(Order.id)
    ).all()

    if not matches:
        order = Order()
        db.add(order)
    else:
        order = matches[0]
        # The fragment links rows that were written separately; fold them in.
        inherited = {}
        for duplicate in matches[1:]:
            logger.info("merging order %s into order %s", duplicate.id, order.id)
            for name in IDENTITY_COLUMNS:
                if inherited.get(name) is None:
                    inherited[name] = getattr(duplicate, name)
            db.delete(duplicate)
        # Unique keys must be released before they move to the kept row.
        db.flush()
        for name, value in inherited.items():
            if value is not None and getattr(order, name) is None:
                setattr(order, name, value)

    for name in IDENTITY_COLUMNS:
        value = fields.get(name)
        if value is not None and getattr(order, name) is None:
            setattr(order, name, value)

    if _is_stale(order, fields):
        logger.info(
            "skipping state from event created at %s, order %s already reflects %s",
            fields["stripe_event_created"], order.id, order.stripe_event_created,
        )
    else:
        for name in STATE_COLUMNS:
            if fields.get(name) is not None:
                setattr(order, name, fields[name])

    db.flush()
    return order


def _is_stale(order: Order, fields: Dict[str, Any]) -> bool:
    # Redeliveries of older events must not roll a settled status back.
    incoming = fields.get("stripe_event_created")
    current = order.stripe_event_created
    return incoming is not None and current is not None and incoming < current


def save_order(session_factory: sessionmaker, fields: Dict[str, Any]) -> bool:
    """Persist one fragment in its own transaction.

    Storage failures are logged and reported as ``False`` rather than raised:
    the webhook must still acknowledge the event.
    """
    try:
        with session_factory() as db:
            try:
                upsert_order(db, fields)
                db.commit()
            except IntegrityError:
                # A concurrent delivery inserted the same key first.
                db.rollback()
                upsert_order(db, fields)
                db.commit()
    except SQLAlchemyError:
        logger.exception(
            "order upsert failed (session=%s, payment_intent=%s)",
            fields.get("stripe_checkout_session_id"),
            fields.get("stripe_payment_intent_id"),
        )
        return False
    return True
