import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, field_validator

from payment_intake.config import PriceItem, Settings
from payment_intake.cors import cors_headers
from payment_intake.errors import ConfigurationError, InvalidSelector
from payment_intake.stripe_service import open_checkout_session
from payment_intake.user_link import unverified_user_id

logger = logging.getLogger(__name__)

CHECKOUT_PATH = "/create-checkout-session"
REJECTED_METHODS = ["GET", "PUT", "PATCH", "DELETE"]


class CheckoutRequest(BaseModel):
    price_id: Optional[str] = None
    client_reference_id: Optional[str] = None

    @field_validator("price_id", mode="before")
    @classmethod
    def non_string_selector(cls, value: Any):
        # Anything but a string can never name a catalog entry.
        return value if isinstance(value, str) else None


def lookup_price(settings: Settings, price_id: Optional[str]) -> PriceItem:
    item = settings.price_catalog.get(price_id) if price_id else None
    if item is None:
        raise InvalidSelector("Invalid price_id")
    return item


def create_checkout_router(settings: Settings) -> APIRouter:
    router = APIRouter()

    @router.options(CHECKOUT_PATH)
    def checkout_preflight(request: Request):
        return PlainTextResponse("ok", headers=cors_headers(request.headers.get("origin")))

    @router.api_route(CHECKOUT_PATH, methods=REJECTED_METHODS)
    def checkout_method_not_allowed(request: Request):
        return PlainTextResponse(
            "Method Not Allowed",
            status_code=405,
            headers=cors_headers(request.headers.get("origin")),
        )

    @router.post(CHECKOUT_PATH)
    async def create_checkout_session(request: Request):
        headers = cors_headers(request.headers.get("origin"))
        try:
            if not settings.stripe_secret_key:
                raise ConfigurationError("Missing STRIPE_SECRET_KEY")

            body = await request.json()

            try:
                if not isinstance(body, dict):
                    raise InvalidSelector("Invalid price_id")
                checkout = CheckoutRequest.model_validate(body)
                item = lookup_price(settings, checkout.price_id)
            except InvalidSelector as exc:
                return JSONResponse({"error": str(exc)}, status_code=400, headers=headers)

            client_reference_id = checkout.client_reference_id
            if client_reference_id is None:
                client_reference_id = str(uuid.uuid4())

            # Stripe calls block; keep them off the event loop.
            session = await run_in_threadpool(
                open_checkout_session,
                settings,
                checkout.price_id,
                item,
                client_reference_id,
                unverified_user_id(request.headers.get("authorization")),
            )
            return JSONResponse({"url": session.url}, headers=headers)
        except Exception as exc:
            logger.exception("create-checkout-session error")
            return JSONResponse(
                {"error": str(exc) or "Unknown error"}, status_code=500, headers=headers
            )

    return router
