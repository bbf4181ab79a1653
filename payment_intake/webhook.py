import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.orm import sessionmaker

from payment_intake.config import Settings
from payment_intake.cors import WEBHOOK_ALLOWED_HEADERS, cors_headers
from payment_intake.errors import SignatureInvalid
from payment_intake.events import parse_event
from payment_intake.orders import save_order
from payment_intake.routes import REJECTED_METHODS
from payment_intake.stripe_service import verify_event

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/stripe-webhook"


def create_webhook_router(settings: Settings, session_factory: Optional[sessionmaker]) -> APIRouter:
    router = APIRouter()

    def headers_for(request: Request):
        return cors_headers(request.headers.get("origin"), WEBHOOK_ALLOWED_HEADERS)

    @router.options(WEBHOOK_PATH)
    def webhook_preflight(request: Request):
        return PlainTextResponse("ok", headers=headers_for(request))

    @router.api_route(WEBHOOK_PATH, methods=REJECTED_METHODS)
    def webhook_method_not_allowed(request: Request):
        return PlainTextResponse("Method Not Allowed", status_code=405, headers=headers_for(request))

    @router.post(WEBHOOK_PATH)
    async def stripe_webhook(request: Request):
        headers = headers_for(request)

        signature = request.headers.get("stripe-signature")
        if not (signature and settings.stripe_webhook_secret and settings.stripe_secret_key):
            return PlainTextResponse("Missing Stripe config", status_code=500, headers=headers)

        # Raw bytes: any re-serialization breaks the signature.
        payload = await request.body()

        try:
            event = verify_event(payload, signature, settings.stripe_webhook_secret)
        except SignatureInvalid as exc:
            logger.warning("webhook signature verification failed: %s", exc)
            return PlainTextResponse(f"Webhook Error: {exc}", status_code=400, headers=headers)

        if session_factory is None:
            return PlainTextResponse("Missing storage config", status_code=500, headers=headers)

        try:
            parsed = parse_event(event)
            fields = parsed.order_fields(datetime.now(timezone.utc))
            if fields is None:
                logger.debug("ignoring %s event", parsed.type)
            elif not await run_in_threadpool(save_order, session_factory, fields):
                # Acknowledge anyway; a Stripe retry would not fix storage.
                logger.error("%s event %s was not persisted", parsed.type, event.get("id"))

            return JSONResponse({"received": True}, headers=headers)
        except Exception:
            logger.exception("webhook handler error")
            return PlainTextResponse("Server error", status_code=500, headers=headers)

    return router
