import logging
from typing import Optional

from fastapi import FastAPI

import payment_intake.models  # noqa: F401  registers the orders table
from payment_intake.config import Settings, configure_logging, load_settings
from payment_intake.database import Base, create_session_factory, create_storage_engine
from payment_intake.routes import create_checkout_router
from payment_intake.webhook import create_webhook_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = load_settings()

    configure_logging(settings.log_level)

    missing = settings.missing()
    if missing:
        logger.warning("missing configuration: %s", ", ".join(missing))

    session_factory = None
    if settings.database_url:
        engine = create_storage_engine(settings.database_url, settings.database_password)
        Base.metadata.create_all(bind=engine)
        session_factory = create_session_factory(engine)

    app = FastAPI(title="Checkout Payment Intake")
    app.state.settings = settings
    app.state.session_factory = session_factory

    app.include_router(create_checkout_router(settings))
    app.include_router(create_webhook_router(settings, session_factory))
    return app


app = create_app()
