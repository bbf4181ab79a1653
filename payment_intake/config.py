import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from payment_intake.errors import ConfigurationError

BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_SUCCESS_URL = "https://example.com/success"
DEFAULT_CANCEL_URL = "https://example.com/cancel"
APP_TAG = "stripe_checkout_starter"


class PriceItem(BaseModel):
    model_config = {"frozen": True}

    amount: int = Field(ge=0)          # minor currency units
    currency: str = Field(min_length=3, max_length=3)
    name: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def lower_currency(cls, value: str) -> str:
        return value.lower()


# Example tiers, amounts in cents.
DEFAULT_PRICE_CATALOG: Dict[str, PriceItem] = {
    "price_basic": PriceItem(amount=500, currency="usd", name="Basic"),
    "price_pro": PriceItem(amount=1500, currency="usd", name="Pro"),
}

_catalog_adapter = TypeAdapter(Dict[str, PriceItem])


@dataclass(frozen=True)
class Settings:
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    price_catalog: Mapping[str, PriceItem] = field(
        default_factory=lambda: dict(DEFAULT_PRICE_CATALOG)
    )
    success_url: str = DEFAULT_SUCCESS_URL
    cancel_url: str = DEFAULT_CANCEL_URL
    database_url: Optional[str] = None
    database_password: Optional[str] = None
    app_tag: str = APP_TAG
    log_level: str = "INFO"

    def missing(self) -> List[str]:
        """Names of the environment keys that are not configured."""
        checks = {
            "STRIPE_SECRET_KEY": self.stripe_secret_key,
            "STRIPE_WEBHOOK_SECRET": self.stripe_webhook_secret,
            "DATABASE_URL": self.database_url,
        }
        return [name for name, value in checks.items() if not value]


def parse_catalog(raw: str) -> Dict[str, PriceItem]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"PRICE_CATALOG is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or not data:
        raise ConfigurationError("PRICE_CATALOG must be a non-empty JSON object")
    try:
        return _catalog_adapter.validate_python(data)
    except ValidationError as exc:
        raise ConfigurationError(f"PRICE_CATALOG is invalid: {exc}") from exc


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    default_catalog: Mapping[str, PriceItem] = DEFAULT_PRICE_CATALOG,
) -> Settings:
    if environ is None:
        # Force-load .env (reload-safe)
        load_dotenv(dotenv_path=BASE_DIR / ".env")
        environ = os.environ

    raw_catalog = environ.get("PRICE_CATALOG")
    catalog = parse_catalog(raw_catalog) if raw_catalog else dict(default_catalog)

    return Settings(
        stripe_secret_key=environ.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=environ.get("STRIPE_WEBHOOK_SECRET") or None,
        price_catalog=catalog,
        success_url=environ.get("SUCCESS_URL") or DEFAULT_SUCCESS_URL,
        cancel_url=environ.get("CANCEL_URL") or DEFAULT_CANCEL_URL,
        database_url=environ.get("DATABASE_URL") or None,
        database_password=environ.get("DATABASE_PASSWORD") or None,
        log_level=environ.get("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
