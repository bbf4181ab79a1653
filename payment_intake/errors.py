class ConfigurationError(RuntimeError):
    """A required secret, URL or catalog entry is missing or malformed."""


class InvalidSelector(ValueError):
    """The requested price_id is not in the trusted catalog."""


class SignatureInvalid(ValueError):
    """A webhook payload failed Stripe signature verification."""


class ProviderError(RuntimeError):
    """Stripe rejected a request."""
