from typing import Dict, Optional

BASE_ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type"
WEBHOOK_ALLOWED_HEADERS = BASE_ALLOWED_HEADERS + ", stripe-signature"


def cors_headers(origin: Optional[str], allow_headers: str = BASE_ALLOWED_HEADERS) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": allow_headers,
    }
