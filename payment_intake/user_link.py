import json
from typing import Optional

from jose.utils import base64url_decode


def unverified_user_id(authorization: Optional[str]) -> Optional[str]:
    """Read the ``sub`` claim of a bearer token WITHOUT verifying it.

    Only the payload segment is decoded; the header and signature are never
    looked at, so the result is attacker-controlled. It is only written into
    checkout metadata to link an order to a user for convenience and must
    never gate access to anything.
    """
    if not authorization:
        return None

    token = authorization.strip()
    if token[:7].lower() == "bearer ":
        token = token[7:].strip()
    parts = token.split(".")
    if len(parts) != 3:
        return None

    try:
        claims = json.loads(base64url_decode(parts[1].encode("ascii")))
    except (ValueError, UnicodeError):
        return None

    sub = claims.get("sub") if isinstance(claims, dict) else None
    return sub if isinstance(sub, str) else None
