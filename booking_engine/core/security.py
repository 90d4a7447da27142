import hmac
from typing import Optional

from fastapi import Header

from booking_engine.core.config import settings

def is_admin_token(x_secret_token: Optional[str] = Header(None)) -> bool:
    """
    True when the request carries the admin secret in the X-Secret-Token header.
    Admin-only actions (refund override) are refused when SECRET_KEY is unset.
    """
    if not settings.SECRET_KEY or not x_secret_token:
        return False
    return hmac.compare_digest(x_secret_token, settings.SECRET_KEY)
