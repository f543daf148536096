import logging
from typing import Optional

from supabase import Client

log = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"


def _bearer_token(request) -> Optional[str]:
    header = request.META.get("HTTP_AUTHORIZATION", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.COOKIES.get(ACCESS_TOKEN_COOKIE) or None


def get_authenticated_user_id(request, client: Optional[Client]) -> Optional[str]:
    """Supabase user id of the caller, or None for anonymous / unverifiable callers."""
    token = _bearer_token(request)
    if not token or client is None:
        return None
    try:
        res = client.auth.get_user(token)
    except Exception as e:
        log.info("auth token rejected: %s", e)
        return None
    user = getattr(res, "user", None)
    uid = getattr(user, "id", None)
    return str(uid) if uid else None
