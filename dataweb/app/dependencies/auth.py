from fastapi import Header

from dataweb.app.errors import AuthError
from dataweb.app.utils.security import CurrentUser, decode_access_token

BEARER_PREFIX = "Bearer "


def get_current_user(authorization: str | None = Header(default=None)) -> CurrentUser:
    """Validate the JWT from the Authorization header (bare or ``Bearer``-prefixed)."""
    if not authorization or not authorization.strip():
        raise AuthError("Unauthorized — No token provided")

    token = authorization
    if token.startswith(BEARER_PREFIX):
        token = token[len(BEARER_PREFIX):]

    user = decode_access_token(token.strip())
    if user is None:
        # Same message for tampered and expired tokens
        raise AuthError("Unauthorized — Invalid or expired token")

    return user
