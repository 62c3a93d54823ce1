"""Error kinds surfaced by the gateway.

Services raise one of these; ``dataweb.main`` turns them into a JSON body of
the form ``{"error": <message>, "kind": <kind>}`` with the matching status.
"""

from fastapi import status


class GatewayError(Exception):
    kind = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, headers: dict[str, str] | None = None):
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)


class ValidationError(GatewayError):
    kind = "validation"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthError(GatewayError):
    kind = "auth"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class ConflictError(GatewayError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class NotFoundError(GatewayError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class SecurityError(GatewayError):
    kind = "security"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class PayloadTooLargeError(GatewayError):
    kind = "payload_too_large"
    status_code = 413
    default_message = "Payload too large"


class RateLimitedError(GatewayError):
    kind = "rate_limited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests — slow down"


class UpstreamTimeoutError(GatewayError):
    kind = "upstream_timeout"
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = "AI Service Timeout — try again later"


class UpstreamUnavailableError(GatewayError):
    kind = "upstream_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "AI Service Unavailable — analysis service is not running"


class InternalError(GatewayError):
    pass
