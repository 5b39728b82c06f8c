"""
Error taxonomy for the ASO data gateway.

Every failure the gateway reports to a caller is a GatewayError subclass that
carries the HTTP status it maps to. Route handlers catch GatewayError and
render the standard failure envelope:

    { "success": false, "error": "<message>", "timestamp": "<iso8601>" }

Status mapping:
    ValidationError        -> 400
    InvalidRequestError    -> 400 (security gate, markup injection)
    RateLimitedError       -> 429
    OrgInactiveError       -> 403
    EmptyScopeError        -> 404
    AuthError              -> 500 (token mint failure, infrastructure)
    ConfigurationError     -> 500
    WarehouseError         -> 502
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for all errors surfaced by the gateway."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(GatewayError):
    """Request input failed validation."""

    status_code = 400


class SecurityError(GatewayError):
    """
    Request rejected by the security gate.

    The `kind` attribute identifies which hard gate rejected the request:
    'invalid', 'rate_limited' or 'org_inactive'.
    """

    kind: str = "invalid"


class InvalidRequestError(SecurityError, ValidationError):
    """Search term matched a script/markup injection pattern."""

    status_code = 400
    kind = "invalid"


class RateLimitedError(SecurityError):
    """Organization exceeded its hourly request allowance."""

    status_code = 429
    kind = "rate_limited"


class OrgInactiveError(SecurityError):
    """Organization is missing or its subscription is not active."""

    status_code = 403
    kind = "org_inactive"


class EmptyScopeError(GatewayError):
    """No entity identifiers to query; the warehouse is never hit unbounded."""

    status_code = 404


class AuthError(GatewayError):
    """The OAuth token endpoint refused or failed to mint a bearer token."""

    status_code = 500


class ConfigurationError(GatewayError):
    """Service configuration (credentials, project) is missing or malformed."""

    status_code = 500


class WarehouseError(GatewayError):
    """The warehouse query endpoint returned a non-success response."""

    status_code = 502

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        upstream_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body
