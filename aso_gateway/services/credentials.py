"""
Service-account bearer token minting.

Implements the OAuth 2.0 JWT bearer grant used by Google service accounts:

1. Build a compact JWT whose header is {"alg": "RS256", "typ": "JWT"} and whose
   claims name the service account (iss), the read-only warehouse scope, the
   token endpoint (aud) and a one-hour validity window (iat/exp).
2. Sign "<b64url(header)>.<b64url(payload)>" with RSASSA-PKCS1-v1_5 / SHA-256
   using the account's PKCS8 private key.
3. POST the assertion, form-encoded, to the token endpoint and read back
   {"access_token", "expires_in"}.

A fresh token is minted on every call. Tokens, assertions and key material are
never logged.
"""

import base64
import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
from google.auth import crypt

from aso_gateway.core.errors import AuthError
from aso_gateway.models.schemas import BearerToken, ServiceAccountCredential

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

WAREHOUSE_READONLY_SCOPE: str = 'https://www.googleapis.com/auth/bigquery.readonly'

JWT_BEARER_GRANT_TYPE: str = 'urn:ietf:params:oauth:grant-type:jwt-bearer'

# Assertion lifetime in seconds
ASSERTION_LIFETIME: int = 3600

DEFAULT_TOKEN_TIMEOUT: float = 10.0


def base64url_encode(data: bytes) -> str:
    """Base64url without padding ('+' -> '-', '/' -> '_', '=' stripped)."""
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')


def _encode_segment(obj: Dict[str, Any]) -> str:
    return base64url_encode(json.dumps(obj, separators=(',', ':')).encode('utf-8'))


class CredentialService:
    """
    Mints warehouse bearer tokens from a service-account credential.

    Args:
        http_client: Optional shared httpx.AsyncClient. When omitted a client
            is opened per mint and closed afterwards.
        timeout: Deadline in seconds for the token endpoint call.
        clock: Callable returning the current UNIX time in seconds.
        scope: OAuth scope requested for the token.
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TOKEN_TIMEOUT,
        clock: Callable[[], float] = time.time,
        scope: str = WAREHOUSE_READONLY_SCOPE,
    ):
        self._http_client = http_client
        self._timeout = timeout
        self._clock = clock
        self._scope = scope

    def build_assertion(self, credential: ServiceAccountCredential) -> str:
        """
        Build and sign the JWT assertion for `credential`.

        The signer is created for this call only, so the decoded key does not
        outlive the signing operation.

        Raises:
            AuthError: If the private key cannot be loaded.
        """
        issued_at = int(self._clock())
        header = {'alg': 'RS256', 'typ': 'JWT'}
        payload = {
            'iss': credential.client_email,
            'scope': self._scope,
            'aud': credential.token_uri,
            'iat': issued_at,
            'exp': issued_at + ASSERTION_LIFETIME,
        }
        signing_input = f"{_encode_segment(header)}.{_encode_segment(payload)}"

        try:
            signer = crypt.RSASigner.from_string(credential.private_key_pem)
        except (ValueError, TypeError, IndexError) as e:
            raise AuthError("Service account private key could not be loaded") from e

        signature = signer.sign(signing_input.encode('ascii'))
        del signer

        return f"{signing_input}.{base64url_encode(signature)}"

    async def mint_access_token(self, credential: ServiceAccountCredential) -> BearerToken:
        """
        Exchange a freshly signed assertion for a bearer token.

        Raises:
            AuthError: On transport failure, a non-success response, or a
                response without an access token.
        """
        assertion = self.build_assertion(credential)
        form = {
            'grant_type': JWT_BEARER_GRANT_TYPE,
            'assertion': assertion,
        }

        logger.info(f"Requesting warehouse access token for {credential.client_email}")
        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    credential.token_uri, data=form, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(credential.token_uri, data=form)
        except httpx.HTTPError as e:
            logger.error(f"OAuth token request failed: {type(e).__name__}")
            raise AuthError(f"OAuth token request failed: {type(e).__name__}") from e

        if not response.is_success:
            logger.error(f"OAuth token error: {response.status_code}")
            raise AuthError(f"OAuth token error: {response.status_code} - {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise AuthError("OAuth token response was not valid JSON") from e

        access_token = body.get('access_token') if isinstance(body, dict) else None
        if not access_token:
            raise AuthError("OAuth token response did not include an access_token")

        try:
            expiry_seconds = int(body.get('expires_in', ASSERTION_LIFETIME))
        except (TypeError, ValueError):
            expiry_seconds = ASSERTION_LIFETIME

        logger.info("Warehouse access token minted")
        return BearerToken(access_token=access_token, expiry_seconds=max(expiry_seconds, 0))
