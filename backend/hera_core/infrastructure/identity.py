"""Identity Verification — HS256 bearer tokens decoded into claim sets with PyJWT.

Invariants:
    - Only verification happens here; tokens are issued elsewhere
    - Any decode failure (bad signature, expired, malformed) -> InvalidTokenFormatError
    - Returned claims are a plain dict; semantics (user_id, organization_id)
      are checked by core/policy_gateway.py
"""

import logging
from typing import Any

import jwt

from hera_core.core.errors import InvalidTokenFormatError

logger = logging.getLogger(__name__)


class JWTClaimsVerifier:
    """ClaimsVerifier implementation backed by a shared HMAC secret."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self._secret = secret
        self._algorithms = [algorithm]

    def __call__(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(token, self._secret, algorithms=self._algorithms)
        except jwt.ExpiredSignatureError:
            logger.warning("Bearer token expired", extra={"error_kind": "ExpiredSignature"})
            raise InvalidTokenFormatError()
        except jwt.InvalidTokenError as e:
            logger.warning("Bearer token rejected", extra={"error_kind": type(e).__name__})
            raise InvalidTokenFormatError()
        if not isinstance(payload, dict):
            raise InvalidTokenFormatError()
        return payload
