"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO and crypto operations accessed through Protocol types
    - Implementations provided by shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - ClaimsVerifier is sync: token verification is CPU-only, keeping the
      gateway's authentication step a plain function call
"""

from datetime import datetime
from typing import Any, Mapping, Protocol


class ClaimsVerifier(Protocol):
    """Turns a raw bearer token into a verified claim set.

    Raises InvalidTokenFormatError when the token cannot be verified.
    """
    def __call__(self, token: str) -> Mapping[str, Any]: ...


class ConfirmationRepository(Protocol):
    """Contract for single-use confirmation tokens — implemented by shell."""
    async def issue(
        self, *, organization_id: str, user_id: str, resource_id: str,
        action_id: str, ttl_seconds: int,
    ) -> tuple[str, datetime]: ...
    async def consume(
        self, *, token: str, organization_id: str, user_id: str,
        resource_id: str, action_id: str,
    ) -> bool: ...
