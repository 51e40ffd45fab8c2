"""Request Context — the explicit, per-request bundle every evaluation runs against.

Invariants:
    - Built fresh per inbound request, discarded at response time, never cached
    - Immutable: with_entity()/with_variables() return new Contexts
    - Identifiers are strings so they compare equal to JSON condition values
    - email from the claim set is NOT part of the resolvable tree (not addressable by paths)

Design Decisions:
    - Explicit value threaded through every call instead of an ambient "current tenant"
    - as_tree() exposes exactly {user, organization, entity, variables} to path resolution
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class UserContext:
    id: str
    role: str
    permissions: tuple[str, ...]
    organization_id: str

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


@dataclass(frozen=True)
class OrganizationContext:
    id: str


def _freeze(data: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class Context:
    """Request-scoped evaluation context."""
    user: UserContext
    organization: OrganizationContext
    entity: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))
    variables: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))

    @property
    def organization_id(self) -> str:
        return self.organization.id

    def with_entity(self, entity: Mapping[str, Any]) -> "Context":
        return replace(self, entity=_freeze(entity))

    def with_variables(self, variables: Mapping[str, Any]) -> "Context":
        merged = dict(self.variables)
        merged.update(variables or {})
        return replace(self, variables=_freeze(merged))

    def as_tree(self) -> dict[str, Any]:
        """Nested mapping used by dotted-path resolution."""
        return {
            "user": {
                "id": self.user.id,
                "role": self.user.role,
                "permissions": list(self.user.permissions),
                "organization_id": self.user.organization_id,
            },
            "organization": {"id": self.organization.id},
            "entity": self.entity,
            "variables": self.variables,
        }


def build_context(
    claims: Mapping[str, Any],
    organization_id: str,
    entity: Mapping[str, Any] | None = None,
    variables: Mapping[str, Any] | None = None,
) -> Context:
    """Build a Context from a verified claim set and the bound organization id."""
    permissions = claims.get("permissions") or ()
    if isinstance(permissions, str):
        permissions = (permissions,)
    return Context(
        user=UserContext(
            id=str(claims["user_id"]),
            role=str(claims.get("role") or ""),
            permissions=tuple(str(p) for p in permissions),
            organization_id=str(claims.get("organization_id") or ""),
        ),
        organization=OrganizationContext(id=str(organization_id)),
        entity=_freeze(entity),
        variables=_freeze(variables),
    )
