"""Resource Schemas — config submission and action invocation bodies.

Invariants:
    - ResourceCreate.config is parsed by core/resource_config.py; the schema only
      checks shape, never condition semantics
    - ActionRequest.phase defaults to initial; confirmation_token is only
      meaningful with phase=confirm
    - variables are merged into Context.variables and are template-addressable
"""

from typing import Any

from pydantic import BaseModel, Field

from hera_core.core.domain_types import ActionPhase


class ResourceCreate(BaseModel):
    """Store (or replace) a resource config for the caller's organization."""
    resource_id: str = Field(pattern=r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
    smart_code: str = Field(max_length=255)
    config: dict[str, Any]


class ActionRequest(BaseModel):
    phase: ActionPhase = ActionPhase.INITIAL
    confirmation_token: str | None = Field(None, max_length=128)
    variables: dict[str, Any] = Field(default_factory=dict)
