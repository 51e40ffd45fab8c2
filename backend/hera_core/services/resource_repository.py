"""Resource Repository — tenant-scoped storage of declarative resource configs.

Invariants:
    - Lookups AND organization_id = bound org; another tenant's config is
      indistinguishable from a missing one (both return None)
    - Configs are validated by parse_resource_config() on save AND on load
"""

import logging
import uuid
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hera_core.core.resource_config import ResourceConfig, parse_resource_config
from hera_core.core.smart_code import parse as parse_smart_code
from hera_core.models import ResourceConfigRecord

logger = logging.getLogger(__name__)


class ResourceRepository:
    """Resource configs of one organization, stored in resource_configs."""

    def __init__(self, db: AsyncSession, organization_id: UUID | str):
        self.db = db
        self.organization_id = UUID(str(organization_id))

    async def _record(self, resource_id: str) -> ResourceConfigRecord | None:
        result = await self.db.execute(
            select(ResourceConfigRecord).where(
                ResourceConfigRecord.organization_id == self.organization_id,
                ResourceConfigRecord.resource_id == resource_id,
            ),
        )
        return result.scalar_one_or_none()

    async def get(self, resource_id: str) -> Mapping[str, Any] | None:
        record = await self._record(resource_id)
        return dict(record.config) if record else None

    async def load(self, resource_id: str) -> ResourceConfig | None:
        raw = await self.get(resource_id)
        if raw is None:
            return None
        return parse_resource_config(resource_id, raw)

    async def save(
        self, resource_id: str, config: Mapping[str, Any], smart_code: str,
    ) -> ResourceConfig:
        """Validate then insert or replace the config for this organization."""
        parsed = parse_resource_config(resource_id, config)
        code = parse_smart_code(smart_code).value
        record = await self._record(resource_id)
        if record is None:
            record = ResourceConfigRecord(
                id=uuid.uuid4(),
                organization_id=self.organization_id,
                resource_id=resource_id,
            )
            self.db.add(record)
        record.config = dict(config)
        record.smart_code = code
        await self.db.commit()
        logger.info("Resource config saved", extra={"resource_id": resource_id})
        return parsed
