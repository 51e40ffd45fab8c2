"""ORM Models — SQLAlchemy declarative models for the six relations plus policy storage.

Invariants:
    - All models inherit from Base (db/base.py)
    - Every row except Organization carries organization_id

Design Decisions:
    - One file per relation for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from hera_core.models.organization import Organization  # noqa: F401
from hera_core.models.entity import Entity  # noqa: F401
from hera_core.models.dynamic_field import DynamicField  # noqa: F401
from hera_core.models.relationship import Relationship  # noqa: F401
from hera_core.models.transaction import Transaction, TransactionLine  # noqa: F401
from hera_core.models.resource_config import ResourceConfigRecord  # noqa: F401
from hera_core.models.action_confirmation import ActionConfirmation  # noqa: F401
