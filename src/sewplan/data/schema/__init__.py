from __future__ import annotations

from sewplan.data.schema.data_schema import ensure_schema as ensure_data_schema
from sewplan.data.schema.scheduling_schema import ensure_schema as ensure_scheduling_schema

__all__ = ["ensure_data_schema", "ensure_scheduling_schema"]
