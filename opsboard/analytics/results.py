"""
Response models shared across the analytics services.

Fields are snake_case in Python and camelCase on the wire. Money and
ratios are Decimals and serialize as strings so no precision is lost.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for every result returned by the engine"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RangedResult(ApiModel):
    """Every read result echoes the workspace and the resolved range and explains itself"""

    workspace_id: str
    range: Dict[str, str]
    note: str


class ValueDelta(ApiModel):
    value: Optional[Decimal] = None
    delta: Optional[Decimal] = None
    delta_pct: Optional[Decimal] = None


class NotFoundCode(str, Enum):
    SKU_NOT_FOUND = "SKU_NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    FORECAST_NOT_FOUND = "FORECAST_NOT_FOUND"


class NotFoundResult(ApiModel):
    """Typed miss, distinguishable from a found entity with zero activity"""

    ok: Literal[False] = False
    code: NotFoundCode
    message: str
