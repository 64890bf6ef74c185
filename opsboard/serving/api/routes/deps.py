"""
Shared route dependencies

Range parsing happens here so every router rejects malformed dates the
same way (InvalidRangeError, mapped to HTTP 400 by the application).
"""

from typing import Optional

from fastapi import Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.ranges import ComparativeRange, DateRange
from opsboard.analytics.results import NotFoundResult
from opsboard.database.connection import get_session_factory


def session_factory_dependency() -> async_sessionmaker[AsyncSession]:
    """Overridden in tests with a factory bound to a throwaway database."""
    return get_session_factory()


def date_range(
    start: str = Query(..., alias="from", description="First day, YYYY-MM-DD"),
    end: str = Query(..., alias="to", description="Last day (inclusive), YYYY-MM-DD"),
) -> DateRange:
    return DateRange.parse(start, end)


def comparative_range(
    start: str = Query(..., alias="from"),
    end: str = Query(..., alias="to"),
    compare_from: Optional[str] = Query(None, alias="compareFrom"),
    compare_to: Optional[str] = Query(None, alias="compareTo"),
) -> ComparativeRange:
    return ComparativeRange.parse(start, end, compare_from, compare_to)


def not_found(result: NotFoundResult) -> JSONResponse:
    return JSONResponse(status_code=404, content=result.model_dump(mode="json", by_alias=True))
