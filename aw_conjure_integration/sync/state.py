"""Sync engine states, messages and effects.

The engine is a reducer: ``update(state, message) -> (state, effects)``.
Messages carry the results of collaborator calls back in; effects describe
the next call to make (or a line to log) and are carried out by the driver.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Generic, Optional, TypeVar, Union

from ..config import GroupBy, Settings
from .category import Category
from .link import Link, MeasureGroup
from .measure import Measure
from .period import Period
from .query import QueryResults

T = TypeVar("T")


# Results


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    error: str


Result = Union[Ok[T], Err]


@dataclass(frozen=True)
class DeletionReceipt:
    """Confirms the day's eras were wiped; ``periods`` are due for re-upload."""

    periods: list[Period]
    time_submitted: datetime


# States


@dataclass(frozen=True)
class LoadingMeasures:
    """Waiting for conjure.so to list measures so links can be decoded."""

    categories: list[Category]
    settings: Settings
    raw_links: Any


@dataclass(frozen=True)
class Running:
    """Syncing.

    ``awaiting`` names the outstanding collaborator call, if any. No new
    round is started until it resolves.
    """

    categories: list[Category]
    links: list[Link]
    settings: Settings
    last_synced_at: Optional[datetime] = None
    awaiting: Optional[str] = None


@dataclass(frozen=True)
class Exit:
    """Terminal state after a fatal error."""

    pass


SyncState = Union[LoadingMeasures, Running, Exit]


# Messages


@dataclass(frozen=True)
class GotKnownMeasures:
    result: Result[list[Measure]]


@dataclass(frozen=True)
class GotMeasurementDeletionResults:
    result: Result[DeletionReceipt]


@dataclass(frozen=True)
class GotMeasurementWriteResults:
    result: Result[datetime]


@dataclass(frozen=True)
class GotQueryResults:
    result: Result[QueryResults]


@dataclass(frozen=True)
class GotLocalTime:
    zone: tzinfo
    now: datetime


@dataclass(frozen=True)
class Tick:
    now: datetime


Message = Union[
    GotKnownMeasures,
    GotMeasurementDeletionResults,
    GotMeasurementWriteResults,
    GotQueryResults,
    GotLocalTime,
    Tick,
]


# Effects


@dataclass(frozen=True)
class Log:
    level: int
    message: str

    @classmethod
    def info(cls, message: str) -> "Log":
        return cls(logging.INFO, message)

    @classmethod
    def warning(cls, message: str) -> "Log":
        return cls(logging.WARNING, message)

    @classmethod
    def error(cls, message: str) -> "Log":
        return cls(logging.ERROR, message)


@dataclass(frozen=True)
class FetchMeasures:
    pass


@dataclass(frozen=True)
class FetchLocalTime:
    pass


@dataclass(frozen=True)
class DeleteByEra:
    measures: list[Measure]
    eras: list[datetime]
    periods: list[Period]
    time_submitted: datetime


@dataclass(frozen=True)
class QueryPeriods:
    periods: list[Period]
    categories: list[Category]
    group_by: GroupBy
    time_submitted: datetime


@dataclass(frozen=True)
class WriteMeasurements:
    group_by: GroupBy
    groups: list[MeasureGroup]
    time_submitted: datetime


Effect = Union[Log, FetchMeasures, FetchLocalTime, DeleteByEra, QueryPeriods, WriteMeasurements]
