"""Protocol types for SyncEngine dependencies.

Defines the interfaces that SyncEngine requires from its collaborators,
enabling easier testing and looser coupling.
"""

from datetime import datetime
from typing import Protocol, Sequence, runtime_checkable

from ..config import GroupBy
from .link import MeasureGroup
from .measure import Measure


@runtime_checkable
class AWClientProtocol(Protocol):
    """Interface for querying ActivityWatch."""

    def is_running(self) -> bool: ...

    def query(self, timeperiods: list[str], query: list[str]) -> list: ...


@runtime_checkable
class ConjureClientProtocol(Protocol):
    """Interface for reading measures from and writing measurements to conjure.so."""

    def get_measures(self) -> list[Measure]: ...

    def write_measurements(
        self, group_by: GroupBy, groups: Sequence[MeasureGroup]
    ) -> None: ...

    def delete_by_era(
        self, measures: Sequence[Measure], eras: Sequence[datetime]
    ) -> None: ...
