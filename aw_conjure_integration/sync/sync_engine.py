"""Sync engine - moves binned ActivityWatch time into conjure.so measures."""

import logging
import queue
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Optional

from ..config import Settings
from .aw_client import AWClientError
from .category import Category
from .conjure_client import ConjureClientError
from .decode import DecodeError
from .event import sort_by_duration, view_details
from .link import Link, assign_events, decode_links
from .measure import Measure
from .period import iso8601, since_last_complete_at, since_start_of_day
from .protocols import AWClientProtocol, ConjureClientProtocol
from .query import QueryResults, build_query, decode_query_results
from .state import (
    DeleteByEra,
    DeletionReceipt,
    Effect,
    Err,
    Exit,
    FetchLocalTime,
    FetchMeasures,
    GotKnownMeasures,
    GotLocalTime,
    GotMeasurementDeletionResults,
    GotMeasurementWriteResults,
    GotQueryResults,
    LoadingMeasures,
    Log,
    Message,
    Ok,
    QueryPeriods,
    Running,
    SyncState,
    Tick,
    WriteMeasurements,
)

__all__ = ["SyncEngine", "init", "update"]

logger = logging.getLogger(__name__)

# What a Running engine is waiting on
AWAITING_LOCAL_TIME = "local_time"
AWAITING_DELETE = "delete"
AWAITING_QUERY = "query"
AWAITING_WRITE = "write"

WATCHING = "Watching for new events..."

NO_MEASURES_ERROR = (
    "You don't have any Time Entry measures on Conjure!  "
    'Make one or more "Time Entry" measures here: https://conjure.so/measures/new'
)


def init(
    categories: list[Category], settings: Settings, raw_links: Any
) -> tuple[SyncState, list[Effect]]:
    """Initial state: links can only be decoded once measures are known."""
    return LoadingMeasures(categories, settings, raw_links), [FetchMeasures()]


def update(state: SyncState, message: Message) -> tuple[SyncState, list[Effect]]:
    """Advance the engine by one message. Pure: all I/O is returned as effects."""
    if isinstance(state, LoadingMeasures):
        return _update_loading(state, message)
    if isinstance(state, Running):
        return _update_running(state, message)
    return state, [Log.warning("Received a message while exiting...")]


def _update_loading(
    state: LoadingMeasures, message: Message
) -> tuple[SyncState, list[Effect]]:
    if not isinstance(message, GotKnownMeasures):
        return state, [Log.warning("Received an unexpected message while loading measures...")]

    result = message.result
    if isinstance(result, Err):
        return Exit(), [
            Log.error(
                f"Fetching known measures from Conjure failed with the following error:\n{result.error}"
            )
        ]
    if not result.value:
        return Exit(), [Log.error(NO_MEASURES_ERROR)]

    try:
        links = decode_links(state.raw_links, state.categories, result.value)
    except DecodeError as e:
        return Exit(), [Log.error(f"Decoding links failed with the following error:\n{e}")]

    running = Running(
        categories=state.categories,
        links=links,
        settings=state.settings,
        awaiting=AWAITING_LOCAL_TIME,
    )
    return running, [FetchLocalTime()]


def _linked_measures(links: list[Link]) -> list[Measure]:
    seen: dict[str, Measure] = {}
    for link in links:
        seen.setdefault(link.to.id, link.to)
    return list(seen.values())


def _update_running(state: Running, message: Message) -> tuple[SyncState, list[Effect]]:
    settings = state.settings

    if isinstance(message, GotKnownMeasures):
        return state, [Log.warning("Received measures from Conjure while already running...")]

    if isinstance(message, GotLocalTime):
        rewrite = since_start_of_day(settings.bin_size, message.zone, message.now)
        if rewrite is None:
            return replace(state, last_synced_at=message.now, awaiting=None), [
                Log.info(f"No periods since the start of day, so not rewriting anything.\n{WATCHING}")
            ]
        return replace(state, awaiting=AWAITING_DELETE), [
            Log.info("Rewriting events since start of day..."),
            DeleteByEra(
                measures=_linked_measures(state.links),
                eras=rewrite.eras,
                periods=rewrite.periods,
                time_submitted=message.now,
            ),
        ]

    if isinstance(message, GotMeasurementDeletionResults):
        result = message.result
        if isinstance(result, Err):
            return Exit(), [
                Log.error(f"Measurement deletion failed with the following error:\n{result.error}")
            ]
        receipt = result.value
        return replace(state, awaiting=AWAITING_QUERY), [
            Log.info("Deleted events since start of local day; now reuploading them..."),
            QueryPeriods(
                periods=receipt.periods,
                categories=state.categories,
                group_by=settings.group_by,
                time_submitted=receipt.time_submitted,
            ),
        ]

    if isinstance(message, GotQueryResults):
        result = message.result
        if isinstance(result, Err):
            return Exit(), [
                Log.error(
                    f"ActivityWatch query results failed to parse!\n{result.error}\n"
                    "If this persists, please report it!"
                )
            ]
        return _handle_query_results(state, result.value)

    if isinstance(message, GotMeasurementWriteResults):
        result = message.result
        if isinstance(result, Err):
            # Upserts are idempotent, so the next tick's round can safely redo it
            return replace(state, awaiting=None), [
                Log.warning(
                    f"Measurement write failed with the following error:\n{result.error}\n"
                    "Continuing to run in case this fleeting (e.g. due to a lost internet connection)"
                )
            ]
        text = f"Successfully wrote events as of {iso8601(result.value)}"
        if state.last_synced_at is None:
            text += f"\n{WATCHING}"
        return replace(state, last_synced_at=result.value, awaiting=None), [Log.info(text)]

    if isinstance(message, Tick):
        if state.last_synced_at is None or state.awaiting is not None:
            return state, []
        periods = since_last_complete_at(settings.bin_size, state.last_synced_at, message.now)
        if periods is None:
            return state, []
        return replace(state, awaiting=AWAITING_QUERY), [
            QueryPeriods(
                periods=periods,
                categories=state.categories,
                group_by=settings.group_by,
                time_submitted=message.now,
            )
        ]

    return state, [Log.warning(f"Received an unexpected message while running: {message!r}")]


def _handle_query_results(
    state: Running, results: QueryResults
) -> tuple[SyncState, list[Effect]]:
    relevant = [e for e in results.events if e.is_relevant]
    groups, unmatched = assign_events(state.links, relevant)

    effects: list[Effect] = []
    if state.settings.report_unmatched and unmatched:
        details = "\n".join(view_details(e) for e in sort_by_duration(unmatched))
        effects.append(Log.info(f"The following events were unlinked:\n{details}"))

    if groups:
        effects.append(
            WriteMeasurements(
                group_by=state.settings.group_by,
                groups=groups,
                time_submitted=results.time_submitted,
            )
        )
        return replace(state, awaiting=AWAITING_WRITE), effects

    text = "No events in the queried period; nothing to do."
    if state.last_synced_at is None:
        text += f"\n{WATCHING}"
    effects.append(Log.info(text))
    return replace(state, last_synced_at=results.time_submitted, awaiting=None), effects


_STOP = object()
_CRASHED = object()


class SyncEngine:
    """Drives ``update`` against real collaborators.

    Messages are processed one at a time on the thread calling ``run()``.
    Collaborator calls run on a single worker thread and post their result
    back to the inbox, so at most one request is ever in flight.
    """

    def __init__(
        self,
        aw: AWClientProtocol,
        conjure: ConjureClientProtocol,
        categories: list[Category],
        settings: Settings,
        raw_links: Any,
        clock: Optional[Callable[[], datetime]] = None,
        zone: Optional[tzinfo] = None,
    ):
        self.aw = aw
        self.conjure = conjure
        self.state, self._initial_effects = init(categories, settings, raw_links)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._zone = zone
        self._inbox: "queue.Queue[Any]" = queue.Queue()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sync-io")

    def post(self, message: Message) -> None:
        """Queue a message for the run loop. Safe to call from any thread."""
        self._inbox.put(message)

    def tick(self) -> None:
        self.post(Tick(self._clock()))

    def stop(self) -> None:
        self._inbox.put(_STOP)

    def run(self) -> int:
        """Process messages until a fatal error (returns 1) or ``stop()`` (returns 0)."""
        try:
            self._dispatch(self._initial_effects)
            while not isinstance(self.state, Exit):
                message = self._inbox.get()
                if message is _STOP:
                    logger.info("Sync engine stopped")
                    return 0
                if message is _CRASHED:
                    return 1
                self.step(message)
            return 1
        finally:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def step(self, message: Message) -> list[Effect]:
        """Apply one message and carry out the resulting effects."""
        logger.debug(f"Handling {type(message).__name__}")
        self.state, effects = update(self.state, message)
        self._dispatch(effects)
        return effects

    def _dispatch(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, Log):
                logger.log(effect.level, effect.message)
            elif not isinstance(self.state, Exit):
                self._executor.submit(self._run_and_post, effect)

    def _run_and_post(self, effect: Effect) -> None:
        try:
            message = self.run_effect(effect)
        except Exception:
            logger.exception(f"Unexpected error while running {type(effect).__name__}")
            self._inbox.put(_CRASHED)
            return
        if message is not None:
            self.post(message)

    def run_effect(self, effect: Effect) -> Optional[Message]:
        """Perform one collaborator call and wrap its outcome as a message.

        Expected failures become ``Err`` results; the reducer decides whether
        they are fatal.
        """
        if isinstance(effect, FetchMeasures):
            try:
                return GotKnownMeasures(Ok(self.conjure.get_measures()))
            except (ConjureClientError, DecodeError) as e:
                return GotKnownMeasures(Err(str(e)))

        if isinstance(effect, FetchLocalTime):
            now = self._clock()
            zone = self._zone or datetime.now().astimezone().tzinfo
            return GotLocalTime(zone=zone, now=now)

        if isinstance(effect, DeleteByEra):
            try:
                self.conjure.delete_by_era(effect.measures, effect.eras)
            except ConjureClientError as e:
                return GotMeasurementDeletionResults(Err(str(e)))
            receipt = DeletionReceipt(periods=effect.periods, time_submitted=effect.time_submitted)
            return GotMeasurementDeletionResults(Ok(receipt))

        if isinstance(effect, QueryPeriods):
            logger.debug(f"Querying {len(effect.periods)} period(s) from ActivityWatch")
            try:
                raw = self.aw.query(
                    [p.to_iso_interval() for p in effect.periods],
                    build_query(effect.group_by, effect.categories),
                )
                results = decode_query_results(
                    raw, effect.periods, effect.categories, effect.time_submitted
                )
            except (AWClientError, DecodeError) as e:
                return GotQueryResults(Err(str(e)))
            return GotQueryResults(Ok(results))

        if isinstance(effect, WriteMeasurements):
            try:
                self.conjure.write_measurements(effect.group_by, effect.groups)
            except ConjureClientError as e:
                return GotMeasurementWriteResults(Err(str(e)))
            return GotMeasurementWriteResults(Ok(effect.time_submitted))

        logger.warning(f"Ignoring unknown effect: {effect!r}")
        return None
