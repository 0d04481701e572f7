"""
Record Reconciliation Engine

Owns the per-month record cache, mediates every read and write against the
record store, and runs the background summary pipeline:

    save -> upsert -> return
              \\-> summarize job  (generator -> update_summary -> merge)
              \\-> poll loop      (re-read until a fresh summary shows up)

Runs on the asyncio event loop. Store calls are synchronous and never
suspend, so everything between two awaits is atomic with respect to other
engine operations. The only suspension points are generator calls and poll
ticks; after each one a job re-checks the date's generation before writing.

Generation counter: every content save, deletion or manual summary edit for
an (owner, date) bumps that date's generation and cancels its background
jobs. A job whose generation no longer matches commits nothing.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.services.content import (
    has_meaningful_content,
    is_displayable,
    month_key,
    month_of,
    month_range,
    parse_date_key,
)
from app.services.errors import GenerationFailed, JournalError
from app.services.record_store import Owner, Record, RecordStore
from app.time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_POLL_ATTEMPTS = 20
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_MAX_MONTHS = 12

DateKey = Tuple[Owner, str]


class PollState(str, Enum):
    POLLING = "polling"
    COMPLETE = "complete"
    GIVEN_UP = "given_up"
    CANCELLED = "cancelled"


class ChangeKind(str, Enum):
    SAVED = "saved"
    DELETED = "deleted"
    SUMMARY = "summary"
    REFRESHED = "refreshed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class RecordChange:
    """Notification sent to observers when a date's record changes."""
    owner: Owner
    date: str
    kind: ChangeKind
    record: Optional[Record] = None


@dataclass(frozen=True)
class SaveResult:
    # None means the date now has no record (empty content deletes)
    record: Optional[Record]


@dataclass
class MonthCache:
    """Displayable records for one owner's month, plus when it last synced."""
    owner: Owner
    year: int
    month: int
    records: Dict[str, Record] = field(default_factory=dict)
    freshness: Optional[datetime] = None

    @property
    def key(self) -> str:
        return month_key(self.year, self.month)

    def ordered(self) -> List[Record]:
        return [self.records[d] for d in sorted(self.records)]

    def get(self, date: str) -> Optional[Record]:
        return self.records.get(date)

    def is_fresh(self, max_age: Optional[float]) -> bool:
        if max_age is None or self.freshness is None:
            return False
        return utc_now() - self.freshness <= timedelta(seconds=max_age)

    def __contains__(self, date: str) -> bool:
        return date in self.records

    def __len__(self) -> int:
        return len(self.records)


class ReconciliationEngine:
    """Keeps cached month views consistent with the store while summaries land out of band."""

    def __init__(
        self,
        store: RecordStore,
        generator,
        poll_attempts: int = DEFAULT_POLL_ATTEMPTS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_months: int = DEFAULT_MAX_MONTHS,
    ):
        self.store = store
        self.generator = generator
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self.max_months = max_months

        self._caches: "OrderedDict[Tuple[Owner, str], MonthCache]" = OrderedDict()
        self._generations: Dict[DateKey, int] = {}
        self._summary_jobs: Dict[DateKey, asyncio.Task] = {}
        self._poll_jobs: Dict[DateKey, asyncio.Task] = {}
        self._poll_states: Dict[DateKey, PollState] = {}
        self._observers: List[Callable[[RecordChange], Any]] = []
        self._last_accessed: Optional[Record] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[RecordChange], Any]) -> Callable[[], None]:
        """Register an observer. Returns a function that unsubscribes it."""
        self._observers.append(callback)

        def unsubscribe():
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, change: RecordChange) -> None:
        for callback in list(self._observers):
            try:
                callback(change)
            except Exception:
                logger.exception(f"Observer failed handling {change.kind.value} for {change.date}")

    # ------------------------------------------------------------------
    # Generations and job bookkeeping
    # ------------------------------------------------------------------

    def generation(self, owner: Owner, date: str) -> int:
        return self._generations.get((owner, date), 0)

    def _is_current(self, key: DateKey, generation: int) -> bool:
        return self._generations.get(key, 0) == generation

    def _bump(self, key: DateKey) -> int:
        """Start a new generation for a date, cancelling its background jobs."""
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        job = self._summary_jobs.pop(key, None)
        if job and not job.done():
            job.cancel()
        poll = self._poll_jobs.pop(key, None)
        if poll and not poll.done():
            poll.cancel()
        if self._poll_states.get(key) == PollState.POLLING:
            self._poll_states[key] = PollState.CANCELLED
        return generation

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Reconciliation engine has been shut down")

    def poll_state(self, owner: Owner, date: str) -> Optional[PollState]:
        return self._poll_states.get((owner, date))

    def pending(self) -> List[asyncio.Task]:
        """Background jobs that have not finished yet."""
        jobs = list(self._summary_jobs.values()) + list(self._poll_jobs.values())
        return [job for job in jobs if not job.done()]

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _cache_for(self, owner: Owner, date: str) -> Optional[MonthCache]:
        year, month = month_of(date)
        return self._caches.get((owner, month_key(year, month)))

    def _remember(self, record: Optional[Record], owner: Owner, date: str) -> None:
        if record is None:
            last = self._last_accessed
            if last is not None and (last.owner, last.date) == (owner, date):
                self._last_accessed = None
        else:
            self._last_accessed = record

    def _merge(self, record: Record, kind: ChangeKind) -> bool:
        """Patch one date with a record read from or written to the store.

        Returns False (and stays quiet) for duplicates and for records older
        than what is already cached.
        """
        if not is_displayable(record):
            return self._drop(record.owner, record.date)

        cache = self._cache_for(record.owner, record.date)
        known = cache.get(record.date) if cache else None
        last = self._last_accessed
        if known is None and last is not None and (last.owner, last.date) == (record.owner, record.date):
            known = last

        if known is not None:
            if known == record:
                return False
            if known.updated_at and record.updated_at and record.updated_at < known.updated_at:
                logger.debug(f"Ignoring out-of-date read for {record.date}")
                return False

        if cache is not None:
            cache.records[record.date] = record
        # Background merges refresh the last-accessed slot only for its own date
        same_date = last is not None and (last.owner, last.date) == (record.owner, record.date)
        if kind in (ChangeKind.SAVED, ChangeKind.REFRESHED) or same_date:
            self._remember(record, record.owner, record.date)
        self._notify(RecordChange(record.owner, record.date, kind, record))
        return True

    def _drop(self, owner: Owner, date: str, always_notify: bool = False) -> bool:
        cache = self._cache_for(owner, date)
        existed = cache is not None and cache.records.pop(date, None) is not None
        last = self._last_accessed
        existed = existed or (last is not None and (last.owner, last.date) == (owner, date))
        self._remember(None, owner, date)
        if existed or always_notify:
            self._notify(RecordChange(owner, date, ChangeKind.DELETED, None))
        return existed

    def peek(self, owner: Owner, date: str) -> Optional[Record]:
        """Optimistic cached value for immediate render; not authoritative."""
        last = self._last_accessed
        if last is not None and (last.owner, last.date) == (owner, date):
            return last
        cache = self._cache_for(owner, date)
        return cache.get(date) if cache else None

    def cached_month(self, owner: Owner, year: int, month: int) -> Optional[MonthCache]:
        return self._caches.get((owner, month_key(year, month)))

    def forget_owner(self, owner: Owner, cancel_jobs: bool = False) -> None:
        """Drop cached state for an owner, as on sign-out.

        Background jobs keep running unless `cancel_jobs` is set, which import
        and wipe need since they rewrite records behind the engine.
        """
        if cancel_jobs:
            for key in {k for k in list(self._summary_jobs) + list(self._poll_jobs) if k[0] == owner}:
                self._bump(key)
        for key in [k for k in self._caches if k[0] == owner]:
            del self._caches[key]
        if self._last_accessed is not None and self._last_accessed.owner == owner:
            self._last_accessed = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_record(self, owner: Owner, date: str) -> Optional[Record]:
        """Authoritative point read; the result is reconciled into the cache."""
        self._check_open()
        parse_date_key(date)
        record = self.store.get(owner, date)
        if record is None:
            self._drop(owner, date)
            return None
        self._merge(record, ChangeKind.REFRESHED)
        return record

    async def list_month(
        self, owner: Owner, year: int, month: int, max_age: Optional[float] = None
    ) -> MonthCache:
        """Load a month's displayable records and replace its cache.

        With max_age, a cache synced within that many seconds is returned
        without touching the store.
        """
        self._check_open()
        cache_key = (owner, month_key(year, month))
        cached = self._caches.get(cache_key)
        if cached is not None and cached.is_fresh(max_age):
            self._caches.move_to_end(cache_key)
            return cached

        start, end = month_range(year, month)
        records = self.store.list_range(owner, start, end)
        cache = MonthCache(
            owner=owner,
            year=year,
            month=month,
            records={r.date: r for r in records if is_displayable(r)},
            freshness=utc_now(),
        )
        self._caches[cache_key] = cache
        self._caches.move_to_end(cache_key)
        while len(self._caches) > self.max_months:
            evicted, _ = self._caches.popitem(last=False)
            logger.debug(f"Evicted month cache {evicted}")
        return cache

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def save(self, owner: Owner, date: str, content: str) -> SaveResult:
        """Persist an entry and return as soon as it is stored.

        Meaningless content deletes the date's record instead. Store errors
        propagate; summarization happens in the background afterwards.
        """
        self._check_open()
        parse_date_key(date)
        key = (owner, date)

        if not has_meaningful_content(content):
            self.store.delete(owner, date)
            self._bump(key)
            self._drop(owner, date, always_notify=True)
            return SaveResult(record=None)

        record = self.store.upsert(owner, date, content)
        generation = self._bump(key)
        self._merge(record, ChangeKind.SAVED)
        self._schedule_summary(record, generation)
        return SaveResult(record=record)

    async def delete(self, owner: Owner, date: str) -> None:
        await self.save(owner, date, "")

    async def update_summary(self, owner: Owner, date: str, summary: Optional[str]) -> Optional[Record]:
        """Manual summary edit. Wins over any pending generated summary."""
        self._check_open()
        parse_date_key(date)
        key = (owner, date)
        record = self.store.update_summary(owner, date, summary)
        self._bump(key)
        if record is None:
            self._drop(owner, date)
            return None
        self._merge(record, ChangeKind.SUMMARY)
        return record

    # ------------------------------------------------------------------
    # Background summarization
    # ------------------------------------------------------------------

    def _schedule_summary(self, record: Record, generation: int) -> None:
        key = (record.owner, record.date)
        self._summary_jobs[key] = asyncio.create_task(
            self._summarize(record.owner, record.date, record.content, generation),
            name=f"summarize:{record.owner}:{record.date}:{generation}",
        )
        self._start_poll(
            record.owner, record.date, record.id, record.updated_at, generation,
            self.poll_attempts, self.poll_interval,
        )

    async def _summarize(self, owner: Owner, date: str, content: str, generation: int) -> None:
        key = (owner, date)
        try:
            try:
                summary = await self.generator.generate_daily_summary(content)
            except GenerationFailed as e:
                logger.warning(f"Summary generation failed for {date}: {e}")
                self._summary_failed(key, generation)
                return
            except Exception as e:
                logger.error(f"Summary job for {date} crashed: {e}")
                self._summary_failed(key, generation)
                return

            # From here to the merge nothing awaits, so the check holds for the write
            if not self._is_current(key, generation):
                logger.info(f"Discarding stale summary for {date} (generation {generation})")
                return
            if not summary or not summary.strip():
                self._summary_failed(key, generation)
                return

            try:
                record = self.store.update_summary(owner, date, summary)
            except JournalError as e:
                logger.error(f"Failed to store summary for {date}: {e}")
                self._summary_failed(key, generation)
                return

            if record is None:
                return
            self._merge(record, ChangeKind.SUMMARY)
        finally:
            if self._summary_jobs.get(key) is asyncio.current_task():
                del self._summary_jobs[key]

    def _summary_failed(self, key: DateKey, generation: int) -> None:
        """No summary this time: keep the previous one and stop waiting for it."""
        if not self._is_current(key, generation):
            return
        poll = self._poll_jobs.pop(key, None)
        if poll and not poll.done():
            poll.cancel()
        self._poll_states[key] = PollState.GIVEN_UP
        owner, date = key
        self._notify(RecordChange(owner, date, ChangeKind.UNCHANGED, self.peek(owner, date)))

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _start_poll(self, owner, date, record_id, baseline, generation, max_attempts, interval) -> asyncio.Task:
        key = (owner, date)
        previous = self._poll_jobs.pop(key, None)
        if previous and not previous.done():
            previous.cancel()
        self._poll_states[key] = PollState.POLLING
        task = asyncio.create_task(
            self._poll(owner, date, record_id, baseline, generation, max_attempts, interval),
            name=f"poll:{owner}:{date}:{generation}",
        )
        self._poll_jobs[key] = task
        return task

    async def poll_for_summary(
        self,
        owner: Owner,
        date: str,
        record_id=None,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
        baseline: Optional[datetime] = None,
    ) -> PollState:
        """Wait for a summary newer than `baseline` to appear in the store.

        Replaces any poll loop already running for the date. Returns the
        final state; giving up is silent.
        """
        self._check_open()
        key = (owner, date)
        task = self._start_poll(
            owner, date, record_id, baseline, self._generations.get(key, 0),
            max_attempts or self.poll_attempts,
            self.poll_interval if interval is None else interval,
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return PollState.CANCELLED
            raise

    async def _poll(self, owner, date, record_id, baseline, generation, max_attempts, interval) -> PollState:
        key = (owner, date)
        try:
            for attempt in range(1, max_attempts + 1):
                await asyncio.sleep(interval)
                if not self._is_current(key, generation):
                    return self._finish_poll(key, PollState.CANCELLED)

                try:
                    record = self.store.get(owner, date)
                except JournalError as e:
                    logger.warning(f"Poll {attempt}/{max_attempts} for {date} could not read store: {e}")
                    continue

                if record is None or (record_id is not None and record.id != record_id):
                    logger.info(f"Record for {date} went away while polling")
                    return self._finish_poll(key, PollState.GIVEN_UP)

                fresh = baseline is None or (record.updated_at is not None and record.updated_at > baseline)
                if record.summary and fresh:
                    self._merge(record, ChangeKind.SUMMARY)
                    return self._finish_poll(key, PollState.COMPLETE)

            logger.info(f"No summary for {date} after {max_attempts} polls, giving up")
            return self._finish_poll(key, PollState.GIVEN_UP)
        except asyncio.CancelledError:
            self._finish_poll(key, PollState.CANCELLED)
            raise

    def _finish_poll(self, key: DateKey, state: PollState) -> PollState:
        # A superseded loop must not overwrite the state of its replacement
        if self._poll_jobs.get(key) is asyncio.current_task():
            del self._poll_jobs[key]
            self._poll_states[key] = state
        return state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait until every background job, including ones started meanwhile, is done."""
        while True:
            jobs = self.pending()
            if not jobs:
                return
            await asyncio.gather(*jobs, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all background work. Nothing partial is committed."""
        self._closed = True
        jobs = self.pending()
        for job in jobs:
            job.cancel()
        if jobs:
            await asyncio.gather(*jobs, return_exceptions=True)
        self._summary_jobs.clear()
        self._poll_jobs.clear()
        self._observers.clear()
        logger.info("Reconciliation engine stopped")
