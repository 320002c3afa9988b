from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Protocol

from spendlens.core.errors import AnalysisInProgressError
from spendlens.core.logging import get_logger, log_event, log_exception, monotonic_ms
from spendlens.core.models import utcnow
from spendlens.modules.insights.schemas import FreshnessBand, InsightsSnapshot, SchedulerState
from spendlens.modules.insights.service import CachedInsights, InsightsCache, InsightsService

logger = get_logger(__name__)

_FRESH = timedelta(days=1)
_RECENT = timedelta(days=3)
_STALE = timedelta(days=7)


class RecordSource(Protocol):
    def count(self) -> int: ...

    def fetch_all(self) -> list[Any]: ...


def freshness_band(last_run_at: datetime | None, now: datetime) -> FreshnessBand:
    if last_run_at is None:
        return FreshnessBand.NONE
    age = now - last_run_at
    if age < _FRESH:
        return FreshnessBand.FRESH
    if age < _RECENT:
        return FreshnessBand.RECENT
    if age < _STALE:
        return FreshnessBand.STALE
    return FreshnessBand.EXPIRED


class InsightsScheduler:
    """
    Decides when the background spending analysis runs.

    States: Idle (not eligible), Eligible, Running, Cached (snapshot present and
    no refresh due). At most one analysis is in flight; a trigger that arrives
    during a run is remembered and eligibility is re-checked once the run ends.
    Background failures are logged and swallowed; the previous snapshot stays.
    """

    def __init__(
        self,
        *,
        cache: InsightsCache,
        analyzer: InsightsService,
        source: RecordSource,
        clock: Callable[[], datetime] = utcnow,
        min_records: int = 5,
        refresh_interval: timedelta = timedelta(days=7),
        growth_records: int = 5,
        growth_ratio: float = 0.2,
        debounce_seconds: float = 2.0,
        submit: Callable[[Callable[[], Any]], Any] | None = None,
    ) -> None:
        self.cache = cache
        self.analyzer = analyzer
        self.source = source
        self.clock = clock
        self.min_records = min_records
        self.refresh_interval = refresh_interval
        self.growth_records = growth_records
        self.growth_ratio = growth_ratio
        self.debounce_seconds = debounce_seconds

        self._lock = threading.Lock()
        self._running = False
        self._recheck = False
        self._debounce_timer: threading.Timer | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._submit = submit

    # Eligibility

    def is_eligible(self, record_count: int, cached: CachedInsights, now: datetime) -> bool:
        if record_count < self.min_records:
            return False
        if cached.snapshot is None or cached.last_run_at is None:
            return True
        if now - cached.last_run_at >= self.refresh_interval:
            return True
        growth = record_count - cached.last_record_count
        if growth >= self.growth_records:
            return True
        return growth / max(cached.last_record_count, 1) >= self.growth_ratio

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            if self._running:
                return SchedulerState.RUNNING
        cached = self.cache.load()
        if self.is_eligible(self.source.count(), cached, self.clock()):
            return SchedulerState.ELIGIBLE
        if cached.snapshot is not None:
            return SchedulerState.CACHED
        return SchedulerState.IDLE

    # Runs

    def _acquire(self) -> bool:
        with self._lock:
            if self._running:
                self._recheck = True
                return False
            self._running = True
            self._recheck = False
            return True

    def _release_or_recheck(self) -> bool:
        """True when a trigger arrived mid-run and the caller should evaluate again."""
        with self._lock:
            if self._recheck:
                self._recheck = False
                return True
            self._running = False
            return False

    def _run_once(self) -> InsightsSnapshot:
        now = self.clock()
        records = self.source.fetch_all()
        snapshot = self.analyzer.analyze(records, now=now)
        self.cache.save(snapshot, run_at=now, record_count=len(records))
        return snapshot

    def tick(self) -> bool:
        """Background trigger. Returns True when an analysis ran to completion."""
        if not self._acquire():
            log_event(logger, "insights.tick.coalesced")
            return False

        ran = False
        try:
            while True:
                start = time.monotonic()
                try:
                    count = self.source.count()
                    if self.is_eligible(count, self.cache.load(), self.clock()):
                        log_event(logger, "insights.run.start", record_count=count)
                        self._run_once()
                        ran = True
                        log_event(
                            logger,
                            "insights.run.finish",
                            record_count=count,
                            duration_ms=monotonic_ms(start),
                        )
                except Exception:
                    log_exception(logger, "insights.run.failed", duration_ms=monotonic_ms(start))
                if not self._release_or_recheck():
                    break
        except BaseException:
            with self._lock:
                self._running = False
                self._recheck = False
            raise
        return ran

    def analyze_now(self) -> InsightsSnapshot:
        """User-initiated run: ignores eligibility and raises every failure."""
        if not self._acquire():
            raise AnalysisInProgressError("An analysis is already running")
        try:
            log_event(logger, "insights.run.start", user_initiated=True)
            return self._run_once()
        finally:
            # A trigger that arrived meanwhile is satisfied by this run.
            with self._lock:
                self._running = False
                self._recheck = False

    # Triggers

    def _background(self, fn: Callable[[], Any]) -> Any:
        if self._submit is not None:
            return self._submit(fn)
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="insights")
        return self._executor.submit(fn)

    def on_foreground(self) -> Any:
        return self._background(self.tick)

    def notify_records_changed(self) -> None:
        """Debounced: a burst of changes produces a single tick."""
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            timer = threading.Timer(self.debounce_seconds, self._debounced_tick)
            timer.daemon = True
            self._debounce_timer = timer
        timer.start()

    def _debounced_tick(self) -> None:
        with self._lock:
            self._debounce_timer = None
        self._background(self.tick)

    def shutdown(self) -> None:
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # Reporting

    def cached_snapshot(self) -> InsightsSnapshot | None:
        return self.cache.load().snapshot

    def freshness(self, now: datetime | None = None) -> FreshnessBand:
        return freshness_band(self.cache.load().last_run_at, now or self.clock())

    def time_until_next_refresh(self, now: datetime | None = None) -> timedelta | None:
        last_run_at = self.cache.load().last_run_at
        if last_run_at is None:
            return None
        remaining = last_run_at + self.refresh_interval - (now or self.clock())
        return max(remaining, timedelta(0))

    def next_refresh_description(self, now: datetime | None = None) -> str:
        remaining = self.time_until_next_refresh(now)
        if remaining is None:
            return "Analysis pending"
        if remaining <= timedelta(0):
            return "Refresh due"
        if remaining.days >= 1:
            return f"Next refresh in {remaining.days} day{'s' if remaining.days != 1 else ''}"
        hours = int(remaining.total_seconds() // 3600)
        if hours >= 1:
            return f"Next refresh in {hours} hour{'s' if hours != 1 else ''}"
        return "Next refresh in less than an hour"

    def clear_cache(self) -> None:
        self.cache.clear()
        log_event(logger, "insights.cache.cleared", level=logging.INFO)
