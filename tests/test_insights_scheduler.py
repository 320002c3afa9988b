from __future__ import annotations

import json
import threading
import time
import uuid
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from spendlens.core.db import SessionLocal
from spendlens.core.errors import AnalysisInProgressError, TransportError
from spendlens.modules.expenses.models import Expense
from spendlens.modules.expenses.service import ExpenseSource, upsert_expense
from spendlens.modules.insights.scheduler import InsightsScheduler, freshness_band
from spendlens.modules.insights.schemas import FreshnessBand, InsightsSnapshot, SchedulerState
from spendlens.modules.insights.service import (
    CachedInsights,
    InMemoryInsightsCache,
    InsightsService,
    SqlInsightsCache,
)

NOW = datetime(2025, 9, 10, 12, 0, tzinfo=UTC)


class _Source:
    def __init__(self, count: int) -> None:
        self.records = list(range(count))

    def count(self) -> int:
        return len(self.records)

    def fetch_all(self) -> list:
        return list(self.records)


class _Analyzer:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self.error = error

    def analyze(self, records, *, now):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return InsightsSnapshot(generated_at=now, expense_count=len(records))


class _BlockingAnalyzer(_Analyzer):
    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def analyze(self, records, *, now):
        self.started.set()
        self.release.wait(timeout=5)
        return super().analyze(records, now=now)


def _scheduler(source, analyzer, cache=None, **kwargs) -> InsightsScheduler:
    return InsightsScheduler(
        cache=cache or InMemoryInsightsCache(),
        analyzer=analyzer,
        source=source,
        clock=lambda: NOW,
        **kwargs,
    )


def _cached(days_ago: float, record_count: int) -> CachedInsights:
    run_at = NOW - timedelta(days=days_ago)
    return CachedInsights(
        InsightsSnapshot(generated_at=run_at, expense_count=record_count), run_at, record_count
    )


def test_eligibility_rules():
    scheduler = _scheduler(_Source(0), _Analyzer())

    assert not scheduler.is_eligible(4, CachedInsights(), NOW)
    assert scheduler.is_eligible(5, CachedInsights(), NOW)
    assert not scheduler.is_eligible(10, _cached(1, 10), NOW)
    assert scheduler.is_eligible(10, _cached(7, 10), NOW)
    assert scheduler.is_eligible(15, _cached(1, 10), NOW)
    assert scheduler.is_eligible(12, _cached(1, 10), NOW)
    assert not scheduler.is_eligible(11, _cached(1, 10), NOW)
    assert not scheduler.is_eligible(4, _cached(30, 4), NOW)


def test_thresholds_are_configurable():
    scheduler = _scheduler(
        _Source(0), _Analyzer(), min_records=2, growth_records=50, growth_ratio=0.5
    )

    assert scheduler.is_eligible(2, CachedInsights(), NOW)
    assert not scheduler.is_eligible(14, _cached(1, 10), NOW)
    assert scheduler.is_eligible(15, _cached(1, 10), NOW)


@pytest.mark.parametrize(
    ("age", "band"),
    [
        (None, FreshnessBand.NONE),
        (timedelta(hours=2), FreshnessBand.FRESH),
        (timedelta(days=2), FreshnessBand.RECENT),
        (timedelta(days=5), FreshnessBand.STALE),
        (timedelta(days=8), FreshnessBand.EXPIRED),
    ],
)
def test_freshness_bands(age, band):
    last_run_at = None if age is None else NOW - age
    assert freshness_band(last_run_at, NOW) == band


def test_tick_runs_once_then_settles_into_cached_state():
    source = _Source(6)
    analyzer = _Analyzer()
    scheduler = _scheduler(source, analyzer)

    assert scheduler.state == SchedulerState.ELIGIBLE
    assert scheduler.tick() is True
    assert scheduler.tick() is False

    assert analyzer.calls == 1
    assert scheduler.state == SchedulerState.CACHED
    assert scheduler.cached_snapshot().expense_count == 6
    assert scheduler.freshness() == FreshnessBand.FRESH
    assert scheduler.next_refresh_description() == "Next refresh in 7 days"


def test_below_minimum_stays_idle():
    analyzer = _Analyzer()
    scheduler = _scheduler(_Source(3), analyzer)

    assert scheduler.state == SchedulerState.IDLE
    assert scheduler.tick() is False
    assert analyzer.calls == 0
    assert scheduler.next_refresh_description() == "Analysis pending"


def test_only_one_analysis_in_flight():
    analyzer = _BlockingAnalyzer()
    scheduler = _scheduler(_Source(6), analyzer)
    results: list[bool] = []

    worker = threading.Thread(target=lambda: results.append(scheduler.tick()))
    worker.start()
    assert analyzer.started.wait(timeout=5)

    assert scheduler.state == SchedulerState.RUNNING
    assert scheduler.tick() is False
    with pytest.raises(AnalysisInProgressError):
        scheduler.analyze_now()

    analyzer.release.set()
    worker.join(timeout=5)

    assert results == [True]
    assert analyzer.calls == 1
    assert scheduler.state == SchedulerState.CACHED


def test_trigger_during_run_rechecks_eligibility_afterwards():
    source = _Source(6)
    analyzer = _BlockingAnalyzer()
    scheduler = _scheduler(source, analyzer)

    worker = threading.Thread(target=scheduler.tick)
    worker.start()
    assert analyzer.started.wait(timeout=5)

    # Enough new records arrive mid-run to make a second pass eligible.
    source.records.extend(range(10))
    assert scheduler.tick() is False

    analyzer.release.set()
    worker.join(timeout=5)

    assert analyzer.calls == 2
    assert scheduler.cached_snapshot().expense_count == 16


def test_background_failure_is_swallowed_and_keeps_previous_state():
    analyzer = _Analyzer(error=TransportError("Model request timed out"))
    scheduler = _scheduler(_Source(6), analyzer)

    assert scheduler.tick() is False
    assert analyzer.calls == 1
    assert scheduler.cached_snapshot() is None
    assert scheduler.state == SchedulerState.ELIGIBLE


def test_user_initiated_run_raises_failures_and_ignores_eligibility():
    failing = _scheduler(_Source(6), _Analyzer(error=TransportError("timed out")))
    with pytest.raises(TransportError):
        failing.analyze_now()

    analyzer = _Analyzer()
    small = _scheduler(_Source(1), analyzer)
    assert small.analyze_now().expense_count == 1
    assert analyzer.calls == 1


def test_record_changes_are_debounced_into_one_background_tick():
    submitted: list = []
    scheduler = _scheduler(
        _Source(6), _Analyzer(), debounce_seconds=0.05, submit=submitted.append
    )

    for _ in range(5):
        scheduler.notify_records_changed()
    time.sleep(0.5)

    assert len(submitted) == 1
    assert submitted[0]() is True
    scheduler.shutdown()


def test_foreground_hands_tick_to_background_runner():
    submitted: list = []
    analyzer = _Analyzer()
    scheduler = _scheduler(_Source(6), analyzer, submit=submitted.append)

    scheduler.on_foreground()

    assert len(submitted) == 1
    assert analyzer.calls == 0
    submitted[0]()
    assert analyzer.calls == 1


def test_default_background_runner_executes_tick():
    analyzer = _Analyzer()
    scheduler = _scheduler(_Source(6), analyzer)

    future = scheduler.on_foreground()

    assert future.result(timeout=5) is True
    assert analyzer.calls == 1
    scheduler.shutdown()


def test_next_refresh_description_counts_down():
    cache = InMemoryInsightsCache()
    scheduler = _scheduler(_Source(6), _Analyzer(), cache=cache)
    snapshot = InsightsSnapshot(generated_at=NOW, expense_count=6)

    cache.save(snapshot, run_at=NOW - timedelta(days=2), record_count=6)
    assert scheduler.next_refresh_description() == "Next refresh in 5 days"
    assert scheduler.freshness() == FreshnessBand.RECENT

    cache.save(snapshot, run_at=NOW - timedelta(days=6, hours=21), record_count=6)
    assert scheduler.next_refresh_description() == "Next refresh in 3 hours"

    cache.save(snapshot, run_at=NOW - timedelta(days=9), record_count=6)
    assert scheduler.next_refresh_description() == "Refresh due"
    assert scheduler.time_until_next_refresh() == timedelta(0)

    scheduler.clear_cache()
    assert scheduler.cached_snapshot() is None


def test_sql_cache_survives_reload():
    cache = SqlInsightsCache(SessionLocal)
    assert cache.load() == CachedInsights()

    cache.save(InsightsSnapshot(generated_at=NOW, expense_count=7), run_at=NOW, record_count=7)
    loaded = SqlInsightsCache(SessionLocal).load()

    assert loaded.last_run_at == NOW
    assert loaded.last_record_count == 7
    assert loaded.snapshot is not None
    assert loaded.snapshot.expense_count == 7

    cache.clear()
    assert cache.load().snapshot is None


def test_scheduler_over_stored_expenses(scripted_model, credentials):
    for n in range(5):
        with SessionLocal() as session:
            upsert_expense(
                session,
                expense=Expense(
                    id=uuid.uuid4(),
                    expense_date=date(2025, 9, n + 1),
                    merchant=f"Shop {n}",
                    amount=Decimal("10.00"),
                    currency="EUR",
                    category="Shopping",
                ),
            )
    reply = json.dumps({"totalPotentialSavings": 5, "topCategory": "Shopping"})
    model = scripted_model(reply)
    scheduler = _scheduler(
        ExpenseSource(SessionLocal),
        InsightsService(model_client=model, credentials=credentials),
        cache=SqlInsightsCache(SessionLocal),
    )

    assert scheduler.tick() is True

    snapshot = scheduler.cached_snapshot()
    assert snapshot is not None
    assert snapshot.expense_count == 5
    assert snapshot.top_category == "Shopping"
    assert "5 transactions" in model.calls[0][0]
    assert scheduler.state == SchedulerState.CACHED
