"""
Background refresh scheduler: priority windows, batching, failure isolation
and the run-lock.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from agents.errors import PersistenceFailure
from db.database import get_db
from db.models import MarketTrendRecord, MarketUpdateLog
from services.market_data import MarketDataManager, build_snapshot
from services.update_scheduler import FAILED, SUCCESS, MarketUpdateService

# (industry, location, age in hours)
SEEDED = [
    ("coffee shop", "NYC", 7),        # HIGH, due
    ("coffee shop", "LA", 5),         # HIGH, not due
    ("education", "NYC", 23),         # MEDIUM, not due
    ("education", "Boston", 25),      # MEDIUM, due
    ("entertainment", "NYC", 100),    # LOW, not due
    ("entertainment", "Austin", 200), # LOW, due
]


@pytest.fixture
def manager(fake_aggregator, session_factory, test_settings, clock):
    return MarketDataManager(fake_aggregator, session_factory=session_factory,
                             settings=test_settings, clock=clock)


@pytest.fixture
def seeded(manager, market_data_factory, clock):
    for industry, location, hours in SEEDED:
        data = market_data_factory(industry, location)
        manager.save_snapshot(build_snapshot(data, clock.now - timedelta(hours=hours)))
    return manager


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def service(seeded, test_settings, sleeps):
    settings = test_settings.model_copy(update={"UPDATE_BATCH_SIZE": 2})
    return MarketUpdateService(
        seeded,
        settings=settings,
        sleep=sleeps.append,
        executor=ThreadPoolExecutor(max_workers=1),
    )


def _logs(session_factory):
    with get_db(session_factory) as db:
        return [
            (r.industry, r.location, r.status, r.retry_count, r.error_message)
            for r in db.query(MarketUpdateLog).order_by(MarketUpdateLog.id).all()
        ]


class TestUpdateQueue:
    def test_due_pairs_oldest_first(self, service):
        queue = service.get_update_queue()
        assert [(j.industry, j.location) for j in queue] == [
            ("entertainment", "Austin"),
            ("education", "Boston"),
            ("coffee shop", "NYC"),
        ]
        assert [j.priority for j in queue] == ["LOW", "MEDIUM", "HIGH"]

    def test_queue_limit(self, service):
        assert len(service.get_update_queue(limit=1)) == 1

    def test_nothing_due_right_after_refresh(self, service):
        service.run_scheduled_updates()
        assert service.get_update_queue() == []


class TestScheduledRun:
    def test_runs_in_batches_with_pause(self, service, fake_aggregator, sleeps):
        report = service.run_scheduled_updates()
        assert report.processed == 3
        assert report.succeeded == 3
        assert report.failed == 0
        assert sleeps == [30]
        assert sorted(fake_aggregator.calls) == [
            ("coffee shop", "NYC"), ("education", "Boston"), ("entertainment", "Austin"),
        ]

    def test_failure_is_isolated_and_logged(self, service, fake_aggregator, session_factory):
        fake_aggregator.synthetic_for.add("education")
        report = service.run_scheduled_updates()
        assert report.succeeded == 2
        assert report.failed == 1
        assert report.failures[0]["industry"] == "education"

        failed = [log for log in _logs(session_factory) if log[2] == FAILED]
        assert len(failed) == 1
        industry, location, _, retry_count, message = failed[0]
        assert (industry, location, retry_count) == ("education", "Boston", 1)
        assert message.startswith("Failed after 1 attempts: ")

    def test_successful_jobs_are_logged(self, service, session_factory):
        service.run_scheduled_updates()
        statuses = [log[2] for log in _logs(session_factory)]
        assert statuses == [SUCCESS] * 3

    def test_overlapping_run_is_skipped(self, service, fake_aggregator):
        service._run_lock.acquire()
        try:
            report = service.run_scheduled_updates()
            forced = service.force_update_all()
        finally:
            service._run_lock.release()
        assert report.skipped and forced.skipped
        assert report.processed == 0
        assert fake_aggregator.calls == []


class TestForceUpdate:
    def test_refreshes_every_tracked_pair(self, service, fake_aggregator, sleeps):
        report = service.force_update_all()
        assert report.processed == 6
        assert len(fake_aggregator.calls) == 6
        # three per batch
        assert sleeps == [60]

    def test_clears_cache_first(self, service):
        service.manager.get_market_data("coffee shop", "LA")
        assert service.manager.get_cached_industries() == ["coffee shop_LA"]
        service.force_update_all()
        # refreshed entries are cached again
        assert len(service.manager.get_cached_industries()) == 6

    def test_single_pair(self, service, session_factory):
        assert service.update_high_priority_industry("bakery", "Denver") is True
        assert _logs(session_factory)[-1][:3] == ("bakery", "Denver", SUCCESS)
        with get_db(session_factory) as db:
            assert db.query(MarketTrendRecord).filter_by(industry="bakery").count() == 1

    def test_global_pair_skips_competitor_search(self, service, fake_aggregator):
        assert service.update_high_priority_industry("bakery", None) is True
        assert fake_aggregator.calls[-1] == ("bakery", "global")
        assert fake_aggregator.options[-1].include_competitors is False

    def test_single_pair_failure(self, service, fake_aggregator):
        fake_aggregator.synthetic_for.add("bakery")
        assert service.update_high_priority_industry("bakery", None) is False


class TestUpdateStats:
    def test_counts_and_average_age(self, service):
        stats = service.get_update_stats()
        assert stats == {
            "total_industries": 6,
            "recent_updates": 0,
            "failed_updates": 0,
            "avg_update_age_hours": 60.0,
        }

    def test_counts_after_run(self, service, fake_aggregator):
        fake_aggregator.synthetic_for.add("education")
        service.run_scheduled_updates()
        stats = service.get_update_stats()
        assert stats["recent_updates"] == 2
        assert stats["failed_updates"] == 1

    def test_unreadable_store_raises_persistence_failure(self, manager):
        def broken_session():
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        service = MarketUpdateService(manager, session_factory=broken_session, sleep=lambda s: None)
        with pytest.raises(PersistenceFailure, match="database is locked"):
            service.get_update_stats()
