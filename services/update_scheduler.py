"""
Market Update Scheduler
-----------------------
Background refresh of persisted market snapshots.

Queue: every stored (industry, geographic_scope) whose last_updated is older
than its priority window (HIGH 6h, MEDIUM 24h, LOW 7d), oldest first, at
most 50 per run. Jobs run in batches of 5 with a 30s pause between batches;
each job's outcome is isolated and written to market_update_log.

A run-lock keeps scheduled runs and force-refresh-all from overlapping; a
second caller returns immediately with `skipped=True`.
"""

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from agents.classifier import classify_industry, update_priority
from agents.errors import PersistenceFailure
from config.settings import Settings, settings as default_settings
from db.database import get_db
from db.models import MarketTrendRecord, MarketUpdateLog
from services.market_data import MarketDataManager

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
FAILED = "FAILED"


@dataclass
class UpdateJob:
    industry: str
    location: str
    priority: str
    last_updated: Optional[datetime] = None
    retry_count: int = 0


@dataclass
class UpdateRunReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: bool = False
    failures: List[Dict[str, str]] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "failures": self.failures,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def _chunks(items: List, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class MarketUpdateService:

    def __init__(
        self,
        manager: MarketDataManager,
        session_factory: Optional[sessionmaker] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], None] = time.sleep,
        executor: Optional[Executor] = None,
    ):
        self.manager = manager
        self.session_factory = session_factory or manager.session_factory
        self.settings = settings or manager.settings or default_settings
        self.clock = clock or manager.clock
        self.sleep = sleep
        self.executor = executor or ThreadPoolExecutor(
            max_workers=max(self.settings.UPDATE_BATCH_SIZE, self.settings.FORCE_BATCH_SIZE),
            thread_name_prefix="market-update",
        )
        self.intervals = {
            tier: timedelta(hours=hours)
            for tier, hours in self.settings.UPDATE_INTERVAL_HOURS.items()
        }
        self._run_lock = threading.Lock()

    # ── Queue ──

    @staticmethod
    def priority_for(industry: str) -> str:
        return update_priority(classify_industry(industry))

    def get_update_queue(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[UpdateJob]:
        now = now or self.clock()
        limit = limit or self.settings.UPDATE_QUEUE_LIMIT
        # nothing younger than the shortest window can be due
        cutoff = now - min(self.intervals.values())

        with get_db(self.session_factory) as db:
            rows = (
                db.query(MarketTrendRecord.industry,
                         MarketTrendRecord.geographic_scope,
                         MarketTrendRecord.last_updated)
                .filter(MarketTrendRecord.last_updated < cutoff)
                .order_by(MarketTrendRecord.last_updated.asc())
                .all()
            )

        jobs = []
        for industry, scope, last_updated in rows:
            priority = self.priority_for(industry)
            if now - last_updated >= self.intervals[priority]:
                jobs.append(UpdateJob(industry, scope, priority, last_updated))
            if len(jobs) >= limit:
                break
        return jobs

    def tracked_pairs(self, limit: int) -> List[UpdateJob]:
        with get_db(self.session_factory) as db:
            rows = (
                db.query(MarketTrendRecord.industry,
                         MarketTrendRecord.geographic_scope,
                         MarketTrendRecord.last_updated)
                .order_by(MarketTrendRecord.last_updated.asc())
                .limit(limit)
                .all()
            )
        return [UpdateJob(i, s, self.priority_for(i), lu) for i, s, lu in rows]

    # ── Jobs ──

    def _log_outcome(self, job: UpdateJob, status: str, duration_ms: int,
                     retry_count: int, error: Optional[str] = None) -> None:
        try:
            with get_db(self.session_factory) as db:
                db.add(MarketUpdateLog(
                    industry=job.industry,
                    location=job.location,
                    status=status,
                    timestamp=self.clock(),
                    retry_count=retry_count,
                    error_message=error,
                    duration_ms=duration_ms,
                ))
        except SQLAlchemyError as e:
            logger.error(f"Could not write update log for {job.industry}/{job.location}: {e}")

    def _run_job(self, job: UpdateJob) -> Optional[str]:
        """Refresh one pair; returns None on success or the error message."""
        start = time.monotonic()
        try:
            self.manager.force_refresh(job.industry, job.location)
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            attempts = job.retry_count + 1
            message = f"Failed after {attempts} attempts: {e}"
            logger.error(f"❌ Update failed for {job.industry} ({job.location}): {e}")
            self._log_outcome(job, FAILED, duration_ms, attempts, message)
            return message

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"✅ Updated {job.industry} ({job.location}) in {duration_ms}ms")
        self._log_outcome(job, SUCCESS, duration_ms, job.retry_count)
        return None

    def _process(self, jobs: List[UpdateJob], batch_size: int, pause: float) -> UpdateRunReport:
        report = UpdateRunReport(started_at=self.clock())
        batches = list(_chunks(jobs, batch_size))

        for index, batch in enumerate(batches, 1):
            logger.info(f"📦 Batch {index}/{len(batches)}: {len(batch)} jobs")
            futures = {self.executor.submit(self._run_job, job): job for job in batch}
            wait(futures)
            for future, job in futures.items():
                report.processed += 1
                error = future.result()
                if error is None:
                    report.succeeded += 1
                else:
                    report.failed += 1
                    report.failures.append({"industry": job.industry, "location": job.location, "error": error})

            if index < len(batches):
                self.sleep(pause)

        report.finished_at = self.clock()
        logger.info(
            f"Update run complete: {report.succeeded}/{report.processed} succeeded, "
            f"{report.failed} failed"
        )
        return report

    # ── Public operations ──

    def run_scheduled_updates(self) -> UpdateRunReport:
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Scheduled update already running, skipping")
            return UpdateRunReport(skipped=True, started_at=self.clock(), finished_at=self.clock())
        try:
            jobs = self.get_update_queue()
            logger.info(f"🔄 {len(jobs)} market snapshots due for refresh")
            return self._process(jobs, self.settings.UPDATE_BATCH_SIZE,
                                 self.settings.UPDATE_BATCH_PAUSE_SECONDS)
        finally:
            self._run_lock.release()

    def update_high_priority_industry(self, industry: str, location: str) -> bool:
        """Refresh one pair immediately, ignoring staleness."""
        job = UpdateJob(industry, self.manager.scope(location), "HIGH")
        return self._run_job(job) is None

    def force_update_all(self) -> UpdateRunReport:
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Update run in progress, force update skipped")
            return UpdateRunReport(skipped=True, started_at=self.clock(), finished_at=self.clock())
        try:
            self.manager.clear_cache()
            jobs = self.tracked_pairs(self.settings.FORCE_UPDATE_LIMIT)
            logger.info(f"🔁 Force-refreshing {len(jobs)} tracked pairs")
            return self._process(jobs, self.settings.FORCE_BATCH_SIZE,
                                 self.settings.FORCE_BATCH_PAUSE_SECONDS)
        finally:
            self._run_lock.release()

    def get_update_stats(self, now: Optional[datetime] = None) -> Dict:
        """Raises PersistenceFailure when the durable store cannot be read."""
        now = now or self.clock()
        since = now - timedelta(hours=24)
        try:
            with get_db(self.session_factory) as db:
                total = db.query(func.count(MarketTrendRecord.id)).scalar() or 0
                recent = (
                    db.query(func.count(MarketUpdateLog.id))
                    .filter(MarketUpdateLog.status == SUCCESS, MarketUpdateLog.timestamp >= since)
                    .scalar() or 0
                )
                failed = (
                    db.query(func.count(MarketUpdateLog.id))
                    .filter(MarketUpdateLog.status == FAILED, MarketUpdateLog.timestamp >= since)
                    .scalar() or 0
                )
                stamps = [row[0] for row in db.query(MarketTrendRecord.last_updated).all()]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"update stats unavailable: {e}") from e

        avg_age = (
            sum((now - s).total_seconds() for s in stamps) / len(stamps) / 3600
            if stamps else 0.0
        )
        return {
            "total_industries": total,
            "recent_updates": recent,
            "failed_updates": failed,
            "avg_update_age_hours": round(avg_age, 1),
        }
