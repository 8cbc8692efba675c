"""
Recovery for work abandoned mid-flight.

A worker that dies (process restart, deploy, crash) leaves its record in
processing. Recovery runs periodically, returns such records to pending so
they can be requested again, gives up on pairs that keep getting stuck, and
closes jobs that nothing is working on anymore.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from pydantic import BaseModel, Field

from folio.config import Settings, get_settings
from folio.core.models import JobStatus, TranslationStatus
from folio.core.utils import utc_now
from folio.integrations.sentry import capture_message
from folio.pipeline.store import JobStore, TranslationStore

if TYPE_CHECKING:
    from folio.pipeline.kickoff import JobKickoff

logger = logging.getLogger(__name__)

MAX_RETRIES_ERROR = "Max retries reached - translation abandoned"
ABANDONED_JOB_ERROR = "Job abandoned"


class RecoveryReport(BaseModel):
    reset: int = 0
    abandoned: int = 0
    jobs_closed: int = 0
    resumed_jobs: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class TranslationRecovery:
    """
    Usage:
        recovery = TranslationRecovery(store, jobs)
        report = await recovery.run()
    """

    def __init__(
        self,
        store: TranslationStore,
        jobs: JobStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
        kickoff: JobKickoff | None = None,
    ):
        self.store = store
        self.jobs = jobs
        self.settings = settings or get_settings()
        self.clock = clock
        self.kickoff = kickoff

    async def recover_records(self, report: RecoveryReport) -> dict[str, list[str]]:
        """Reset or abandon stuck records. Returns reset languages per unit."""
        cutoff = self.clock() - timedelta(minutes=self.settings.recovery_stuck_after_minutes)
        reset: dict[str, list[str]] = defaultdict(list)

        for record in await self.store.stuck_since(cutoff):
            try:
                if record.retry_count < self.settings.recovery_max_retries:
                    await self.store.reset(record.content_unit_id, record.language, count_retry=True)
                    reset[record.content_unit_id].append(record.language)
                    report.reset += 1
                    logger.warning(
                        "Reset stuck translation %s (retry %d/%d)",
                        record.key, record.retry_count + 1, self.settings.recovery_max_retries,
                    )
                else:
                    await self.store.fail(record, MAX_RETRIES_ERROR, kind="recovery")
                    report.abandoned += 1
                    logger.error("Abandoned %s after %d recoveries", record.key, record.retry_count)
            except Exception as e:
                logger.exception("Failed to recover %s", record.key)
                report.errors.append(f"{record.key}: {e}")

        return dict(reset)

    async def close_jobs(self, report: RecoveryReport) -> None:
        """Finish processing jobs that have nothing left in flight."""
        cutoff = self.clock() - timedelta(minutes=self.settings.recovery_abandoned_job_after_minutes)

        for job in await self.jobs.stale(cutoff):
            try:
                statuses = await self.jobs.child_statuses(job)
                if TranslationStatus.PROCESSING in statuses:
                    continue
                refreshed = await self.jobs.refresh(job.id)
                if refreshed is not None and refreshed.status not in (JobStatus.COMPLETED, JobStatus.FAILED):
                    await self.jobs.fail(job.id, ABANDONED_JOB_ERROR)
                report.jobs_closed += 1
                logger.warning("Closed abandoned job %s", job.id)
            except Exception as e:
                logger.exception("Failed to close job %s", job.id)
                report.errors.append(f"{job.id}: {e}")

    async def run(self, resume: bool = False) -> RecoveryReport:
        """
        One recovery pass.

        With `resume=True` and a kickoff configured, reset pairs are
        started again right away instead of waiting for the next request.
        """
        report = RecoveryReport()
        reset = await self.recover_records(report)
        await self.close_jobs(report)

        if resume and self.kickoff is not None:
            for unit_id, languages in reset.items():
                try:
                    ack = await self.kickoff.kickoff_unit(unit_id, languages)
                    if ack.job_id:
                        report.resumed_jobs.append(ack.job_id)
                except Exception as e:
                    logger.exception("Failed to resume %s", unit_id)
                    report.errors.append(f"{unit_id}: {e}")

        if report.abandoned or report.errors:
            capture_message(
                f"Translation recovery: {report.abandoned} abandoned, {len(report.errors)} error(s)",
                level="warning",
                **report.model_dump(),
            )
        logger.info(
            "Recovery: %d reset, %d abandoned, %d job(s) closed",
            report.reset, report.abandoned, report.jobs_closed,
        )
        return report
