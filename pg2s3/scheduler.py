# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Scheduled backups.

Each tick runs a backup followed by a scheduled prune. A failed tick is
logged and the next tick runs as usual. Ticks never overlap, and an
interrupt stops the schedule between ticks rather than in the middle of
one.
"""

import asyncio
import signal

import structlog

from pg2s3.catalog import PrunePolicy
from pg2s3.core import BackupOrchestrator
from pg2s3.systemd import notify_ready

logger = structlog.get_logger()

JOB_ID = "pg2s3_scheduled"


async def run_scheduled_tick(orchestrator: BackupOrchestrator) -> bool:
    """
    Run one backup + prune cycle.

    The prune is skipped when the backup fails. Errors are logged,
    never raised, so the schedule keeps running.

    Returns:
        True if both steps succeeded
    """
    logger.info("scheduled_run_starting")
    try:
        backup = await orchestrator.backup()
        prune = await orchestrator.prune(PrunePolicy.SCHEDULED)
    except Exception as e:
        logger.error("scheduled_run_failed", error=str(e), error_type=type(e).__name__)
        return False

    logger.info(
        "scheduled_run_completed",
        name=backup.name,
        deleted=len(prune.deleted_keys),
    )
    return True


class BackupScheduler:
    """
    Cron-driven backup loop on top of APScheduler.

    Args:
        orchestrator: Orchestrator to run on every tick
        schedule: 5-field cron expression, evaluated in UTC
    """

    def __init__(self, orchestrator: BackupOrchestrator, schedule: str):
        self.orchestrator = orchestrator
        self.schedule = schedule
        self.scheduler = None
        self._running = asyncio.Lock()

    async def tick(self) -> bool:
        async with self._running:
            return await run_scheduled_tick(self.orchestrator)

    def start(self) -> None:
        """Start the scheduler. Must be called from a running event loop."""
        from apscheduler.schedulers.asyncio import AsyncIOScheduler
        from apscheduler.triggers.cron import CronTrigger

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.scheduler.add_job(
            self.tick,
            trigger=CronTrigger.from_crontab(self.schedule, timezone="UTC"),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()

        # No-op unless running as a systemd notify service
        notify_ready()

        logger.info(
            "scheduler_started",
            schedule=self.schedule,
            next_run=self.scheduler.get_job(JOB_ID).next_run_time.isoformat(),
        )

    async def stop(self) -> None:
        """Stop scheduling new ticks and wait for a running tick to finish."""
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        async with self._running:
            pass
        logger.info("scheduler_stopped")

    async def run_until_stopped(self, stop_event: asyncio.Event | None = None) -> None:
        """
        Run until SIGINT/SIGTERM (or until stop_event is set).
        """
        if stop_event is None:
            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop_event.set)

        self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()
