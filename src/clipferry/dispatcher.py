from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .app_logging import log_with_fields
from .collection_cache import CollectionCache
from .config import AppConfig
from .models import Job, JobOutcome, JobResult
from .pipeline import JobPipeline
from .pool import WorkerPool
from .progress import ProgressAggregator
from .remote import RemoteClient
from .retry import RetryPolicy
from .sources import build_jobs, delete_local_file


@dataclass(slots=True)
class RunSummary:
    results: list[JobResult]
    collections: dict[str, str]
    interrupted: bool
    elapsed_seconds: float

    def count(self, outcome: JobOutcome) -> int:
        return sum(1 for result in self.results if result.outcome is outcome)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> list[JobResult]:
        return [result for result in self.results if result.outcome is JobOutcome.FAILED]


class Dispatcher:
    def __init__(
        self,
        config: AppConfig,
        remote: RemoteClient,
        logger: logging.Logger,
        *,
        delete_file: Callable[[Path], None] = delete_local_file,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config
        self.remote = remote
        self.logger = logger
        self.collections = CollectionCache()
        self.pool = WorkerPool(config.pool.max_workers, logger)
        self.policy = RetryPolicy(
            max_attempts=config.retry.max_attempts,
            is_retryable=remote.is_retryable,
            backoff_seconds=config.retry.backoff_seconds,
        )
        self.pipeline = JobPipeline(
            remote,
            self.collections,
            self.policy,
            logger,
            cancel_event=self.pool.cancel_event,
            delete_file=delete_file,
            sleep=sleep,
        )

    def scan(self) -> list[Job]:
        source = self.config.source
        return build_jobs(source.directory, source.extension, source.delimiter)

    def run(self, *, show_progress: bool = False) -> RunSummary:
        started = time.monotonic()
        jobs = self.scan()
        log_with_fields(
            self.logger,
            logging.INFO,
            "run_started",
            directory=str(self.config.source.directory),
            jobs=len(jobs),
            max_workers=self.pool.capacity,
        )

        progress = ProgressAggregator(len(jobs), show_bar=show_progress)
        try:
            results = self.pool.run(jobs, self.pipeline.run_job, progress.on_job_complete)
        finally:
            progress.close()

        summary = RunSummary(
            results=results,
            collections=self.collections.snapshot(),
            interrupted=self.pool.cancelled,
            elapsed_seconds=time.monotonic() - started,
        )
        log_with_fields(
            self.logger,
            logging.INFO,
            "run_finished",
            total=summary.total,
            uploaded=summary.count(JobOutcome.UPLOADED),
            uploaded_not_cleaned=summary.count(JobOutcome.UPLOADED_NOT_CLEANED),
            failed=summary.count(JobOutcome.FAILED),
            skipped=summary.count(JobOutcome.SKIPPED),
            collections=len(summary.collections),
            interrupted=summary.interrupted,
            elapsed_seconds=round(summary.elapsed_seconds, 3),
        )
        return summary
