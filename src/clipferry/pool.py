from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor

from .app_logging import LOGGER_NAME, log_with_fields
from .errors import ErrorKind
from .models import ErrorInfo, Job, JobOutcome, JobResult, JobState


class WorkerPool:
    """Runs jobs on at most ``capacity`` threads, starting the next queued job
    each time a running one finishes.

    Scheduling happens on the calling thread: it launches the first
    ``min(capacity, len(jobs))`` jobs, then blocks on a completion queue and
    launches exactly one replacement per finished job. ``run`` returns when
    the queue is consumed (or the pool was cancelled) and ``in_flight`` is
    back to zero. Results come back in queue order.
    """

    def __init__(
        self,
        capacity: int,
        logger: logging.Logger | None = None,
        *,
        on_launch: Callable[[Job, int], None] | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("pool capacity must be >= 1")
        self.capacity = capacity
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.on_launch = on_launch
        self.in_flight = 0
        self.max_in_flight = 0
        self.cursor = 0
        self._cancelled = threading.Event()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancelled

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop launching queued jobs. Jobs already running finish normally."""
        self._cancelled.set()

    def run(
        self,
        jobs: Sequence[Job],
        runner: Callable[[Job], JobResult],
        on_complete: Callable[[JobResult], None] | None = None,
    ) -> list[JobResult]:
        self.in_flight = 0
        self.max_in_flight = 0
        self.cursor = 0
        results: dict[int, JobResult] = {}
        if not jobs:
            return []

        completions: queue.Queue[tuple[int, Future[JobResult]]] = queue.Queue()
        executor = ThreadPoolExecutor(max_workers=self.capacity, thread_name_prefix="clipferry-worker")

        def launch_next() -> None:
            if self._cancelled.is_set() or self.cursor >= len(jobs):
                return
            index = self.cursor
            job = jobs[index]
            self.cursor += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            log_with_fields(self.logger, logging.INFO, "job_started", job=job.name, in_flight=self.in_flight)
            if self.on_launch is not None:
                self.on_launch(job, self.in_flight)
            future = executor.submit(runner, job)
            future.add_done_callback(lambda fut: completions.put((index, fut)))

        try:
            for _ in range(min(self.capacity, len(jobs))):
                launch_next()
            while self.in_flight > 0:
                try:
                    index, future = completions.get()
                except KeyboardInterrupt:
                    log_with_fields(
                        self.logger,
                        logging.WARNING,
                        "run_interrupted",
                        in_flight=self.in_flight,
                        queued=len(jobs) - self.cursor,
                    )
                    self.cancel()
                    continue
                self.in_flight -= 1
                result = self._collect(jobs[index], future)
                results[index] = result
                if on_complete is not None:
                    self._notify(on_complete, result)
                launch_next()
        finally:
            executor.shutdown(wait=True)

        return [
            results.get(index) or JobResult(job=job, outcome=JobOutcome.SKIPPED)
            for index, job in enumerate(jobs)
        ]

    def _collect(self, job: Job, future: Future[JobResult]) -> JobResult:
        try:
            return future.result()
        except BaseException as exc:
            return self._fault_result(job, exc)

    def _notify(self, on_complete: Callable[[JobResult], None], result: JobResult) -> None:
        try:
            on_complete(result)
        except Exception as exc:
            log_with_fields(
                self.logger,
                logging.ERROR,
                "completion_callback_failed",
                job=result.job.name,
                error=str(exc),
            )

    def _fault_result(self, job: Job, exc: BaseException) -> JobResult:
        message = f"{exc.__class__.__name__}: {exc}"
        if job.state is JobState.SUCCEEDED:
            log_with_fields(self.logger, logging.WARNING, "worker_fault_after_upload", job=job.name, error=message)
            return JobResult(job=job, outcome=JobOutcome.UPLOADED_NOT_CLEANED, warning=f"fault after upload: {message}")
        if job.state is JobState.PENDING:
            job.transition(JobState.RUNNING)
        if job.state is JobState.RUNNING:
            job.transition(JobState.FAILED)
        log_with_fields(self.logger, logging.ERROR, "worker_fault", job=job.name, error=message)
        return JobResult(
            job=job,
            outcome=JobOutcome.FAILED,
            error=ErrorInfo(kind=ErrorKind.WORKER_FAULT, message=message),
        )
