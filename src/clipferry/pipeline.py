from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from .app_logging import LOGGER_NAME, log_with_fields
from .collection_cache import CollectionCache
from .errors import CancelledError, MalformedInputError, classify
from .models import CollectionRef, ErrorInfo, Job, JobOutcome, JobResult, JobState
from .remote import RemoteClient
from .retry import RetryPolicy, StepExecutor
from .sources import delete_local_file

STEP_COLLECTION = "resolve_collection"
STEP_CREATE_VIDEO = "create_video"
STEP_UPLOAD = "upload"
STEP_CLEANUP = "cleanup"


class _StepFailed(Exception):
    def __init__(self, step: str, error: BaseException) -> None:
        super().__init__(str(error))
        self.step = step
        self.error = error


class JobPipeline:
    """Runs one job's steps in order: collection, video record, upload, cleanup.

    Every error is turned into a failed ``JobResult``; ``run_job`` only raises
    for programming errors such as an invalid state transition.
    """

    def __init__(
        self,
        remote: RemoteClient,
        collections: CollectionCache,
        policy: RetryPolicy,
        logger: logging.Logger | None = None,
        *,
        cancel_event: threading.Event | None = None,
        delete_file: Callable[[Path], None] = delete_local_file,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.remote = remote
        self.collections = collections
        self.policy = policy
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.cancel_event = cancel_event
        self.delete_file = delete_file
        self.executor = StepExecutor(policy, self.logger, sleep=sleep, cancel_event=cancel_event)

    def _check_cancelled(self, step: str) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise _StepFailed(step, CancelledError(f"run cancelled before {step}"))

    def _run_step(self, job: Job, step: str, operation: Callable[[], object], attempts: dict[str, int]) -> object:
        self._check_cancelled(step)
        result = self.executor.execute(step, operation, job=job.name)
        attempts[step] = result.attempts
        if not result.ok:
            raise _StepFailed(step, result.error)
        return result.value

    def _resolve_collection(self, job: Job, attempts: dict[str, int]) -> CollectionRef:
        name = job.model_name
        if name is None:
            raise _StepFailed(STEP_COLLECTION, MalformedInputError(f"no collection name for {job.name}"))

        def load() -> CollectionRef:
            return self._run_step(
                job,
                STEP_COLLECTION,
                lambda: self.remote.resolve_or_create_collection(name),
                attempts,
            )

        self._check_cancelled(STEP_COLLECTION)
        attempts.setdefault(STEP_COLLECTION, 0)
        try:
            return self.collections.get_or_create(name, load)
        except _StepFailed:
            raise
        except Exception as exc:
            raise _StepFailed(STEP_COLLECTION, exc) from exc

    def run_job(self, job: Job) -> JobResult:
        job.transition(JobState.RUNNING)
        attempts: dict[str, int] = {}
        collection_id: str | None = None
        video_id: str | None = None
        try:
            if job.parse_error is not None:
                raise _StepFailed("parse", MalformedInputError(job.parse_error))

            collection = self._resolve_collection(job, attempts)
            collection_id = collection.remote_id

            video_id = str(
                self._run_step(
                    job,
                    STEP_CREATE_VIDEO,
                    lambda: self.remote.create_video(collection.remote_id, job.title),
                    attempts,
                )
            )
            uploaded_id = video_id
            self._run_step(
                job,
                STEP_UPLOAD,
                lambda: self.remote.upload_video(uploaded_id, job.file_path),
                attempts,
            )
        except _StepFailed as failure:
            job.transition(JobState.FAILED)
            error = ErrorInfo(kind=classify(failure.error), message=str(failure.error), step=failure.step)
            log_with_fields(
                self.logger,
                logging.ERROR,
                "job_failed",
                job=job.name,
                step=failure.step,
                kind=error.kind.value,
                error=error.message,
            )
            return JobResult(
                job=job,
                outcome=JobOutcome.FAILED,
                error=error,
                attempts=attempts,
                collection_id=collection_id,
                video_id=video_id,
            )

        job.transition(JobState.SUCCEEDED)
        warning = self._cleanup(job)
        outcome = JobOutcome.UPLOADED if warning is None else JobOutcome.UPLOADED_NOT_CLEANED
        log_with_fields(
            self.logger,
            logging.INFO,
            "job_uploaded",
            job=job.name,
            collection=job.model_name,
            video_id=video_id,
            cleaned_up=warning is None,
        )
        return JobResult(
            job=job,
            outcome=outcome,
            attempts=attempts,
            collection_id=collection_id,
            video_id=video_id,
            warning=warning,
        )

    def _cleanup(self, job: Job) -> str | None:
        try:
            self.delete_file(job.file_path)
        except Exception as exc:
            warning = f"uploaded but could not delete {job.file_path}: {exc}"
            log_with_fields(self.logger, logging.WARNING, "cleanup_failed", job=job.name, error=str(exc))
            return warning
        return None
