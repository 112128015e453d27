from __future__ import annotations

from pathlib import Path
from tempfile import TemporaryDirectory
import logging
import threading
import unittest

from fakes import FakeRemote, no_sleep

from clipferry.collection_cache import CollectionCache
from clipferry.errors import ErrorKind, FatalRemoteError, MalformedResponseError, TransientRemoteError
from clipferry.models import JobOutcome, JobState
from clipferry.pipeline import STEP_COLLECTION, STEP_CREATE_VIDEO, STEP_UPLOAD, JobPipeline
from clipferry.retry import RetryPolicy
from clipferry.sources import build_job


class JobPipelineTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = TemporaryDirectory()
        self.root = Path(self._temp.name)
        self.logger = logging.getLogger("test_clipferry.pipeline")
        self.logger.handlers.clear()
        self.logger.addHandler(logging.NullHandler())
        self.logger.propagate = False
        self.remote = FakeRemote()
        self.cancel_event = threading.Event()
        self.pipeline = JobPipeline(
            self.remote,
            CollectionCache(),
            RetryPolicy(max_attempts=3, is_retryable=self.remote.is_retryable),
            self.logger,
            cancel_event=self.cancel_event,
            sleep=no_sleep,
        )

    def tearDown(self) -> None:
        self._temp.cleanup()

    def _video(self, name: str, data: bytes = b"payload") -> Path:
        path = self.root / name
        path.write_bytes(data)
        return path

    def test_steps_run_in_order_and_file_is_deleted(self) -> None:
        path = self._video("anna_2024-05-01.mp4")
        result = self.pipeline.run_job(build_job(path))

        self.assertEqual(result.outcome, JobOutcome.UPLOADED)
        self.assertEqual(result.state, JobState.SUCCEEDED)
        self.assertEqual(
            [op for op, _ in self.remote.calls],
            ["collection", "create_video", "upload"],
        )
        self.assertEqual(self.remote.calls_for("create_video"), ["anna 2024-05-01"])
        assert result.video_id is not None
        self.assertEqual(self.remote.videos[result.video_id], (result.collection_id, "anna 2024-05-01"))
        self.assertEqual(self.remote.uploaded[result.video_id], b"payload")
        self.assertFalse(path.exists())
        self.assertEqual(result.attempts, {STEP_COLLECTION: 1, STEP_CREATE_VIDEO: 1, STEP_UPLOAD: 1})

    def test_upload_retried_twice_then_succeeds(self) -> None:
        path = self._video("anna_2024.mp4")
        self.remote.failures["upload"] = [TransientRemoteError("HTTP 500"), TransientRemoteError("HTTP 500")]

        result = self.pipeline.run_job(build_job(path))

        self.assertEqual(result.outcome, JobOutcome.UPLOADED)
        self.assertEqual(result.attempts[STEP_UPLOAD], 3)
        self.assertEqual(result.attempts[STEP_CREATE_VIDEO], 1)
        self.assertEqual(len(self.remote.calls_for("create_video")), 1)
        self.assertEqual(len(self.remote.videos), 1)

    def test_exhausted_retries_fail_job_and_keep_file(self) -> None:
        path = self._video("anna_2024.mp4")
        self.remote.failures["create_video"] = [TransientRemoteError(f"HTTP 500 #{i}") for i in range(3)]

        result = self.pipeline.run_job(build_job(path))

        self.assertEqual(result.outcome, JobOutcome.FAILED)
        self.assertEqual(result.state, JobState.FAILED)
        assert result.error is not None
        self.assertEqual(result.error.kind, ErrorKind.TRANSIENT_REMOTE)
        self.assertEqual(result.error.step, STEP_CREATE_VIDEO)
        self.assertEqual(result.attempts[STEP_CREATE_VIDEO], 3)
        self.assertEqual(self.remote.calls_for("upload"), [])
        self.assertTrue(path.exists())

    def test_fatal_error_is_not_retried(self) -> None:
        path = self._video("anna_2024.mp4")
        self.remote.failures["collection"] = [FatalRemoteError("HTTP 401", status_code=401)]

        result = self.pipeline.run_job(build_job(path))

        assert result.error is not None
        self.assertEqual(result.error.kind, ErrorKind.FATAL_REMOTE)
        self.assertEqual(result.attempts[STEP_COLLECTION], 1)
        self.assertEqual([op for op, _ in self.remote.calls], ["collection"])
        self.assertTrue(path.exists())

    def test_malformed_response_is_fatal(self) -> None:
        path = self._video("anna_2024.mp4")
        self.remote.failures["create_video"] = [MalformedResponseError("create video: response has no guid")]

        result = self.pipeline.run_job(build_job(path))

        assert result.error is not None
        self.assertEqual(result.error.kind, ErrorKind.MALFORMED_RESPONSE)
        self.assertEqual(result.attempts[STEP_CREATE_VIDEO], 1)
        self.assertEqual(self.remote.calls_for("upload"), [])

    def test_malformed_file_name_fails_before_any_remote_call(self) -> None:
        path = self._video("anna2024.mp4")

        result = self.pipeline.run_job(build_job(path))

        self.assertEqual(result.outcome, JobOutcome.FAILED)
        assert result.error is not None
        self.assertEqual(result.error.kind, ErrorKind.MALFORMED_INPUT)
        self.assertEqual(result.attempts, {})
        self.assertEqual(self.remote.calls, [])
        self.assertTrue(path.exists())

    def test_unreadable_file_fails_as_local_io(self) -> None:
        path = self._video("anna_2024.mp4")
        job = build_job(path)
        path.unlink()

        result = self.pipeline.run_job(job)

        assert result.error is not None
        self.assertEqual(result.error.kind, ErrorKind.LOCAL_IO)
        self.assertEqual(result.error.step, STEP_UPLOAD)
        self.assertEqual(result.attempts[STEP_UPLOAD], 1)

    def test_cleanup_failure_is_partial_success(self) -> None:
        path = self._video("anna_2024.mp4")

        def refuse(_: Path) -> None:
            raise PermissionError("read-only directory")

        self.pipeline.delete_file = refuse
        result = self.pipeline.run_job(build_job(path))

        self.assertEqual(result.outcome, JobOutcome.UPLOADED_NOT_CLEANED)
        self.assertEqual(result.state, JobState.SUCCEEDED)
        self.assertTrue(result.succeeded)
        assert result.warning is not None
        self.assertIn("read-only directory", result.warning)
        self.assertTrue(path.exists())

    def test_unexpected_cleanup_error_keeps_upload_success(self) -> None:
        path = self._video("anna_2024.mp4")

        def trash_down(_: Path) -> None:
            raise RuntimeError("trash service down")

        self.pipeline.delete_file = trash_down
        result = self.pipeline.run_job(build_job(path))

        self.assertEqual(result.outcome, JobOutcome.UPLOADED_NOT_CLEANED)
        self.assertEqual(result.state, JobState.SUCCEEDED)
        self.assertIsNone(result.error)
        assert result.warning is not None
        self.assertIn("trash service down", result.warning)

    def test_cancelled_between_steps(self) -> None:
        path = self._video("anna_2024.mp4")
        self.cancel_event.set()

        result = self.pipeline.run_job(build_job(path))

        assert result.error is not None
        self.assertEqual(result.error.kind, ErrorKind.CANCELLED)
        self.assertEqual(self.remote.calls, [])

    def test_collection_is_reused_across_jobs(self) -> None:
        first = self.pipeline.run_job(build_job(self._video("anna_a.mp4")))
        second = self.pipeline.run_job(build_job(self._video("anna_b.mp4")))

        self.assertEqual(first.collection_id, second.collection_id)
        self.assertEqual(self.remote.calls_for("collection"), ["anna"])
        self.assertEqual(second.attempts[STEP_COLLECTION], 0)


if __name__ == "__main__":
    unittest.main()
