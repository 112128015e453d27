from pathlib import Path
import threading
import unittest

from clipferry.models import Job, JobOutcome, JobResult
from clipferry.progress import ProgressAggregator


def _result(outcome: JobOutcome) -> JobResult:
    return JobResult(job=Job(file_path=Path("/v/a_b.mp4"), model_name="a", recording_label="b"), outcome=outcome)


class ProgressAggregatorTest(unittest.TestCase):
    def test_counts_outcomes(self) -> None:
        progress = ProgressAggregator(3)
        progress.on_job_complete(_result(JobOutcome.UPLOADED))
        progress.on_job_complete(_result(JobOutcome.FAILED))
        progress.on_job_complete(_result(JobOutcome.UPLOADED_NOT_CLEANED))

        snap = progress.snapshot()
        self.assertEqual((snap.completed, snap.total), (3, 3))
        self.assertEqual((snap.uploaded, snap.not_cleaned, snap.failed), (1, 1, 1))
        self.assertEqual(
            progress.render(),
            "3/3 processed: 1 uploaded, 1 uploaded but not deleted, 1 failed",
        )

    def test_concurrent_updates_are_not_lost(self) -> None:
        progress = ProgressAggregator(800)

        def worker() -> None:
            for _ in range(100):
                progress.on_job_complete(_result(JobOutcome.UPLOADED))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(progress.completed, 800)
        self.assertEqual(progress.snapshot().uploaded, 800)

    def test_bar_rendering(self) -> None:
        progress = ProgressAggregator(1, show_bar=True)
        progress.on_job_complete(_result(JobOutcome.UPLOADED))
        progress.close()
        self.assertEqual(progress.completed, 1)


if __name__ == "__main__":
    unittest.main()
