from __future__ import annotations

import threading
from dataclasses import dataclass

from tqdm import tqdm

from .models import JobOutcome, JobResult


@dataclass(slots=True, frozen=True)
class ProgressSnapshot:
    total: int
    completed: int
    uploaded: int
    not_cleaned: int
    failed: int


class ProgressAggregator:
    """Counts finished jobs and optionally mirrors the count on a tqdm bar.

    ``on_job_complete`` may be called from any thread; updates are serialised.
    """

    def __init__(self, total: int, *, show_bar: bool = False) -> None:
        self.total = total
        self._lock = threading.Lock()
        self._completed = 0
        self._counts = {outcome: 0 for outcome in JobOutcome}
        self._bar = tqdm(total=total, unit="file", desc="Uploading videos", ncols=80) if show_bar else None

    def on_job_complete(self, result: JobResult) -> None:
        with self._lock:
            self._completed += 1
            self._counts[result.outcome] += 1
            if self._bar is not None:
                self._bar.update(1)
                self._bar.set_postfix(failed=self._counts[JobOutcome.FAILED], refresh=False)

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                total=self.total,
                completed=self._completed,
                uploaded=self._counts[JobOutcome.UPLOADED],
                not_cleaned=self._counts[JobOutcome.UPLOADED_NOT_CLEANED],
                failed=self._counts[JobOutcome.FAILED],
            )

    def render(self) -> str:
        snap = self.snapshot()
        return (
            f"{snap.completed}/{snap.total} processed: "
            f"{snap.uploaded} uploaded, {snap.not_cleaned} uploaded but not deleted, {snap.failed} failed"
        )

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
