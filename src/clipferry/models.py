from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import ErrorKind


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobOutcome(str, Enum):
    UPLOADED = "uploaded"
    UPLOADED_NOT_CLEANED = "uploaded_not_cleaned"
    FAILED = "failed"
    SKIPPED = "skipped"


_TRANSITIONS = {
    JobState.PENDING: {JobState.RUNNING},
    JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED},
    JobState.SUCCEEDED: set(),
    JobState.FAILED: set(),
}


@dataclass(slots=True)
class ErrorInfo:
    kind: ErrorKind
    message: str
    step: str | None = None


@dataclass(slots=True)
class Job:
    file_path: Path
    model_name: str | None
    recording_label: str | None
    state: JobState = JobState.PENDING
    parse_error: str | None = None

    @property
    def name(self) -> str:
        return self.file_path.name

    @property
    def title(self) -> str:
        return f"{self.model_name} {self.recording_label}"

    def transition(self, new_state: JobState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"invalid job transition {self.state.value} -> {new_state.value} for {self.name}")
        self.state = new_state


@dataclass(slots=True)
class CollectionRef:
    name: str
    remote_id: str


@dataclass(slots=True)
class JobResult:
    job: Job
    outcome: JobOutcome
    error: ErrorInfo | None = None
    attempts: dict[str, int] = field(default_factory=dict)
    collection_id: str | None = None
    video_id: str | None = None
    warning: str | None = None

    @property
    def state(self) -> JobState:
        return self.job.state

    @property
    def succeeded(self) -> bool:
        return self.outcome in {JobOutcome.UPLOADED, JobOutcome.UPLOADED_NOT_CLEANED}
