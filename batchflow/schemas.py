from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
import json


RunParameters = dict[str, str | int | float]


def utc_now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def parameters_key(parameters: RunParameters) -> str:
    # Canonical form identifies a parameter set independent of insertion order.
    return json.dumps(parameters, sort_keys=True, separators=(",", ":"))


class JobStatus(StrEnum):
    STARTING = "STARTING"
    STARTED = "STARTED"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.STOPPED)


class StepStatus(StrEnum):
    READY = "READY"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


@dataclass
class StepExecution:
    step_name: str
    job_execution_id: int
    id: int | None = None
    status: StepStatus = StepStatus.READY
    read_count: int = 0
    write_count: int = 0
    skip_count: int = 0
    commit_count: int = 0
    rollback_count: int = 0
    started_at: datetime | None = None
    ended_at: datetime | None = None
    exit_description: str | None = None
    failure_exceptions: list[Exception] = field(default_factory=list)


@dataclass
class JobExecution:
    job_name: str
    parameters: RunParameters
    id: int | None = None
    status: JobStatus = JobStatus.STARTING
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    exit_description: str | None = None
    step_executions: list[StepExecution] = field(default_factory=list)
    failure_exceptions: list[Exception] = field(default_factory=list)
    stop_requested: bool = False

    @property
    def read_count(self) -> int:
        return sum(step.read_count for step in self.step_executions)

    @property
    def write_count(self) -> int:
        return sum(step.write_count for step in self.step_executions)

    @property
    def skip_count(self) -> int:
        return sum(step.skip_count for step in self.step_executions)
