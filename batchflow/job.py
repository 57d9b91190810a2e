from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from batchflow.errors import ConfigurationError
from batchflow.schemas import JobExecution, RunParameters
from batchflow.step import Step


class JobExecutionListener:
    """Lifecycle hooks called synchronously around a job run. Override either."""

    def before_job(self, job_execution: JobExecution) -> None:
        pass

    def after_job(self, job_execution: JobExecution) -> None:
        pass


class CallbackListener(JobExecutionListener):
    def __init__(
        self,
        before_job: Callable[[JobExecution], None] | None = None,
        after_job: Callable[[JobExecution], None] | None = None,
    ) -> None:
        self._before_job = before_job
        self._after_job = after_job

    def before_job(self, job_execution: JobExecution) -> None:
        if self._before_job is not None:
            self._before_job(job_execution)

    def after_job(self, job_execution: JobExecution) -> None:
        if self._after_job is not None:
            self._after_job(job_execution)


class RunIdIncrementer:
    """Derives fresh parameters by bumping ``key`` from the previous run's value."""

    def __init__(self, key: str = "run.id") -> None:
        self.key = key

    def get_next(self, previous: RunParameters | None) -> RunParameters:
        parameters = dict(previous or {})
        last = parameters.get(self.key, 0)
        try:
            next_id = int(last) + 1
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("run id parameter is not an integer", key=self.key, value=last) from exc
        parameters[self.key] = next_id
        return parameters


@dataclass
class Job:
    name: str
    steps: Sequence[Step]
    listeners: list[JobExecutionListener] = field(default_factory=list)
    incrementer: RunIdIncrementer | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("a job needs a name")
        if not self.steps:
            raise ConfigurationError("a job needs at least one step", job_name=self.name)
        names = [step.name for step in self.steps]
        if len(set(names)) != len(names):
            raise ConfigurationError("step names must be unique within a job", job_name=self.name, steps=names)
        self.steps = tuple(self.steps)
