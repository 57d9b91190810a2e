"""Fluent builders that assemble steps and jobs from plain objects."""

from collections.abc import Callable

from batchflow.errors import ConfigurationError
from batchflow.job import CallbackListener, Job, JobExecutionListener, RunIdIncrementer
from batchflow.schemas import JobExecution
from batchflow.sinks import RecordSink
from batchflow.sources import RecordSource
from batchflow.step import ChunkOrientedStep, Step
from batchflow.transform import RecordTransformer, compose


class StepBuilder:
    def __init__(self, name: str) -> None:
        self._name = name
        self._chunk_size: int | None = None
        self._source: RecordSource | None = None
        self._transformers: list[RecordTransformer] = []
        self._sink: RecordSink | None = None

    def chunk(self, size: int) -> "StepBuilder":
        self._chunk_size = size
        return self

    def reader(self, source: RecordSource) -> "StepBuilder":
        self._source = source
        return self

    def processor(self, transformer: RecordTransformer) -> "StepBuilder":
        # Repeated calls chain processors in registration order.
        self._transformers.append(transformer)
        return self

    def writer(self, sink: RecordSink) -> "StepBuilder":
        self._sink = sink
        return self

    def build(self) -> ChunkOrientedStep:
        if self._chunk_size is None:
            raise ConfigurationError("chunk size was not set", step_name=self._name)
        transformer = compose(*self._transformers) if self._transformers else None
        return ChunkOrientedStep(
            self._name,
            source=self._source,
            sink=self._sink,
            chunk_size=self._chunk_size,
            transformer=transformer,
        )


class JobBuilder:
    def __init__(self, name: str) -> None:
        self._name = name
        self._steps: list[Step] = []
        self._listeners: list[JobExecutionListener] = []
        self._incrementer: RunIdIncrementer | None = None

    def incrementer(self, incrementer: RunIdIncrementer) -> "JobBuilder":
        self._incrementer = incrementer
        return self

    def listener(
        self,
        listener: JobExecutionListener | None = None,
        *,
        before_job: Callable[[JobExecution], None] | None = None,
        after_job: Callable[[JobExecution], None] | None = None,
    ) -> "JobBuilder":
        if listener is None:
            if before_job is None and after_job is None:
                raise ConfigurationError("listener() needs a listener or a callback", job_name=self._name)
            listener = CallbackListener(before_job=before_job, after_job=after_job)
        self._listeners.append(listener)
        return self

    def flow(self, step: Step) -> "JobBuilder":
        if self._steps:
            raise ConfigurationError("flow() starts the step sequence; use next() to append", job_name=self._name)
        self._steps.append(step)
        return self

    def next(self, step: Step) -> "JobBuilder":
        if not self._steps:
            raise ConfigurationError("next() called before flow()", job_name=self._name)
        self._steps.append(step)
        return self

    def build(self) -> Job:
        return Job(
            name=self._name,
            steps=list(self._steps),
            listeners=list(self._listeners),
            incrementer=self._incrementer,
        )
