"""Chunk-oriented step: read, transform and write records in commit-sized chunks.

Each chunk is handed to the sink in a single ``write`` call, which the sink
commits as one transaction. Step counters are persisted right after every
commit so the recorded state never runs ahead of committed data. On any
error the chunk in hand is discarded, the step is marked FAILED and a
``StepFailedError`` naming the step and record offset is raised to the runner.
"""

import logging
from typing import Any, Protocol

from batchflow.errors import ConfigurationError, SinkError, StepFailedError, TransformError
from batchflow.schemas import JobExecution, StepExecution, StepStatus, utc_now
from batchflow.sinks import RecordSink
from batchflow.sources import RecordSource
from batchflow.transform import SKIP, RecordTransformer, passthrough


logger = logging.getLogger(__name__)


class StepRepository(Protocol):
    def save_step_execution(self, step: StepExecution) -> StepExecution: ...

    def update_step_execution(self, step: StepExecution) -> None: ...


class Step(Protocol):
    name: str

    def execute(self, job_execution: JobExecution, repository: StepRepository) -> StepExecution: ...


class ChunkOrientedStep:
    def __init__(
        self,
        name: str,
        *,
        source: RecordSource,
        sink: RecordSink,
        chunk_size: int,
        transformer: RecordTransformer | None = None,
    ) -> None:
        if not name:
            raise ConfigurationError("a step needs a name")
        if source is None:
            raise ConfigurationError("a source is required", step_name=name)
        if sink is None:
            raise ConfigurationError("a sink is required", step_name=name)
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
            raise ConfigurationError("chunk size must be a positive integer", step_name=name, chunk_size=chunk_size)

        self.name = name
        self.source = source
        self.sink = sink
        self.chunk_size = chunk_size
        self.transformer = transformer or passthrough

    def execute(self, job_execution: JobExecution, repository: StepRepository) -> StepExecution:
        step_execution = StepExecution(step_name=self.name, job_execution_id=job_execution.id)
        job_execution.step_executions.append(step_execution)
        step_execution.status = StepStatus.RUNNING
        step_execution.started_at = utc_now()
        repository.save_step_execution(step_execution)
        logger.info("step started", extra={"step_name": self.name, "chunk_size": self.chunk_size})

        try:
            self._process(job_execution, step_execution, repository)
        except Exception as exc:
            failure = exc if isinstance(exc, StepFailedError) else StepFailedError(self.name, exc)
            step_execution.rollback_count += 1
            step_execution.failure_exceptions.append(failure)
            self._finish(step_execution, repository, StepStatus.FAILED, str(failure))
            logger.error(
                "step failed",
                extra={"step_name": self.name, "record_offset": failure.record_offset, "error": str(failure.cause)},
            )
            if failure is exc:
                raise
            raise failure from exc

        logger.info(
            "step finished",
            extra={
                "step_name": self.name,
                "status": step_execution.status.value,
                "read_count": step_execution.read_count,
                "write_count": step_execution.write_count,
                "skip_count": step_execution.skip_count,
                "commit_count": step_execution.commit_count,
            },
        )
        return step_execution

    def _process(self, job_execution: JobExecution, step_execution: StepExecution, repository: StepRepository) -> None:
        chunk: list[Any] = []
        chunk_start: int | None = None

        try:
            self.source.open()
        except Exception as exc:
            raise StepFailedError(self.name, exc) from exc

        try:
            while True:
                if not chunk and job_execution.stop_requested:
                    self._finish(step_execution, repository, StepStatus.STOPPED, "stop requested")
                    return

                offset = step_execution.read_count + 1
                try:
                    record = self.source.read()
                except Exception as exc:
                    raise StepFailedError(self.name, exc, record_offset=offset) from exc

                if record is None:
                    self._flush(chunk, chunk_start, step_execution, repository)
                    self._finish(step_execution, repository, StepStatus.COMPLETED, None)
                    return

                step_execution.read_count += 1
                item = self._transform(record, offset)
                if item is SKIP or item is None:
                    step_execution.skip_count += 1
                    continue

                if not chunk:
                    chunk_start = offset
                chunk.append(item)
                if len(chunk) >= self.chunk_size:
                    self._flush(chunk, chunk_start, step_execution, repository)
                    chunk = []
                    chunk_start = None
        finally:
            self.source.close()

    def _transform(self, record: Any, offset: int) -> Any:
        try:
            return self.transformer(record)
        except Exception as exc:
            error = exc if isinstance(exc, TransformError) else TransformError(str(exc), record_offset=offset)
            raise StepFailedError(self.name, error, record_offset=offset) from exc

    def _flush(
        self,
        chunk: list[Any],
        chunk_start: int | None,
        step_execution: StepExecution,
        repository: StepRepository,
    ) -> None:
        if not chunk:
            return

        try:
            self.sink.write(list(chunk))
        except Exception as exc:
            error = exc if isinstance(exc, SinkError) else SinkError(str(exc), sink=getattr(self.sink, "name", None))
            raise StepFailedError(self.name, error, record_offset=chunk_start) from exc

        step_execution.write_count += len(chunk)
        step_execution.commit_count += 1
        repository.update_step_execution(step_execution)

    def _finish(
        self,
        step_execution: StepExecution,
        repository: StepRepository,
        status: StepStatus,
        exit_description: str | None,
    ) -> None:
        step_execution.status = status
        step_execution.ended_at = utc_now()
        step_execution.exit_description = exit_description
        repository.update_step_execution(step_execution)
