import logging

from batchflow.errors import ConfigurationError, DuplicateExecutionError, StepFailedError
from batchflow.job import Job
from batchflow.run_store import JobRepository
from batchflow.schemas import JobExecution, JobStatus, RunParameters, StepStatus, utc_now


logger = logging.getLogger(__name__)


class JobRunner:
    def __init__(self, repository: JobRepository, *, enforce_unique_instances: bool = False) -> None:
        self.repository = repository
        self.enforce_unique_instances = enforce_unique_instances

    def run(self, job: Job, parameters: RunParameters | None = None) -> JobExecution:
        parameters = dict(parameters or {})
        if self.enforce_unique_instances:
            previous = self.repository.find_latest_by_parameters(job.name, parameters)
            if previous is not None and previous.status == JobStatus.COMPLETED:
                raise DuplicateExecutionError(
                    "a completed execution already exists for these parameters",
                    job_name=job.name,
                    job_execution_id=previous.id,
                    parameters=parameters,
                )

        execution = JobExecution(job_name=job.name, parameters=parameters)
        self.repository.save_job_execution(execution)
        logger.info("job launched", extra={"job_name": job.name, "job_execution_id": execution.id, "parameters": parameters})

        try:
            self._notify_before(job, execution)
            execution.status = JobStatus.STARTED
            execution.started_at = utc_now()
            self.repository.update_job_execution(execution)
            self._run_steps(job, execution)
        except Exception as exc:
            # Steps record their own failure; anything else lands here.
            execution.status = JobStatus.FAILED
            execution.failure_exceptions.append(exc)
            execution.exit_description = str(exc)
            if not isinstance(exc, StepFailedError):
                logger.exception("job failed", extra={"job_name": job.name, "job_execution_id": execution.id})

        execution.ended_at = utc_now()
        self._notify_after(job, execution)
        self.repository.update_job_execution(execution)

        logger.info(
            "job finished",
            extra={
                "job_name": job.name,
                "job_execution_id": execution.id,
                "status": execution.status.value,
                "read_count": execution.read_count,
                "write_count": execution.write_count,
            },
        )
        return execution

    def run_next(self, job: Job, parameters: RunParameters | None = None) -> JobExecution:
        """Launch ``job`` with fresh parameters derived from its last execution."""
        if job.incrementer is None:
            raise ConfigurationError("job has no incrementer", job_name=job.name)

        last = self.repository.get_last_job_execution(job.name)
        next_parameters = job.incrementer.get_next(last.parameters if last is not None else None)
        if parameters:
            next_parameters.update(parameters)
        return self.run(job, next_parameters)

    def stop(self, execution: JobExecution) -> None:
        """Request a stop; the running step honours it at the next chunk boundary."""
        if execution.status.is_terminal:
            return
        execution.stop_requested = True
        execution.status = JobStatus.STOPPING
        if execution.id is not None:
            self.repository.update_job_execution(execution)
        logger.info("job stop requested", extra={"job_name": execution.job_name, "job_execution_id": execution.id})

    def _run_steps(self, job: Job, execution: JobExecution) -> None:
        for step in job.steps:
            if execution.stop_requested:
                execution.status = JobStatus.STOPPED
                execution.exit_description = f"stopped before step '{step.name}'"
                return

            step_execution = step.execute(execution, self.repository)
            if step_execution.status == StepStatus.STOPPED:
                execution.status = JobStatus.STOPPED
                execution.exit_description = f"stopped during step '{step.name}'"
                return

        execution.status = JobStatus.COMPLETED
        execution.exit_description = None

    def _notify_before(self, job: Job, execution: JobExecution) -> None:
        for listener in job.listeners:
            listener.before_job(execution)

    def _notify_after(self, job: Job, execution: JobExecution) -> None:
        for listener in job.listeners:
            try:
                listener.after_job(execution)
            except Exception as exc:
                # The outcome is already decided; keep it and record the listener failure.
                execution.failure_exceptions.append(exc)
                logger.exception(
                    "after_job listener failed",
                    extra={"job_name": job.name, "listener": type(listener).__name__},
                )
