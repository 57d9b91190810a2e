import json

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from batchflow.db_models import JobExecutionRow, StepExecutionRow
from batchflow.schemas import JobExecution, JobStatus, RunParameters, StepExecution, StepStatus, parameters_key


class JobRepository:
    """Persists job and step executions so runs stay auditable across launches."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def save_job_execution(self, execution: JobExecution) -> JobExecution:
        row = JobExecutionRow(
            job_name=execution.job_name,
            parameters_key=parameters_key(execution.parameters),
            parameters=json.dumps(execution.parameters, sort_keys=True),
            status=execution.status.value,
            created_at=execution.created_at,
            started_at=execution.started_at,
            ended_at=execution.ended_at,
            exit_description=execution.exit_description,
        )
        with self.session_factory() as db:
            db.add(row)
            db.commit()
            execution.id = row.id
        return execution

    def update_job_execution(self, execution: JobExecution) -> None:
        with self.session_factory() as db:
            row = self._require_job_row(db, execution)
            row.status = execution.status.value
            row.started_at = execution.started_at
            row.ended_at = execution.ended_at
            row.exit_description = execution.exit_description
            db.commit()

    def save_step_execution(self, step: StepExecution) -> StepExecution:
        row = StepExecutionRow(job_execution_id=step.job_execution_id, step_name=step.step_name)
        _copy_step_state(step, row)
        with self.session_factory() as db:
            db.add(row)
            db.commit()
            step.id = row.id
        return step

    def update_step_execution(self, step: StepExecution) -> None:
        if step.id is None:
            raise ValueError(f"step execution '{step.step_name}' has not been saved")
        with self.session_factory() as db:
            row = db.get(StepExecutionRow, step.id)
            if row is None:
                raise LookupError(f"step execution {step.id} not found")
            _copy_step_state(step, row)
            db.commit()

    def find_latest_by_parameters(self, job_name: str, parameters: RunParameters) -> JobExecution | None:
        stmt = (
            self._job_query()
            .where(
                JobExecutionRow.job_name == job_name,
                JobExecutionRow.parameters_key == parameters_key(parameters),
            )
            .order_by(JobExecutionRow.id.desc())
            .limit(1)
        )
        return self._first(stmt)

    def get_last_job_execution(self, job_name: str) -> JobExecution | None:
        stmt = self._job_query().where(JobExecutionRow.job_name == job_name).order_by(JobExecutionRow.id.desc()).limit(1)
        return self._first(stmt)

    def get_job_execution(self, execution_id: int) -> JobExecution | None:
        return self._first(self._job_query().where(JobExecutionRow.id == execution_id))

    def list_job_executions(self, job_name: str | None = None, *, limit: int = 20) -> list[JobExecution]:
        stmt = self._job_query().order_by(JobExecutionRow.id.desc()).limit(limit)
        if job_name is not None:
            stmt = stmt.where(JobExecutionRow.job_name == job_name)
        with self.session_factory() as db:
            return [_job_from_row(row) for row in db.execute(stmt).scalars().all()]

    def _job_query(self):
        return select(JobExecutionRow).options(selectinload(JobExecutionRow.steps))

    def _first(self, stmt) -> JobExecution | None:
        with self.session_factory() as db:
            row = db.execute(stmt).scalars().first()
            return _job_from_row(row) if row is not None else None

    def _require_job_row(self, db: Session, execution: JobExecution) -> JobExecutionRow:
        if execution.id is None:
            raise ValueError(f"job execution for '{execution.job_name}' has not been saved")
        row = db.get(JobExecutionRow, execution.id)
        if row is None:
            raise LookupError(f"job execution {execution.id} not found")
        return row


def _copy_step_state(step: StepExecution, row: StepExecutionRow) -> None:
    row.status = step.status.value
    row.read_count = step.read_count
    row.write_count = step.write_count
    row.skip_count = step.skip_count
    row.commit_count = step.commit_count
    row.rollback_count = step.rollback_count
    row.started_at = step.started_at
    row.ended_at = step.ended_at
    row.exit_description = step.exit_description


def _step_from_row(row: StepExecutionRow) -> StepExecution:
    return StepExecution(
        id=row.id,
        step_name=row.step_name,
        job_execution_id=row.job_execution_id,
        status=StepStatus(row.status),
        read_count=row.read_count,
        write_count=row.write_count,
        skip_count=row.skip_count,
        commit_count=row.commit_count,
        rollback_count=row.rollback_count,
        started_at=row.started_at,
        ended_at=row.ended_at,
        exit_description=row.exit_description,
    )


def _job_from_row(row: JobExecutionRow) -> JobExecution:
    return JobExecution(
        id=row.id,
        job_name=row.job_name,
        parameters=json.loads(row.parameters),
        status=JobStatus(row.status),
        created_at=row.created_at,
        started_at=row.started_at,
        ended_at=row.ended_at,
        exit_description=row.exit_description,
        step_executions=[_step_from_row(step) for step in row.steps],
    )
