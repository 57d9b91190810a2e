"""The people import job: CSV of first/last names into the ``people`` table."""

from dataclasses import dataclass
import logging
from pathlib import Path

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session, sessionmaker

from batchflow.builder import JobBuilder, StepBuilder
from batchflow.config import Settings
from batchflow.db_models import PersonRow
from batchflow.job import Job, JobExecutionListener, RunIdIncrementer
from batchflow.schemas import JobExecution, JobStatus
from batchflow.sinks import SqlBatchSink
from batchflow.sources import DelimitedFileSource


logger = logging.getLogger(__name__)

JOB_NAME = "importUserJob"
STEP_NAME = "step1"
INSERT_PEOPLE_SQL = "INSERT INTO people (first_name, last_name) VALUES (:first_name, :last_name)"


@dataclass(frozen=True)
class Person:
    first_name: str
    last_name: str


def uppercase_person(person: Person) -> Person:
    transformed = Person(first_name=person.first_name.upper(), last_name=person.last_name.upper())
    logger.debug("converting person", extra={"person_in": str(person), "person_out": str(transformed)})
    return transformed


def build_people_reader(input_file: str | Path) -> DelimitedFileSource:
    return DelimitedFileSource(
        input_file,
        names=("first_name", "last_name"),
        target_type=Person,
        name="personItemReader",
    )


def build_people_writer(engine: Engine) -> SqlBatchSink:
    return SqlBatchSink(engine, INSERT_PEOPLE_SQL, name="personItemWriter")


class JobCompletionNotificationListener(JobExecutionListener):
    """Logs the imported rows once the job completes."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def after_job(self, job_execution: JobExecution) -> None:
        if job_execution.status != JobStatus.COMPLETED:
            return

        logger.info("job finished, verifying results", extra={"job_execution_id": job_execution.id})
        for person in self.find_people():
            logger.info("found person in database", extra={"first_name": person.first_name, "last_name": person.last_name})

    def find_people(self) -> list[Person]:
        with self.session_factory() as db:
            rows = db.execute(select(PersonRow).order_by(PersonRow.id)).scalars().all()
            return [Person(first_name=row.first_name, last_name=row.last_name) for row in rows]


def build_import_user_job(
    settings: Settings,
    engine: Engine,
    session_factory: sessionmaker[Session],
    *,
    input_file: str | Path | None = None,
    chunk_size: int | None = None,
) -> Job:
    step = (
        StepBuilder(STEP_NAME)
        .chunk(chunk_size if chunk_size is not None else settings.chunk_size)
        .reader(build_people_reader(input_file or settings.input_file))
        .processor(uppercase_person)
        .writer(build_people_writer(engine))
        .build()
    )
    return (
        JobBuilder(JOB_NAME)
        .incrementer(RunIdIncrementer())
        .listener(JobCompletionNotificationListener(session_factory))
        .flow(step)
        .build()
    )
