import math

import pytest
from sqlalchemy import Engine, select

from batchflow.db_models import PersonRow
from batchflow.errors import ConfigurationError, ParseError, SinkError, StepFailedError, TransformError
from batchflow.import_job import INSERT_PEOPLE_SQL, Person, build_people_reader, uppercase_person
from batchflow.run_store import JobRepository
from batchflow.schemas import JobExecution, StepStatus
from batchflow.sinks import SqlBatchSink
from batchflow.sources import IterableSource
from batchflow.step import ChunkOrientedStep
from batchflow.transform import SKIP


class RecordingSink:
    name = "recording"

    def __init__(self, fail_on_call: int | None = None) -> None:
        self.batches: list[list[object]] = []
        self.fail_on_call = fail_on_call
        self.calls = 0

    def write(self, items):
        self.calls += 1
        if self.fail_on_call == self.calls:
            raise RuntimeError("store unavailable")
        self.batches.append(list(items))


def _job_execution(repository: JobRepository) -> JobExecution:
    return repository.save_job_execution(JobExecution(job_name="test-job", parameters={"run.id": 1}))


def test_twenty_five_records_in_chunks_of_ten(repository: JobRepository) -> None:
    sink = RecordingSink()
    step = ChunkOrientedStep("load", source=IterableSource(range(25)), sink=sink, chunk_size=10)

    result = step.execute(_job_execution(repository), repository)

    assert [len(batch) for batch in sink.batches] == [10, 10, 5]
    assert [item for batch in sink.batches for item in batch] == list(range(25))
    assert result.status == StepStatus.COMPLETED
    assert result.read_count == 25
    assert result.write_count == 25
    assert result.commit_count == 3


@pytest.mark.parametrize("total,chunk_size", [(0, 1), (1, 1), (7, 3), (9, 3), (10, 20)])
def test_write_calls_match_ceiling_of_records_over_chunk_size(
    repository: JobRepository, total: int, chunk_size: int
) -> None:
    sink = RecordingSink()
    step = ChunkOrientedStep("load", source=IterableSource(range(total)), sink=sink, chunk_size=chunk_size)

    result = step.execute(_job_execution(repository), repository)

    assert sink.calls == math.ceil(total / chunk_size)
    assert all(len(batch) <= chunk_size for batch in sink.batches)
    assert result.write_count == result.read_count == total


def test_transform_failure_aborts_before_anything_is_committed(repository: JobRepository) -> None:
    def reject_third(record: int) -> int:
        if record == 3:
            raise ValueError("bad record")
        return record

    sink = RecordingSink()
    step = ChunkOrientedStep(
        "load",
        source=IterableSource([1, 2, 3, 4, 5]),
        sink=sink,
        chunk_size=10,
        transformer=reject_third,
    )
    job_execution = _job_execution(repository)

    with pytest.raises(StepFailedError) as exc_info:
        step.execute(job_execution, repository)

    step_execution = job_execution.step_executions[0]
    assert exc_info.value.record_offset == 3
    assert isinstance(exc_info.value.cause, TransformError)
    assert sink.batches == []
    assert step_execution.status == StepStatus.FAILED
    assert step_execution.read_count == 3
    assert step_execution.write_count == 0
    assert step_execution.rollback_count == 1


def test_skipped_records_never_reach_the_sink(repository: JobRepository) -> None:
    sink = RecordingSink()
    step = ChunkOrientedStep(
        "load",
        source=IterableSource(range(10)),
        sink=sink,
        chunk_size=4,
        transformer=lambda record: SKIP if record % 2 else record,
    )

    result = step.execute(_job_execution(repository), repository)

    assert sink.batches == [[0, 2, 4, 6], [8]]
    assert result.read_count == 10
    assert result.skip_count == 5
    assert result.write_count == 5


def test_sink_failure_keeps_earlier_chunks_committed(repository: JobRepository, engine: Engine) -> None:
    people = [Person(f"first{i}", f"last{i}") for i in range(1, 5)]
    people.append(Person("first5", None))  # violates NOT NULL in the second chunk
    people.append(Person("first6", "last6"))
    step = ChunkOrientedStep(
        "load",
        source=IterableSource(people),
        sink=SqlBatchSink(engine, INSERT_PEOPLE_SQL),
        chunk_size=3,
    )
    job_execution = _job_execution(repository)

    with pytest.raises(StepFailedError) as exc_info:
        step.execute(job_execution, repository)

    assert isinstance(exc_info.value.cause, SinkError)
    assert exc_info.value.record_offset == 4
    with engine.connect() as connection:
        stored = connection.execute(select(PersonRow.first_name).order_by(PersonRow.id)).scalars().all()
    assert stored == ["first1", "first2", "first3"]
    assert job_execution.step_executions[0].write_count == 3
    assert job_execution.step_executions[0].commit_count == 1


def test_parse_error_carries_step_and_offset(repository: JobRepository, tmp_path) -> None:
    path = tmp_path / "people.csv"
    path.write_text("Jill,Doe\nbroken\n", encoding="utf-8")
    step = ChunkOrientedStep(
        "step1",
        source=build_people_reader(path),
        sink=RecordingSink(),
        chunk_size=10,
        transformer=uppercase_person,
    )

    with pytest.raises(StepFailedError) as exc_info:
        step.execute(_job_execution(repository), repository)

    assert exc_info.value.step_name == "step1"
    assert exc_info.value.record_offset == 2
    assert isinstance(exc_info.value.cause, ParseError)


def test_undecodable_line_fails_at_its_own_offset(repository: JobRepository, tmp_path) -> None:
    path = tmp_path / "people.csv"
    path.write_bytes(b"Jill,Doe\n\xff\xfe,Doe\n")
    sink = RecordingSink()
    step = ChunkOrientedStep("step1", source=build_people_reader(path), sink=sink, chunk_size=10)

    with pytest.raises(StepFailedError) as exc_info:
        step.execute(_job_execution(repository), repository)

    assert exc_info.value.record_offset == 2
    assert isinstance(exc_info.value.cause, ParseError)
    assert sink.batches == []


def test_none_from_transformer_is_filtered(repository: JobRepository) -> None:
    sink = RecordingSink()
    step = ChunkOrientedStep(
        "load",
        source=IterableSource(range(5)),
        sink=sink,
        chunk_size=10,
        transformer=lambda record: None if record == 2 else record,
    )

    result = step.execute(_job_execution(repository), repository)

    assert sink.batches == [[0, 1, 3, 4]]
    assert result.skip_count == 1
    assert result.status == StepStatus.COMPLETED


def test_stop_request_is_honoured_between_chunks(repository: JobRepository) -> None:
    job_execution = _job_execution(repository)

    class StoppingSink(RecordingSink):
        def write(self, items):
            super().write(items)
            job_execution.stop_requested = True

    sink = StoppingSink()
    step = ChunkOrientedStep("load", source=IterableSource(range(25)), sink=sink, chunk_size=10)

    result = step.execute(job_execution, repository)

    assert result.status == StepStatus.STOPPED
    assert result.write_count == 10
    assert sink.calls == 1


def test_counters_are_persisted(repository: JobRepository) -> None:
    job_execution = _job_execution(repository)
    step = ChunkOrientedStep("load", source=IterableSource(range(12)), sink=RecordingSink(), chunk_size=5)

    step.execute(job_execution, repository)

    stored = repository.get_job_execution(job_execution.id).step_executions[0]
    assert stored.status == StepStatus.COMPLETED
    assert stored.read_count == 12
    assert stored.write_count == 12
    assert stored.commit_count == 3
    assert stored.ended_at is not None


@pytest.mark.parametrize("chunk_size", [0, -1, True, 2.5])
def test_invalid_chunk_size_is_rejected(chunk_size) -> None:
    with pytest.raises(ConfigurationError):
        ChunkOrientedStep("load", source=IterableSource([]), sink=RecordingSink(), chunk_size=chunk_size)
