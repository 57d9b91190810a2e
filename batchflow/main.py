import argparse
import logging

from batchflow.config import get_settings
from batchflow.database import build_engine, build_session_factory
from batchflow.errors import ConfigurationError, DuplicateExecutionError
from batchflow.import_job import JOB_NAME, build_import_user_job
from batchflow.pipeline import JobRunner
from batchflow.run_store import JobRepository
from batchflow.scheduler import start_scheduler
from batchflow.schemas import JobStatus, RunParameters


def _parse_param(raw: str) -> tuple[str, str | int]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{raw}'")
    return key, int(value) if value.lstrip("-").isdigit() else value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the people import batch job")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="launch one job execution with the next run id")
    run_parser.add_argument("--input", required=False, help="Delimited input file (defaults to INPUT_FILE)")
    run_parser.add_argument("--chunk-size", type=int, required=False, help="Commit interval (defaults to CHUNK_SIZE)")
    run_parser.add_argument(
        "--param",
        action="append",
        default=[],
        type=_parse_param,
        help="Extra run parameter as key=value; may be repeated",
    )

    executions_parser = subparsers.add_parser("executions", help="list recent job executions")
    executions_parser.add_argument("--limit", type=int, default=10)

    schedule_parser = subparsers.add_parser("schedule", help="start daily scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also run once immediately")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    if args.command == "schedule":
        start_scheduler(settings, engine, session_factory, run_now=args.run_now)
        return

    repository = JobRepository(session_factory)
    if args.command == "executions":
        for execution in repository.list_job_executions(JOB_NAME, limit=args.limit):
            print(
                "job_execution_id={id} status={status} parameters={params} read={read} written={written} ended={ended}".format(
                    id=execution.id,
                    status=execution.status.value,
                    params=execution.parameters,
                    read=execution.read_count,
                    written=execution.write_count,
                    ended=execution.ended_at.isoformat() if execution.ended_at else "-",
                )
            )
        return

    try:
        job = build_import_user_job(
            settings,
            engine,
            session_factory,
            input_file=args.input,
            chunk_size=args.chunk_size,
        )
    except ConfigurationError as exc:
        print(f"error={exc}")
        raise SystemExit(2) from exc
    extra_parameters: RunParameters = dict(args.param)

    runner = JobRunner(repository, enforce_unique_instances=settings.enforce_unique_parameters)
    try:
        execution = runner.run_next(job, extra_parameters)
    except (ConfigurationError, DuplicateExecutionError) as exc:
        print(f"error={exc}")
        raise SystemExit(2) from exc

    print(
        "job_execution_id={id} job={job} run_id={run_id} status={status} read={read} written={written} skipped={skipped}".format(
            id=execution.id,
            job=execution.job_name,
            run_id=execution.parameters.get("run.id"),
            status=execution.status.value,
            read=execution.read_count,
            written=execution.write_count,
            skipped=execution.skip_count,
        )
    )
    if execution.exit_description:
        print(f"exit_description={execution.exit_description}")
    if execution.status != JobStatus.COMPLETED:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
