from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from batchflow.config import Settings
from batchflow.database import build_engine, build_session_factory
from batchflow.pipeline import JobRunner
from batchflow.run_store import JobRepository


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "data").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def test_settings(temp_workspace: Path) -> Settings:
    return Settings(
        app_name="batchflow",
        database_url=f"sqlite:///{temp_workspace / 'test.db'}",
        log_level="INFO",
        input_file=str(temp_workspace / "data" / "sample-data.csv"),
        chunk_size=10,
        enforce_unique_parameters=False,
        schedule_hour_utc=2,
        schedule_minute_utc=0,
    )


@pytest.fixture()
def engine(test_settings: Settings) -> Generator[Engine, None, None]:
    engine = build_engine(test_settings.database_url)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def repository(session_factory: sessionmaker[Session]) -> JobRepository:
    return JobRepository(session_factory)


@pytest.fixture()
def runner(repository: JobRepository) -> JobRunner:
    return JobRunner(repository)


@pytest.fixture()
def people_csv(temp_workspace: Path):
    def write(count: int, name: str = "people.csv") -> Path:
        path = temp_workspace / "data" / name
        with path.open("w", encoding="utf-8") as outfile:
            for index in range(1, count + 1):
                outfile.write(f"first{index},last{index}\n")
        return path

    return write
