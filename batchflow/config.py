from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    input_file: str
    chunk_size: int
    enforce_unique_parameters: bool
    schedule_hour_utc: int
    schedule_minute_utc: int


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "batchflow"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./batch.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        input_file=os.getenv("INPUT_FILE", "./data/sample-data.csv"),
        chunk_size=int(os.getenv("CHUNK_SIZE", "10")),
        enforce_unique_parameters=_env_flag("ENFORCE_UNIQUE_PARAMETERS"),
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "2")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
    )
