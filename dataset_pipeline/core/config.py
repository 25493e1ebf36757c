"""Configuration management using Pydantic Settings."""

import copy
import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

ENV_FILE_OPT: str | None = None
ONE_MINUTE_IN_SECONDS = 60

# Only load .env if it exists (for local development)
_env_path = Path(".env")
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)
    ENV_FILE_OPT = str(_env_path)


class ScheduleMode(str, Enum):
    """How the scrape window is chosen."""

    DAILY = "daily"
    DATE_RANGE = "date_range"


class Settings(BaseSettings):
    """Options for a single pipeline invocation.

    Loads settings from environment variables (``RAW_DATA_DIR``, ``DAILY``, ...).
    In local development, these can be provided via a .env file. Derive
    per-invocation variants with ``model_copy(update=...)`` rather than
    mutating a shared instance.
    """

    model_config = SettingsConfigDict(
        env_file=ENV_FILE_OPT,
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Working directories, overwritten each run
    raw_data_dir: str = Field(default="data/raw", description="Raw dataset directory")
    normalized_data_dir: str = Field(
        default="data/normalized", description="Normalizer output directory"
    )
    download_dir: str = Field(default="data/download", description="Download staging directory")

    # Dated archive
    archived_dir: str = Field(default="archived", description="Archive root directory")
    archived_raw_data_dir: Optional[str] = Field(
        default=None, description="Override for the archived raw data directory"
    )
    archived_normalized_data_dir: Optional[str] = Field(
        default=None, description="Override for the archived normalized data directory"
    )
    archived_download_dir: Optional[str] = Field(
        default=None, description="Override for the archived download directory"
    )
    skip_archive_download: bool = Field(
        default=False, description="Do not copy the download directory into the archive"
    )

    # Acquire
    get_dataset_endpoint: Optional[str] = Field(
        default=None, description="URL of the dataset produced by the scrape job"
    )
    data_file: str = Field(default="dataset.json", description="Filename for the dataset")
    http_timeout: float = Field(
        default=ONE_MINUTE_IN_SECONDS, gt=0, description="HTTP timeout in seconds"
    )

    # Scrape trigger
    run_task_endpoint: Optional[str] = Field(
        default=None, description="URL that starts a remote scrape task"
    )
    task_config_file: str = Field(
        default="config.json", description="JSON file holding the task INPUT template"
    )
    requests_per_day: int = Field(default=0, ge=0, description="Crawl request budget per day")
    request_depths_per_day: int = Field(
        default=0, ge=0, description="Crawl request depth budget per day"
    )
    daily: bool = Field(default=False, description="Scrape the current day only")
    start_date: Optional[str] = Field(default=None, description="First day of the scrape window")
    end_date: Optional[str] = Field(default=None, description="Last day of the scrape window")
    dry_run: bool = Field(default=False, description="Submit the task as a test run")

    # Collaborators (fully qualified module or class paths)
    normalizer: Optional[str] = Field(default=None, description="Normalizer import path")
    loader: Optional[str] = Field(default=None, description="Loader import path")

    continue_on_stage_failure: bool = Field(
        default=False,
        description="Keep running later stages after a stage fails",
    )

    @property
    def has_date_range(self) -> bool:
        return bool(self.start_date) and bool(self.end_date)

    @property
    def schedule_mode(self) -> ScheduleMode:
        """Return the configured schedule mode.

        Raises:
            ConfigurationError: If daily mode and a date range are both set,
                or if neither is set.
        """
        if self.daily and self.has_date_range:
            raise ConfigurationError(
                "Both daily mode and a start/end date range are set; choose one"
            )
        if self.daily:
            return ScheduleMode.DAILY
        if self.has_date_range:
            return ScheduleMode.DATE_RANGE
        raise ConfigurationError(
            "No schedule configured: set DAILY or both START_DATE and END_DATE"
        )


def load_base_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Read the task input template from a JSON file.

    The template is the ``INPUT`` object of the file. A copy is returned so
    callers can overlay fields without touching the parsed document.
    """
    config_path = Path(path)
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Task config file not found: {config_path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Task config file is not valid JSON: {config_path}: {e}") from e

    if not isinstance(document, dict) or not isinstance(document.get("INPUT"), dict):
        raise ConfigurationError(f"Task config file has no INPUT object: {config_path}")

    return copy.deepcopy(document["INPUT"])


# Global settings instance
settings = Settings()
