import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from entcascade.errors import DEFAULT_MAX_CAUSE_DEPTH


def _env_flag(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class CascadeSettings(BaseModel):
    """Runtime settings, read from the environment (and a .env file when present)."""
    log_level: str = Field(default="WARNING", description="Level applied to the entcascade loggers")
    max_cause_depth: int = Field(default=DEFAULT_MAX_CAUSE_DEPTH, ge=1)
    database_url: str = Field(default="sqlite:///:memory:")
    sql_echo: bool = False

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "CascadeSettings":
        """Read settings from the environment, after loading ``env_file`` (or the nearest .env)."""
        load_dotenv(env_file)
        return cls(
            log_level=os.getenv("ENTCASCADE_LOG_LEVEL", "WARNING").upper(),
            max_cause_depth=int(os.getenv("ENTCASCADE_MAX_CAUSE_DEPTH", str(DEFAULT_MAX_CAUSE_DEPTH))),
            database_url=os.getenv("ENTCASCADE_DATABASE_URL", "sqlite:///:memory:"),
            sql_echo=_env_flag(os.getenv("ENTCASCADE_SQL_ECHO", "false")),
        )


# Named loggers used across the package
LOGGER_NAMES = (
    "CascadeEngine",
    "CascadeWalker",
    "CascadeGraph",
    "EntityTypeRegistry",
    "ErrorTranslator",
    "LifecycleEvents",
    "InMemorySession",
    "SqlAlchemySession",
)


def configure_logging(settings: CascadeSettings) -> None:
    """Apply the configured level to every engine logger."""
    level = logging.getLevelName(settings.log_level)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {settings.log_level}")
    for name in LOGGER_NAMES:
        logging.getLogger(name).setLevel(level)
