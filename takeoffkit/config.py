"""Import limits and tuning, overridable from the environment."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
DEFAULT_MAX_ROWS = 10000
# 6MB transport limit, 5.5MB threshold for safety
DEFAULT_MAX_PAYLOAD_BYTES = int(5.5 * 1024 * 1024)
DEFAULT_BATCH_SIZE = 1000
DEFAULT_SAMPLE_SIZE = 10
DEFAULT_YIELD_EVERY = 500


@dataclass(frozen=True)
class ImportSettings:
    """Hard limits and batch sizes for one import pipeline."""
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_rows: int = DEFAULT_MAX_ROWS
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES
    batch_size: int = DEFAULT_BATCH_SIZE
    sample_size: int = DEFAULT_SAMPLE_SIZE
    yield_every: int = DEFAULT_YIELD_EVERY

    def __post_init__(self):
        for name in ("max_file_size", "max_rows", "max_payload_bytes", "batch_size", "yield_every"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.sample_size < 0:
            raise ValueError(f"sample_size must be >= 0, got {self.sample_size}")

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "ImportSettings":
        """Build settings from TAKEOFF_* environment variables.

        Loads ``env_file`` (or a ``.env`` in the working directory) first,
        without overriding variables that are already set.
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        return cls(
            max_file_size=_int_env("TAKEOFF_MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE),
            max_rows=_int_env("TAKEOFF_MAX_ROWS", DEFAULT_MAX_ROWS),
            max_payload_bytes=_int_env("TAKEOFF_MAX_PAYLOAD_BYTES", DEFAULT_MAX_PAYLOAD_BYTES),
            batch_size=_int_env("TAKEOFF_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            sample_size=_int_env("TAKEOFF_SAMPLE_SIZE", DEFAULT_SAMPLE_SIZE),
            yield_every=_int_env("TAKEOFF_YIELD_EVERY", DEFAULT_YIELD_EVERY),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")
