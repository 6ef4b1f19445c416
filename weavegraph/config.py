"""
Runtime settings for a weavegraph editor session.

Values come from the process environment. A ``.env`` file in the working
directory (or the path given to ``Settings.from_env``) is loaded first so
TRIGGER_SECRET_KEY and the Cloudinary credentials are available without a
manual ``export``.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

# Job polling budget: 60 attempts one second apart.
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_POLL_ATTEMPTS = 60

DEFAULT_HISTORY_LIMIT = 100
DEFAULT_TRIGGER_API_URL = "https://api.trigger.dev"


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(value: Optional[str], default: Optional[int]) -> Optional[int]:
    if value is None or value.strip() == "":
        return default
    return int(value)


def _env_float(value: Optional[str], default: float) -> float:
    if value is None or value.strip() == "":
        return default
    return float(value)


@dataclass(frozen=True)
class Settings:
    trigger_api_url: str = DEFAULT_TRIGGER_API_URL
    trigger_secret_key: Optional[str] = None
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_upload_preset: Optional[str] = None

    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_attempts: int = DEFAULT_POLL_ATTEMPTS
    history_limit: int = DEFAULT_HISTORY_LIMIT
    # None means no cap on concurrently running nodes
    max_concurrent_runs: Optional[int] = None
    validator_fail_open: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from *env* (defaults to ``os.environ`` after loading .env)."""
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ

        return cls(
            trigger_api_url=env.get("TRIGGER_API_URL") or DEFAULT_TRIGGER_API_URL,
            trigger_secret_key=env.get("TRIGGER_SECRET_KEY") or None,
            cloudinary_cloud_name=env.get("CLOUDINARY_CLOUD_NAME") or None,
            cloudinary_upload_preset=env.get("CLOUDINARY_UPLOAD_PRESET") or None,
            poll_interval=_env_float(env.get("WEAVEGRAPH_POLL_INTERVAL"), DEFAULT_POLL_INTERVAL),
            poll_attempts=_env_int(env.get("WEAVEGRAPH_POLL_ATTEMPTS"), DEFAULT_POLL_ATTEMPTS),
            history_limit=_env_int(env.get("WEAVEGRAPH_HISTORY_LIMIT"), DEFAULT_HISTORY_LIMIT),
            max_concurrent_runs=_env_int(env.get("WEAVEGRAPH_MAX_CONCURRENT_RUNS"), None),
            validator_fail_open=_env_bool(env.get("WEAVEGRAPH_VALIDATOR_FAIL_OPEN"), False),
            log_level=(env.get("WEAVEGRAPH_LOG_LEVEL") or "INFO").upper(),
        )
