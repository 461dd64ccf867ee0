"""Settings for scripts started through ``Taskflow.main``.

Loaded from environment variables and a local ``.env`` file (if present).
The library API itself never reads the environment.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DepflowSettings(BaseSettings):
    """Settings for a task script.

    Environment variables:
    - DEPFLOW_LOG_LEVEL   (optional)
    - DEPFLOW_LOG_FORMAT  (optional, ``text`` or ``json``)

    Notes:
        Tests can point at a different env file with
        ``DepflowSettings(_env_file=path_to_env)``.
    """

    log_level: str = Field(
        default="WARNING",
        description="Level of the depflow logger; logs go to stderr",
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Render log records as plain text or one JSON object per line",
    )

    model_config = SettingsConfigDict(
        env_prefix="DEPFLOW_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {value}")
        return level
