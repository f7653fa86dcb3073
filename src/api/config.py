"""Configuration for the Docker dashboard API server."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.reducer import HeuristicSteps

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Attributes
    ----------
    host : str
        The host address to bind the server to (default: ``"0.0.0.0"``).
    port : int
        The port to bind the server to (default: ``3001``).
    debug : bool
        Whether to run the server in debug mode (default: ``False``).
    allowed_origins : str
        Comma-separated list of CORS origins, ``*`` for any (default: ``"*"``).
    docker_host : str
        Docker Engine URL; empty to use ``DOCKER_HOST`` or the default socket.
    docker_timeout : int
        Timeout in seconds for Docker Engine API calls (default: ``60``).
    pull_expiry_seconds : float
        How long finished pulls stay pollable (default: ``30.0``).
    up_to_date_delay_seconds : float
        Delay before an "Image is up to date" pull is reported as completed
        (default: ``0.5``).
    pull_downloading_step : int
        Percent added per downloading/pulling event without byte counters.
    pull_extracting_step : int
        Percent added per extracting/verifying event.
    pull_layer_complete_step : int
        Percent added per finished layer.
    pull_heuristic_ceiling : int
        Highest percent reachable before the pull stream ends.
    pull_rate_limit : str
        Rate limit for starting pulls (default: ``"30/minute"``).
    progress_log_limit : int
        Most recent log entries returned per progress read, ``0`` for all
        (default: ``200``).

    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3001
    debug: bool = False
    allowed_origins: str = "*"
    docker_host: str = ""
    docker_timeout: int = 60
    pull_expiry_seconds: float = 30.0
    up_to_date_delay_seconds: float = 0.5
    pull_downloading_step: int = 1
    pull_extracting_step: int = 2
    pull_layer_complete_step: int = 10
    pull_heuristic_ceiling: int = 99
    pull_rate_limit: str = "30/minute"
    progress_log_limit: int = Field(default=200, ge=0)

    @property
    def cors_origins(self) -> list[str]:
        """Return ``allowed_origins`` as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def heuristic_steps(self) -> HeuristicSteps:
        """Return the reducer increments configured for this deployment."""
        return HeuristicSteps(
            downloading=self.pull_downloading_step,
            extracting=self.pull_extracting_step,
            layer_complete=self.pull_layer_complete_step,
            ceiling=self.pull_heuristic_ceiling,
        )


@lru_cache
def get_settings() -> Settings:
    """Return the application settings instance (cached).

    Returns
    -------
    Settings
        The application settings.

    """
    s = Settings()
    logger.info(
        "Settings loaded: docker_host=%s, pull_expiry_seconds=%s",
        s.docker_host or "FROM ENV",
        s.pull_expiry_seconds,
    )
    return s
