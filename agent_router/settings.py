"""
Environment settings for the routing system using Pydantic Settings.
Loads from environment variables (prefix ``AGENT_ROUTER_``) or a .env file.
"""

import logging
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class RouterSettings(BaseSettings):
    """Deployment-level overrides applied on top of RouterSystemConfig defaults."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_ROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Directory holding q-learning-model.json and moe-weights.json
    model_dir: Path = Path(".swarm")

    # "auto" picks torch only when a CUDA device is visible
    gating_backend: Literal["auto", "numpy", "torch"] = "auto"

    auto_save: bool = True
    log_level: str = "INFO"


def configure_logging(settings: RouterSettings | None = None) -> None:
    """Set up root logging for scripts. Library modules never call this."""
    settings = settings or RouterSettings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
