"""Library settings, from ``METHOD_TESTER_*`` environment variables or a YAML file."""

from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="METHOD_TESTER_", case_sensitive=False, extra="ignore")

    backend_url: str = Field(default="http://localhost:5001")
    request_timeout: float = Field(default=30.0, gt=0)
    log_level: str = Field(default="INFO")

    default_max_iterations: int = Field(default=200, ge=1, le=10000)
    page_param_name: str = Field(default="page_info")
    limit_param_name: str = Field(default="limit")
    default_limit: str = Field(default="50")


def load_settings(path: Path | None = None) -> Settings:
    """Build settings from the environment, with keys from ``path`` taking precedence."""
    if path is None:
        return Settings()

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return Settings(**data)
