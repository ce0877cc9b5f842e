"""Configuration contract and loader."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

AZURE_TOKEN_ENV_VARS = ("AZURE_DEVOPS_TOKEN", "AZURE_DEVOPS_EXT_PAT")
SLACK_TOKEN_ENV_VARS = ("SLACK_TOKEN", "SLACK_BOT_TOKEN")
DEFAULT_VACATION_STATUS_TEXT = "Vacationing"


class ConfigError(ValueError):
    """Raised when the configuration file cannot be read or validated."""


class DevTeam(BaseModel):
    """Development team scanned when looking for the pull request author."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    required_reviewers_team: str | None = Field(default=None, min_length=1)


class ReviewersConfig(BaseModel):
    """Reviewer assignment policy."""

    model_config = ConfigDict(extra="forbid")

    required_reviewers_count: int = Field(default=0, ge=0)
    teams: list[DevTeam] = Field(default_factory=list)


class AzureConfig(BaseModel):
    """Azure DevOps project settings."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(min_length=1)
    project: str = Field(min_length=1)
    team_name: str = Field(min_length=1)
    repositories: list[str] = Field(default_factory=list)
    token: str | None = None

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Require an http(s) URL and normalize it to end with a slash."""
        if not value.startswith(("https://", "http://")):
            raise ValueError("base_url must be an http(s) URL.")
        return value if value.endswith("/") else f"{value}/"


class SlackConfig(BaseModel):
    """Slack workspace settings."""

    model_config = ConfigDict(extra="forbid")

    team_id: str = Field(min_length=1)
    usergroup_id: str = Field(min_length=1)
    vacation_status_text: str = DEFAULT_VACATION_STATUS_TEXT
    token: str | None = None


class AppConfig(BaseModel):
    """Root configuration document."""

    model_config = ConfigDict(extra="forbid")

    azure: AzureConfig
    slack: SlackConfig
    reviewers: ReviewersConfig = Field(default_factory=ReviewersConfig)


def load_config(path: Path | str) -> AppConfig:
    """Read and validate a TOML configuration file."""
    config_path = Path(path)
    try:
        with config_path.open("rb") as config_file:
            payload = tomllib.load(config_file)
    except OSError as error:
        raise ConfigError(f"Cannot read config file '{config_path}': {error}") from error
    except tomllib.TOMLDecodeError as error:
        raise ConfigError(f"Invalid TOML in '{config_path}': {error}") from error

    try:
        return AppConfig.model_validate(payload)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in '{config_path}':\n{error}") from error


def resolve_token(configured: str | None, env_vars: tuple[str, ...]) -> tuple[str, str] | None:
    """Return token value and its source, preferring the config file over the environment."""
    if configured:
        return configured, "config file"

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    for env_var in env_vars:
        value = os.getenv(env_var)
        if value:
            return value, env_var
    return None
