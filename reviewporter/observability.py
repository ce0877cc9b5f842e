"""Logging setup and run summaries."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

LOG_LEVEL_ENV_VAR = "REVIEWPORTER_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging from an explicit level or the environment."""
    resolved_level = (level or os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL).upper()
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, force=True)
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass(slots=True)
class AssignmentTrace:
    """Summary of one reviewer assignment run."""

    repository_id: str
    pull_request_id: str
    required_left: int = 0
    author_team: str | None = None
    required_candidates: int = 0
    fill_candidates: int = 0
    submitted: bool = False
    skipped_reason: str | None = None
    warnings: list[str] = field(default_factory=list)

    def describe(self) -> str:
        """Render a single-line summary for logs."""
        if self.skipped_reason is not None:
            return (
                f"Skipped pull request {self.pull_request_id} in {self.repository_id}: "
                f"{self.skipped_reason}."
            )
        summary = (
            f"Pull request {self.pull_request_id} in {self.repository_id}: "
            f"required_left={self.required_left} author_team={self.author_team or '-'} "
            f"required_candidates={self.required_candidates} "
            f"fill_candidates={self.fill_candidates} submitted={self.submitted}"
        )
        if self.warnings:
            summary += f" warnings={'; '.join(self.warnings)}"
        return summary
