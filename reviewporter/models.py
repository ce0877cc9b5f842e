"""Records shared by the Azure DevOps gateway and the assignment engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, StrEnum
from typing import NewType

Identifier = NewType("Identifier", str)


class PullRequestStatus(StrEnum):
    """Azure DevOps pull request statuses."""

    ABANDONED = "abandoned"
    ACTIVE = "active"
    NOT_SET = "notSet"
    ALL = "all"
    COMPLETED = "completed"


class Vote(IntEnum):
    """Reviewer vote values as reported by Azure DevOps."""

    REJECTED = -10
    WAITING_FOR_AUTHOR = -5
    NO_VOTE = 0
    APPROVED_WITH_SUGGESTIONS = 5
    APPROVED = 10


@dataclass(frozen=True, slots=True)
class TeamMember:
    """Person listed in an Azure DevOps team."""

    id: Identifier
    name: str


@dataclass(frozen=True, slots=True)
class PullRequestAuthor:
    """Creator of a pull request."""

    id: Identifier
    name: str


@dataclass(frozen=True, slots=True)
class PullRequestReviewer:
    """Reviewer already attached to a pull request."""

    id: Identifier
    name: str
    is_required: bool = False
    vote: Vote = Vote.NO_VOTE
    has_declined: bool = False

    def should_be_shown_to_reviewer(self, user_id: Identifier) -> bool:
        """Return whether this entry still awaits a review from ``user_id``."""
        if self.id != user_id or not self.is_required or self.has_declined:
            return False
        return self.vote in (Vote.NO_VOTE, Vote.WAITING_FOR_AUTHOR)

    def is_waiting_for_author(self) -> bool:
        """Return whether this reviewer voted "waiting for author"."""
        return self.vote == Vote.WAITING_FOR_AUTHOR


@dataclass(frozen=True, slots=True)
class PullRequest:
    """Snapshot of one pull request."""

    id: int
    title: str
    url: str
    author: PullRequestAuthor
    creation_date: datetime
    status: PullRequestStatus
    reviewers: tuple[PullRequestReviewer, ...] = field(default_factory=tuple)

    @property
    def is_active(self) -> bool:
        """Return whether the pull request is still open."""
        return self.status == PullRequestStatus.ACTIVE

    def reviewer_ids(self) -> set[Identifier]:
        """Return ids of everyone already reviewing."""
        return {reviewer.id for reviewer in self.reviewers}

    def required_reviewers_count(self) -> int:
        """Return how many attached reviewers are required."""
        return sum(1 for reviewer in self.reviewers if reviewer.is_required)


@dataclass(frozen=True, slots=True)
class NewReviewerAssignment:
    """Reviewer to be added to a pull request."""

    id: Identifier
    is_required: bool = False

    def to_payload(self) -> dict[str, object]:
        """Return the Azure DevOps request body entry."""
        return {"id": self.id, "isRequired": self.is_required}
