"""Directory gateway contracts and an in-memory implementation."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from reviewporter.models import Identifier, NewReviewerAssignment, PullRequest, TeamMember


class SearchRole(StrEnum):
    """Which side of a pull request a search matches on."""

    REVIEWER = "reviewerId"
    CREATOR = "creatorId"


class DirectoryGateway(Protocol):
    """Team rosters and pull request reads/writes needed for reviewer assignment."""

    async def get_team_members(self, team_name: str) -> list[TeamMember]:
        """Return the non-container members of a team."""

    async def get_pull_request(self, repository_id: str, pull_request_id: str) -> PullRequest:
        """Return one pull request snapshot."""

    async def submit_reviewers(
        self,
        repository_id: str,
        pull_request_id: str,
        reviewers: Sequence[NewReviewerAssignment],
    ) -> None:
        """Attach reviewers to a pull request."""


class PullRequestSearchGateway(Protocol):
    """Project-wide lookups used for review reports."""

    async def get_team_names(self) -> list[str]:
        """Return the names of all teams in the project."""

    async def get_team_members(self, team_name: str) -> list[TeamMember]:
        """Return the non-container members of a team."""

    async def find_active_pull_requests(
        self,
        repository_id: str,
        *,
        role: SearchRole,
        member_id: Identifier,
    ) -> list[PullRequest]:
        """Return active pull requests where the member has the given role."""


@dataclass
class SubmittedReviewers:
    """One recorded ``submit_reviewers`` call."""

    repository_id: str
    pull_request_id: str
    reviewers: list[NewReviewerAssignment]


class GatewayLookupError(LookupError):
    """Raised by the in-memory gateway for unknown teams or pull requests."""


@dataclass
class InMemoryDirectoryGateway:
    """Dictionary-backed gateway for tests and local dry runs."""

    teams: dict[str, list[TeamMember]] = field(default_factory=dict)
    pull_requests: dict[tuple[str, str], PullRequest] = field(default_factory=dict)
    submissions: list[SubmittedReviewers] = field(default_factory=list)
    team_requests: list[str] = field(default_factory=list)

    async def get_team_names(self) -> list[str]:
        return list(self.teams)

    async def get_team_members(self, team_name: str) -> list[TeamMember]:
        self.team_requests.append(team_name)
        try:
            return list(self.teams[team_name])
        except KeyError as error:
            raise GatewayLookupError(f"Unknown team '{team_name}'.") from error

    async def get_pull_request(self, repository_id: str, pull_request_id: str) -> PullRequest:
        try:
            return self.pull_requests[(repository_id, pull_request_id)]
        except KeyError as error:
            raise GatewayLookupError(
                f"Unknown pull request {pull_request_id} in '{repository_id}'."
            ) from error

    async def find_active_pull_requests(
        self,
        repository_id: str,
        *,
        role: SearchRole,
        member_id: Identifier,
    ) -> list[PullRequest]:
        matches: list[PullRequest] = []
        for (repository, _pull_request_id), pull_request in self.pull_requests.items():
            if repository != repository_id or not pull_request.is_active:
                continue
            if role is SearchRole.CREATOR and pull_request.author.id == member_id:
                matches.append(pull_request)
            elif role is SearchRole.REVIEWER and member_id in pull_request.reviewer_ids():
                matches.append(pull_request)
        return matches

    async def submit_reviewers(
        self,
        repository_id: str,
        pull_request_id: str,
        reviewers: Sequence[NewReviewerAssignment],
    ) -> None:
        self.submissions.append(
            SubmittedReviewers(
                repository_id=repository_id,
                pull_request_id=pull_request_id,
                reviewers=list(reviewers),
            )
        )
