"""Pending-review digests sent to team members."""

from __future__ import annotations

import html
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

import httpx

from reviewporter.azure_client import AzureApiError
from reviewporter.gateway import PullRequestSearchGateway, SearchRole
from reviewporter.models import PullRequest, TeamMember
from reviewporter.tasks import gather_or_cancel

logger = logging.getLogger(__name__)

GREETING = "Hey!"
REMINDER_PREFIX = "Just a friendly reminder that there are "
WAITING_FOR_REVIEW_HEADER = "Pull Requests waiting for your review:"
WAITING_BY_REVIEWERS_HEADER = "Pull Requests where reviewers are waiting for you:"
STALE_MARKER = "\N{FIRE}"


class MessageSender(Protocol):
    async def send_message(self, user_id: str, message: str) -> None:
        """Deliver a direct message."""


@dataclass(frozen=True, slots=True)
class RepoRequests:
    """Pull requests of one repository, oldest first."""

    repository_id: str
    pull_requests: tuple[PullRequest, ...]


@dataclass(frozen=True, slots=True)
class ReviewerRequests:
    """Everything one team member should hear about."""

    reviewer_name: str
    waiting_for_review: tuple[RepoRequests, ...] = field(default_factory=tuple)
    waiting_by_reviewers: tuple[RepoRequests, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.waiting_for_review and not self.waiting_by_reviewers


async def _repo_requests(
    gateway: PullRequestSearchGateway,
    repository_id: str,
    member: TeamMember,
    role: SearchRole,
    keep: Callable[[PullRequest], bool],
) -> RepoRequests:
    pull_requests = await gateway.find_active_pull_requests(
        repository_id,
        role=role,
        member_id=member.id,
    )
    kept = sorted(
        (pull_request for pull_request in pull_requests if keep(pull_request)),
        key=lambda pull_request: pull_request.creation_date,
    )
    return RepoRequests(repository_id=repository_id, pull_requests=tuple(kept))


async def collect_member_requests(
    gateway: PullRequestSearchGateway,
    member: TeamMember,
    repositories: Sequence[str],
) -> ReviewerRequests:
    """Collect review requests for one member across repositories."""

    def awaits_member(pull_request: PullRequest) -> bool:
        return any(
            reviewer.should_be_shown_to_reviewer(member.id)
            for reviewer in pull_request.reviewers
        )

    def awaits_author(pull_request: PullRequest) -> bool:
        return any(reviewer.is_waiting_for_author() for reviewer in pull_request.reviewers)

    logger.info("Requesting pull requests in %s for %s.", ", ".join(repositories), member.name)
    waiting_for_review = await gather_or_cancel(
        *(
            _repo_requests(gateway, repository_id, member, SearchRole.REVIEWER, awaits_member)
            for repository_id in repositories
        )
    )
    waiting_by_reviewers = await gather_or_cancel(
        *(
            _repo_requests(gateway, repository_id, member, SearchRole.CREATOR, awaits_author)
            for repository_id in repositories
        )
    )
    return ReviewerRequests(
        reviewer_name=member.name,
        waiting_for_review=tuple(repo for repo in waiting_for_review if repo.pull_requests),
        waiting_by_reviewers=tuple(repo for repo in waiting_by_reviewers if repo.pull_requests),
    )


async def collect_reviewer_requests(
    gateway: PullRequestSearchGateway,
    *,
    team_name: str,
    repositories: Sequence[str],
    include_user: Callable[[str], bool],
) -> list[ReviewerRequests]:
    """Collect pending review requests for every included member of a team.

    A member whose lookups fail is logged and skipped.
    """
    team_names = await gateway.get_team_names()
    if team_name not in team_names:
        logger.info("Team %s was not found.", team_name)
        return []

    members = await gateway.get_team_members(team_name)
    results: list[ReviewerRequests] = []
    for member in members:
        if not include_user(member.name):
            continue
        try:
            requests = await collect_member_requests(gateway, member, repositories)
        except (AzureApiError, httpx.HTTPError, LookupError) as error:
            logger.error("Failed to obtain pull request list for %s: %s", member.name, error)
            continue
        if requests.is_empty:
            logger.info("There are no requests for %s.", member.name)
            continue
        results.append(requests)
    return results


def format_age(age: timedelta) -> str:
    """Render an age like `` 1d 3h 5m ago``, with a marker past one day."""
    total_minutes = max(0, int(age.total_seconds() // 60))
    days, remainder = divmod(total_minutes, 60 * 24)
    hours, minutes = divmod(remainder, 60)
    parts = [
        f" {value}{label}"
        for value, label in ((days, "d"), (hours, "h"), (minutes, "m"))
        if value > 0
    ]
    text = "".join(parts) + " ago"
    if days > 0:
        text += f" {STALE_MARKER}"
    return text


def format_link(url: str, title: str) -> str:
    return f"<{url}|{html.escape(title, quote=False)}>"


def _render_for_reviewer(repo: RepoRequests, now: datetime) -> list[str]:
    lines = [repo.repository_id]
    for pull_request in repo.pull_requests:
        lines.append(
            f"- {format_link(pull_request.url, pull_request.title)}. "
            f"Author: {pull_request.author.name}."
            f"{format_age(now - pull_request.creation_date)}"
        )
    return lines


def _render_for_creator(repo: RepoRequests, now: datetime) -> list[str]:
    lines = [repo.repository_id]
    for pull_request in repo.pull_requests:
        lines.append(
            f"- {format_link(pull_request.url, pull_request.title)}"
            f"{format_age(now - pull_request.creation_date)}"
        )
        waiting = ", ".join(
            reviewer.name
            for reviewer in pull_request.reviewers
            if reviewer.is_waiting_for_author()
        )
        lines.append(f"Waiting: {waiting}")
    return lines


def render_reviewer_requests(requests: ReviewerRequests, *, now: datetime | None = None) -> str:
    """Render one member's digest as Slack message text."""
    current_time = now or datetime.now(tz=UTC)
    lines = [GREETING]
    intro = REMINDER_PREFIX
    if requests.waiting_for_review:
        lines.append(intro + WAITING_FOR_REVIEW_HEADER)
        intro = ""
        lines.append("")
        for repo in requests.waiting_for_review:
            lines.extend(_render_for_reviewer(repo, current_time))
            lines.append("")
    if requests.waiting_by_reviewers:
        lines.append(intro + WAITING_BY_REVIEWERS_HEADER)
        lines.append("")
        for repo in requests.waiting_by_reviewers:
            lines.extend(_render_for_creator(repo, current_time))
            lines.append("")
    return "\n".join(lines)


async def send_reports(
    gateway: PullRequestSearchGateway,
    sender: MessageSender,
    *,
    team_name: str,
    repositories: Sequence[str],
    user_ids: dict[str, str],
    now: datetime | None = None,
) -> int:
    """Send digests to every reachable team member and return how many were sent."""
    all_requests = await collect_reviewer_requests(
        gateway,
        team_name=team_name,
        repositories=repositories,
        include_user=lambda name: name in user_ids,
    )
    await gather_or_cancel(
        *(
            sender.send_message(
                user_ids[requests.reviewer_name],
                render_reviewer_requests(requests, now=now),
            )
            for requests in all_requests
        )
    )
    logger.info("All messages were sent.")
    return len(all_requests)
