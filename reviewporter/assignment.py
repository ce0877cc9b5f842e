"""Reviewer assignment for a single pull request."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from reviewporter.config import ReviewersConfig
from reviewporter.gateway import DirectoryGateway
from reviewporter.membership import fetch_required_reviewers, resolve_author_team
from reviewporter.models import (
    Identifier,
    NewReviewerAssignment,
    PullRequest,
    TeamMember,
)
from reviewporter.observability import AssignmentTrace
from reviewporter.selection import select_candidates
from reviewporter.shuffle import MemberShuffler, RandomShuffler
from reviewporter.tasks import gather_or_cancel

logger = logging.getLogger(__name__)

OutOfOffice = Callable[[str], bool]


def required_reviewers_left(pull_request: PullRequest, required_reviewers_count: int) -> int:
    """Return how many required reviewer slots are still open."""
    return max(0, required_reviewers_count - pull_request.required_reviewers_count())


def fill_order(members: Sequence[TeamMember], is_out_of_office: OutOfOffice) -> list[TeamMember]:
    """Return members available now, followed by members out of office.

    Relative order inside each group is preserved.
    """
    available: list[TeamMember] = []
    away: list[TeamMember] = []
    for member in members:
        (away if is_out_of_office(member.name) else available).append(member)
    return available + away


def tag_assignments(
    reviewer_ids: Sequence[Identifier],
    required_left: int,
) -> list[NewReviewerAssignment]:
    """Flag the first ``required_left`` reviewers as required and the rest as optional."""
    return [
        NewReviewerAssignment(id=reviewer_id, is_required=index < required_left)
        for index, reviewer_id in enumerate(reviewer_ids)
    ]


def plan_new_reviewers(
    pull_request: PullRequest,
    *,
    required_candidates: Sequence[Identifier],
    all_members: Sequence[TeamMember],
    is_out_of_office: OutOfOffice,
    required_left: int,
) -> list[NewReviewerAssignment]:
    """Combine required candidates with the rest of the team into one tagged batch."""
    author_id = pull_request.author.id
    existing_reviewers = pull_request.reviewer_ids()

    new_reviewers = list(required_candidates)
    picked = set(new_reviewers)
    for member in fill_order(all_members, is_out_of_office):
        if member.id == author_id or member.id in picked or member.id in existing_reviewers:
            continue
        new_reviewers.append(member.id)
        picked.add(member.id)

    return tag_assignments(new_reviewers, required_left)


async def find_required_candidates(
    gateway: DirectoryGateway,
    pull_request: PullRequest,
    config: ReviewersConfig,
    is_out_of_office: OutOfOffice,
    shuffler: MemberShuffler,
    trace: AssignmentTrace | None = None,
) -> list[Identifier]:
    """Return ordered candidates for the required slots of a pull request."""
    author_id = pull_request.author.id
    existing_reviewers = pull_request.reviewer_ids()

    peers, team = await resolve_author_team(gateway, author_id, config.teams)
    required_team_members = await fetch_required_reviewers(gateway, team)

    def eligible(member: TeamMember) -> bool:
        return (
            member.id != author_id
            and member.id not in existing_reviewers
            and not is_out_of_office(member.name)
        )

    candidates = select_candidates(peers, required_team_members, eligible, shuffler)
    if trace is not None:
        trace.author_team = team.name if team is not None else None
        trace.required_candidates = len(candidates)
        if team is None:
            trace.warnings.append("author is not in any dev team")
        if len(candidates) < trace.required_left:
            trace.warnings.append(
                f"only {len(candidates)} of {trace.required_left} required slots can be filled"
            )
    return candidates


async def add_reviewers(
    gateway: DirectoryGateway,
    *,
    repository_id: str,
    pull_request_id: str,
    team_name: str,
    config: ReviewersConfig,
    is_out_of_office: OutOfOffice,
    shuffler: MemberShuffler | None = None,
) -> list[NewReviewerAssignment]:
    """Pick new reviewers for a pull request and submit them.

    Returns the submitted batch, or an empty list when the pull request is not
    active. Any gateway failure propagates before anything is submitted.
    """
    trace = AssignmentTrace(repository_id=repository_id, pull_request_id=pull_request_id)
    all_members, pull_request = await gather_or_cancel(
        gateway.get_team_members(team_name),
        gateway.get_pull_request(repository_id, pull_request_id),
    )

    if not pull_request.is_active:
        logger.warning(
            "Pull request is not active. Current status is %s. Reviewers can not be added.",
            pull_request.status,
        )
        trace.skipped_reason = f"status is {pull_request.status}"
        logger.info(trace.describe())
        return []

    logger.info("Received pull request: %s", pull_request)

    required_left = required_reviewers_left(pull_request, config.required_reviewers_count)
    trace.required_left = required_left

    required_candidates: list[Identifier] = []
    if required_left > 0:
        required_candidates = await find_required_candidates(
            gateway,
            pull_request,
            config,
            is_out_of_office,
            shuffler if shuffler is not None else RandomShuffler(),
            trace,
        )

    new_reviewers = plan_new_reviewers(
        pull_request,
        required_candidates=required_candidates,
        all_members=all_members,
        is_out_of_office=is_out_of_office,
        required_left=required_left,
    )
    trace.fill_candidates = len(new_reviewers) - len(required_candidates)

    logger.info("New reviewers will be added: %s", new_reviewers)
    await gateway.submit_reviewers(repository_id, pull_request_id, new_reviewers)
    trace.submitted = True
    logger.info(trace.describe())
    return new_reviewers
