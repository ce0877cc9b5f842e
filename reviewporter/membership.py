"""Lookup of the development team a pull request author belongs to."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from reviewporter.config import DevTeam
from reviewporter.gateway import DirectoryGateway
from reviewporter.models import Identifier, TeamMember

logger = logging.getLogger(__name__)


async def resolve_author_team(
    gateway: DirectoryGateway,
    author_id: Identifier,
    teams: Sequence[DevTeam],
) -> tuple[list[TeamMember], DevTeam | None]:
    """Return the roster and config of the first team that contains the author.

    Teams are fetched one at a time in configuration order and the scan stops at
    the first match. Gateway errors propagate.
    """
    for team in teams:
        members = await gateway.get_team_members(team.name)
        if any(member.id == author_id for member in members):
            logger.info("Pull request author found in %s team.", team.name)
            return members, team

    logger.warning("Pull request author is not added to any of the dev teams.")
    return [], None


async def fetch_required_reviewers(
    gateway: DirectoryGateway,
    team: DevTeam | None,
) -> list[TeamMember]:
    """Return members of the team's required-reviewers team, if it has one."""
    if team is None or team.required_reviewers_team is None:
        logger.info("Author's team does not have required reviewers.")
        return []

    logger.info("Required reviewers team is %s.", team.required_reviewers_team)
    return await gateway.get_team_members(team.required_reviewers_team)
