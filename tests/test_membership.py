"""Tests for author team resolution."""

from __future__ import annotations

import asyncio

import pytest
from reviewporter.config import DevTeam
from reviewporter.gateway import GatewayLookupError, InMemoryDirectoryGateway
from reviewporter.membership import fetch_required_reviewers, resolve_author_team
from reviewporter.models import Identifier, TeamMember


def make_member(name: str) -> TeamMember:
    return TeamMember(id=Identifier(f"id-{name}"), name=name)


def make_gateway() -> InMemoryDirectoryGateway:
    return InMemoryDirectoryGateway(
        teams={
            "Backend": [make_member("ann"), make_member("bob")],
            "Frontend": [make_member("cid"), make_member("bob")],
            "Mobile": [make_member("dan")],
            "Leads": [make_member("lea")],
        }
    )


TEAMS = [
    DevTeam(name="Backend", required_reviewers_team="Leads"),
    DevTeam(name="Frontend"),
    DevTeam(name="Mobile"),
]


@pytest.mark.unit
def test_resolve_author_team_returns_first_matching_team_and_stops() -> None:
    gateway = make_gateway()

    peers, team = asyncio.run(resolve_author_team(gateway, Identifier("id-cid"), TEAMS))

    assert team == TEAMS[1]
    assert [peer.name for peer in peers] == ["cid", "bob"]
    assert gateway.team_requests == ["Backend", "Frontend"]


@pytest.mark.unit
def test_resolve_author_team_prefers_configuration_order() -> None:
    peers, team = asyncio.run(resolve_author_team(make_gateway(), Identifier("id-bob"), TEAMS))

    assert team is not None
    assert team.name == "Backend"
    assert [peer.name for peer in peers] == ["ann", "bob"]


@pytest.mark.unit
def test_resolve_author_team_without_match_is_not_an_error() -> None:
    gateway = make_gateway()

    peers, team = asyncio.run(resolve_author_team(gateway, Identifier("id-zed"), TEAMS))

    assert peers == []
    assert team is None
    assert gateway.team_requests == ["Backend", "Frontend", "Mobile"]


@pytest.mark.unit
def test_resolve_author_team_propagates_lookup_failure() -> None:
    teams = [DevTeam(name="Missing"), *TEAMS]

    with pytest.raises(GatewayLookupError):
        asyncio.run(resolve_author_team(make_gateway(), Identifier("id-ann"), teams))


@pytest.mark.unit
def test_fetch_required_reviewers_uses_paired_team() -> None:
    gateway = make_gateway()

    leads = asyncio.run(fetch_required_reviewers(gateway, TEAMS[0]))

    assert [lead.name for lead in leads] == ["lea"]


@pytest.mark.unit
@pytest.mark.parametrize("team", [None, TEAMS[1]])
def test_fetch_required_reviewers_without_paired_team(team: DevTeam | None) -> None:
    gateway = make_gateway()

    assert asyncio.run(fetch_required_reviewers(gateway, team)) == []
    assert gateway.team_requests == []
