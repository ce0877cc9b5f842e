"""Candidate ordering for required reviewer slots."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import TypeVar

from reviewporter.models import Identifier, TeamMember
from reviewporter.shuffle import MemberShuffler

T = TypeVar("T")

Eligibility = Callable[[TeamMember], bool]


def interleave(first: Iterable[T], second: Iterable[T]) -> Iterator[T]:
    """Alternate items from both iterables, starting with ``first``.

    Once one side is exhausted the rest of the other side follows in order.
    """
    first_iter = iter(first)
    second_iter = iter(second)
    while True:
        for item in first_iter:
            yield item
            break
        else:
            yield from second_iter
            return
        for item in second_iter:
            yield item
            break
        else:
            yield from first_iter
            return


def select_candidates(
    peers: Sequence[TeamMember],
    required_team_members: Sequence[TeamMember],
    eligible: Eligibility,
    shuffler: MemberShuffler,
) -> list[Identifier]:
    """Order candidates for required slots by alternating both shuffled pools.

    A person present in both pools is offered once, through the peer pool.
    """
    shuffled_peers, shuffled_required = shuffler.shuffle(peers, required_team_members)
    peer_ids = {member.id for member in shuffled_peers}

    peer_stream = (member for member in shuffled_peers if eligible(member))
    required_stream = (
        member
        for member in shuffled_required
        if eligible(member) and member.id not in peer_ids
    )
    return [member.id for member in interleave(peer_stream, required_stream)]
