"""Member pool shuffling strategies."""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Protocol

from reviewporter.models import TeamMember


class MemberShuffler(Protocol):
    """Permutes two member pools independently."""

    def shuffle(
        self,
        first: Sequence[TeamMember],
        second: Sequence[TeamMember],
    ) -> tuple[list[TeamMember], list[TeamMember]]:
        """Return shuffled copies of both pools."""


class RandomShuffler:
    """Shuffles with a private ``random.Random`` instance."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng if rng is not None else random.Random()

    def shuffle(
        self,
        first: Sequence[TeamMember],
        second: Sequence[TeamMember],
    ) -> tuple[list[TeamMember], list[TeamMember]]:
        shuffled_first = list(first)
        shuffled_second = list(second)
        self._rng.shuffle(shuffled_first)
        self._rng.shuffle(shuffled_second)
        return shuffled_first, shuffled_second


class IdentityShuffler:
    """Keeps both pools in their original order."""

    def shuffle(
        self,
        first: Sequence[TeamMember],
        second: Sequence[TeamMember],
    ) -> tuple[list[TeamMember], list[TeamMember]]:
        return list(first), list(second)
