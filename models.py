"""Value types shared by the matcher, the link codec and the reveal flow."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Union

Number = Union[int, float]


@dataclass(frozen=True)
class Participant:
    name: str


@dataclass(frozen=True)
class Match:
    giver: str
    receiver: str


@dataclass
class Configuration:
    """Everything a shareable link carries: who takes part, the budget, the
    event date (ISO ``YYYY-MM-DD``) and who buys for whom."""

    participants: List[Participant] = field(default_factory=list)
    prize_value: Number = 0
    event_date: str = ""
    matches: List[Match] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.participants]
