"""
engagement/models.py -- Domain dataclasses for the engagement tracker.

Pure data containers. EngagementTracker owns the working copies and the
document mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field

VOTE_CHOICES = ("support", "oppose")


@dataclass
class Tally:
    """The global vote tally plus the cumulative visit counter.

    voters holds every origin that has voted; support + oppose always
    equals len(voters).
    """

    support: int = 0
    oppose: int = 0
    voters: set[str] = field(default_factory=set)
    visit_count: int = 0


@dataclass(frozen=True)
class VisitCounts:
    users: int
    visitors: int  # distinct origins per 24-hour window, all time
    realtime_visitors: int
    total_visits: int


@dataclass(frozen=True)
class Results:
    support: int
    oppose: int
    visitors: int
    message: str
