from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from carrental.core.clock import as_utc
from carrental.core.errors import ValidationFailed


@dataclass(frozen=True)
class Interval:
    """Half-open reservation window [starts_at, ends_at)."""

    starts_at: datetime
    ends_at: datetime

    @classmethod
    def utc(cls, starts_at: datetime, ends_at: datetime) -> "Interval":
        return cls(as_utc(starts_at), as_utc(ends_at))

    def overlaps(self, other: "Interval") -> bool:
        # touching endpoints do not conflict
        return self.starts_at < other.ends_at and self.ends_at > other.starts_at


def has_overlap(candidate: Interval, existing: Iterable[Interval]) -> bool:
    return any(candidate.overlaps(slot) for slot in existing)


def validate_interval(interval: Interval) -> None:
    if interval.ends_at <= interval.starts_at:
        raise ValidationFailed("Booking end time must be after start time.")
