"""Period tag overlay helpers."""

from __future__ import annotations

from typing import Iterable

from path_timeline.models import PeriodTag


def tags_overlapping(tags: Iterable[PeriodTag], start_ms: int, end_ms: int) -> list[PeriodTag]:
    """Tags touching [start_ms, end_ms], ordered by start then name.

    Ongoing tags (no end) overlap every range ending after their start.
    """

    hits = [t for t in tags if t.overlaps(start_ms, end_ms)]
    return sorted(hits, key=lambda t: (t.start_ms, t.tag_name))


def active_tag(tags: Iterable[PeriodTag], at_ms: int) -> PeriodTag | None:
    """The most recently started tag covering ``at_ms``."""

    covering = [t for t in tags if t.start_ms <= at_ms and (t.end_ms is None or at_ms <= t.end_ms)]
    if not covering:
        return None
    return max(covering, key=lambda t: t.start_ms)


def validate_tag(tag: PeriodTag) -> PeriodTag:
    """Raise ValueError for an empty name or an end before the start."""

    if not tag.tag_name.strip():
        raise ValueError("Period tag name must not be empty")
    if tag.end_ms is not None and tag.end_ms < tag.start_ms:
        raise ValueError(f"Period tag {tag.tag_name!r} ends before it starts")
    return tag
