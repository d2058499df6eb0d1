"""Assembly of the date-grouped movement timeline."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import Counter, defaultdict
from concurrent.futures import Future
from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import Enum
from typing import Iterable

from path_timeline.daysplit import split_by_local_day
from path_timeline.models import DayGroup, DayLocalView, PeriodTag, Segment
from path_timeline.store import SegmentSnapshot, SegmentStore
from path_timeline.timeutils import DateRange, validate_timezone

logger = logging.getLogger(__name__)


class TimelineStatus(str, Enum):
    READY = "ready"
    EMPTY = "empty"
    # The result belongs to a request that has since been superseded.
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class TimelineResult:
    user_id: str
    date_range: DateRange
    timezone: str
    status: TimelineStatus
    days: tuple[DayGroup, ...]
    period_tags: tuple[PeriodTag, ...]
    version: int
    request_id: int = 0

    @property
    def is_empty(self) -> bool:
        return self.status == TimelineStatus.EMPTY

    @property
    def item_count(self) -> int:
        return sum(len(g.items) for g in self.days)

    def counts(self) -> dict[str, int]:
        """Distinct segments per kind ("stay", "trip", "gap")."""

        seen: dict[int, Segment] = {}
        for g in self.days:
            for v in g.items:
                seen[id(v.segment)] = v.segment
        c = Counter(s.kind for s in seen.values())
        return {"stay": c["stay"], "trip": c["trip"], "gap": c["gap"]}


def build_day_groups(segments: Iterable[Segment], date_range: DateRange, timezone: str) -> list[DayGroup]:
    """Split, filter to ``date_range`` and group views by local date.

    Dates are ascending, items within a date ascending by clipped start.
    """

    by_date: dict[date, list[DayLocalView]] = defaultdict(list)
    for seg in segments:
        for view in split_by_local_day(seg, timezone):
            if date_range.contains(view.calendar_date):
                by_date[view.calendar_date].append(view)
    return [
        DayGroup(calendar_date=d, items=tuple(sorted(by_date[d], key=lambda v: (v.start_ms, v.end_ms))))
        for d in sorted(by_date)
    ]


@dataclass(frozen=True, slots=True)
class _Fetched:
    snapshot: SegmentSnapshot
    period_tags: tuple[PeriodTag, ...]


class TimelineAssembler:
    """Builds TimelineResults from a SegmentStore.

    Upstream fetches are shared per (user, range, timezone, store version)
    while they are in flight: concurrent identical requests wait for one
    fetch. A finished fetch is forgotten, so the map only ever holds running
    fetches, and any store mutation changes the version so nothing is reused
    across regenerations.
    """

    def __init__(self, store: SegmentStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._fetches: dict[tuple[str, DateRange, str, int], Future[_Fetched]] = {}
        self.fetch_count = 0

    def assemble(self, user_id: str, date_range: DateRange, timezone: str) -> TimelineResult:
        """Return the timeline for ``date_range`` in ``timezone``.

        Raises:
            InvalidTimezoneError: If the zone is unknown (checked before any work).
            KeyError: If the user does not exist.
        """

        tz = validate_timezone(timezone)
        fetched = self._fetch(user_id, date_range, tz)
        days = build_day_groups(fetched.snapshot.segments, date_range, tz)
        return TimelineResult(
            user_id=user_id,
            date_range=date_range,
            timezone=tz,
            status=TimelineStatus.READY if days else TimelineStatus.EMPTY,
            days=tuple(days),
            period_tags=fetched.period_tags,
            version=fetched.snapshot.version,
        )

    def _fetch(self, user_id: str, date_range: DateRange, tz: str) -> _Fetched:
        version = self._store.version(user_id)
        key = (user_id, date_range, tz, version)
        with self._lock:
            existing = self._fetches.get(key)
            if existing is None:
                fut: Future[_Fetched] = Future()
                self._fetches[key] = fut
        if existing is not None:
            return existing.result()

        try:
            # Widen by a day on each side so overnight segments are caught.
            widened = DateRange(date_range.start - timedelta(days=1), date_range.end + timedelta(days=1))
            start_ms, end_ms = widened.to_epoch_ms(tz)
            snapshot = self._store.segments_between(user_id, start_ms, end_ms)
            range_start, range_end = date_range.to_epoch_ms(tz)
            tags = tuple(self._store.period_tags_between(user_id, range_start, range_end))
        except BaseException as exc:
            with self._lock:
                self._fetches.pop(key, None)
            fut.set_exception(exc)
            raise
        fetched = _Fetched(snapshot=snapshot, period_tags=tags)
        with self._lock:
            self.fetch_count += 1
            # Waiters already hold the future.
            self._fetches.pop(key, None)
        fut.set_result(fetched)
        return fetched


class TimelineView:
    """The timeline one client is looking at; the last request wins.

    A response for a request that has been superseded is returned with status
    STALE and never becomes ``current``.
    """

    def __init__(self, assembler: TimelineAssembler, store: SegmentStore, user_id: str) -> None:
        self._assembler = assembler
        self._store = store
        self._user_id = user_id
        self._seq = itertools.count(1)
        self._latest = 0
        self._lock = threading.Lock()
        self.current: TimelineResult | None = None

    def request(self, date_range: DateRange, timezone: str | None = None) -> TimelineResult:
        """Fetch a range; the timezone defaults to the user's profile, never the machine's."""

        tz = timezone if timezone is not None else self._store.profile(self._user_id).timezone
        with self._lock:
            request_id = next(self._seq)
            self._latest = request_id
        result = replace(self._assembler.assemble(self._user_id, date_range, tz), request_id=request_id)
        with self._lock:
            if request_id != self._latest:
                logger.debug("Discarding superseded timeline request %s (latest %s)", request_id, self._latest)
                return replace(result, status=TimelineStatus.STALE)
            self.current = result
            return result
