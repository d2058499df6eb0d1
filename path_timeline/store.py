"""In-memory per-user store of points, favorites, period tags and derived segments.

Mutations that can change stay naming (new points, favorite create/update/
delete) regenerate the user's segments synchronously. Readers take the same
per-user lock, so a read never observes a half-finished regeneration.
"""

from __future__ import annotations

import bisect
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from path_timeline.config import TimelineConfig
from path_timeline.locations import FavoriteResolver, LocationResolver
from path_timeline.models import FavoriteLocation, PeriodTag, RawPoint, Segment, UserProfile
from path_timeline.periods import active_tag, tags_overlapping, validate_tag
from path_timeline.segmentation import segment
from path_timeline.timeutils import validate_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SegmentSnapshot:
    """Segments intersecting a range, as of one store version."""

    user_id: str
    version: int
    segments: tuple[Segment, ...]


@dataclass(slots=True)
class _UserData:
    profile: UserProfile
    points: list[RawPoint] = field(default_factory=list)
    favorites: dict[int, FavoriteLocation] = field(default_factory=dict)
    period_tags: list[PeriodTag] = field(default_factory=list)
    segments: tuple[Segment, ...] = ()
    starts: list[int] = field(default_factory=list)
    version: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock)


class SegmentStore:
    """Holds each user's data and keeps their segments current."""

    def __init__(self, config: TimelineConfig | None = None, geocoder: LocationResolver | None = None) -> None:
        self._config = (config or TimelineConfig()).validate()
        self._geocoder = geocoder
        self._users: dict[str, _UserData] = {}
        self._users_lock = threading.Lock()

    # -- users ---------------------------------------------------------------

    def set_profile(self, profile: UserProfile) -> None:
        """Create or update a user; the timezone is validated here."""

        validate_timezone(profile.timezone)
        with self._users_lock:
            data = self._users.get(profile.user_id)
            if data is None:
                self._users[profile.user_id] = _UserData(profile=profile)
                return
        with data.lock:
            data.profile = profile

    def profile(self, user_id: str) -> UserProfile:
        return self._user(user_id).profile

    def _user(self, user_id: str) -> _UserData:
        with self._users_lock:
            data = self._users.get(user_id)
        if data is None:
            raise KeyError(f"Unknown user: {user_id!r}")
        return data

    # -- mutations -----------------------------------------------------------

    def add_points(self, user_id: str, points: Iterable[RawPoint]) -> int:
        """Append points and regenerate; returns the new version."""

        data = self._user(user_id)
        with data.lock:
            data.points.extend(points)
            return self._regenerate_locked(user_id, data)

    def add_favorite(self, user_id: str, favorite: FavoriteLocation) -> int:
        data = self._user(user_id)
        with data.lock:
            if favorite.favorite_id in data.favorites:
                raise ValueError(f"Favorite {favorite.favorite_id} already exists")
            data.favorites[favorite.favorite_id] = favorite
            return self._regenerate_locked(user_id, data)

    def update_favorite(self, user_id: str, favorite: FavoriteLocation) -> int:
        data = self._user(user_id)
        with data.lock:
            if favorite.favorite_id not in data.favorites:
                raise KeyError(f"Unknown favorite: {favorite.favorite_id}")
            data.favorites[favorite.favorite_id] = favorite
            return self._regenerate_locked(user_id, data)

    def delete_favorite(self, user_id: str, favorite_id: int) -> int:
        data = self._user(user_id)
        with data.lock:
            if data.favorites.pop(favorite_id, None) is None:
                raise KeyError(f"Unknown favorite: {favorite_id}")
            return self._regenerate_locked(user_id, data)

    def favorites(self, user_id: str) -> list[FavoriteLocation]:
        data = self._user(user_id)
        with data.lock:
            return sorted(data.favorites.values(), key=lambda f: f.favorite_id)

    def add_period_tag(self, user_id: str, tag: PeriodTag) -> None:
        """Tags are an overlay only; adding one does not regenerate segments."""

        data = self._user(user_id)
        with data.lock:
            data.period_tags.append(validate_tag(tag))

    def period_tags_between(self, user_id: str, start_ms: int, end_ms: int) -> list[PeriodTag]:
        data = self._user(user_id)
        with data.lock:
            return tags_overlapping(data.period_tags, start_ms, end_ms)

    def active_period_tag(self, user_id: str, at_ms: int) -> PeriodTag | None:
        data = self._user(user_id)
        with data.lock:
            return active_tag(data.period_tags, at_ms)

    def regenerate(self, user_id: str) -> int:
        """Rebuild segments now and return the new version.

        Returns only after the new segments are visible to readers.
        """

        data = self._user(user_id)
        with data.lock:
            return self._regenerate_locked(user_id, data)

    def _regenerate_locked(self, user_id: str, data: _UserData) -> int:
        logger.info("Regenerating timeline for user %s (%s points)", user_id, len(data.points))
        resolver = FavoriteResolver(list(data.favorites.values()), fallback=self._geocoder)
        segments = segment(data.points, self._config, user_id=user_id, resolver=resolver)
        data.segments = tuple(segments)
        data.starts = [s.start_ms for s in segments]
        data.version += 1
        logger.info("Timeline for user %s is at version %s (%s segments)", user_id, data.version, len(segments))
        return data.version

    # -- reads ---------------------------------------------------------------

    def version(self, user_id: str) -> int:
        data = self._user(user_id)
        with data.lock:
            return data.version

    def segments_between(self, user_id: str, start_ms: int, end_ms: int) -> SegmentSnapshot:
        """Segments whose [start, end] intersects [start_ms, end_ms), with the version read."""

        data = self._user(user_id)
        with data.lock:
            segs = data.segments
            # Segments are contiguous and sorted, so the first candidate is the one
            # starting at or before start_ms.
            lo = max(0, bisect.bisect_right(data.starts, start_ms) - 1)
            hi = bisect.bisect_left(data.starts, end_ms)
            picked = tuple(s for s in segs[lo:hi] if s.end_ms >= start_ms)
            return SegmentSnapshot(user_id=user_id, version=data.version, segments=picked)

    def all_segments(self, user_id: str) -> SegmentSnapshot:
        data = self._user(user_id)
        with data.lock:
            return SegmentSnapshot(user_id=user_id, version=data.version, segments=data.segments)
