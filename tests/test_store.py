"""Tests for the per-user segment store."""

from __future__ import annotations

import pytest

from path_timeline.errors import InvalidTimezoneError
from path_timeline.models import FavoriteLocation, PeriodTag, UserProfile


@pytest.fixture()
def commute(store, track):
    """Store holding a stay, a 3 km drive and a stay."""
    track.stay(20).move(3000, 36).stay(20)
    store.add_points("u1", track.points)
    return store


class TestProfiles:
    """Test user handling."""

    def test_unknown_user(self, store):
        """Reads for unknown users raise KeyError."""
        with pytest.raises(KeyError):
            store.profile("nobody")
        with pytest.raises(KeyError):
            store.add_points("nobody", [])

    def test_invalid_timezone(self, store):
        """Profiles are validated on write."""
        with pytest.raises(InvalidTimezoneError):
            store.set_profile(UserProfile(user_id="u2", timezone="Moon/Base"))

    def test_update_keeps_data(self, commute):
        """Changing the zone does not drop segments."""
        commute.set_profile(UserProfile(user_id="u1", timezone="UTC"))
        assert commute.profile("u1").timezone == "UTC"
        assert len(commute.all_segments("u1").segments) == 3


class TestRegeneration:
    """Test that mutations bump the version and rebuild segments."""

    def test_add_points_bumps_version(self, store, track):
        """Each add returns the new version."""
        track.stay(10)
        assert store.add_points("u1", track.points) == 1
        assert store.version("u1") == 1
        assert store.regenerate("u1") == 2

    def test_favorite_crud(self, commute, track):
        """Create, update and delete each regenerate; errors on duplicates and misses."""
        fav = FavoriteLocation(favorite_id=3, name="Home", latitude=track.points[0].latitude, longitude=track.points[0].longitude)
        v1 = commute.version("u1")
        assert commute.add_favorite("u1", fav) == v1 + 1
        assert commute.all_segments("u1").segments[0].location_name == "Home"
        with pytest.raises(ValueError):
            commute.add_favorite("u1", fav)

        renamed = FavoriteLocation(favorite_id=3, name="Flat", latitude=fav.latitude, longitude=fav.longitude)
        commute.update_favorite("u1", renamed)
        assert commute.all_segments("u1").segments[0].location_name == "Flat"
        assert [f.name for f in commute.favorites("u1")] == ["Flat"]

        commute.delete_favorite("u1", 3)
        assert commute.all_segments("u1").segments[0].favorite_id is None
        with pytest.raises(KeyError):
            commute.delete_favorite("u1", 3)
        with pytest.raises(KeyError):
            commute.update_favorite("u1", renamed)


class TestReads:
    """Test range reads."""

    def test_segments_between_includes_overlapping(self, commute):
        """A segment that starts before the window but reaches into it is returned."""
        stay_a, trip, stay_b = commute.all_segments("u1").segments
        snap = commute.segments_between("u1", trip.start_ms + 1, trip.end_ms - 1)
        assert snap.segments == (trip,)
        snap = commute.segments_between("u1", stay_a.start_ms + 60_000, stay_b.start_ms + 60_000)
        assert snap.segments == (stay_a, trip, stay_b)
        assert snap.version == commute.version("u1")

    def test_window_after_data(self, commute):
        """Nothing after the last segment."""
        last = commute.all_segments("u1").segments[-1]
        assert commute.segments_between("u1", last.end_ms + 1, last.end_ms + 10_000).segments == ()


class TestPeriodTags:
    """Test the period tag overlay."""

    def test_tags_do_not_regenerate(self, commute):
        """Adding a tag leaves the version alone."""
        v = commute.version("u1")
        commute.add_period_tag("u1", PeriodTag("Holiday", 1_000, None))
        assert commute.version("u1") == v
        assert commute.active_period_tag("u1", 5_000).tag_name == "Holiday"

    def test_invalid_tag(self, commute):
        """End before start is rejected."""
        with pytest.raises(ValueError):
            commute.add_period_tag("u1", PeriodTag("Backwards", 5_000, 1_000))

    def test_overlap_query(self, commute):
        """Only tags touching the window are returned."""
        commute.add_period_tag("u1", PeriodTag("A", 0, 1_000))
        commute.add_period_tag("u1", PeriodTag("B", 2_000, 3_000))
        assert [t.tag_name for t in commute.period_tags_between("u1", 1_500, 2_500)] == ["B"]
