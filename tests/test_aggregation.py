"""Tests for statistics, activity patterns and milestones."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from path_timeline.aggregation import (
    NO_ACTIVITY,
    activity_patterns,
    average_speed,
    dashboard_statistics,
    daily_average_distance,
    distance_chart,
    geographic_insights,
    milestones,
    most_active_day,
    period_milestones,
    segments_in_range,
    time_moving,
    top_places,
    total_distance,
    unique_locations,
)
from path_timeline.models import Coordinate, DataGap, MovementType, Stay, Trip
from path_timeline.timeutils import DateRange, epoch_ms_from_dt


def _ms(*args) -> int:
    return epoch_ms_from_dt(datetime(*args, tzinfo=UTC))


def _trip(start_ms: int, minutes: float, km: float, mode: MovementType = MovementType.CAR) -> Trip:
    return Trip(
        start_ms=start_ms,
        end_ms=start_ms + int(minutes * 60_000),
        start_point=Coordinate(50.0, 30.0),
        end_point=Coordinate(50.1, 30.0),
        distance_meters=km * 1000.0,
        movement_type=mode,
    )


def _stay(start_ms: int, minutes: float, name: str, **kw) -> Stay:
    return Stay(start_ms, start_ms + int(minutes * 60_000), 50.0, 30.0, location_name=name, **kw)


@pytest.fixture()
def week():
    """Four trips over three days in UTC: 61.5 km in exactly 3 hours."""
    return [
        _stay(_ms(2025, 9, 15, 7, 0), 60, "Home", favorite_id=1),
        _trip(_ms(2025, 9, 15, 8, 0), 45, 36.0),
        _stay(_ms(2025, 9, 15, 8, 45), 555, "Work", favorite_id=2),
        _trip(_ms(2025, 9, 15, 18, 0), 45, 18.0),
        _stay(_ms(2025, 9, 15, 18, 45), 600, "Home", favorite_id=1),
        _stay(_ms(2025, 9, 17, 8, 0), 60, "Home", favorite_id=1),
        _trip(_ms(2025, 9, 17, 9, 0), 45, 5.0, MovementType.WALK),
        _stay(_ms(2025, 9, 17, 9, 45), 90, "Park", geocoding_id="p1", city="Kyiv", country="Ukraine"),
        _trip(_ms(2025, 9, 18, 10, 0), 45, 2.5, MovementType.WALK),
        DataGap(_ms(2025, 9, 18, 10, 45), _ms(2025, 9, 18, 16, 0)),
    ]


class TestTotals:
    """Test distance, time and speed sums."""

    def test_average_is_distance_weighted(self, week):
        """61.5 km over 3 h is 20.5 km/h, not the mean of per-trip speeds."""
        assert total_distance(week) == pytest.approx(61_500)
        assert time_moving(week) == pytest.approx(3 * 3600)
        assert average_speed(week) == pytest.approx(20.5)

    def test_no_trips(self):
        """Zero, never a division error."""
        assert average_speed([]) == 0.0
        assert total_distance([]) == 0.0
        assert daily_average_distance([], "UTC") == 0.0

    def test_by_movement_type(self, week):
        """Distance can be restricted to one mode."""
        assert total_distance(week, MovementType.WALK) == pytest.approx(7_500)
        assert total_distance(week, "CAR") == pytest.approx(54_000)

    def test_partitioned_ranges_add_up(self, week):
        """Totals over disjoint ranges sum to the total over their union."""
        whole = segments_in_range(week, DateRange(date(2025, 9, 15), date(2025, 9, 18)), "UTC")
        left = segments_in_range(week, DateRange(date(2025, 9, 15), date(2025, 9, 16)), "UTC")
        right = segments_in_range(week, DateRange(date(2025, 9, 17), date(2025, 9, 18)), "UTC")
        assert total_distance(left) + total_distance(right) == pytest.approx(total_distance(whole))
        assert time_moving(left) + time_moving(right) == pytest.approx(time_moving(whole))

    def test_range_uses_segment_start(self, week):
        """A segment starting before the range is not counted in it."""
        picked = segments_in_range(week, DateRange(date(2025, 9, 16), date(2025, 9, 16)), "UTC")
        assert picked == []

    def test_daily_average_over_days_with_trips(self, week):
        """Three days have trips."""
        assert daily_average_distance(week, "UTC") == pytest.approx(61_500 / 3)


class TestPlaces:
    """Test place counting."""

    def test_top_places_order(self, week):
        """Most visits first, ties by name."""
        names = [p.name for p in top_places(week)]
        assert names == ["Home", "Park", "Work"]
        assert top_places(week)[0].visit_count == 3

    def test_top_places_capped(self):
        """At most five places are returned."""
        stays = [_stay(_ms(2025, 9, 15, h, 0), 30, f"Place {h}") for h in range(8)]
        assert len(top_places(stays)) == 5
        with pytest.raises(ValueError):
            top_places(stays, -1)

    def test_unique_locations(self, week):
        """Favorites and geocoding results are counted once each."""
        assert unique_locations(week) == 3

    def test_geographic_insights(self):
        """Countries and cities come from resolved stays only."""
        stays = [
            _stay(_ms(2025, 9, 15, 7, 0), 30, "A", city="Kyiv", country="Ukraine"),
            _stay(_ms(2025, 9, 15, 8, 0), 30, "B", city="Lviv", country="Ukraine"),
            _stay(_ms(2025, 9, 15, 9, 0), 30, "C", city="Kyiv", country="Ukraine"),
            _stay(_ms(2025, 9, 15, 10, 0), 30, "D", city="Warsaw", country="Poland"),
            _stay(_ms(2025, 9, 15, 11, 0), 30, "E"),
        ]
        geo = geographic_insights(stays)
        assert [(c.name, c.visits) for c in geo.countries] == [("Ukraine", 3), ("Poland", 1)]
        assert [(c.name, c.visits) for c in geo.cities] == [("Kyiv", 2), ("Lviv", 1), ("Warsaw", 1)]


class TestActivityPatterns:
    """Test busiest month, weekday and hour."""

    def test_buckets_in_user_zone(self, week):
        """Monday mornings dominate the fixture."""
        p = activity_patterns(week, "UTC")
        assert p.most_active_month == "September 2025"
        assert p.busiest_day_of_week == "Monday"
        assert p.day_insight == "Starting the week strong!"
        assert p.most_active_hour == 8
        assert p.most_active_time_of_day == "8:30 AM"
        assert p.time_insight == "Early bird explorer"

    def test_ties_go_to_the_earliest_bucket(self):
        """One start on Tuesday 20:00 and one on Monday 21:00: Monday, 20h."""
        segs = [_stay(_ms(2025, 9, 16, 20, 0), 30, "A"), _stay(_ms(2025, 9, 15, 21, 0), 30, "B")]
        p = activity_patterns(segs, "UTC")
        assert p.busiest_day_of_week == "Monday"
        assert p.most_active_hour == 20
        assert p.time_insight == "Evening adventurer"

    def test_monthly_comparison(self):
        """Three starts this month against an average of two."""
        segs = [_stay(_ms(2025, 8, 10, 12, 0), 30, "A")] + [
            _stay(_ms(2025, 9, d, 12, 0), 30, "B") for d in (1, 2, 3)
        ]
        p = activity_patterns(segs, "UTC", today=date(2025, 9, 20))
        assert p.monthly_comparison == "50% more active than average"

    def test_empty(self):
        """Without activity every insight reads 'No activity recorded'."""
        p = activity_patterns([DataGap(0, 1000)], "UTC")
        assert p.most_active_month is None
        assert p.busiest_day_of_week is None
        assert p.day_insight == p.time_insight == p.monthly_comparison == NO_ACTIVITY


class TestMilestones:
    """Test badge progress."""

    def test_progress_is_clamped(self, week):
        """Progress stays within [0, 100] and earned means the target is met."""
        for m in milestones(week + [_trip(_ms(2025, 9, 19, 8, 0), 600, 2000.0)], "UTC"):
            assert 0.0 <= m.progress_percent <= 100.0
            assert m.earned == (m.current >= m.target)

    def test_partial_progress(self, week):
        """61.5 km is 61.5 % of a 100 km badge."""
        by_title = {m.title: m for m in milestones(week, "UTC")}
        assert by_title["First Journey"].earned
        assert by_title["Century Rider"].progress_percent == pytest.approx(61.5)
        assert not by_title["Century Rider"].earned
        assert by_title["Consistent Tracker"].current == 3

    def test_period_tiers(self, week):
        """150 km in a month reaches bronze, silver is next."""
        segs = week + [_trip(_ms(2025, 9, 20, 8, 0), 90, 88.5)]
        by_cat = {m.category: m for m in period_milestones(segs, "UTC", "monthly")}
        distance = by_cat["distance"]
        assert distance.value == pytest.approx(150.0)
        assert distance.tier == "bronze"
        assert distance.title == "Local Traveler"
        assert distance.next_tier == "silver"
        assert distance.progress_percent == pytest.approx(30.0)

    def test_period_below_bronze(self, week):
        """Below the lowest threshold there is no tier yet."""
        trips = {m.category: m for m in period_milestones(week, "UTC", "yearly")}["trips"]
        assert trips.tier is None
        assert trips.next_tier == "bronze"
        assert trips.progress_percent == pytest.approx(4.0)

    def test_unknown_period(self, week):
        """Only monthly and yearly exist."""
        with pytest.raises(ValueError):
            period_milestones(week, "UTC", "weekly")


class TestDashboard:
    """Test the dashboard bundle."""

    def test_dashboard_statistics(self, week):
        """Counts and totals for one week."""
        stats = dashboard_statistics(week, DateRange(date(2025, 9, 15), date(2025, 9, 21)), "UTC")
        assert stats.trips == 4
        assert stats.stays == 5
        assert stats.average_speed_kmh == pytest.approx(20.5)
        assert stats.daily_average_distance_m == pytest.approx(20_500)
        assert [p.name for p in stats.top_places] == ["Home", "Park", "Work"]
        assert set(stats.charts_by_type) == {"CAR", "WALK"}

    def test_distance_by_type_adds_up(self, week):
        """Trips of unknown mode have their own share of the total."""
        segments = [*week, _trip(_ms(2025, 9, 19, 12, 0), 30, 10.0, MovementType.UNKNOWN)]
        stats = dashboard_statistics(segments, DateRange(date(2025, 9, 15), date(2025, 9, 21)), "UTC")
        assert stats.distance_by_type_m["UNKNOWN"] == pytest.approx(10_000)
        assert sum(stats.distance_by_type_m.values()) == pytest.approx(stats.total_distance_m)
        assert "UNKNOWN" in stats.charts_by_type

    def test_most_active_day(self, week):
        """Monday has both car trips."""
        day = most_active_day(week, "UTC")
        assert day.day == date(2025, 9, 15)
        assert day.day_name == "Monday"
        assert day.distance_km == pytest.approx(54.0)
        assert day.travel_seconds == pytest.approx(5400)
        assert day.locations == 2
        assert most_active_day([], "UTC") is None

    def test_daily_chart(self, week):
        """Ranges under ten days are charted per weekday."""
        chart = distance_chart(week, DateRange(date(2025, 9, 15), date(2025, 9, 21)), "UTC")
        assert [c.label for c in chart] == ["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"]
        assert chart[0].distance_km == pytest.approx(54.0)
        assert chart[1].distance_km == 0.0

    def test_weekly_chart(self, week):
        """Longer ranges are charted per week starting Monday."""
        chart = distance_chart(week, DateRange(date(2025, 9, 8), date(2025, 9, 21)), "UTC")
        assert [c.label for c in chart] == ["09/08", "09/15"]
        assert chart[1].distance_km == pytest.approx(61.5)
