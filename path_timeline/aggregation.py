"""Statistics over segments: distance, speed, places, activity patterns, milestones.

All functions are pure. Range selection is done once by ``segments_in_range``;
no function special-cases "today" or "last 7 days".
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Sequence

from path_timeline.formatting import format_hour_label
from path_timeline.models import DataGap, MovementType, Segment, Stay, Trip
from path_timeline.timeutils import DateRange, dt_from_epoch_ms, local_date

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
NO_ACTIVITY = "No activity recorded"


def segments_in_range(segments: Iterable[Segment], date_range: DateRange, timezone: str) -> list[Segment]:
    """Segments that start inside the local date range."""

    start_ms, end_ms = date_range.to_epoch_ms(timezone)
    return [s for s in segments if start_ms <= s.start_ms < end_ms]


def _trips(segments: Iterable[Segment]) -> list[Trip]:
    return [s for s in segments if isinstance(s, Trip)]


def _stays(segments: Iterable[Segment]) -> list[Stay]:
    return [s for s in segments if isinstance(s, Stay)]


def total_distance(segments: Iterable[Segment], movement_type: MovementType | str | None = None) -> float:
    """Sum of trip distances in meters, optionally for one movement type."""

    wanted = MovementType(movement_type) if movement_type is not None else None
    return sum(t.distance_meters for t in _trips(segments) if wanted is None or t.movement_type == wanted)


def time_moving(segments: Iterable[Segment]) -> float:
    """Total trip time in seconds."""

    return sum(t.duration_seconds for t in _trips(segments))


def average_speed(segments: Iterable[Segment]) -> float:
    """Distance-weighted average speed in km/h (total distance / total trip time).

    Returns 0.0 when there are no trips or they have no duration.
    """

    trips = _trips(segments)
    seconds = sum(t.duration_seconds for t in trips)
    if seconds <= 0:
        return 0.0
    return sum(t.distance_meters for t in trips) / seconds * 3.6


def place_key(stay: Stay) -> str:
    """Identity of a stay's place: favorite, then geocoding result, then name."""

    if stay.favorite_id is not None:
        return f"favorite:{stay.favorite_id}"
    if stay.geocoding_id is not None:
        return f"geocoding:{stay.geocoding_id}"
    return f"name:{stay.location_name or f'{stay.latitude:.4f},{stay.longitude:.4f}'}"


@dataclass(frozen=True, slots=True)
class PlaceVisit:
    name: str
    visit_count: int
    total_seconds: float
    latitude: float
    longitude: float


def place_visits(segments: Iterable[Segment]) -> list[PlaceVisit]:
    """All places with visit counts, most visited first, ties by name."""

    groups: dict[str, list[Stay]] = defaultdict(list)
    for stay in _stays(segments):
        groups[place_key(stay)].append(stay)
    visits = [
        PlaceVisit(
            name=stays[0].location_name or "Unknown Location",
            visit_count=len(stays),
            total_seconds=sum(s.duration_seconds for s in stays),
            latitude=stays[0].latitude,
            longitude=stays[0].longitude,
        )
        for stays in groups.values()
    ]
    visits.sort(key=lambda v: (-v.visit_count, v.name))
    return visits


def top_places(segments: Iterable[Segment], limit: int = 5) -> list[PlaceVisit]:
    if limit < 0:
        raise ValueError("limit must be >= 0")
    return place_visits(segments)[:limit]


def unique_locations(segments: Iterable[Segment]) -> int:
    return len({place_key(s) for s in _stays(segments)})


def daily_average_distance(segments: Iterable[Segment], timezone: str) -> float:
    """Meters per local day that has at least one trip; 0.0 without trips."""

    trips = _trips(segments)
    days = {local_date(t.start_ms, timezone) for t in trips}
    if not days:
        return 0.0
    return sum(t.distance_meters for t in trips) / len(days)


# -- activity patterns --------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ActivityPatterns:
    """Busiest buckets by count of stay/trip starts in the user's zone.

    Fields are None when there is no activity; the insight texts then read
    "No activity recorded".
    """

    most_active_month: str | None
    busiest_day_of_week: str | None
    most_active_hour: int | None
    most_active_time_of_day: str | None
    day_insight: str
    time_insight: str
    monthly_comparison: str


def _argmax_earliest(counter: Counter) -> object | None:
    if not counter:
        return None
    best = max(counter.values())
    return min(k for k, v in counter.items() if v == best)


def day_insight(day_name: str | None) -> str:
    if day_name is None:
        return NO_ACTIVITY
    day = day_name.lower()
    if day in ("saturday", "sunday"):
        return "Perfect for weekend adventures!"
    if day == "friday":
        return "Ready for the weekend!"
    if day == "monday":
        return "Starting the week strong!"
    return "Making the most of midweek!"


def time_insight(hour: int | None) -> str:
    if hour is None:
        return NO_ACTIVITY
    if hour < 12:
        return "Early bird explorer"
    if hour < 18:
        return "Afternoon explorer"
    return "Evening adventurer"


def activity_patterns(segments: Iterable[Segment], timezone: str, today: date | None = None) -> ActivityPatterns:
    """Most active month, weekday and hour from stay and trip start times.

    Ties go to the earliest bucket (earliest month, Monday first, earliest hour).

    Args:
        segments: Segments to analyse; data gaps are ignored.
        timezone: IANA zone used for bucketing.
        today: Reference date for the monthly comparison; omitted -> no comparison.
    """

    months: Counter = Counter()
    weekdays: Counter = Counter()
    hours: Counter = Counter()
    for seg in segments:
        if isinstance(seg, DataGap):
            continue
        dt = dt_from_epoch_ms(seg.start_ms, timezone)
        months[(dt.year, dt.month)] += 1
        weekdays[dt.weekday()] += 1
        hours[dt.hour] += 1

    month = _argmax_earliest(months)
    weekday = _argmax_earliest(weekdays)
    hour = _argmax_earliest(hours)
    day_name = DAY_NAMES[weekday] if weekday is not None else None

    if not months:
        comparison = NO_ACTIVITY
    elif today is None:
        comparison = ""
    else:
        average = sum(months.values()) / len(months)
        change = (months.get((today.year, today.month), 0) - average) / average * 100.0
        if change > 0:
            comparison = f"{change:.0f}% more active than average"
        else:
            comparison = f"{abs(change):.0f}% less active than average"

    return ActivityPatterns(
        most_active_month=f"{MONTH_NAMES[month[1] - 1]} {month[0]}" if month is not None else None,
        busiest_day_of_week=day_name,
        most_active_hour=hour,
        most_active_time_of_day=format_hour_label(hour) if hour is not None else None,
        day_insight=day_insight(day_name),
        time_insight=time_insight(hour),
        monthly_comparison=comparison,
    )


# -- milestones ---------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Milestone:
    title: str
    earned: bool
    progress_percent: float
    current: float
    target: float
    description: str


@dataclass(frozen=True, slots=True)
class _Badge:
    title: str
    metric: str
    target: float
    description: str


ALL_TIME_BADGES: tuple[_Badge, ...] = (
    _Badge("First Journey", "trips", 1, "Complete your first trip"),
    _Badge("Regular Traveler", "trips", 100, "Complete 100 trips"),
    _Badge("Place Explorer", "places", 10, "Visit 10 unique places"),
    _Badge("City Hopper", "cities", 10, "Visit 10 different cities"),
    _Badge("Globe Trotter", "countries", 5, "Visit 5 countries"),
    _Badge("Century Rider", "distance_km", 100, "Travel 100 km in total"),
    _Badge("Road Warrior", "distance_km", 1000, "Travel 1,000 km in total"),
    _Badge("Marathon Walker", "walk_km", 42.195, "Walk a marathon distance in total"),
    _Badge("Road Trip", "longest_trip_km", 300, "Take a single trip of 300 km"),
    _Badge("Consistent Tracker", "active_days", 30, "Be on the move on 30 different days"),
)


def _clamp_percent(current: float, target: float) -> float:
    if target <= 0:
        return 100.0
    return max(0.0, min(100.0, current / target * 100.0))


def lifetime_metrics(segments: Sequence[Segment], timezone: str) -> dict[str, float]:
    trips = _trips(segments)
    geo = geographic_insights(segments)
    return {
        "trips": float(len(trips)),
        "places": float(unique_locations(segments)),
        "cities": float(len(geo.cities)),
        "countries": float(len(geo.countries)),
        "distance_km": total_distance(trips) / 1000.0,
        "walk_km": total_distance(trips, MovementType.WALK) / 1000.0,
        "longest_trip_km": max((t.distance_meters for t in trips), default=0.0) / 1000.0,
        "active_days": float(len({local_date(t.start_ms, timezone) for t in trips})),
    }


def milestones(segments: Sequence[Segment], timezone: str) -> list[Milestone]:
    """Progress against the all-time badges; ``progress_percent`` is within [0, 100]."""

    metrics = lifetime_metrics(segments, timezone)
    out: list[Milestone] = []
    for badge in ALL_TIME_BADGES:
        current = metrics[badge.metric]
        out.append(
            Milestone(
                title=badge.title,
                earned=current >= badge.target,
                progress_percent=_clamp_percent(current, badge.target),
                current=current,
                target=badge.target,
                description=badge.description,
            )
        )
    return out


TIERS = ("diamond", "gold", "silver", "bronze")

# category -> period -> thresholds ordered diamond, gold, silver, bronze, with titles
PERIOD_THRESHOLDS: dict[str, dict[str, tuple[tuple[float, str], ...]]] = {
    "distance": {
        "monthly": ((2000, "Distance Champion"), (1000, "Road Warrior"), (500, "Active Explorer"), (100, "Local Traveler")),
        "yearly": ((25000, "Epic Traveler"), (10000, "Road Warrior"), (5000, "Active Explorer"), (1000, "Casual Traveler")),
    },
    "places": {
        "monthly": ((30, "Ultimate Explorer"), (20, "City Explorer"), (10, "Local Navigator"), (5, "Place Explorer")),
        "yearly": ((200, "World Explorer"), (100, "Globe Trotter"), (50, "City Navigator"), (25, "Local Explorer")),
    },
    "trips": {
        "monthly": ((100, "Road Regular"), (50, "Frequent Flyer"), (30, "Regular Traveler"), (10, "Getting Started")),
        "yearly": ((1000, "Always Moving"), (500, "Road Regular"), (300, "Frequent Traveler"), (100, "Regular Traveler")),
    },
    "activeDays": {
        "monthly": ((25, "Full Month"), (20, "Mostly Active"), (15, "Half Month"), (7, "Active Week")),
        "yearly": ((330, "Year Round"), (270, "Mostly Active"), (180, "Half Year"), (90, "Quarterly Active")),
    },
    "epicJourney": {
        "monthly": ((500, "Epic Adventure"), (200, "Road Trip"), (100, "Long Distance"), (50, "Day Trip")),
        "yearly": ((1000, "Epic Voyage"), (500, "Long Journey"), (300, "Road Trip"), (100, "Weekend Trip")),
    },
}


@dataclass(frozen=True, slots=True)
class PeriodMilestone:
    """Highest tier reached in one category over a month or a year."""

    category: str
    value: float
    tier: str | None
    title: str | None
    next_tier: str | None
    next_threshold: float | None
    progress_percent: float


def period_milestones(segments: Sequence[Segment], timezone: str, period: str = "monthly") -> list[PeriodMilestone]:
    """Tiered milestones for segments already limited to one month or year."""

    if period not in ("monthly", "yearly"):
        raise ValueError(f"period must be 'monthly' or 'yearly', got {period!r}")
    m = lifetime_metrics(segments, timezone)
    values = {
        "distance": m["distance_km"],
        "places": m["places"],
        "trips": m["trips"],
        "activeDays": m["active_days"],
        "epicJourney": m["longest_trip_km"],
    }
    out: list[PeriodMilestone] = []
    for category, periods in PERIOD_THRESHOLDS.items():
        value = values[category]
        levels = periods[period]
        reached = next((i for i, (threshold, _) in enumerate(levels) if value >= threshold), None)
        if reached is None:
            next_idx: int | None = len(levels) - 1
        else:
            next_idx = reached - 1 if reached > 0 else None
        next_threshold = levels[next_idx][0] if next_idx is not None else None
        out.append(
            PeriodMilestone(
                category=category,
                value=value,
                tier=TIERS[reached] if reached is not None else None,
                title=levels[reached][1] if reached is not None else None,
                next_tier=TIERS[next_idx] if next_idx is not None else None,
                next_threshold=next_threshold,
                progress_percent=_clamp_percent(value, next_threshold) if next_threshold is not None else 100.0,
            )
        )
    return out


# -- geography ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CityVisit:
    name: str
    country: str
    visits: int


@dataclass(frozen=True, slots=True)
class CountryVisit:
    name: str
    visits: int


@dataclass(frozen=True, slots=True)
class GeographicInsights:
    countries: tuple[CountryVisit, ...]
    cities: tuple[CityVisit, ...]


def geographic_insights(segments: Iterable[Segment]) -> GeographicInsights:
    """Countries and cities from resolved stays, most visited first, ties by name."""

    countries: Counter = Counter()
    cities: Counter = Counter()
    for stay in _stays(segments):
        if stay.country:
            countries[stay.country] += 1
        if stay.city:
            cities[(stay.city, stay.country)] += 1
    return GeographicInsights(
        countries=tuple(
            CountryVisit(name, n) for name, n in sorted(countries.items(), key=lambda kv: (-kv[1], kv[0]))
        ),
        cities=tuple(
            CityVisit(name, country, n)
            for (name, country), n in sorted(cities.items(), key=lambda kv: (-kv[1], kv[0][0], kv[0][1]))
        ),
    )


# -- dashboard ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MostActiveDay:
    day: date
    day_name: str
    distance_km: float
    travel_seconds: float
    locations: int


def most_active_day(segments: Iterable[Segment], timezone: str) -> MostActiveDay | None:
    """Local date with the largest trip distance (earliest on ties)."""

    distance: dict[date, float] = defaultdict(float)
    travel: dict[date, float] = defaultdict(float)
    places: dict[date, set[str]] = defaultdict(set)
    for seg in segments:
        d = local_date(seg.start_ms, timezone)
        if isinstance(seg, Trip):
            distance[d] += seg.distance_meters
            travel[d] += seg.duration_seconds
        elif isinstance(seg, Stay):
            places[d].add(place_key(seg))
    if not distance:
        return None
    best = max(distance.values())
    day = min(d for d, v in distance.items() if v == best)
    return MostActiveDay(
        day=day,
        day_name=DAY_NAMES[day.weekday()],
        distance_km=best / 1000.0,
        travel_seconds=travel[day],
        locations=len(places[day]),
    )


@dataclass(frozen=True, slots=True)
class ChartPoint:
    label: str
    distance_km: float


def distance_chart(
    segments: Iterable[Segment],
    date_range: DateRange,
    timezone: str,
    movement_type: MovementType | str | None = None,
) -> list[ChartPoint]:
    """Trip distance per day (ranges under 10 days) or per week starting Monday.

    Day labels are weekday abbreviations ("MON"), week labels the week start ("01/08").
    """

    weekly = date_range.days >= 10
    wanted = MovementType(movement_type) if movement_type is not None else None
    buckets: dict[date, float] = {}
    for d in date_range.iter_days():
        key = d - timedelta(days=d.weekday()) if weekly else d
        buckets.setdefault(key, 0.0)
    for t in _trips(segments):
        if wanted is not None and t.movement_type != wanted:
            continue
        d = local_date(t.start_ms, timezone)
        if not date_range.contains(d):
            continue
        key = d - timedelta(days=d.weekday()) if weekly else d
        buckets[key] += t.distance_meters / 1000.0
    return [
        ChartPoint(label=k.strftime("%m/%d") if weekly else DAY_NAMES[k.weekday()][:3].upper(), distance_km=v)
        for k, v in sorted(buckets.items())
    ]


@dataclass(frozen=True, slots=True)
class DashboardStatistics:
    total_distance_m: float
    time_moving_s: float
    average_speed_kmh: float
    daily_average_distance_m: float
    unique_locations: int
    trips: int
    stays: int
    top_places: tuple[PlaceVisit, ...]
    most_active_day: MostActiveDay | None
    distance_by_type_m: dict[str, float] = field(default_factory=dict)
    charts_by_type: dict[str, tuple[ChartPoint, ...]] = field(default_factory=dict)


def dashboard_statistics(segments: Sequence[Segment], date_range: DateRange, timezone: str) -> DashboardStatistics:
    """Everything the dashboard shows for one range.

    ``segments`` may be the user's full list; it is narrowed with ``segments_in_range``.
    """

    picked = segments_in_range(segments, date_range, timezone)
    trips = _trips(picked)
    by_type = {mt.value: total_distance(trips, mt) for mt in MovementType}
    charts = {
        mt: tuple(distance_chart(trips, date_range, timezone, mt)) for mt, meters in by_type.items() if meters > 0
    }
    return DashboardStatistics(
        total_distance_m=total_distance(trips),
        time_moving_s=time_moving(trips),
        average_speed_kmh=average_speed(trips),
        daily_average_distance_m=daily_average_distance(trips, timezone),
        unique_locations=unique_locations(picked),
        trips=len(trips),
        stays=len(_stays(picked)),
        top_places=tuple(top_places(picked, 5)),
        most_active_day=most_active_day(picked, timezone),
        distance_by_type_m=by_type,
        charts_by_type=charts,
    )


@dataclass(frozen=True, slots=True)
class JourneyInsights:
    geographic: GeographicInsights
    patterns: ActivityPatterns
    distance_by_type_km: dict[str, float]
    total_distance_km: float
    milestones: tuple[Milestone, ...]


def journey_insights(segments: Sequence[Segment], timezone: str, today: date | None = None) -> JourneyInsights:
    """All-time insights: places, patterns, distance by mode, milestones."""

    trips = _trips(segments)
    return JourneyInsights(
        geographic=geographic_insights(segments),
        patterns=activity_patterns(segments, timezone, today=today),
        distance_by_type_km={
            mt.value: total_distance(trips, mt) / 1000.0
            for mt in MovementType
            if total_distance(trips, mt) > 0
        },
        total_distance_km=total_distance(trips) / 1000.0,
        milestones=tuple(milestones(segments, timezone)),
    )
