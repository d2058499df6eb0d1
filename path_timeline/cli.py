"""Command-line interface for path_timeline.

Run:
    python -m path_timeline timeline --points points.csv --tz Europe/Kyiv --preset last_7_days
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, datetime

from path_timeline.config import TimelineConfig, load_config
from path_timeline.csv_io import load_points, write_segments_csv
from path_timeline.daysplit import on_this_day_label
from path_timeline.formatting import format_distance, format_duration, format_speed
from path_timeline.geocode import GeocodingResolver, JsonDiskCache, NominatimConfig, NominatimReverseGeocoder
from path_timeline.locations import CachingResolver, LocationResolver, load_favorites
from path_timeline.models import DayLocalView, MovementType, Stay, Trip, UserProfile
from path_timeline.reports import DISTANCE_BUCKETS, DURATION_BUCKETS, count_text, format_row, write_table_csv
from path_timeline.service import TimelineService
from path_timeline.store import SegmentStore
from path_timeline.timeutils import DateRange, local_date, today_in, validate_timezone

logger = logging.getLogger(__name__)

USER_ID = "local"


def _config_from_args(args: argparse.Namespace) -> TimelineConfig:
    cfg = load_config(args.config)
    return cfg.with_overrides(
        staypoint_radius_meters=args.stay_radius_m,
        staypoint_min_duration_minutes=args.stay_min_minutes,
        data_gap_threshold_seconds=args.gap_threshold_seconds,
        data_gap_min_duration_seconds=args.gap_min_seconds,
        merge_enabled=False if args.no_merge else None,
    )


def _geocoder_from_args(args: argparse.Namespace) -> tuple[LocationResolver | None, JsonDiskCache | None]:
    if not args.geocode:
        return None, None
    cache = JsonDiskCache(args.geocode_cache)
    cfg = NominatimConfig(
        accept_language=args.geocode_lang,
        min_interval_seconds=args.geocode_min_interval,
        user_agent=args.geocode_user_agent,
    )
    return CachingResolver(GeocodingResolver(NominatimReverseGeocoder(cfg, cache=cache))), cache


def _build_service(args: argparse.Namespace) -> TimelineService:
    """Load points (and favorites) for the single local user and segment them."""

    tz = validate_timezone(args.tz)
    points, summary = load_points(args.points)
    print(
        f"Loaded {summary.rows_parsed} points from {args.points} (skipped {summary.rows_skipped})",
        file=sys.stderr,
    )
    geocoder, cache = _geocoder_from_args(args)
    store = SegmentStore(_config_from_args(args), geocoder=geocoder)
    store.set_profile(UserProfile(user_id=USER_ID, timezone=tz))
    if args.favorites:
        for fav in load_favorites(args.favorites):
            store.add_favorite(USER_ID, fav)
    store.add_points(USER_ID, points)
    if cache is not None:
        # Persist everything resolved during segmentation as one snapshot.
        cache.flush()
    return TimelineService(store)


def _resolve_range(args: argparse.Namespace, service: TimelineService) -> DateRange:
    """--start/--end, a --preset, or by default the span of the data."""

    if args.start or args.end:
        if not (args.start and args.end):
            raise ValueError("--start and --end must be given together")
        return DateRange.parse(args.start, args.end)
    if args.preset:
        return DateRange.preset(args.preset, today_in(args.tz))
    segments = service.store.all_segments(USER_ID).segments
    if not segments:
        today = today_in(args.tz)
        return DateRange(today, today)
    last = segments[-1]
    return DateRange(local_date(segments[0].start_ms, args.tz), local_date(max(last.start_ms, last.end_ms - 1), args.tz))


def _describe(view: DayLocalView) -> str:
    seg = view.segment
    if isinstance(seg, Stay):
        what = f"Stay at {seg.location_name or 'Unknown Location'}"
    elif isinstance(seg, Trip):
        what = f"{seg.movement_type.value.title()} trip, {format_distance(seg.distance_meters)}"
    else:
        what = "Data gap"
    line = f"  {on_this_day_label(view)}  {what}"
    if view.is_continuation:
        line += f"  [{view.continued_from_label}]"
    return line


def _cmd_segment(args: argparse.Namespace) -> int:
    service = _build_service(args)
    segments = service.store.all_segments(USER_ID).segments
    write_segments_csv(segments, args.out, args.tz)
    counts = {"stays": 0, "trips": 0, "data_gaps": 0}
    for s in segments:
        counts["stays" if isinstance(s, Stay) else "trips" if isinstance(s, Trip) else "data_gaps"] += 1
    print(", ".join(count_text(k, n) for k, n in counts.items()))
    print(f"Exported: {args.out}")
    return 0


def _cmd_timeline(args: argparse.Namespace) -> int:
    service = _build_service(args)
    date_range = _resolve_range(args, service)
    result = service.view(USER_ID).request(date_range)
    if result.is_empty:
        print(f"No timeline data between {date_range.start} and {date_range.end}")
        return 0

    for tag in result.period_tags:
        print(f"[{tag.tag_name}]")
    for group in result.days:
        print(f"### {group.calendar_date.strftime('%A, %B %d, %Y')}")
        for view in group.items:
            print(_describe(view))
        print()
    counts = result.counts()
    print(f"stays={counts['stay']}, trips={counts['trip']}, data_gaps={counts['gap']}")
    return 0


def _cmd_dashboard(args: argparse.Namespace) -> int:
    service = _build_service(args)
    date_range = _resolve_range(args, service)
    stats = service.dashboard(USER_ID, date_range)

    print(f"### {date_range.start} - {date_range.end}")
    print(f"Total distance: {format_distance(stats.total_distance_m)}")
    print(f"Time moving: {format_duration(stats.time_moving_s)}")
    print(f"Average speed: {format_speed(stats.average_speed_kmh)}")
    print(f"Daily average: {format_distance(stats.daily_average_distance_m)}")
    print(f"Unique locations: {stats.unique_locations}")
    print(f"Trips: {stats.trips}, stays: {stats.stays}")
    print()

    print("### Top places")
    for place in stats.top_places:
        print(f"  {place.name}: {place.visit_count} visits, {format_duration(place.total_seconds)}")
    print()

    if stats.most_active_day is not None:
        mad = stats.most_active_day
        print("### Most active day")
        print(f"  {mad.day} ({mad.day_name}): {mad.distance_km:.2f} km, {format_duration(mad.travel_seconds)}")
        print()

    for mode, points in stats.charts_by_type.items():
        print(f"### {mode.title()} distance")
        for p in points:
            print(f"  {p.label}: {p.distance_km:.2f} km")
        print()
    return 0


def _cmd_insights(args: argparse.Namespace) -> int:
    service = _build_service(args)
    ins = service.journey_insights(USER_ID, today=today_in(args.tz))

    print("### Places")
    print(f"countries={len(ins.geographic.countries)}, cities={len(ins.geographic.cities)}")
    for city in ins.geographic.cities[:10]:
        print(f"  {city.name}, {city.country}: {city.visits}")
    print()

    pat = ins.patterns
    print("### Patterns")
    print(f"Most active month: {pat.most_active_month}")
    print(f"Busiest day: {pat.busiest_day_of_week} ({pat.day_insight})")
    print(f"Most active time: {pat.most_active_time_of_day} ({pat.time_insight})")
    print(f"This month: {pat.monthly_comparison}")
    print()

    print("### Distance by mode")
    print(f"total={ins.total_distance_km:.2f} km")
    for mode, km in ins.distance_by_type_km.items():
        print(f"  {mode}: {km:.2f} km")
    print()

    print("### Milestones")
    for m in ins.milestones:
        mark = "x" if m.earned else " "
        print(f"  [{mark}] {m.title}: {m.progress_percent:.0f}% ({m.description})")
    return 0


def _cmd_report(args: argparse.Namespace) -> int:
    service = _build_service(args)
    date_range = _resolve_range(args, service)
    table = (
        service.report(USER_ID, args.kind, date_range)
        .search(args.search or "")
        .filter_duration(args.duration)
    )
    if args.kind == "trips":
        table = table.filter_distance(args.distance).filter_movement(args.mode)
    elif args.distance or args.mode:
        raise ValueError("--distance and --mode apply to trips only")
    if args.sort:
        table = table.sort_by(args.sort, descending=args.desc)

    if args.export:
        write_table_csv(table, args.export, args.tz)
        print(f"Exported {count_text(args.kind, len(table))}: {args.export}")
        return 0

    page = table.page(args.page, args.page_size)
    for row in page.items:
        print(" | ".join(f"{k}: {v}" for k, v in format_row(row, args.tz).items()))
    print(f"Page {page.number}/{page.total_pages} ({count_text(args.kind, page.total_items)})")
    return 0


def _cmd_export_all(args: argparse.Namespace) -> int:
    service = _build_service(args)
    date_range = _resolve_range(args, service)
    paths = service.export_all(USER_ID, date_range, args.out_dir, datetime.now(UTC), args.tz)
    for p in paths:
        print(f"Exported: {p}")
    return 0


def _common_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--points", type=str, default="points.csv", help="Input CSV of GPS points")
    p.add_argument("--tz", type=str, required=True, help="IANA timezone of the user, e.g. Europe/Kyiv")
    p.add_argument("--favorites", type=str, default=None, help="JSON list of favorite locations")
    p.add_argument("--config", type=str, default=None, help="JSON file with timeline threshold overrides")
    p.add_argument("--stay-radius-m", type=float, default=None, help="Stay radius in meters")
    p.add_argument("--stay-min-minutes", type=float, default=None, help="Minimum stay duration in minutes")
    p.add_argument("--gap-threshold-seconds", type=float, default=None, help="Silence longer than this is a data gap")
    p.add_argument("--gap-min-seconds", type=float, default=None, help="Shortest data gap kept")
    p.add_argument("--no-merge", action="store_true", help="Do not merge consecutive stays at the same place")
    p.add_argument("--geocode", action="store_true", help="Name stays with OpenStreetMap reverse geocoding")
    p.add_argument("--geocode-cache", type=str, default="geocode_cache.json", help="Reverse geocoding cache file")
    p.add_argument("--geocode-lang", type=str, default="en", help="Reverse geocoding language")
    p.add_argument(
        "--geocode-min-interval",
        type=float,
        default=1.0,
        help="Minimum seconds between requests; public Nominatim asks for >= 1.0",
    )
    p.add_argument(
        "--geocode-user-agent",
        type=str,
        default="path-timeline/0.2.0 (reverse-geocode; set your own UA)",
        help="HTTP User-Agent sent to the geocoding service",
    )
    p.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (stderr)",
    )
    return p


def _range_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--start", type=str, default=None, help="First local date, YYYY-MM-DD")
    p.add_argument("--end", type=str, default=None, help="Last local date (inclusive), YYYY-MM-DD")
    p.add_argument(
        "--preset",
        type=str,
        default=None,
        choices=["today", "last_7_days", "last_30_days"],
        help="Named range ending today in --tz",
    )
    return p


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""

    common = _common_parser()
    ranged = _range_parser()
    p = argparse.ArgumentParser(prog="path_timeline")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_seg = sub.add_parser("segment", parents=[common], help="Segment points into stays/trips/gaps and export CSV")
    p_seg.add_argument("--out", type=str, default="segments.csv", help="Output CSV path")
    p_seg.set_defaults(func=_cmd_segment)

    p_tl = sub.add_parser("timeline", parents=[common, ranged], help="Print the day-grouped timeline")
    p_tl.set_defaults(func=_cmd_timeline)

    p_db = sub.add_parser("dashboard", parents=[common, ranged], help="Distance, speed and places for a range")
    p_db.set_defaults(func=_cmd_dashboard)

    p_in = sub.add_parser("insights", parents=[common], help="All-time places, patterns and milestones")
    p_in.set_defaults(func=_cmd_insights)

    p_rp = sub.add_parser("report", parents=[common, ranged], help="Stays/trips/data gaps table")
    p_rp.add_argument("--kind", type=str, default="stays", choices=["stays", "trips", "data_gaps"])
    p_rp.add_argument("--search", type=str, default=None, help="Filter by location name")
    p_rp.add_argument("--sort", type=str, default=None, help="Column to sort by (start, duration, distance, ...)")
    p_rp.add_argument("--desc", action="store_true", help="Sort descending")
    p_rp.add_argument("--duration", type=str, default=None, choices=sorted(DURATION_BUCKETS))
    p_rp.add_argument("--distance", type=str, default=None, choices=sorted(DISTANCE_BUCKETS))
    p_rp.add_argument("--mode", type=str, default=None, choices=[m.value for m in MovementType])
    p_rp.add_argument("--page", type=int, default=1)
    p_rp.add_argument("--page-size", type=int, default=10)
    p_rp.add_argument("--export", type=str, default=None, help="Write the filtered table to this CSV instead")
    p_rp.set_defaults(func=_cmd_report)

    p_ex = sub.add_parser("export-all", parents=[common, ranged], help="Export stays, trips and data gaps CSVs")
    p_ex.add_argument("--out-dir", type=str, default=".", help="Directory for the CSV files")
    p_ex.set_defaults(func=_cmd_export_all)

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        return int(args.func(args))
    except (ValueError, KeyError, OSError) as exc:
        msg = exc.args[0] if isinstance(exc, KeyError) and exc.args else exc
        print(f"error: {msg}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
