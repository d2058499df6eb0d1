from __future__ import annotations

import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import streamlit as st

from path_timeline.config import TimelineConfig
from path_timeline.csv_io import load_points
from path_timeline.daysplit import on_this_day_label
from path_timeline.errors import InvalidTimezoneError
from path_timeline.formatting import format_distance, format_duration, format_speed
from path_timeline.locations import load_favorites
from path_timeline.models import MovementType, RawPoint, Stay, Trip, UserProfile
from path_timeline.reports import (
    COLUMNS,
    DISTANCE_BUCKETS,
    DURATION_BUCKETS,
    count_text,
    export_filename,
    format_row,
    quick_stats,
    write_table_csv,
)
from path_timeline.service import TimelineService
from path_timeline.store import SegmentStore
from path_timeline.timeutils import DateRange, today_in, validate_timezone

USER_ID = "local"
DEFAULT_TZ = "Europe/Kyiv"
KIND_LABELS = {"stays": "Stays", "trips": "Trips", "data_gaps": "Data Gaps"}


@st.cache_data(show_spinner=False)
def _load_points(points_csv: str, mtime: float) -> list[RawPoint]:
    _ = mtime  # part of cache key so updated files reload automatically
    points, _summary = load_points(points_csv)
    return points


@st.cache_resource(show_spinner=False)
def _build_service(
    points_csv: str,
    tz_name: str,
    mtime: float,
    favorites_json: str,
    favorites_mtime: float,
    stay_radius_m: float,
    stay_min_minutes: float,
) -> TimelineService:
    _ = favorites_mtime
    cfg = TimelineConfig(staypoint_radius_meters=stay_radius_m, staypoint_min_duration_minutes=stay_min_minutes)
    store = SegmentStore(cfg)
    store.set_profile(UserProfile(user_id=USER_ID, timezone=tz_name))
    if favorites_json:
        for fav in load_favorites(favorites_json):
            store.add_favorite(USER_ID, fav)
    store.add_points(USER_ID, _load_points(points_csv, mtime))
    return TimelineService(store)


def _csv_bytes(table, tz_name: str) -> bytes:
    with tempfile.TemporaryDirectory() as tmp:
        out = write_table_csv(table, Path(tmp) / "export.csv", tz_name)
        return out.read_bytes()


def _render_timeline(service: TimelineService, date_range: DateRange) -> None:
    result = service.view(USER_ID).request(date_range)
    if result.is_empty:
        st.info("No timeline data for this range.")
        return
    for tag in result.period_tags:
        st.caption(f"Period: {tag.tag_name}")
    for group in result.days:
        st.markdown(f"#### {group.calendar_date.strftime('%A, %B %d, %Y')}")
        rows = []
        for view in group.items:
            seg = view.segment
            if isinstance(seg, Stay):
                what = seg.location_name or "Unknown Location"
                kind = "Stay"
            elif isinstance(seg, Trip):
                what = f"{seg.movement_type.value.title()}, {format_distance(seg.distance_meters)}"
                kind = "Trip"
            else:
                what = "No data recorded"
                kind = "Data gap"
            rows.append(
                {
                    "time": on_this_day_label(view),
                    "kind": kind,
                    "details": what,
                    "continued": view.continued_from_label,
                }
            )
        st.dataframe(rows, use_container_width=True, hide_index=True)


def _render_dashboard(service: TimelineService, date_range: DateRange) -> None:
    stats = service.dashboard(USER_ID, date_range)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total distance", format_distance(stats.total_distance_m))
    c2.metric("Time moving", format_duration(stats.time_moving_s))
    c3.metric("Average speed", format_speed(stats.average_speed_kmh))
    c4.metric("Unique locations", str(stats.unique_locations))

    c5, c6, c7 = st.columns(3)
    c5.metric("Daily average", format_distance(stats.daily_average_distance_m))
    c6.metric("Trips", str(stats.trips))
    c7.metric("Stays", str(stats.stays))

    if stats.most_active_day is not None:
        mad = stats.most_active_day
        st.caption(
            f"Most active day: {mad.day.isoformat()} ({mad.day_name}), {mad.distance_km:.2f} km, "
            f"{format_duration(mad.travel_seconds)}, {mad.locations} places"
        )

    st.subheader("Top places")
    st.dataframe(
        [
            {"place": p.name, "visits": p.visit_count, "time": format_duration(p.total_seconds)}
            for p in stats.top_places
        ],
        use_container_width=True,
        hide_index=True,
    )

    for mode, points in stats.charts_by_type.items():
        st.subheader(f"{mode.title()} distance (km)")
        st.bar_chart({p.label: p.distance_km for p in points})


def _render_insights(service: TimelineService, tz_name: str) -> None:
    ins = service.journey_insights(USER_ID, today=today_in(tz_name))
    pat = ins.patterns
    c1, c2, c3 = st.columns(3)
    c1.metric("Most active month", pat.most_active_month or "-")
    c2.metric("Busiest day", pat.busiest_day_of_week or "-", help=pat.day_insight)
    c3.metric("Most active time", pat.most_active_time_of_day or "-", help=pat.time_insight)
    if pat.monthly_comparison:
        st.caption(f"This month: {pat.monthly_comparison}")

    st.subheader("Distance by transport mode")
    st.metric("Total", f"{ins.total_distance_km:.2f} km")
    if ins.distance_by_type_km:
        st.bar_chart(ins.distance_by_type_km)

    left, right = st.columns(2)
    with left:
        st.subheader("Countries")
        st.dataframe(
            [{"country": c.name, "visits": c.visits} for c in ins.geographic.countries],
            use_container_width=True,
            hide_index=True,
        )
    with right:
        st.subheader("Cities")
        st.dataframe(
            [{"city": c.name, "country": c.country, "visits": c.visits} for c in ins.geographic.cities],
            use_container_width=True,
            hide_index=True,
        )

    st.subheader("Milestones")
    for m in ins.milestones:
        st.progress(int(m.progress_percent), text=f"{'✓ ' if m.earned else ''}{m.title}: {m.description}")


def _render_reports(service: TimelineService, date_range: DateRange, tz_name: str) -> None:
    in_range = service.segments(USER_ID, date_range)
    cols = st.columns(3)
    for col, (label, n) in zip(cols, quick_stats(in_range).items()):
        col.metric(label, str(n))

    kind = st.radio("Table", list(KIND_LABELS), format_func=KIND_LABELS.get, horizontal=True)
    table = service.report(USER_ID, kind, date_range)

    f1, f2, f3 = st.columns(3)
    if kind != "data_gaps":
        table = table.search(f1.text_input("Search location"))
    duration = f2.selectbox("Duration", ["", *DURATION_BUCKETS])
    table = table.filter_duration(duration or None)
    if kind == "trips":
        distance = f3.selectbox("Distance", ["", *DISTANCE_BUCKETS])
        mode = f3.selectbox("Transport mode", ["", *(m.value for m in MovementType)])
        table = table.filter_distance(distance or None).filter_movement(mode or None)

    s1, s2 = st.columns(2)
    sort_col = s1.selectbox("Sort by", list(COLUMNS[kind]))
    descending = s2.checkbox("Descending", value=False)
    table = table.sort_by(sort_col, descending=descending)

    st.caption(count_text(kind, len(table)))
    p1, p2 = st.columns(2)
    size = int(p2.selectbox("Rows per page", [10, 25, 50], index=0))
    pages = table.page(1, size).total_pages
    number = int(p1.number_input("Page", min_value=1, max_value=pages, value=1, step=1))
    page = table.page(number, size)
    st.dataframe([format_row(r, tz_name) for r in page.items], use_container_width=True, hide_index=True)

    now = datetime.now(UTC)
    st.download_button(
        f"Download {KIND_LABELS[kind]} CSV",
        data=_csv_bytes(table, tz_name),
        file_name=export_filename(kind, date_range, now, tz_name),
        mime="text/csv",
    )


def main() -> None:
    st.set_page_config(page_title="Path timeline", layout="wide")
    st.title("Path timeline: stays, trips and data gaps")

    with st.sidebar:
        st.subheader("Data and timezone")
        points_csv = st.text_input("Points CSV", value="points.csv")
        favorites_json = st.text_input("Favorites JSON (optional)", value="")
        tz_name = st.text_input("Timezone (IANA)", value=DEFAULT_TZ)

        with st.expander("Stay detection", expanded=False):
            stay_radius_m = st.number_input("Stay radius (m)", value=50.0, step=5.0, min_value=1.0)
            stay_min_minutes = st.number_input("Minimum stay (minutes)", value=7.0, step=1.0, min_value=0.0)

    try:
        tz_name = validate_timezone(tz_name)
    except InvalidTimezoneError as exc:
        st.error(str(exc))
        return
    today = today_in(tz_name)

    with st.sidebar:
        st.subheader("Date range")
        preset = st.selectbox("Range", ["last_7_days", "last_30_days", "today", "custom"])
        if preset == "custom":
            start_d = st.date_input("Start date", value=today - timedelta(days=6))
            end_d = st.date_input("End date", value=today)

    p = Path(points_csv)
    if not p.exists():
        st.error(f"File not found: {points_csv!r}. Generate one with scripts/generate_sample_points_csv.py.")
        return
    fav_path = Path(favorites_json) if favorites_json else None
    if fav_path is not None and not fav_path.exists():
        st.error(f"File not found: {favorites_json!r}")
        return

    try:
        if preset == "custom":
            date_range = DateRange(start_d, end_d)
        else:
            date_range = DateRange.preset(preset, today)
    except ValueError as exc:
        st.error(str(exc))
        return

    try:
        with st.spinner("Building timeline ..."):
            service = _build_service(
                points_csv,
                tz_name,
                p.stat().st_mtime,
                favorites_json,
                fav_path.stat().st_mtime if fav_path is not None else 0.0,
                float(stay_radius_m),
                float(stay_min_minutes),
            )
    except (ValueError, KeyError, OSError) as exc:
        st.exception(exc)
        return

    t_timeline, t_dashboard, t_insights, t_reports = st.tabs(["Timeline", "Dashboard", "Journey insights", "Reports"])
    with t_timeline:
        _render_timeline(service, date_range)
    with t_dashboard:
        _render_dashboard(service, date_range)
    with t_insights:
        _render_insights(service, tz_name)
    with t_reports:
        _render_reports(service, date_range, tz_name)

    st.caption(
        f"Days are local calendar days in {tz_name}: [00:00, next day 00:00). "
        "Segments crossing midnight appear on every day they touch."
    )


if __name__ == "__main__":
    main()
