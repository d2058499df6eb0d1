"""Read operations keyed by user id: timeline, dashboard, insights, reports.

These are the idempotent reads the CLI and the dashboard call. The timezone
comes from the user's profile unless the caller passes one explicitly.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path

from path_timeline.aggregation import (
    DashboardStatistics,
    JourneyInsights,
    Milestone,
    PeriodMilestone,
    dashboard_statistics,
    journey_insights,
    milestones,
    period_milestones,
    segments_in_range,
)
from path_timeline.models import Segment
from path_timeline.reports import REPORT_KINDS, ReportTable, build_table, export_tables
from path_timeline.store import SegmentStore
from path_timeline.timeline import TimelineAssembler, TimelineResult, TimelineView
from path_timeline.timeutils import DateRange, validate_timezone


class TimelineService:
    def __init__(self, store: SegmentStore) -> None:
        self.store = store
        self.assembler = TimelineAssembler(store)

    def timezone_for(self, user_id: str, timezone: str | None = None) -> str:
        """An explicit zone wins; otherwise the profile's. Both are validated."""

        if timezone is not None:
            return validate_timezone(timezone)
        return validate_timezone(self.store.profile(user_id).timezone)

    def view(self, user_id: str) -> TimelineView:
        return TimelineView(self.assembler, self.store, user_id)

    def timeline(self, user_id: str, date_range: DateRange, timezone: str | None = None) -> TimelineResult:
        return self.assembler.assemble(user_id, date_range, self.timezone_for(user_id, timezone))

    def segments(self, user_id: str, date_range: DateRange, timezone: str | None = None) -> list[Segment]:
        """Segments starting inside the local date range."""

        tz = self.timezone_for(user_id, timezone)
        start_ms, end_ms = date_range.to_epoch_ms(tz)
        snapshot = self.store.segments_between(user_id, start_ms, end_ms)
        return segments_in_range(snapshot.segments, date_range, tz)

    def dashboard(self, user_id: str, date_range: DateRange, timezone: str | None = None) -> DashboardStatistics:
        tz = self.timezone_for(user_id, timezone)
        return dashboard_statistics(self.segments(user_id, date_range, tz), date_range, tz)

    def journey_insights(self, user_id: str, today: date | None = None) -> JourneyInsights:
        tz = self.timezone_for(user_id)
        return journey_insights(self.store.all_segments(user_id).segments, tz, today=today)

    def milestones(self, user_id: str) -> list[Milestone]:
        """All-time badge progress."""

        tz = self.timezone_for(user_id)
        return milestones(self.store.all_segments(user_id).segments, tz)

    def period_milestones(self, user_id: str, day: date, period: str = "monthly") -> list[PeriodMilestone]:
        """Tiered milestones for the calendar month or year containing ``day``."""

        if period == "monthly":
            start = day.replace(day=1)
            end = (start + timedelta(days=32)).replace(day=1) - timedelta(days=1)
        elif period == "yearly":
            start, end = date(day.year, 1, 1), date(day.year, 12, 31)
        else:
            raise ValueError(f"period must be 'monthly' or 'yearly', got {period!r}")
        tz = self.timezone_for(user_id)
        return period_milestones(self.segments(user_id, DateRange(start, end), tz), tz, period)

    def report(self, user_id: str, kind: str, date_range: DateRange, timezone: str | None = None) -> ReportTable:
        """Report table for the range; origins/destinations may come from stays just outside it."""

        tz = self.timezone_for(user_id, timezone)
        start_ms, end_ms = date_range.to_epoch_ms(tz)
        widened = DateRange(date_range.start - timedelta(days=1), date_range.end + timedelta(days=1))
        snapshot = self.store.segments_between(user_id, *widened.to_epoch_ms(tz))
        return build_table(kind, snapshot.segments).between(start_ms, end_ms)

    def export_all(
        self,
        user_id: str,
        date_range: DateRange,
        out_dir: str | Path,
        now: datetime,
        timezone: str | None = None,
    ) -> list[Path]:
        """Write the unfiltered stays, trips and data gaps tables for the range.

        Rows are the same as ``report`` shows, so trip origins crossing the
        range start are named.
        """

        tz = self.timezone_for(user_id, timezone)
        tables = [self.report(user_id, kind, date_range, tz) for kind in REPORT_KINDS]
        return export_tables(tables, tz, out_dir, date_range, now)
