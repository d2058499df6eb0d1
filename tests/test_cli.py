"""Tests for the command-line interface."""

from __future__ import annotations

import csv
import json
from datetime import UTC, datetime

import pytest

from path_timeline.cli import build_parser, main
from path_timeline.timeutils import epoch_ms_from_dt


def _to_csv(track, write_csv):
    lines = ["timestamp,latitude,longitude,accuracy,velocity"]
    lines += [f"{p.timestamp_ms},{p.latitude},{p.longitude},{p.accuracy},{p.velocity}" for p in track.points]
    return write_csv("\n".join(lines) + "\n")


@pytest.fixture()
def points_csv(track, write_csv):
    """CSV of a stay, a 3 km drive and a stay on 2025-09-15."""
    track.stay(20).move(3000, 36).stay(20)
    return _to_csv(track, write_csv)


@pytest.fixture()
def overnight_csv(make_track, write_csv):
    """Stay from Sep 15 21:00 to Sep 16 09:00 Kyiv, then a drive and a stay."""
    t = make_track(start_ms=epoch_ms_from_dt(datetime(2025, 9, 15, 18, 0, tzinfo=UTC)))
    t.stay(720, step_s=600).move(3000, 36).stay(20)
    return _to_csv(t, write_csv)


class TestParser:
    """Test argument wiring."""

    def test_timezone_is_required(self):
        """Every command needs --tz."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["timeline", "--points", "x.csv"])

    def test_range_flags_only_where_they_apply(self):
        """insights covers all time and takes no range."""
        args = build_parser().parse_args(["timeline", "--tz", "UTC", "--preset", "last_7_days"])
        assert args.preset == "last_7_days"
        with pytest.raises(SystemExit):
            build_parser().parse_args(["insights", "--tz", "UTC", "--preset", "today"])


class TestCommands:
    """Run commands end to end on a small CSV."""

    def test_timeline(self, points_csv, capsys):
        """Defaults to the span of the data."""
        assert main(["timeline", "--points", str(points_csv), "--tz", "Europe/Kyiv"]) == 0
        out = capsys.readouterr().out
        assert "### Monday, September 15, 2025" in out
        assert "Car trip" in out
        assert "stays=2, trips=1, data_gaps=0" in out

    def test_timeline_empty_range(self, points_csv, capsys):
        """A range without data says so."""
        argv = ["timeline", "--points", str(points_csv), "--tz", "UTC", "--start", "2024-01-01", "--end", "2024-01-02"]
        assert main(argv) == 0
        assert "No timeline data" in capsys.readouterr().out

    def test_segment_export(self, points_csv, tmp_path, capsys):
        """Writes the segment CSV and prints counts."""
        out = tmp_path / "segments.csv"
        assert main(["segment", "--points", str(points_csv), "--tz", "Europe/Kyiv", "--out", str(out)]) == 0
        assert out.exists()
        assert "2 stays, 1 trip, 0 data gaps" in capsys.readouterr().out

    def test_favorites_name_stays(self, points_csv, track, tmp_path, capsys):
        """A favorites file names the stay it contains."""
        fav = tmp_path / "favorites.json"
        first = track.points[0]
        fav.write_text(
            json.dumps([{"favorite_id": 1, "name": "Home", "latitude": first.latitude, "longitude": first.longitude}]),
            encoding="utf-8",
        )
        argv = ["report", "--points", str(points_csv), "--tz", "Europe/Kyiv", "--favorites", str(fav), "--search", "home"]
        assert main(argv) == 0
        out = capsys.readouterr().out
        assert "Location: Home" in out
        assert "Page 1/1 (1 stay)" in out

    def test_trip_report(self, points_csv, capsys):
        """Trip rows show distance and mode."""
        argv = ["report", "--points", str(points_csv), "--tz", "Europe/Kyiv", "--kind", "trips", "--mode", "CAR"]
        assert main(argv) == 0
        out = capsys.readouterr().out
        assert "Mode: CAR" in out
        assert "(1 trip)" in out

    def test_dashboard(self, points_csv, capsys):
        """Prints totals and top places."""
        assert main(["dashboard", "--points", str(points_csv), "--tz", "Europe/Kyiv"]) == 0
        out = capsys.readouterr().out
        assert "Trips: 1, stays: 2" in out
        assert "### Top places" in out

    def test_insights(self, points_csv, capsys):
        """Milestones list the first journey as earned."""
        assert main(["insights", "--points", str(points_csv), "--tz", "Europe/Kyiv"]) == 0
        assert "[x] First Journey" in capsys.readouterr().out

    def test_export_all(self, points_csv, tmp_path):
        """One CSV per report kind."""
        out_dir = tmp_path / "exports"
        assert main(["export-all", "--points", str(points_csv), "--tz", "Europe/Kyiv", "--out-dir", str(out_dir)]) == 0
        assert len(list(out_dir.glob("timeline_*.csv"))) == 3

    def test_export_all_matches_report(self, overnight_csv, tmp_path):
        """A trip leaving a stay that began the day before keeps its origin."""
        day = ["--points", str(overnight_csv), "--tz", "Europe/Kyiv", "--start", "2025-09-16", "--end", "2025-09-16"]
        report_csv = tmp_path / "trips.csv"
        out_dir = tmp_path / "exports"
        assert main(["report", *day, "--kind", "trips", "--export", str(report_csv)]) == 0
        assert main(["export-all", *day, "--out-dir", str(out_dir)]) == 0

        (exported,) = out_dir.glob("timeline_trips_*.csv")
        assert exported.read_text(encoding="utf-8") == report_csv.read_text(encoding="utf-8")
        with exported.open(encoding="utf-8", newline="") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 1
        assert rows[0]["Origin"] == "50.4501, 30.5234"


class TestErrors:
    """Test exit codes for bad input."""

    def test_bad_timezone(self, points_csv, capsys):
        """Unknown zones exit with 2 and a message."""
        assert main(["timeline", "--points", str(points_csv), "--tz", "Mars/Base"]) == 2
        assert "error:" in capsys.readouterr().err

    def test_missing_file(self, tmp_path, capsys):
        """A missing CSV is reported, not raised."""
        assert main(["timeline", "--points", str(tmp_path / "nope.csv"), "--tz", "UTC"]) == 2
        assert "error:" in capsys.readouterr().err

    def test_trip_filters_on_stays(self, points_csv, capsys):
        """--mode applies to trips only."""
        argv = ["report", "--points", str(points_csv), "--tz", "UTC", "--kind", "stays", "--mode", "WALK"]
        assert main(argv) == 2
        assert "trips only" in capsys.readouterr().err
