"""Tests for timeline configuration loading."""

from __future__ import annotations

import json

import pytest

from path_timeline.config import TimelineConfig, load_config
from path_timeline.errors import InvalidConfigError


class TestTimelineConfig:
    """Test defaults, overrides and validation."""

    def test_defaults(self):
        """Defaults are the tuned thresholds."""
        cfg = TimelineConfig().validate()
        assert cfg.staypoint_radius_meters == 50.0
        assert cfg.min_stay_seconds == 7 * 60
        assert cfg.data_gap_threshold_seconds == 3 * 3600
        assert cfg.merge_enabled

    def test_overrides_ignore_none(self):
        """CLI flags that were not given leave defaults alone."""
        cfg = TimelineConfig().with_overrides(staypoint_radius_meters=80, merge_enabled=None)
        assert cfg.staypoint_radius_meters == 80.0
        assert cfg.merge_enabled

    def test_unknown_keys(self):
        """Typos are reported, not ignored."""
        with pytest.raises(InvalidConfigError, match="stay_radius"):
            TimelineConfig.from_mapping({"stay_radius": 10})

    @pytest.mark.parametrize(
        "data",
        [
            {"merge_enabled": "yes"},
            {"staypoint_radius_meters": "wide"},
            {"staypoint_radius_meters": 0},
            {"staypoint_min_accuracy_ratio": 1.5},
            {"gap_trip_inference_min_gap_hours": 30},
        ],
    )
    def test_bad_values(self, data):
        """Wrong types and out-of-range values are rejected."""
        with pytest.raises(InvalidConfigError):
            TimelineConfig.from_mapping(data)

    def test_to_dict(self):
        """Round trip through a plain mapping."""
        cfg = TimelineConfig(bicycle_enabled=True)
        assert TimelineConfig.from_mapping(cfg.to_dict()) == cfg


class TestLoadConfig:
    """Test JSON config files."""

    def test_none_gives_defaults(self):
        """No file, default config."""
        assert load_config(None) == TimelineConfig()

    def test_file_overrides(self, tmp_path):
        """Only listed keys change."""
        p = tmp_path / "timeline.json"
        p.write_text(json.dumps({"staypoint_min_duration_minutes": 10, "flight_enabled": True}), encoding="utf-8")
        cfg = load_config(p)
        assert cfg.staypoint_min_duration_minutes == 10.0
        assert cfg.flight_enabled
        assert cfg.staypoint_radius_meters == 50.0

    @pytest.mark.parametrize("text", ["[1, 2]", "{not json"])
    def test_bad_file(self, tmp_path, text):
        """Non-object and malformed JSON both fail with InvalidConfigError."""
        p = tmp_path / "timeline.json"
        p.write_text(text, encoding="utf-8")
        with pytest.raises(InvalidConfigError):
            load_config(p)
