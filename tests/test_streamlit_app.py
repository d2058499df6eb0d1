"""Tests for the Streamlit dashboard script."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from streamlit.testing.v1 import AppTest

from path_timeline.timeutils import today_in

APP = str(Path(__file__).resolve().parent.parent / "streamlit_app.py")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    """The dashboard, run from an empty directory so no points file is found."""
    monkeypatch.chdir(tmp_path)
    at = AppTest.from_file(APP, default_timeout=30)
    at.run()
    return at


class TestCustomRange:
    """Test the custom date range inputs."""

    # Dates in these zones are always a day apart, so at most one matches the host's.
    @pytest.mark.parametrize("tz_name", ["Pacific/Kiritimati", "Pacific/Pago_Pago"])
    def test_defaults_follow_the_selected_zone(self, app, tz_name):
        """The last week ending today in the chosen zone."""
        app.text_input[2].set_value(tz_name)
        app.selectbox[0].set_value("custom")
        app.run()

        today = today_in(tz_name)
        start, end = (d.value for d in app.date_input)
        assert (start, end) == (today - timedelta(days=6), today)

    def test_bad_zone_stops_before_range(self, app):
        """An unknown zone is reported and no date inputs are drawn."""
        app.text_input[2].set_value("Mars/Base").run()
        assert "Mars/Base" in app.error[0].value
        assert len(app.selectbox) == 0
