# Overview: Pytest coverage for remote timestamp normalization and the CORS origin allow-list.

from datetime import datetime, timedelta, timezone

import pytest

from orderrecon.time_utils import parse_remote_timestamp, stale_cutoff, to_utc_z, utcnow


@pytest.mark.parametrize("value,expected", [
    ("2026-10-19 10:00:00", datetime(2026, 10, 19, 10, 0, 0)),
    ("2026-10-19T10:00:00Z", datetime(2026, 10, 19, 10, 0, 0)),
    ("2026-10-19T12:00:00+02:00", datetime(2026, 10, 19, 10, 0, 0)),
    (0, datetime(1970, 1, 1)),
    (datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc), datetime(2026, 10, 19, 10, 0)),
])
def test_parse_remote_timestamp(value, expected):
    assert parse_remote_timestamp(value) == expected


@pytest.mark.parametrize("value", [None, "", "   ", "0000-00-00 00:00:00", "yesterday"])
def test_unusable_timestamps_are_none(value):
    assert parse_remote_timestamp(value) is None


def test_to_utc_z():
    assert to_utc_z(datetime(2026, 10, 19, 10, 0, 0, 123456)) == "2026-10-19T10:00:00Z"
    assert to_utc_z(None) is None


def test_stale_cutoff_is_in_the_past():
    assert stale_cutoff(timedelta(minutes=5)) < utcnow()


def test_cors_allows_configured_origin(client):
    allowed = client.get("/api/stock/5", headers={"Origin": "http://localhost:5173"})
    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    refused = client.get("/api/stock/5", headers={"Origin": "http://evil.test"})
    assert "Access-Control-Allow-Origin" not in refused.headers
