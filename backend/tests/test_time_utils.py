from datetime import datetime

import pytest

from retailpos.time_utils import epoch_millis, parse_iso_datetime, to_utc_z


def test_epoch_millis():
    assert epoch_millis(datetime(1970, 1, 1, 0, 0, 1, 500_000)) == 1500
    assert epoch_millis(datetime(2026, 10, 19)) == 1_792_368_000_000


@pytest.mark.parametrize("raw, expected", [
    ("2026-10-19T14:30:00Z", datetime(2026, 10, 19, 14, 30)),
    ("2026-10-19T16:30:00+02:00", datetime(2026, 10, 19, 14, 30)),
    ("2026-10-19T14:30", datetime(2026, 10, 19, 14, 30)),
    ("2026-10-19", datetime(2026, 10, 19)),
])
def test_parse_iso_datetime(raw, expected):
    assert parse_iso_datetime(raw) == expected


def test_bare_date_end_of_day():
    assert parse_iso_datetime("2026-10-19", end_of_day=True) == datetime(2026, 10, 19, 23, 59, 59, 999999)


def test_blank_and_invalid():
    assert parse_iso_datetime(None) is None
    assert parse_iso_datetime("  ") is None
    with pytest.raises(ValueError):
        parse_iso_datetime("yesterday")


def test_to_utc_z_drops_microseconds():
    assert to_utc_z(datetime(2026, 10, 19, 14, 30, 5, 123)) == "2026-10-19T14:30:05Z"
    assert to_utc_z(None) is None
