"""Tests for ``commonsync.core.timestamps``."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from commonsync.core.timestamps import (
    from_db_timestamp,
    generate_ulid,
    parse_source_datetime,
    to_db_timestamp,
    to_event_timestamp,
)


class TestDbTimestamps:
    def test_fixed_width_naive_utc(self):
        dt = datetime(2024, 3, 1, 15, 0, tzinfo=timezone(timedelta(hours=3)))
        assert to_db_timestamp(dt) == "2024-03-01 12:00:00.000000"

    def test_ordering_is_lexicographic(self):
        a = to_db_timestamp(datetime(2024, 3, 1, 9, 0, tzinfo=UTC))
        b = to_db_timestamp(datetime(2024, 3, 1, 10, 0, 0, 1, tzinfo=UTC))
        assert a < b

    def test_round_trip_is_aware(self):
        dt = datetime(2024, 3, 1, 12, 0, 0, 123456, tzinfo=UTC)
        assert from_db_timestamp(to_db_timestamp(dt)) == dt
        assert from_db_timestamp(None) is None


class TestSourceDatetimes:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-03-01 09:30:00", datetime(2024, 3, 1, 9, 30)),
            ("01.03.2024 09:30:00", datetime(2024, 3, 1, 9, 30)),
            ("01.03.2024", datetime(2024, 3, 1)),
        ],
    )
    def test_formats(self, value, expected):
        assert parse_source_datetime(value) == expected

    @pytest.mark.parametrize("value", [None, "", "00.00.0000 00:00:00", "0000-00-00", "yesterday"])
    def test_unusable(self, value):
        assert parse_source_datetime(value) is None

    def test_event_timestamp_second_precision(self):
        assert to_event_timestamp(datetime(2024, 3, 1, 9, 30, 15, 999)) == "2024-03-01 09:30:15"


def test_ulid_shape():
    a, b = generate_ulid(), generate_ulid()
    assert len(a) == 26
    assert a != b
