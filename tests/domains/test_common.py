"""Tests for ``commonsync.domains.medtouch.common``."""

from datetime import UTC, date, datetime

import pytest

from commonsync.core.errors import RecordRejected
from commonsync.domains.medtouch.common import event_time, full_name, optional_time, text, updated_after_filter


class TestUpdatedAfter:
    def test_start_of_given_day(self):
        assert updated_after_filter(date(2024, 3, 5)) == "2024-03-05 00:00:00.000"
        assert updated_after_filter(datetime(2024, 3, 5, 17, 30)) == "2024-03-05 00:00:00.000"

    def test_defaults_to_start_of_yesterday(self, monkeypatch):
        monkeypatch.setattr(
            "commonsync.domains.medtouch.common.utc_now", lambda: datetime(2024, 3, 5, 1, 0, tzinfo=UTC)
        )
        assert updated_after_filter(None) == "2024-03-04 00:00:00.000"


class TestFields:
    def test_full_name_order_and_blanks(self):
        person = {"first_name": "Anna", "last_name": "Ivanova", "middle_name": "  "}
        assert full_name(person) == "Ivanova Anna"
        assert full_name({}) is None

    def test_event_time(self):
        assert event_time("05.03.2024 10:15:00", "touch_date") == "2024-03-05 10:15:00"

    def test_event_time_rejects(self):
        with pytest.raises(RecordRejected) as exc_info:
            event_time("00.00.0000 00:00:00", "touch_date")
        assert exc_info.value.reason_code == "INVALID_DATE"

    def test_optional_time_and_text(self):
        assert optional_time(None) is None
        assert text("  x ") == "x"
        assert text("  ") is None
