"""Tests for ``commonsync.domains.medtouch.emails``."""

import pytest

from commonsync.core.errors import RecordRejected
from commonsync.domains.medtouch.emails import is_valid_email, normalize_email, require_email


class TestNormalize:
    def test_trim_and_lower(self):
        assert normalize_email("  Ann.Smith@Example.COM ") == "ann.smith@example.com"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank(self, value):
        assert normalize_email(value) is None


class TestValidity:
    @pytest.mark.parametrize(
        "email", ["a@b.co", "first.last+tag@sub.example.org", "o'neil@mail.ru", "x_y-z@host-1.example.com"]
    )
    def test_valid(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize(
        "email",
        [
            "plainaddress",
            "a@b",
            "a@@b.co",
            "a@b.c0m",
            ".a@b.co",
            "a..b@b.co",
            "a@-b.co",
            "имя@почта.рф",
            "a" * 65 + "@b.co",
        ],
    )
    def test_invalid(self, email):
        assert not is_valid_email(email)


class TestRequire:
    def test_missing(self):
        with pytest.raises(RecordRejected) as exc_info:
            require_email(" ", raw={"id": 1})
        assert exc_info.value.reason_code == "MISSING_EMAIL"
        assert exc_info.value.raw == {"id": 1}

    def test_invalid(self):
        with pytest.raises(RecordRejected) as exc_info:
            require_email("not-an-email")
        assert exc_info.value.reason_code == "INVALID_EMAIL"

    def test_returns_normalized(self):
        assert require_email("A@B.CO") == "a@b.co"
