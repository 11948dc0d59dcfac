"""Tests for the ``registered-users`` file pipeline."""

from __future__ import annotations

import pytest

from commonsync.core.errors import SourceNotFoundError
from commonsync.domains.medtouch.registered_users import RegisteredUsersPipeline

HEADER = "id;login;name;city;registered;phone;site;email\n"


@pytest.fixture
def export(tmp_path):
    path = tmp_path / "registered.csv"
    path.write_text(
        HEADER
        + "1;ann;Ann;Moscow;05.03.2020 10:00:00;;mt;Ann@X.co\n"
        + "2;bob;Bob;Kazan;00.00.0000 00:00:00;;mt;bob@x.co\n"
        + "3;cid;Cid;Omsk;06.03.2020 11:00:00;;mt;not-an-email\n"
        + "4;broken;row\n"
        + "5;ann2;Ann;Moscow;07.03.2021 09:00:00;;mt;ann@x.co\n",
        encoding="utf-8",
    )
    return path


class TestRun:
    def test_backfills_registration_dates(self, export, run, rows):
        stats = run(RegisteredUsersPipeline(export), batch_size=10)

        assert stats.malformed == 1
        assert stats.duplicates == 1
        assert stats.rejects_by_reason == {"PLACEHOLDER_DATE": 1, "INVALID_EMAIL": 1}
        assert rows("SELECT email, registration_date FROM users_mt") == [("ann@x.co", "2020-03-05 10:00:00")]
        assert rows("SELECT email, registration_date, mt_user_id IS NOT NULL FROM common_database") == [
            ("ann@x.co", "2020-03-05 10:00:00", 1)
        ]

    def test_existing_date_is_kept(self, export, run, rows, conn):
        conn.execute(
            "INSERT INTO users_mt (email, registration_date) VALUES (?, ?)", ("ann@x.co", "2019-01-01 00:00:00")
        )
        conn.commit()
        run(RegisteredUsersPipeline(export))
        assert rows("SELECT registration_date FROM users_mt") == [("2019-01-01 00:00:00",)]

    def test_header_name_columns(self, export, run, rows):
        run(RegisteredUsersPipeline(export, email_column="email", date_column="registered"))
        assert rows("SELECT email FROM users_mt") == [("ann@x.co",)]

    def test_blank_header_cells_keep_column_positions(self, tmp_path, run, rows):
        path = tmp_path / "crm-export.csv"
        path.write_text("id;;;city;registered;;;email\n1;;;Omsk;05.03.2020 10:00:00;;;ann@x.co\n", encoding="utf-8")
        stats = run(RegisteredUsersPipeline(path))

        assert stats.rejects_by_reason == {}
        assert rows("SELECT email, registration_date FROM users_mt") == [("ann@x.co", "2020-03-05 10:00:00")]

    def test_missing_file(self, tmp_path, run):
        with pytest.raises(SourceNotFoundError):
            run(RegisteredUsersPipeline(tmp_path / "missing.csv"))
