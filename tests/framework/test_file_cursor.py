"""Tests for ``commonsync.framework.sources.file`` -- streamed file pages."""

from __future__ import annotations

import pytest

from commonsync.core.errors import SourceNotFoundError
from commonsync.framework.sources.file import FileFormat, StreamedFileCursor


@pytest.fixture
def users_csv(tmp_path):
    path = tmp_path / "users.csv"
    path.write_text(
        "\ufeffid;name;email\n"
        "1;Ann;ann@example.com\n"
        "2;Bob\n"
        "3;Cid;cid@example.com\n"
        "\n"
        "4;Dee;dee@example.com\n",
        encoding="utf-8",
    )
    return path


class TestDelimited:
    def test_pages_and_skips(self, users_csv):
        cursor = StreamedFileCursor("users", users_csv, delimiter=";", page_size=2)
        pages = list(cursor.pages())

        assert [len(p) for p in pages] == [2, 1]
        assert [r["id"] for p in pages for r in p.items] == ["1", "3", "4"]
        assert cursor.header == ["id", "name", "email"]
        assert cursor.state.skipped == 1
        assert cursor.state.skipped_reasons == {"column_count_mismatch": 1}

    def test_bom_stripped_from_header(self, users_csv):
        cursor = StreamedFileCursor("users", users_csv, delimiter=";")
        (page,) = list(cursor.pages())
        assert "id" in page.items[0]

    def test_blank_and_repeated_header_names_keep_their_columns(self, tmp_path):
        path = tmp_path / "export.csv"
        path.write_text("id;;;city;registered;;;email;city\n1;;;Omsk;01.02.2020 10:00:00;;;a@x.co;Tomsk\n")
        cursor = StreamedFileCursor("export", path, delimiter=";")
        (page,) = list(cursor.pages())

        assert cursor.header == ["id", "_1", "_2", "city", "registered", "_5", "_6", "email", "city_8"]
        (row,) = page.items
        assert list(row.values())[7] == "a@x.co"
        assert row["city_8"] == "Tomsk"

    def test_tsv_detected(self, tmp_path):
        path = tmp_path / "x.tsv"
        path.write_text("a\tb\n1\t2\n")
        cursor = StreamedFileCursor("x", path)
        assert cursor.format is FileFormat.TSV
        assert list(cursor.pages())[0].items == [{"a": "1", "b": "2"}]

    def test_header_only(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("a,b\n")
        assert list(StreamedFileCursor("x", path).pages()) == []

    def test_missing_file(self, tmp_path):
        cursor = StreamedFileCursor("x", tmp_path / "nope.csv")
        with pytest.raises(SourceNotFoundError):
            cursor.next()


class TestJsonl:
    def test_skips_bad_lines(self, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text('{"id": 1}\nnot json\n[1, 2]\n\n{"id": 2}\n')
        cursor = StreamedFileCursor("events", path)
        items = [r for p in cursor.pages() for r in p.items]

        assert items == [{"id": 1}, {"id": 2}]
        assert cursor.state.skipped_reasons == {"invalid_json": 1, "not_an_object": 1}

    def test_closes_at_eof(self, tmp_path):
        path = tmp_path / "one.jsonl"
        path.write_text('{"id": 1}\n')
        with StreamedFileCursor("one", path, page_size=10) as cursor:
            list(cursor.pages())
            assert cursor.state.exhausted
            assert cursor._fh is None
