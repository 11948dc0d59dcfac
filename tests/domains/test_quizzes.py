"""Tests for the ``quizzes`` pipeline."""

from __future__ import annotations

import json

import pytest

from commonsync.core.errors import RecordRejected
from commonsync.domains.medtouch.quizzes import QUIZ_ACTIVITY_TYPE, QuizzesPipeline

ITEMS = [
    {"user_id": 501, "name": "Heart quiz", "created_at": "2024-03-01 10:00:00", "is_answer": 1},
    {"user_id": "501", "name": "Heart quiz", "created_at": "2024-03-01 10:05:00"},
    {"user_id": 999, "name": "Heart quiz", "created_at": "2024-03-01 10:06:00"},
    {"user_id": 501, "name": "", "created_at": "2024-03-01 10:07:00"},
    {"user_id": None, "name": "Lung quiz", "created_at": "2024-03-01 10:08:00"},
]


@pytest.fixture
def known_user(conn):
    conn.execute("INSERT INTO users_mt (email, new_mt_id) VALUES (?, ?)", ("ann@x.co", 501))
    conn.commit()
    conn.execute("SELECT id FROM users_mt WHERE new_mt_id = 501")
    return conn.fetchone()[0]


class TestMap:
    def test_answer_flag(self, settings):
        p = QuizzesPipeline(settings=settings)
        assert p.map(ITEMS[0]).is_answer is True
        assert p.map(ITEMS[1]).is_answer is False
        assert p.map(ITEMS[1]).new_mt_id == 501

    @pytest.mark.parametrize("item,reason", [(ITEMS[3], "MISSING_NAME"), (ITEMS[4], "MISSING_USER")])
    def test_rejects(self, settings, item, reason):
        with pytest.raises(RecordRejected) as exc_info:
            QuizzesPipeline(settings=settings).map(item)
        assert exc_info.value.reason_code == reason


class TestRun:
    def test_actions_for_known_users(self, settings, api, run, rows, known_user):
        stats = run(QuizzesPipeline(settings=settings, client=api(ITEMS)))

        assert stats.rejects_by_reason == {"UNKNOWN_USER": 1, "MISSING_NAME": 1, "MISSING_USER": 1}
        assert rows("SELECT DISTINCT type, name FROM activities_mt") == [(QUIZ_ACTIVITY_TYPE, "Heart quiz")]
        assert rows("SELECT mt_user_id, date_time, is_answer FROM actions_mt ORDER BY date_time") == [
            (known_user, "2024-03-01 10:00:00", 1),
            (known_user, "2024-03-01 10:05:00", 0),
        ]

    def test_rerun_is_idempotent(self, settings, api, run, rows, known_user):
        run(QuizzesPipeline(settings=settings, client=api(ITEMS)))
        stats = run(QuizzesPipeline(settings=settings, client=api(ITEMS)))
        assert rows("SELECT COUNT(*) FROM actions_mt") == [(2,)]
        assert stats.tables["actions_mt"].ignored == 2

    def test_request(self, settings, api, run):
        run(QuizzesPipeline(settings=settings, client=api([])))
        (request,) = api.requests
        assert request.url.path == "/api/v1/outer/qts"
        assert json.loads(request.content)["order"] == "updated_at"
