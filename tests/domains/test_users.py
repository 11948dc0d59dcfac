"""Tests for the ``users`` pipeline."""

from __future__ import annotations

import json

import pytest

from commonsync.core.errors import RecordRejected
from commonsync.domains.medtouch.quizzes import QuizzesPipeline
from commonsync.domains.medtouch.touches import TouchesPipeline
from commonsync.domains.medtouch.users import UsersPipeline

USERS = [
    {
        "id": 77,
        "medtouch_id": 5,
        "email": " Ann@X.co ",
        "last_name": "Ivanova",
        "first_name": "Anna",
        "name": "annai",
        "created_at": "2023-05-01 09:00:00",
        "birthdate": "1980-02-03",
        "speciality": "Cardiology",
        "city": "Omsk",
        "workplace": "Clinic 1",
        "email_verified_at": "2023-05-01 10:00:00",
        "activated": 1,
    },
    {"id": 78, "email": "bob@x.co", "activated": 0},
    {"id": 79, "email": "not-an-email"},
    {"id": "x", "email": "cid@x.co"},
]


class TestMap:
    def test_profile(self, settings):
        user = UsersPipeline(settings=settings).map(USERS[0])
        assert user.email == "ann@x.co"
        assert user.new_mt_id == 77
        assert user.full_name == "Ivanova Anna"
        assert user.birth_date == "1980-02-03"
        assert user.registration_date == "2023-05-01 09:00:00"
        assert (user.verified, user.active) == (True, True)

    @pytest.mark.parametrize("item,reason", [(USERS[2], "INVALID_EMAIL"), (USERS[3], "INVALID_USER_ID")])
    def test_rejects(self, settings, item, reason):
        with pytest.raises(RecordRejected) as exc_info:
            UsersPipeline(settings=settings).map(item)
        assert exc_info.value.reason_code == reason


class TestRun:
    def test_writes_users_and_common_database(self, settings, api, run, rows):
        stats = run(UsersPipeline(settings=settings, client=api(USERS)))

        assert stats.rejects_by_reason == {"INVALID_EMAIL": 1, "INVALID_USER_ID": 1}
        assert rows("SELECT email, new_mt_id, place_of_employment FROM users_mt ORDER BY email") == [
            ("ann@x.co", 77, "Clinic 1"),
            ("bob@x.co", 78, None),
        ]
        assert rows(
            "SELECT c.email, c.new_mt_id, c.username, c.verification_status, c.email_status "
            "FROM common_database c JOIN users_mt u ON u.id = c.mt_user_id ORDER BY c.email"
        ) == [
            ("ann@x.co", 77, "annai", "verified", "active"),
            ("bob@x.co", 78, None, "not_verified", "inactive"),
        ]

    def test_fills_crm_id_of_user_first_seen_in_touches(self, settings, api, run, rows):
        touch = {
            "user": {"email": "ann@x.co", "phone": "+7 900"},
            "project": {"name": "Cardio"},
            "wave": {"name": "W1"},
            "touch_type": "call",
            "touch_date": "2024-03-01 10:00:00",
        }
        run(TouchesPipeline(settings=settings, client=api([touch])))
        assert rows("SELECT email, new_mt_id FROM users_mt") == [("ann@x.co", None)]

        run(UsersPipeline(settings=settings, client=api(USERS[:1])))
        assert rows("SELECT email, new_mt_id, phone FROM users_mt") == [("ann@x.co", 77, "+7 900")]

    def test_quizzes_resolve_imported_users(self, settings, api, run, rows):
        run(UsersPipeline(settings=settings, client=api(USERS)))
        quiz = {"user_id": 77, "name": "Heart quiz", "created_at": "2024-03-01 10:00:00"}
        stats = run(QuizzesPipeline(settings=settings, client=api([quiz])))

        assert stats.rejects_by_reason == {}
        assert rows(
            "SELECT u.email, a.date_time FROM actions_mt a JOIN users_mt u ON u.id = a.mt_user_id"
        ) == [("ann@x.co", "2024-03-01 10:00:00")]

    def test_request(self, settings, api, run):
        run(UsersPipeline(settings=settings, client=api([])))
        (request,) = api.requests
        assert request.url.path == "/api/v1/outer/user"
        assert request.headers["Authorization"] == "Bearer v1-token"
        assert json.loads(request.content)["order"] == "updated_at"
