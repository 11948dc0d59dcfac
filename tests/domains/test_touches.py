"""Tests for the ``touches`` pipeline."""

from __future__ import annotations

import json
from datetime import date

import pytest

from commonsync.core.errors import RecordRejected
from commonsync.domains.medtouch.touches import TouchesPipeline
from commonsync.framework.pipelines.orchestrator import RunState


def touch(email, *, project="Cardio", wave="W1", touch_type="call", date_time="2024-03-01 10:00:00", **extra):
    item = {
        "user": {"email": email, "last_name": "Ivanova", "first_name": "Anna", "phone": "+7 900"},
        "project": {"id": 11, "name": project, "created_at": "2024-01-10 09:00:00"} if project else None,
        "wave": {"name": wave},
        "touch_type": touch_type,
        "success": "yes",
        "touch_date": date_time,
    }
    item.update(extra)
    return item


DOCTOR_CONTACT = {
    "email": " Dr@Clinic.ru ",
    "name": "Dr Who",
    "phone": "+7 901",
    "verified": 1,
    "allowed": 0,
    "created_at": "2024-02-01 08:00:00",
}

ITEMS = [
    touch("Ann@X.co", contact=DOCTOR_CONTACT, speciality_name="Cardiology"),
    touch("ann@x.co", touch_type="email"),
    touch("nope"),
    touch("c@x.co", project=None),
    touch("d@x.co", touch_type=""),
    touch("bob@x.co", project="Neuro", wave="W2", contact={"email": "broken@"}),
]


@pytest.fixture
def pipeline(settings, api):
    return TouchesPipeline(settings=settings, client=api(ITEMS, page_size=2))


class TestMap:
    def test_normalizes(self, settings):
        record = TouchesPipeline(settings=settings).map(ITEMS[0])
        assert record.user.email == "ann@x.co"
        assert record.user.full_name == "Ivanova Anna"
        assert record.contact.email == "dr@clinic.ru"
        assert record.contact.specialty == "Cardiology"
        assert record.contact_verified is True
        assert record.contact_allowed is False
        assert record.project_key == ("Cardio", "W1")

    def test_invalid_contact_is_dropped_not_rejected(self, settings):
        record = TouchesPipeline(settings=settings).map(ITEMS[5])
        assert record.contact is None
        assert record.contact_verified is None

    def test_contact_that_is_not_an_object_is_dropped(self, settings):
        record = TouchesPipeline(settings=settings).map(touch("ann@x.co", contact="dr@clinic.ru"))
        assert record.contact is None
        assert record.user.email == "ann@x.co"

    @pytest.mark.parametrize(
        "item,reason",
        [
            (ITEMS[2], "INVALID_EMAIL"),
            (ITEMS[3], "MISSING_PROJECT"),
            (ITEMS[4], "MISSING_TOUCH_TYPE"),
            (touch("e@x.co", date_time="00.00.0000 00:00:00"), "INVALID_DATE"),
            ({**touch("e@x.co"), "user": "e@x.co"}, "MALFORMED_RECORD"),
            ({**touch("e@x.co"), "project": "Cardio"}, "MALFORMED_RECORD"),
            ("e@x.co", "MALFORMED_RECORD"),
        ],
    )
    def test_rejects(self, settings, item, reason):
        with pytest.raises(RecordRejected) as exc_info:
            TouchesPipeline(settings=settings).map(item)
        assert exc_info.value.reason_code == reason


class TestRun:
    def test_writes_all_tables(self, pipeline, run, rows):
        stats = run(pipeline, batch_size=2, page_size=2)

        assert stats.state is RunState.DONE
        assert stats.pages == 3
        assert stats.rejects_by_reason == {"INVALID_EMAIL": 1, "MISSING_PROJECT": 1, "MISSING_TOUCH_TYPE": 1}

        assert rows("SELECT email, is_doctor FROM users_mt ORDER BY email") == [
            ("ann@x.co", 0),
            ("bob@x.co", 0),
            ("dr@clinic.ru", 1),
        ]
        assert rows(
            "SELECT c.email FROM common_database c JOIN users_mt u ON u.id = c.mt_user_id ORDER BY c.email"
        ) == [("ann@x.co",), ("bob@x.co",), ("dr@clinic.ru",)]
        assert rows("SELECT email, full_name, specialty FROM doctors") == [("dr@clinic.ru", "Dr Who", "Cardiology")]
        assert rows("SELECT project, wave, project_new_mt_id FROM projects_mt ORDER BY project") == [
            ("Cardio", "W1", 11),
            ("Neuro", "W2", 11),
        ]
        assert rows(
            "SELECT u.email, p.project, t.touch_type, t.contact_email FROM project_touches_mt t "
            "JOIN users_mt u ON u.id = t.mt_user_id JOIN projects_mt p ON p.id = t.project_id "
            "ORDER BY u.email, t.touch_type"
        ) == [
            ("ann@x.co", "Cardio", "call", "dr@clinic.ru"),
            ("ann@x.co", "Cardio", "email", None),
            ("bob@x.co", "Neuro", "call", None),
        ]

    def test_malformed_touch_does_not_stop_the_run(self, settings, api, run, rows):
        items = [touch("a@x.co"), {**touch("b@x.co"), "user": "b@x.co"}, touch("c@x.co")]
        stats = run(TouchesPipeline(settings=settings, client=api(items)), batch_size=10)

        assert stats.state is RunState.DONE
        assert stats.rejects_by_reason == {"MALFORMED_RECORD": 1}
        assert rows("SELECT email FROM users_mt ORDER BY email") == [("a@x.co",), ("c@x.co",)]
        assert rows("SELECT COUNT(*) FROM project_touches_mt") == [(2,)]

    def test_doctor_flag_is_set_only_on_first_sighting(self, settings, api, run, rows):
        run(TouchesPipeline(settings=settings, client=api([touch("dr@clinic.ru")])))
        later = touch("ann@x.co", contact=DOCTOR_CONTACT, speciality_name="Cardiology")
        run(TouchesPipeline(settings=settings, client=api([later])))

        assert rows("SELECT email, is_doctor FROM users_mt ORDER BY email") == [("ann@x.co", 0), ("dr@clinic.ru", 0)]
        assert rows("SELECT email FROM doctors") == [("dr@clinic.ru",)]

    def test_rerun_is_idempotent(self, settings, api, run, rows):
        run(TouchesPipeline(settings=settings, client=api(ITEMS, page_size=2)), batch_size=2, page_size=2)
        snapshot = {t: rows(f"SELECT * FROM {t} ORDER BY id") for t in ("users_mt", "projects_mt", "project_touches_mt")}

        stats = run(TouchesPipeline(settings=settings, client=api(ITEMS, page_size=2)), batch_size=2, page_size=2)
        assert {t: rows(f"SELECT * FROM {t} ORDER BY id") for t in snapshot} == snapshot
        assert stats.tables["project_touches_mt"].ignored == 3

    def test_request_carries_filters(self, settings, api, run):
        client = api([], page_size=2)
        run(TouchesPipeline(settings=settings, client=client), page_size=2, updated_after=date(2024, 3, 1))

        (request,) = api.requests
        assert request.url.path == "/api/v2/outer/get-touches"
        assert request.headers["Authorization"] == "Bearer v2-token"
        body = json.loads(request.content)
        assert body["updated_after"] == "2024-03-01 00:00:00.000"
        assert body["pageSize"] == 2

    def test_destinations_include_doctors_only_with_contacts(self, settings):
        p = TouchesPipeline(settings=settings)
        plain = [p.map(ITEMS[1])]
        assert "doctors" not in p.destinations(plain)
        assert "doctors" in p.destinations([p.map(ITEMS[0])])
