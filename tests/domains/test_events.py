"""Tests for the ``events`` pipeline and its nested cursor."""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from commonsync.core.errors import RecordRejected, SourceUnavailableError
from commonsync.domains.medtouch.events import EventActivity, EventsPipeline

EVENTS = [
    {
        "id": 1,
        "type": "Webinar",
        "name": "Heart failure",
        "format": "hybrid",
        "started_at": "2024-03-01 10:00:00",
        "finished_at": "2024-03-01 12:00:00",
    },
    {
        "id": 2,
        "type": "Webinar",
        "name": "Coming soon",
        "format": "online",
        "started_at": "2024-04-01 10:00:00",
        "finished_at": None,
    },
    {
        "id": 3,
        "type": "Lecture",
        "name": "Empty hall",
        "format": "offline",
        "started_at": "2024-03-02 10:00:00",
        "finished_at": "2024-03-02 11:00:00",
    },
]

PARTICIPATIONS = {
    "outer/event/1/online": [
        {"user_id": 501, "created_at": "2024-03-01 10:01:00"},
        {"user_id": 502, "created_at": "2024-03-01 10:02:00"},
        {"user_id": 999, "created_at": "2024-03-01 10:03:00"},
    ],
    "outer/event/1/offline": [{"user_id": 501, "created_at": None}],
    "outer/event/3/offline": [],
}


@pytest.fixture
def crm():
    """Route ``outer/event`` and participation endpoints; page size 2."""
    requests: list[str] = []
    failing: set[str] = set()

    def handler(request: httpx.Request) -> httpx.Response:
        endpoint = request.url.path.removeprefix("/api/v1/")
        page = int(request.url.params["page"])
        requests.append(f"{endpoint}?page={page}")
        if endpoint in failing:
            return httpx.Response(503, text="maintenance")
        items = EVENTS if endpoint == "outer/event" else PARTICIPATIONS[endpoint]
        chunk = items[(page - 1) * 2 : page * 2]
        more = page * 2 < len(items)
        return httpx.Response(200, json={"data": chunk, "next_page_url": f"{request.url}&next" if more else None})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    return SimpleNamespace(client=client, requests=requests, failing=failing)


@pytest.fixture
def known_users(conn):
    conn.executemany(
        "INSERT INTO users_mt (email, new_mt_id) VALUES (?, ?)", [("ann@x.co", 501), ("bob@x.co", 502)]
    )
    conn.commit()


class TestMap:
    def test_event(self, settings):
        activity = EventsPipeline(settings=settings).map({"kind": "event", "event": EVENTS[0]})
        assert activity == EventActivity("Webinar", "Heart failure", "2024-03-01 10:00:00", True)

    def test_action_without_time_gets_epoch(self, settings):
        action = EventsPipeline(settings=settings).map(
            {"kind": "action", "event": EVENTS[2], "format": "offline", "action": {"user_id": "7"}}
        )
        assert action.new_mt_id == 7
        assert action.date_time == "1970-01-01 00:00:00"
        assert action.activity.is_online is False

    @pytest.mark.parametrize(
        "item,reason",
        [
            ({"kind": "event", "event": EVENTS[1]}, "UNFINISHED_EVENT"),
            ({"kind": "event", "event": {**EVENTS[0], "name": " "}}, "MISSING_NAME"),
            ({"kind": "action", "event": EVENTS[0], "action": {"user_id": None}}, "MISSING_USER"),
            ({"kind": "action", "event": EVENTS[0], "action": "501"}, "MALFORMED_RECORD"),
        ],
    )
    def test_rejects(self, settings, item, reason):
        with pytest.raises(RecordRejected) as exc_info:
            EventsPipeline(settings=settings).map(item)
        assert exc_info.value.reason_code == reason


class TestRun:
    def test_activities_and_actions(self, settings, crm, run, rows, known_users):
        stats = run(EventsPipeline(settings=settings, client=crm.client), page_size=2, batch_size=3)

        assert stats.rejects_by_reason == {"UNFINISHED_EVENT": 1, "UNKNOWN_USER": 1}
        assert rows("SELECT type, name, date_time, is_online FROM activities_mt ORDER BY date_time") == [
            ("Webinar", "Heart failure", "2024-03-01 10:00:00", 1),
            ("Lecture", "Empty hall", "2024-03-02 10:00:00", 0),
        ]
        assert rows(
            "SELECT u.email, a.date_time FROM actions_mt a JOIN users_mt u ON u.id = a.mt_user_id "
            "ORDER BY a.date_time"
        ) == [
            ("ann@x.co", "1970-01-01 00:00:00"),
            ("ann@x.co", "2024-03-01 10:01:00"),
            ("bob@x.co", "2024-03-01 10:02:00"),
        ]

    def test_participations_requested_only_for_finished_events(self, settings, crm, run, known_users):
        run(EventsPipeline(settings=settings, client=crm.client), page_size=2)
        assert "outer/event/2/online?page=1" not in crm.requests
        assert "outer/event/1/online?page=2" in crm.requests
        assert "outer/event/1/offline?page=1" in crm.requests

    def test_rerun_is_idempotent(self, settings, crm, run, rows, known_users):
        run(EventsPipeline(settings=settings, client=crm.client), page_size=2)
        stats = run(EventsPipeline(settings=settings, client=crm.client), page_size=2)
        assert rows("SELECT COUNT(*) FROM actions_mt") == [(3,)]
        assert rows("SELECT COUNT(*) FROM activities_mt") == [(2,)]
        assert stats.tables["actions_mt"].inserted == 0

    def test_participation_failure_aborts_run(self, settings, crm, run):
        crm.failing.add("outer/event/1/online")
        with pytest.raises(SourceUnavailableError, match="HTTP 503"):
            run(EventsPipeline(settings=settings, client=crm.client), page_size=2)
