"""
CRM events import (API v1, ``outer/event`` and ``outer/event/{id}/{format}``).

An event becomes an ``activities_mt`` row keyed by (type, name, started_at);
every participation listed under the event's online and/or offline
endpoint becomes an ``actions_mt`` row for that activity.

Architecture:
    ::

        outer/event (pages) ─► event ──► activity record
                                 │
                                 ├─ format offline/hybrid ─► outer/event/{id}/offline (pages) ─► action records
                                 └─ format online/hybrid  ─► outer/event/{id}/online  (pages) ─► action records

``EventActionsCursor`` walks that tree one API page at a time, so memory
is bounded by a single page whatever the size of an event. Events that
have not finished yet are rejected (``UNFINISHED_EVENT``) and their
participations are not requested; a later run picks them up.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from commonsync.core.errors import RecordRejected
from commonsync.core.rejects import Reject
from commonsync.core.schema import ACTIONS_MT, ACTIVITIES_MT, USERS_MT
from commonsync.core.settings import SyncSettings, get_settings
from commonsync.domains.medtouch.common import event_time, nested, text, updated_after_filter
from commonsync.domains.medtouch.contracts import ACTIONS_MT_CONTRACT, ACTIVITIES_MT_CONTRACT
from commonsync.framework.logging import get_logger
from commonsync.framework.pipelines.base import SyncPipeline, WriteResult
from commonsync.framework.pipelines.destination import DestinationWriter
from commonsync.framework.pipelines.orchestrator import RunConfig
from commonsync.framework.registry import register_pipeline
from commonsync.framework.sources.http import PagedApiCursor
from commonsync.framework.sources.protocol import BaseCursor, Page, SourceType

log = get_logger(__name__)

EVENTS_ENDPOINT = "outer/event"
FORMAT_ENDPOINTS = {
    "offline": ("offline",),
    "online": ("online",),
    "hybrid": ("offline", "online"),
}
ONLINE_FORMATS = frozenset({"online", "hybrid"})
#: Participations without ``created_at`` get this time so re-imports dedup.
MISSING_ACTION_TIME = "1970-01-01 00:00:00"


def is_finished(event: Any) -> bool:
    return isinstance(event, dict) and event.get("finished_at") is not None


class EventActionsCursor(BaseCursor):
    """
    Flatten events and their participations into one page stream.

    Yields pages of ``{"kind": "event", "event": {...}}`` items (one per
    event page) and ``{"kind": "action", "event": {...}, "format": ...,
    "action": {...}}`` items (one per participation page).

    Args:
        events: Cursor over ``outer/event``
        open_actions: ``(event_id, format) -> cursor`` over the event's
            participation endpoint
    """

    def __init__(self, events: PagedApiCursor, open_actions: Callable[[Any, str], PagedApiCursor]):
        super().__init__(events.name, SourceType.HTTP)
        self.events = events
        self.open_actions = open_actions
        self._pending: deque[tuple[dict[str, Any], str]] = deque()
        self._actions: PagedApiCursor | None = None
        self._event: dict[str, Any] = {}
        self._format = ""
        self._events_done = False

    def next(self) -> Page:
        if self._state.exhausted:
            return Page(items=[], number=self._state.page, has_more=False)

        if self._actions is not None:
            page = self._actions.next()
            if not page.has_more:
                self._actions.close()
                self._actions = None
            items = [
                {"kind": "action", "event": self._event, "format": self._format, "action": action}
                for action in page.items
            ]
            return self._emit(items)

        if self._pending:
            self._event, self._format = self._pending.popleft()
            log.debug("cursor.event_actions", event_id=self._event.get("id"), format=self._format)
            self._actions = self.open_actions(self._event.get("id"), self._format)
            return self._emit([])

        if self._events_done:
            return self._finish()

        page = self.events.next()
        if not page.has_more:
            self._events_done = True
        for event in page.items:
            if is_finished(event):
                for fmt in FORMAT_ENDPOINTS.get(event.get("format"), ()):
                    self._pending.append((event, fmt))
        return self._emit([{"kind": "event", "event": event} for event in page.items])

    def _emit(self, items: list[dict[str, Any]]) -> Page:
        state = self._state
        state.page += 1
        state.items_seen += len(items)
        has_more = not self._events_done or bool(self._pending) or self._actions is not None
        if not has_more:
            state.exhausted = True
        return Page(items=items, number=state.page, has_more=has_more)

    def close(self) -> None:
        if self._actions is not None:
            self._actions.close()
            self._actions = None
        self.events.close()


@dataclass(frozen=True)
class EventActivity:
    type: str
    name: str
    date_time: str
    is_online: bool

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.type, self.name, self.date_time)


@dataclass(frozen=True)
class EventAction:
    activity: EventActivity
    new_mt_id: int
    date_time: str


def _activity(event: dict[str, Any], raw: Any) -> EventActivity:
    if not is_finished(event):
        raise RecordRejected("UNFINISHED_EVENT", f"id={event.get('id')!r}", raw=raw)
    event_type, name = text(event.get("type")), text(event.get("name"))
    if not event_type or not name:
        raise RecordRejected("MISSING_NAME", f"id={event.get('id')!r}", raw=raw)
    return EventActivity(
        type=event_type,
        name=name,
        date_time=event_time(event.get("started_at"), "started_at", raw),
        is_online=event.get("format") in ONLINE_FORMATS,
    )


@register_pipeline("events")
class EventsPipeline(SyncPipeline):
    """Import finished CRM events and their participations."""

    description = "CRM events (API v1) into activities_mt / actions_mt"

    def __init__(self, settings: SyncSettings | None = None, client: httpx.Client | None = None):
        self.settings = settings or get_settings()
        self.client = client

    def open_cursor(self, config: RunConfig) -> EventActionsCursor:
        def api(name: str, endpoint: str, filters: dict[str, Any]) -> PagedApiCursor:
            return PagedApiCursor(
                name,
                self.settings.crm_api_url_v1,
                endpoint,
                token=self.settings.crm_api_token_v1,
                page_size=config.page_size,
                filters=filters,
                delay=config.request_delay,
                timeout=config.request_timeout,
                client=self.client,
            )

        events = api(
            "crm_events",
            EVENTS_ENDPOINT,
            {"updated_after": updated_after_filter(config.updated_after), "order": "updated_at"},
        )
        return EventActionsCursor(
            events,
            lambda event_id, fmt: api(f"crm_event_{fmt}", f"{EVENTS_ENDPOINT}/{event_id}/{fmt}", {}),
        )

    def map(self, raw: dict[str, Any]) -> EventActivity | EventAction:
        event = nested(raw, "event")
        activity = _activity(event, raw)
        if raw.get("kind") != "action":
            return activity

        action = nested(raw, "action")
        try:
            new_mt_id = int(action.get("user_id"))
        except (TypeError, ValueError):
            raise RecordRejected("MISSING_USER", f"user_id={action.get('user_id')!r}", raw=raw) from None
        return EventAction(
            activity=activity,
            new_mt_id=new_mt_id,
            date_time=event_time(action.get("created_at") or MISSING_ACTION_TIME, "created_at", raw),
        )

    def natural_key(self, record: EventActivity | EventAction) -> tuple:
        if isinstance(record, EventAction):
            return ("action", *record.activity.key, record.new_mt_id, record.date_time)
        return ("activity", *record.key)

    def destinations(self, records: Sequence[EventActivity | EventAction]) -> list[str]:
        if any(isinstance(r, EventAction) for r in records):
            return [ACTIVITIES_MT, ACTIONS_MT]
        return [ACTIVITIES_MT]

    def write(self, writer: DestinationWriter, records: Sequence[EventActivity | EventAction]) -> WriteResult:
        actions = [r for r in records if isinstance(r, EventAction)]
        activities = {r.key: r for r in records if isinstance(r, EventActivity)}
        for a in actions:
            activities.setdefault(a.activity.key, a.activity)

        activity_ids = writer.insert_or_ignore(
            ACTIVITIES_MT_CONTRACT,
            [
                {"type": a.type, "name": a.name, "date_time": a.date_time, "is_online": a.is_online}
                for a in activities.values()
            ],
        )
        if not actions:
            return WriteResult(written=0)

        user_ids = writer.lookup_ids(USERS_MT, "new_mt_id", (a.new_mt_id for a in actions))
        rejects: list[Reject] = []
        rows: list[dict[str, Any]] = []
        for a in actions:
            mt_user_id = user_ids.get(a.new_mt_id)
            if mt_user_id is None:
                rejects.append(Reject("RESOLVE", "UNKNOWN_USER", f"new_mt_id={a.new_mt_id}", {"user_id": a.new_mt_id}))
                continue
            rows.append(
                {
                    "activity_id": activity_ids[a.activity.key],
                    "mt_user_id": mt_user_id,
                    "date_time": a.date_time,
                }
            )
        writer.insert_or_ignore(ACTIONS_MT_CONTRACT, rows)
        return WriteResult(written=len(rows), rejects=rejects)
