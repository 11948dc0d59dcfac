"""
Quiz actions import (API v1, ``outer/qts``).

Every quiz answer becomes an ``actions_mt`` row hanging off an
``activities_mt`` row of type ``Квиз`` keyed by (type, name, date_time).
Users are resolved by their CRM id (``users_mt.new_mt_id``); answers from
users that have not been imported yet are rejected as ``UNKNOWN_USER``
and picked up by a later run.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from commonsync.core.errors import RecordRejected
from commonsync.core.rejects import Reject
from commonsync.core.schema import ACTIONS_MT, ACTIVITIES_MT, USERS_MT
from commonsync.core.settings import SyncSettings, get_settings
from commonsync.domains.medtouch.common import event_time, text, updated_after_filter
from commonsync.domains.medtouch.contracts import ACTIONS_MT_CONTRACT, ACTIVITIES_MT_CONTRACT
from commonsync.framework.pipelines.base import SyncPipeline, WriteResult
from commonsync.framework.pipelines.destination import DestinationWriter
from commonsync.framework.pipelines.orchestrator import RunConfig
from commonsync.framework.registry import register_pipeline
from commonsync.framework.sources.http import PagedApiCursor

QUIZZES_ENDPOINT = "outer/qts"
QUIZ_ACTIVITY_TYPE = "Квиз"


@dataclass(frozen=True)
class QuizAction:
    new_mt_id: int
    name: str
    date_time: str
    is_answer: bool


@register_pipeline("quizzes")
class QuizzesPipeline(SyncPipeline):
    """Import quiz participations as activities and actions."""

    description = "CRM quizzes (API v1) into activities_mt / actions_mt"

    def __init__(self, settings: SyncSettings | None = None, client: httpx.Client | None = None):
        self.settings = settings or get_settings()
        self.client = client

    def open_cursor(self, config: RunConfig) -> PagedApiCursor:
        return PagedApiCursor(
            "crm_quizzes",
            self.settings.crm_api_url_v1,
            QUIZZES_ENDPOINT,
            token=self.settings.crm_api_token_v1,
            page_size=config.page_size,
            filters={
                "updated_after": updated_after_filter(config.updated_after),
                "order": "updated_at",
            },
            delay=config.request_delay,
            timeout=config.request_timeout,
            client=self.client,
        )

    def map(self, raw: dict[str, Any]) -> QuizAction:
        name = text(raw.get("name"))
        if not name:
            raise RecordRejected("MISSING_NAME", raw=raw)
        try:
            new_mt_id = int(raw.get("user_id"))
        except (TypeError, ValueError):
            raise RecordRejected("MISSING_USER", f"user_id={raw.get('user_id')!r}", raw=raw) from None
        return QuizAction(
            new_mt_id=new_mt_id,
            name=name,
            date_time=event_time(raw.get("created_at"), "created_at", raw),
            is_answer=bool(raw.get("is_answer") or raw.get("answers")),
        )

    def natural_key(self, record: QuizAction) -> tuple:
        return (record.new_mt_id, record.name, record.date_time)

    def destinations(self, records: Sequence[QuizAction]) -> list[str]:
        return [ACTIVITIES_MT, ACTIONS_MT]

    def write(self, writer: DestinationWriter, records: Sequence[QuizAction]) -> WriteResult:
        user_ids = writer.lookup_ids(USERS_MT, "new_mt_id", (r.new_mt_id for r in records))

        rejects: list[Reject] = []
        known: list[QuizAction] = []
        for r in records:
            if r.new_mt_id in user_ids:
                known.append(r)
            else:
                rejects.append(Reject("RESOLVE", "UNKNOWN_USER", f"new_mt_id={r.new_mt_id}", {"user_id": r.new_mt_id}))

        activity_ids = writer.insert_or_ignore(
            ACTIVITIES_MT_CONTRACT,
            [{"type": QUIZ_ACTIVITY_TYPE, "name": r.name, "date_time": r.date_time} for r in known],
        )
        actions = [
            {
                "activity_id": activity_ids[(QUIZ_ACTIVITY_TYPE, r.name, r.date_time)],
                "mt_user_id": user_ids[r.new_mt_id],
                "date_time": r.date_time,
                "is_answer": r.is_answer,
            }
            for r in known
        ]
        writer.insert_or_ignore(ACTIONS_MT_CONTRACT, actions)
        return WriteResult(written=len(actions), rejects=rejects)
