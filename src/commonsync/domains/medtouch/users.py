"""
CRM users import (API v1, ``outer/user``).

Mirrors CRM accounts into ``users_mt`` and ``common_database``, keyed by
email. This is the import that records a user's CRM id
(``users_mt.new_mt_id``), which the quiz and event imports resolve users
by, so it runs before them.

Profile fields only fill gaps: an existing non-empty value is never
overwritten by a later import.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from commonsync.core.errors import RecordRejected
from commonsync.core.schema import COMMON_DATABASE, USERS_MT
from commonsync.core.settings import SyncSettings, get_settings
from commonsync.core.timestamps import parse_source_datetime
from commonsync.domains.medtouch.common import full_name, optional_time, text, updated_after_filter
from commonsync.domains.medtouch.contracts import COMMON_DATABASE_CONTRACT, USERS_MT_CONTRACT
from commonsync.domains.medtouch.emails import require_email
from commonsync.framework.pipelines.base import SyncPipeline, WriteResult
from commonsync.framework.pipelines.destination import DestinationWriter
from commonsync.framework.pipelines.orchestrator import RunConfig
from commonsync.framework.registry import register_pipeline
from commonsync.framework.sources.http import PagedApiCursor

USERS_ENDPOINT = "outer/user"


@dataclass(frozen=True)
class CrmUser:
    email: str
    new_mt_id: int | None
    full_name: str | None
    username: str | None
    registration_date: str | None
    gender: str | None
    birth_date: str | None
    specialty: str | None
    phone: str | None
    city: str | None
    place_of_employment: str | None
    verified: bool
    active: bool


def _crm_id(value: Any, raw: dict[str, Any]) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise RecordRejected("INVALID_USER_ID", f"id={value!r}", raw=raw) from None


@register_pipeline("users")
class UsersPipeline(SyncPipeline):
    """Import CRM accounts into users_mt and common_database."""

    description = "CRM users (API v1) into users_mt / common_database"

    def __init__(self, settings: SyncSettings | None = None, client: httpx.Client | None = None):
        self.settings = settings or get_settings()
        self.client = client

    def open_cursor(self, config: RunConfig) -> PagedApiCursor:
        return PagedApiCursor(
            "crm_users",
            self.settings.crm_api_url_v1,
            USERS_ENDPOINT,
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

    def map(self, raw: dict[str, Any]) -> CrmUser:
        email = require_email(raw.get("email"), raw)
        birth = parse_source_datetime(raw.get("birthdate"))
        return CrmUser(
            email=email,
            new_mt_id=_crm_id(raw.get("id"), raw),
            full_name=full_name(raw),
            username=text(raw.get("name")),
            registration_date=optional_time(raw.get("created_at")),
            gender=text(raw.get("gender")),
            birth_date=birth.strftime("%Y-%m-%d") if birth else None,
            specialty=text(raw.get("speciality")),
            phone=text(raw.get("phone")),
            city=text(raw.get("city")),
            place_of_employment=text(raw.get("workplace")),
            verified=bool(raw.get("email_verified_at")),
            active=bool(raw.get("activated")),
        )

    def natural_key(self, record: CrmUser) -> str:
        return record.email

    def destinations(self, records: Sequence[CrmUser]) -> list[str]:
        return [USERS_MT, COMMON_DATABASE]

    def write(self, writer: DestinationWriter, records: Sequence[CrmUser]) -> WriteResult:
        shared = [
            {
                "email": r.email,
                "new_mt_id": r.new_mt_id,
                "full_name": r.full_name,
                "registration_date": r.registration_date,
                "gender": r.gender,
                "birth_date": r.birth_date,
                "specialty": r.specialty,
                "phone": r.phone,
                "city": r.city,
            }
            for r in records
        ]
        user_ids = writer.upsert(
            USERS_MT_CONTRACT,
            [{**row, "place_of_employment": r.place_of_employment} for row, r in zip(shared, records, strict=True)],
        )
        writer.upsert(
            COMMON_DATABASE_CONTRACT,
            [
                {
                    **row,
                    "mt_user_id": user_ids.get((r.email,)),
                    "username": r.username,
                    "verification_status": "verified" if r.verified else "not_verified",
                    "email_status": "active" if r.active else "inactive",
                }
                for row, r in zip(shared, records, strict=True)
            ],
        )
        return WriteResult(written=len(records))
