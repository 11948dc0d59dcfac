"""
CRM touches import (API v2, ``outer/get-touches``).

Each touch carries the user it was made with, an optional doctor contact
and the project/wave it belongs to. One touch fans out into up to six
tables::

    touch ─┬─► users_mt            (user, and the contact as is_doctor)
           ├─► common_database     (user + contact, linked by mt_user_id)
           ├─► doctors             (contact)
           ├─► projects_mt         (project, wave)   insert-or-ignore
           └─► project_touches_mt  (mt_user_id, project_id, type, time)

All of them are written in the same batch transaction so a touch never
lands without its user or project.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from commonsync.core.errors import RecordRejected
from commonsync.core.rejects import Reject
from commonsync.core.schema import COMMON_DATABASE, DOCTORS, PROJECT_TOUCHES_MT, PROJECTS_MT, USERS_MT
from commonsync.core.settings import SyncSettings, get_settings
from commonsync.domains.medtouch.common import (
    event_time,
    full_name,
    nested,
    optional_time,
    text,
    updated_after_filter,
)
from commonsync.domains.medtouch.contracts import (
    COMMON_DATABASE_CONTRACT,
    DOCTORS_CONTRACT,
    PROJECT_TOUCHES_MT_CONTRACT,
    PROJECTS_MT_CONTRACT,
    USERS_MT_CONTRACT,
)
from commonsync.domains.medtouch.emails import is_valid_email, normalize_email, require_email
from commonsync.framework.logging import get_logger
from commonsync.framework.pipelines.base import SyncPipeline, WriteResult
from commonsync.framework.pipelines.destination import DestinationWriter
from commonsync.framework.pipelines.orchestrator import RunConfig
from commonsync.framework.registry import register_pipeline
from commonsync.framework.sources.http import PagedApiCursor

log = get_logger(__name__)

TOUCHES_ENDPOINT = "outer/get-touches"


@dataclass(frozen=True)
class Person:
    email: str
    full_name: str | None = None
    phone: str | None = None
    specialty: str | None = None


@dataclass(frozen=True)
class Touch:
    user: Person
    contact: Person | None
    contact_verified: bool | None
    contact_allowed: bool | None
    contact_created_at: str | None
    project: str
    wave: str
    project_new_mt_id: int | None
    project_created_at: str | None
    touch_type: str
    status: str | None
    date_time: str

    @property
    def project_key(self) -> tuple[str, str]:
        return (self.project, self.wave)


def _contact(raw: dict[str, Any], specialty: Any) -> Person | None:
    contact = raw.get("contact")
    if not isinstance(contact, dict) or not contact:
        return None
    email = normalize_email(contact.get("email"))
    if not is_valid_email(email):
        log.debug("touch.contact_dropped", email=email)
        return None
    return Person(
        email=email,
        full_name=text(contact.get("name")),
        phone=text(contact.get("phone")),
        specialty=text(specialty),
    )


@register_pipeline("touches")
class TouchesPipeline(SyncPipeline):
    """Import CRM touches with their users, doctors and projects."""

    description = "CRM touches (API v2) into users, doctors, projects and touches"

    def __init__(self, settings: SyncSettings | None = None, client: httpx.Client | None = None):
        self.settings = settings or get_settings()
        self.client = client

    def open_cursor(self, config: RunConfig) -> PagedApiCursor:
        return PagedApiCursor(
            "crm_touches",
            self.settings.crm_api_url_v2,
            TOUCHES_ENDPOINT,
            token=self.settings.crm_api_token_v2,
            page_size=config.page_size,
            filters={
                "exclude_subobjects": [],
                "updated_after": updated_after_filter(config.updated_after),
            },
            delay=config.request_delay,
            timeout=config.request_timeout,
            client=self.client,
        )

    def map(self, raw: dict[str, Any]) -> Touch:
        if not isinstance(raw, dict):
            raise RecordRejected("MALFORMED_RECORD", f"touch is {type(raw).__name__}, expected object", raw=raw)
        user = nested(raw, "user")
        email = require_email(user.get("email"), raw)

        project = nested(raw, "project")
        wave = nested(raw, "wave")
        project_name, wave_name = text(project.get("name")), text(wave.get("name"))
        if not project_name or not wave_name:
            raise RecordRejected("MISSING_PROJECT", raw=raw)

        touch_type = text(raw.get("touch_type"))
        if not touch_type:
            raise RecordRejected("MISSING_TOUCH_TYPE", raw=raw)

        contact = _contact(raw, raw.get("speciality_name"))
        contact_raw = raw["contact"] if contact else {}
        return Touch(
            user=Person(email=email, full_name=full_name(user), phone=text(user.get("phone"))),
            contact=contact,
            contact_verified=bool(contact_raw.get("verified")) if contact else None,
            contact_allowed=bool(contact_raw.get("allowed")) if contact else None,
            contact_created_at=optional_time(contact_raw.get("created_at")) if contact else None,
            project=project_name,
            wave=wave_name,
            project_new_mt_id=project.get("id"),
            project_created_at=optional_time(project.get("created_at")),
            touch_type=touch_type,
            status=text(raw.get("success")),
            date_time=event_time(raw.get("touch_date"), "touch_date", raw),
        )

    def natural_key(self, record: Touch) -> tuple:
        return (record.user.email, record.project, record.wave, record.touch_type, record.date_time)

    def destinations(self, records: Sequence[Touch]) -> list[str]:
        tables = [USERS_MT, COMMON_DATABASE, PROJECTS_MT, PROJECT_TOUCHES_MT]
        if any(r.contact for r in records):
            tables.append(DOCTORS)
        return tables

    def write(self, writer: DestinationWriter, records: Sequence[Touch]) -> WriteResult:
        users: list[dict[str, Any]] = []
        doctors: list[dict[str, Any]] = []
        for r in records:
            users.append({"email": r.user.email, "full_name": r.user.full_name, "phone": r.user.phone})
            if r.contact:
                doctors.append(
                    {
                        "email": r.contact.email,
                        "full_name": r.contact.full_name,
                        "phone": r.contact.phone,
                        "specialty": r.contact.specialty,
                    }
                )

        user_ids = writer.upsert(USERS_MT_CONTRACT, users + [{**d, "is_doctor": True} for d in doctors])
        writer.upsert(
            COMMON_DATABASE_CONTRACT,
            [{**p, "mt_user_id": user_ids.get((p["email"],))} for p in users + doctors],
        )
        if doctors:
            writer.upsert(DOCTORS_CONTRACT, doctors)

        project_ids = writer.insert_or_ignore(
            PROJECTS_MT_CONTRACT,
            [
                {
                    "project": r.project,
                    "wave": r.wave,
                    "project_new_mt_id": r.project_new_mt_id,
                    "date_time": r.project_created_at,
                }
                for r in records
            ],
        )

        touches: list[dict[str, Any]] = []
        rejects: list[Reject] = []
        for r in records:
            mt_user_id = user_ids.get((r.user.email,))
            project_id = project_ids.get(r.project_key)
            if mt_user_id is None or project_id is None:
                rejects.append(Reject("RESOLVE", "UNRESOLVED_REFERENCE", f"{r.user.email} / {r.project_key}"))
                continue
            touches.append(
                {
                    "mt_user_id": mt_user_id,
                    "project_id": project_id,
                    "touch_type": r.touch_type,
                    "date_time": r.date_time,
                    "status": r.status,
                    "contact_email": r.contact.email if r.contact else None,
                    "contact_verified": r.contact_verified,
                    "contact_allowed": r.contact_allowed,
                    "contact_created_at": r.contact_created_at,
                }
            )
        writer.insert_or_ignore(PROJECT_TOUCHES_MT_CONTRACT, touches)
        return WriteResult(written=len(touches), rejects=rejects)
