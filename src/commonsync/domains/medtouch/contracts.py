"""Upsert contracts for the common database and its MedTouch mirrors."""

from commonsync.core.merge import FieldPolicy, UpsertContract
from commonsync.core.schema import (
    ACTIONS_MT,
    ACTIVITIES_MT,
    COMMON_DATABASE,
    DOCTORS,
    PROJECT_TOUCHES_MT,
    PROJECTS_MT,
    USERS_MT,
)

FNE = FieldPolicy.FIRST_NON_EMPTY

USERS_MT_CONTRACT = UpsertContract(
    table=USERS_MT,
    natural_key=("email",),
    fields={
        "full_name": FNE,
        "phone": FNE,
        "city": FNE,
        "specialty": FNE,
        "gender": FNE,
        "birth_date": FNE,
        "place_of_employment": FNE,
        "new_mt_id": FNE,
        "registration_date": FNE,
        "last_login": FNE,
        "is_doctor": FieldPolicy.FLAG,
    },
)

COMMON_DATABASE_CONTRACT = UpsertContract(
    table=COMMON_DATABASE,
    natural_key=("email",),
    fields={
        "full_name": FNE,
        "phone": FNE,
        "city": FNE,
        "region": FNE,
        "country": FNE,
        "specialty": FNE,
        "gender": FNE,
        "birth_date": FNE,
        "username": FNE,
        "new_mt_id": FNE,
        "mt_user_id": FNE,
        "registration_date": FNE,
        "registration_website": FieldPolicy.INSERT_ONLY,
        "planned_actions": FieldPolicy.COUNT,
        "resulting_actions": FieldPolicy.COUNT,
        "pharma": FieldPolicy.FLAG,
        "verification_status": FNE,
        "email_status": FNE,
    },
)

DOCTORS_CONTRACT = UpsertContract(
    table=DOCTORS,
    natural_key=("email",),
    fields={
        "full_name": FNE,
        "phone": FNE,
        "city": FNE,
        "specialty": FNE,
    },
)

PROJECTS_MT_CONTRACT = UpsertContract(
    table=PROJECTS_MT,
    natural_key=("project", "wave"),
    fields={
        "project_new_mt_id": FieldPolicy.INSERT_ONLY,
        "date_time": FieldPolicy.INSERT_ONLY,
    },
)

PROJECT_TOUCHES_MT_CONTRACT = UpsertContract(
    table=PROJECT_TOUCHES_MT,
    natural_key=("mt_user_id", "project_id", "touch_type", "date_time"),
    fields={
        "status": FieldPolicy.INSERT_ONLY,
        "contact_email": FieldPolicy.INSERT_ONLY,
        "contact_verified": FieldPolicy.INSERT_ONLY,
        "contact_allowed": FieldPolicy.INSERT_ONLY,
        "contact_created_at": FieldPolicy.INSERT_ONLY,
    },
)

ACTIVITIES_MT_CONTRACT = UpsertContract(
    table=ACTIVITIES_MT,
    natural_key=("type", "name", "date_time"),
    fields={"is_online": FieldPolicy.INSERT_ONLY},
)

ACTIONS_MT_CONTRACT = UpsertContract(
    table=ACTIONS_MT,
    natural_key=("activity_id", "mt_user_id", "date_time"),
    fields={"is_answer": FieldPolicy.FLAG},
)
