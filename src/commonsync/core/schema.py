"""
Table definitions for the common database and its sync infrastructure.

Defines table names and DDL for:

- **Infrastructure:** ``write_locks`` (cross-run write serialization) and
  ``sync_rejects`` (record-level failures kept for audit)
- **Canonical persons:** ``common_database``
- **Source mirrors:** ``users_mt``, ``doctors``, ``projects_mt``,
  ``project_touches_mt``, ``activities_mt``, ``actions_mt``
- **Derived:** ``action_sessions`` (output of session windowing)

Architecture:
    ::

        write_locks
        ┌───────────────┬────────────┬────────────┬───────────┐
        │ resource_name │ is_writing │ locked_at  │ locked_by │
        │ users_mt      │ 1          │ 2026-...   │ run-01H.. │
        │ projects_mt   │ 0          │ NULL       │ NULL      │
        └───────────────┴────────────┴────────────┴───────────┘

DDL is generated per dialect because auto-increment and boolean literals
differ between SQLite and PostgreSQL; everything else is portable.
"""

from __future__ import annotations

from commonsync.core.dialect import Dialect, SQLiteDialect
from commonsync.core.protocols import Connection

WRITE_LOCKS = "write_locks"
SYNC_REJECTS = "sync_rejects"
COMMON_DATABASE = "common_database"
USERS_MT = "users_mt"
DOCTORS = "doctors"
PROJECTS_MT = "projects_mt"
PROJECT_TOUCHES_MT = "project_touches_mt"
ACTIVITIES_MT = "activities_mt"
ACTIONS_MT = "actions_mt"
ACTION_SESSIONS = "action_sessions"

ALL_TABLES = (
    WRITE_LOCKS,
    SYNC_REJECTS,
    COMMON_DATABASE,
    USERS_MT,
    DOCTORS,
    PROJECTS_MT,
    PROJECT_TOUCHES_MT,
    ACTIVITIES_MT,
    ACTIONS_MT,
    ACTION_SESSIONS,
)


def table_ddl(dialect: Dialect = SQLiteDialect()) -> dict[str, str]:
    """Return ``{table_name: CREATE TABLE statement}`` for ``dialect``."""
    pk = dialect.auto_increment()
    false = dialect.boolean_false()

    return {
        WRITE_LOCKS: f"""
            CREATE TABLE IF NOT EXISTS {WRITE_LOCKS} (
                resource_name TEXT NOT NULL PRIMARY KEY,
                is_writing BOOLEAN NOT NULL DEFAULT {false},
                locked_at TIMESTAMP NULL,
                locked_by TEXT NULL,
                created_at TIMESTAMP NULL,
                updated_at TIMESTAMP NULL
            )
        """,
        SYNC_REJECTS: f"""
            CREATE TABLE IF NOT EXISTS {SYNC_REJECTS} (
                id {pk},
                run_id TEXT NOT NULL,
                pipeline TEXT NOT NULL,
                stage TEXT NOT NULL,
                reason_code TEXT NOT NULL,
                reason_detail TEXT NULL,
                raw_json TEXT NULL,
                created_at TIMESTAMP NOT NULL
            )
        """,
        COMMON_DATABASE: f"""
            CREATE TABLE IF NOT EXISTS {COMMON_DATABASE} (
                id {pk},
                email TEXT NOT NULL UNIQUE,
                full_name TEXT NULL,
                phone TEXT NULL,
                city TEXT NULL,
                region TEXT NULL,
                country TEXT NULL,
                specialty TEXT NULL,
                gender TEXT NULL,
                birth_date TEXT NULL,
                username TEXT NULL,
                new_mt_id INTEGER NULL,
                mt_user_id INTEGER NULL,
                registration_date TEXT NULL,
                registration_website TEXT NULL,
                planned_actions INTEGER NULL,
                resulting_actions INTEGER NULL,
                pharma BOOLEAN NOT NULL DEFAULT {false},
                verification_status TEXT NULL,
                email_status TEXT NULL
            )
        """,
        USERS_MT: f"""
            CREATE TABLE IF NOT EXISTS {USERS_MT} (
                id {pk},
                email TEXT NOT NULL UNIQUE,
                full_name TEXT NULL,
                phone TEXT NULL,
                city TEXT NULL,
                specialty TEXT NULL,
                gender TEXT NULL,
                birth_date TEXT NULL,
                place_of_employment TEXT NULL,
                new_mt_id INTEGER NULL,
                registration_date TEXT NULL,
                last_login TEXT NULL,
                is_doctor BOOLEAN NOT NULL DEFAULT {false}
            )
        """,
        DOCTORS: f"""
            CREATE TABLE IF NOT EXISTS {DOCTORS} (
                id {pk},
                email TEXT NOT NULL UNIQUE,
                full_name TEXT NULL,
                phone TEXT NULL,
                city TEXT NULL,
                specialty TEXT NULL
            )
        """,
        PROJECTS_MT: f"""
            CREATE TABLE IF NOT EXISTS {PROJECTS_MT} (
                id {pk},
                project TEXT NOT NULL,
                wave TEXT NOT NULL,
                project_new_mt_id INTEGER NULL,
                date_time TEXT NULL,
                UNIQUE (project, wave)
            )
        """,
        PROJECT_TOUCHES_MT: f"""
            CREATE TABLE IF NOT EXISTS {PROJECT_TOUCHES_MT} (
                id {pk},
                mt_user_id INTEGER NOT NULL,
                project_id INTEGER NOT NULL,
                touch_type TEXT NOT NULL,
                status TEXT NULL,
                date_time TEXT NOT NULL,
                contact_email TEXT NULL,
                contact_verified BOOLEAN NULL,
                contact_allowed BOOLEAN NULL,
                contact_created_at TEXT NULL,
                UNIQUE (mt_user_id, project_id, touch_type, date_time)
            )
        """,
        ACTIVITIES_MT: f"""
            CREATE TABLE IF NOT EXISTS {ACTIVITIES_MT} (
                id {pk},
                type TEXT NOT NULL,
                name TEXT NOT NULL,
                date_time TEXT NOT NULL,
                is_online BOOLEAN NULL,
                UNIQUE (type, name, date_time)
            )
        """,
        ACTIONS_MT: f"""
            CREATE TABLE IF NOT EXISTS {ACTIONS_MT} (
                id {pk},
                activity_id INTEGER NOT NULL,
                mt_user_id INTEGER NOT NULL,
                date_time TEXT NOT NULL,
                is_answer BOOLEAN NOT NULL DEFAULT {false},
                UNIQUE (activity_id, mt_user_id, date_time)
            )
        """,
        ACTION_SESSIONS: f"""
            CREATE TABLE IF NOT EXISTS {ACTION_SESSIONS} (
                id {pk},
                mt_user_id INTEGER NOT NULL,
                activity_id INTEGER NOT NULL,
                window_start TEXT NOT NULL,
                window_end TEXT NOT NULL,
                event_count INTEGER NOT NULL,
                duration_seconds INTEGER NOT NULL,
                satisfied BOOLEAN NOT NULL DEFAULT {false},
                UNIQUE (mt_user_id, activity_id, window_start)
            )
        """,
    }


def create_tables(conn: Connection, dialect: Dialect = SQLiteDialect()) -> list[str]:
    """Create every table that does not exist yet. Returns the table names."""
    ddl = table_ddl(dialect)
    for name in ALL_TABLES:
        conn.execute(ddl[name])
    conn.commit()
    return list(ALL_TABLES)


__all__ = [
    "WRITE_LOCKS",
    "SYNC_REJECTS",
    "COMMON_DATABASE",
    "USERS_MT",
    "DOCTORS",
    "PROJECTS_MT",
    "PROJECT_TOUCHES_MT",
    "ACTIVITIES_MT",
    "ACTIONS_MT",
    "ACTION_SESSIONS",
    "ALL_TABLES",
    "table_ddl",
    "create_tables",
]
