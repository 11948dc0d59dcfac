"""
Field-level conflict merge for destination upserts.

Every destination table declares an ``UpsertContract``: its natural key and
a ``FieldPolicy`` per column. ``ConflictMerger.merge`` reconciles an
incoming row with the row already stored under the same key.

Manifesto:
    Re-imports must never erase what an earlier import learned. A CRM
    export without a phone number should not blank out the phone number a
    registration file supplied last week. The existing destination value
    therefore always wins unless it is empty, and the merge is a pure
    function so it can be table-tested without a database.

Policies:
    ============== ========================================================
    FIRST_NON_EMPTY keep existing unless empty / null / zero-sentinel
    COUNT           overwrite only when existing is ``None`` (0 is a value)
    FLAG            keep existing unless ``None``; defaults to ``False``
    INSERT_ONLY     written on insert, never changed on update
    ============== ========================================================

Example:
    >>> contract = UpsertContract(
    ...     table="users_mt",
    ...     natural_key=("email",),
    ...     fields={"full_name": FieldPolicy.FIRST_NON_EMPTY},
    ... )
    >>> merger = ConflictMerger(contract)
    >>> merger.merge({"email": "a@b.co", "full_name": "Ann"},
    ...              {"email": "a@b.co", "full_name": ""})["full_name"]
    'Ann'

Tags:
    merge, upsert, conflict-resolution, pure-function, common-sync
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_ZERO_DATES = ("0000-00-00", "00.00.0000")


class FieldPolicy(str, Enum):
    """How a column is reconciled when the natural key already exists."""

    FIRST_NON_EMPTY = "first_non_empty"
    COUNT = "count"
    FLAG = "flag"
    INSERT_ONLY = "insert_only"


class MergeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    UNCHANGED = "unchanged"


def is_empty(value: Any) -> bool:
    """True for ``None``, blank strings, zero-dates and numeric zero.

    Booleans are never empty: ``False`` is a real answer.
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        text = value.strip()
        return not text or text.startswith(_ZERO_DATES)
    if isinstance(value, int | float):
        return value == 0
    if isinstance(value, list | tuple | dict | set):
        return len(value) == 0
    return False


@dataclass(frozen=True)
class UpsertContract:
    """Natural key plus per-column merge policy for one destination table.

    Attributes:
        table: Destination table name (also the lock resource name)
        natural_key: Columns that identify a row; unique in the table
        fields: Non-key columns and their policies, in write order
        id_column: Surrogate key column returned by lookups, if any
    """

    table: str
    natural_key: tuple[str, ...]
    fields: Mapping[str, FieldPolicy] = field(default_factory=dict)
    id_column: str | None = "id"

    def __post_init__(self) -> None:
        if not self.natural_key:
            raise ValueError(f"{self.table}: natural_key must not be empty")
        overlap = set(self.natural_key) & set(self.fields)
        if overlap:
            raise ValueError(f"{self.table}: key columns cannot carry a policy: {sorted(overlap)}")

    @property
    def columns(self) -> list[str]:
        return [*self.natural_key, *self.fields]

    @property
    def mergeable_fields(self) -> list[str]:
        return [f for f, p in self.fields.items() if p is not FieldPolicy.INSERT_ONLY]

    def key_of(self, row: Mapping[str, Any]) -> tuple:
        return tuple(row.get(k) for k in self.natural_key)


class ConflictMerger:
    """Apply an ``UpsertContract``'s policies to existing/incoming row pairs."""

    def __init__(self, contract: UpsertContract) -> None:
        self.contract = contract

    def normalize(self, incoming: Mapping[str, Any]) -> dict[str, Any]:
        """Shape ``incoming`` into a full row for insertion."""
        row = {k: incoming.get(k) for k in self.contract.natural_key}
        for name, policy in self.contract.fields.items():
            value = incoming.get(name)
            if policy is FieldPolicy.FLAG:
                value = bool(value) if value is not None else False
            row[name] = value
        return row

    def merge(
        self,
        existing: Mapping[str, Any] | None,
        incoming: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Reconcile ``incoming`` against ``existing`` (``None`` = insert)."""
        if existing is None:
            return self.normalize(incoming)

        row = {k: existing.get(k) for k in self.contract.natural_key}
        for name, policy in self.contract.fields.items():
            old = existing.get(name)
            new = incoming.get(name)

            if policy is FieldPolicy.INSERT_ONLY:
                row[name] = old
            elif policy is FieldPolicy.COUNT:
                row[name] = new if old is None else old
            elif policy is FieldPolicy.FLAG:
                if old is not None:
                    row[name] = bool(old)
                else:
                    row[name] = bool(new) if new is not None else False
            else:
                row[name] = new if is_empty(old) and not is_empty(new) else old
        return row

    def plan(
        self,
        existing: Mapping[str, Any] | None,
        incoming: Mapping[str, Any],
    ) -> tuple[MergeAction, dict[str, Any]]:
        """Merge and classify the outcome for stats and dry runs."""
        merged = self.merge(existing, incoming)
        if existing is None:
            return MergeAction.INSERT, merged
        for name in self.contract.fields:
            if merged[name] != existing.get(name):
                return MergeAction.UPDATE, merged
        return MergeAction.UNCHANGED, merged


__all__ = [
    "ConflictMerger",
    "FieldPolicy",
    "MergeAction",
    "UpsertContract",
    "is_empty",
]
