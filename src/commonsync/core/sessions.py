"""
Gap-based session windowing.

Clusters a time-ordered event series into windows. A window is anchored at
its first event; an event joins the window while it falls within ``gap``
seconds of that anchor, otherwise it opens a new window. The distance is
always measured from the window *start*, never from the previous event, so
a steady trickle of events 5 minutes apart still splits every 10 minutes.

Example::

    events at  0s  100s  650s  680s     (gap = 600s)
    windows    [0 ──── 100]  [650 ── 680]

    events at  0s  500s  900s
    windows    [0 ── 500]  [900]        900 - 0 > 600 even though 900 - 500 = 400

Used by the action sessions pipeline; pure, single pass, O(n).

Tags:
    sessions, windowing, time-series, pure-function, common-sync
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Hashable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any

DEFAULT_GAP_SECONDS = 600


@dataclass(frozen=True)
class SessionEvent:
    """One timestamped event of a subject within a series."""

    subject_id: Hashable
    series_key: Hashable
    ts: datetime
    is_answer: bool = False


@dataclass(frozen=True)
class SessionWindow:
    subject_id: Hashable
    series_key: Hashable
    window_start: datetime
    window_end: datetime
    event_count: int
    satisfied: bool

    @property
    def duration_seconds(self) -> float:
        return (self.window_end - self.window_start).total_seconds()


class SessionWindower:
    """Split one subject's ordered events into gap-bounded windows.

    Args:
        gap_seconds: Maximum distance from the window start for an event to
            still belong to that window (default 600).
    """

    def __init__(self, gap_seconds: float = DEFAULT_GAP_SECONDS) -> None:
        if gap_seconds < 0:
            raise ValueError("gap_seconds must be >= 0")
        self.gap_seconds = gap_seconds

    def window(self, events: Iterable[SessionEvent]) -> list[SessionWindow]:
        """Window a single (subject, series) sequence sorted by ``ts``.

        Raises:
            ValueError: If events are out of order or mix series.
        """
        windows: list[SessionWindow] = []
        start = end = None
        count = 0
        satisfied = False
        subject = series = None

        for event in events:
            if start is None:
                subject, series = event.subject_id, event.series_key
                start = end = event.ts
                count, satisfied = 1, event.is_answer
                continue

            if (event.subject_id, event.series_key) != (subject, series):
                raise ValueError(
                    f"mixed series in one window call: {(subject, series)} vs "
                    f"{(event.subject_id, event.series_key)}"
                )
            if event.ts < end:
                raise ValueError(f"events out of order: {event.ts} after {end}")

            if (event.ts - start).total_seconds() > self.gap_seconds:
                windows.append(SessionWindow(subject, series, start, end, count, satisfied))
                start = end = event.ts
                count, satisfied = 1, event.is_answer
            else:
                end = event.ts
                count += 1
                satisfied = satisfied or event.is_answer

        if start is not None:
            windows.append(SessionWindow(subject, series, start, end, count, satisfied))
        return windows

    def window_many(self, events: Iterable[SessionEvent]) -> Iterator[SessionWindow]:
        """Window a stream ordered by (subject, series, ts).

        Only one series is materialized at a time.
        """
        for _, group in itertools.groupby(events, key=lambda e: (e.subject_id, e.series_key)):
            yield from self.window(group)


def events_from_rows(
    rows: Iterable[Any],
    parse_ts: Callable[[Any], datetime],
) -> Iterator[SessionEvent]:
    """Adapt ``(subject_id, series_key, ts, is_answer)`` rows to events."""
    for subject_id, series_key, ts, is_answer in rows:
        yield SessionEvent(subject_id, series_key, parse_ts(ts), bool(is_answer))
