"""
Paged JSON API cursor (httpx).

Request::

    GET {base_url}/{endpoint}?page=N
    Authorization: Bearer <token>
    Content-Type: application/json

    {"pageSize": 100, "updated_after": "2026-01-01 00:00:00.000", ...}

Response::

    {"data": [...], "next_page_url": "https://.../outer/get-touches?page=N+1"}

Filters travel in a JSON body on a GET request; the CRM API expects them
there rather than in the query string.

Termination: the cursor stops after a page whose ``data`` is empty, whose
``next_page_url`` is empty, or which holds fewer than ``page_size`` items.
It never requests the page after that.

Failures are not retried: any transport error, non-2xx status or
undecodable body raises ``SourceUnavailableError`` / ``ParseError`` carrying
the page number, and the run aborts.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import httpx

from commonsync.core.errors import ParseError, SourceUnavailableError
from commonsync.framework.logging import bind_context, get_logger
from commonsync.framework.sources.protocol import BaseCursor, Page, SourceType

log = get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


class PagedApiCursor(BaseCursor):
    """
    Page-numbered API cursor.

    Args:
        name: Source name used in logs and errors
        base_url: API root (``https://crm.example/api/v2``)
        endpoint: Path under ``base_url`` (``outer/get-touches``)
        token: Bearer token; omitted from headers when empty
        page_size: Items requested per page
        filters: Extra body fields (``updated_after``, ``order`` ...)
        delay: Seconds to wait between consecutive page requests
        timeout: Per-request timeout in seconds
        client: Pre-built ``httpx.Client`` (tests pass a MockTransport client)
        sleep: Sleep function (injectable for tests)
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        endpoint: str,
        *,
        token: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
        filters: dict[str, Any] | None = None,
        delay: float = 1.0,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(name, SourceType.HTTP)
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.url = f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        self.page_size = page_size
        self.filters = dict(filters or {})
        self._state.delay = delay
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def _body(self) -> str:
        return json.dumps({**self.filters, "pageSize": self.page_size}, default=str)

    def next(self) -> Page:
        state = self._state
        if state.exhausted:
            return Page(items=[], number=state.page, has_more=False)

        if state.page > 0 and state.delay > 0:
            self._sleep(state.delay)

        page_no = state.page + 1
        bind_context(page=page_no)
        body = self._fetch(page_no)

        data = body.get("data") or []
        if not isinstance(data, list):
            raise ParseError(f"'data' is not a list on page {page_no}").with_context(
                source_name=self.name, page=page_no, url=self.url
            )
        next_url = body.get("next_page_url")

        state.page = page_no
        state.next_page_url = next_url or None
        state.items_seen += len(data)
        has_more = bool(data) and bool(next_url) and len(data) >= self.page_size
        if not has_more:
            state.exhausted = True

        log.debug("cursor.page", source=self.name, page=page_no, items=len(data), has_more=has_more)
        return Page(items=data, number=page_no, has_more=has_more)

    def _fetch(self, page_no: int) -> dict[str, Any]:
        try:
            response = self._client.request(
                "GET",
                self.url,
                params={"page": page_no},
                content=self._body(),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise SourceUnavailableError(
                f"Request to {self.url} failed on page {page_no}: {e}", cause=e
            ).with_context(source_name=self.name, page=page_no, url=self.url) from e

        if not response.is_success:
            raise SourceUnavailableError(
                f"{self.url} returned HTTP {response.status_code} on page {page_no}: "
                f"{response.text[:200]}"
            ).with_context(
                source_name=self.name, page=page_no, url=self.url, http_status=response.status_code
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ParseError(f"Invalid JSON on page {page_no}: {e}", cause=e).with_context(
                source_name=self.name, page=page_no, url=self.url
            ) from e
        if not isinstance(body, dict):
            raise ParseError(f"Expected a JSON object on page {page_no}").with_context(
                source_name=self.name, page=page_no, url=self.url
            )
        return body

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
