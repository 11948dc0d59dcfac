"""Tests for ``commonsync.framework.sources.http`` -- page-numbered API cursor."""

from __future__ import annotations

import json

import httpx
import pytest

from commonsync.core.errors import ParseError, SourceUnavailableError
from commonsync.framework.sources.http import PagedApiCursor


def make_api(pages: dict[int, dict], requests: list[httpx.Request]):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = int(request.url.params["page"])
        return httpx.Response(200, json=pages.get(page, {"data": [], "next_page_url": None}))

    return httpx.Client(transport=httpx.MockTransport(handler))


def cursor(client, **kwargs) -> PagedApiCursor:
    kwargs.setdefault("page_size", 2)
    kwargs.setdefault("delay", 0)
    return PagedApiCursor("touches", "https://crm.test/api/v2/", "/outer/get-touches", client=client, **kwargs)


class TestPaging:
    def test_follows_pages_until_next_url_missing(self):
        requests: list[httpx.Request] = []
        client = make_api(
            {
                1: {"data": [{"id": 1}, {"id": 2}], "next_page_url": "p2"},
                2: {"data": [{"id": 3}, {"id": 4}], "next_page_url": "p3"},
                3: {"data": [{"id": 5}], "next_page_url": None},
            },
            requests,
        )
        c = cursor(client)
        pages = list(c.pages())

        assert [p.number for p in pages] == [1, 2, 3]
        assert [item["id"] for p in pages for item in p.items] == [1, 2, 3, 4, 5]
        assert c.state.exhausted is True
        assert c.state.items_seen == 5
        assert len(requests) == 3

    def test_short_page_stops_even_with_next_url(self):
        requests: list[httpx.Request] = []
        client = make_api({1: {"data": [{"id": 1}], "next_page_url": "p2"}}, requests)
        assert len(list(cursor(client).pages())) == 1
        assert len(requests) == 1

    def test_empty_first_page(self):
        requests: list[httpx.Request] = []
        c = cursor(make_api({}, requests))
        assert list(c.pages()) == []
        assert c.state.exhausted

    def test_exhausted_cursor_does_not_request(self):
        requests: list[httpx.Request] = []
        c = cursor(make_api({}, requests))
        c.next()
        c.next()
        assert len(requests) == 1


class TestRequest:
    def test_url_auth_and_body(self):
        requests: list[httpx.Request] = []
        client = make_api({}, requests)
        c = cursor(client, token="tok", filters={"updated_after": "2024-03-01 00:00:00.000"})
        c.next()

        (req,) = requests
        assert req.method == "GET"
        assert req.url.path == "/api/v2/outer/get-touches"
        assert req.url.params["page"] == "1"
        assert req.headers["Authorization"] == "Bearer tok"
        assert json.loads(req.content) == {"updated_after": "2024-03-01 00:00:00.000", "pageSize": 2}

    def test_no_auth_header_without_token(self):
        requests: list[httpx.Request] = []
        cursor(make_api({}, requests)).next()
        assert "Authorization" not in requests[0].headers

    def test_delay_between_pages_only(self):
        sleeps: list[float] = []
        requests: list[httpx.Request] = []
        client = make_api(
            {
                1: {"data": [{"id": 1}, {"id": 2}], "next_page_url": "p2"},
                2: {"data": [{"id": 3}], "next_page_url": None},
            },
            requests,
        )
        list(cursor(client, delay=1.5, sleep=sleeps.append).pages())
        assert sleeps == [1.5]

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            PagedApiCursor("x", "https://crm.test", "e", page_size=0, client=httpx.Client())


class TestErrors:
    def _client(self, response: httpx.Response) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(lambda request: response))

    def test_http_error_status(self):
        c = cursor(self._client(httpx.Response(503, text="maintenance")))
        with pytest.raises(SourceUnavailableError) as exc_info:
            c.next()
        assert exc_info.value.context.http_status == 503
        assert exc_info.value.context.page == 1

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        c = cursor(httpx.Client(transport=httpx.MockTransport(handler)))
        with pytest.raises(SourceUnavailableError, match="failed on page 1"):
            c.next()

    def test_invalid_json(self):
        c = cursor(self._client(httpx.Response(200, text="<html>")))
        with pytest.raises(ParseError):
            c.next()

    def test_data_not_a_list(self):
        c = cursor(self._client(httpx.Response(200, json={"data": {"id": 1}})))
        with pytest.raises(ParseError, match="not a list"):
            c.next()
