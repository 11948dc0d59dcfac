"""Fixtures for MedTouch pipeline tests."""

from __future__ import annotations

import httpx
import pytest

from commonsync.core.rejects import RejectSink
from commonsync.core.settings import SyncSettings
from commonsync.framework.pipelines.orchestrator import RunConfig, SyncOrchestrator


@pytest.fixture
def settings() -> SyncSettings:
    return SyncSettings(
        crm_api_url_v1="https://crm.test/api/v1",
        crm_api_token_v1="v1-token",
        crm_api_url_v2="https://crm.test/api/v2",
        crm_api_token_v2="v2-token",
    )


@pytest.fixture
def api():
    """Build an httpx client serving ``items`` in pages of ``page_size``."""
    requests: list[httpx.Request] = []

    def _api(items: list[dict], page_size: int = 100) -> httpx.Client:
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            page = int(request.url.params["page"])
            chunk = items[(page - 1) * page_size : page * page_size]
            more = page * page_size < len(items)
            return httpx.Response(
                200, json={"data": chunk, "next_page_url": f"{request.url}&page={page + 1}" if more else None}
            )

        return httpx.Client(transport=httpx.MockTransport(handler))

    _api.requests = requests
    return _api


@pytest.fixture
def run(conn, make_locks):
    """Run a pipeline to completion against the test database."""

    def _run(pipeline, **config):
        config.setdefault("request_delay", 0)
        orchestrator = SyncOrchestrator(
            pipeline,
            conn,
            make_locks("test-run"),
            RunConfig(**config),
            rejects=RejectSink(conn, pipeline.name, "test-run"),
        )
        return orchestrator.run()

    return _run
