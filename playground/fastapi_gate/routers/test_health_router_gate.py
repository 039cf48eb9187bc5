# playground/fastapi_gate/routers/test_health_router_gate.py

"""
[职责] Health router gate：验证 /health 输出结构、core 探测与 degraded 标记。
[边界] Solr 由 FakeSolr 应答；DB 使用临时 sqlite session。
[上游关系] backend/api/routers/health.py。
[下游关系] 确保健康检查契约稳定。
"""

from __future__ import annotations

from typing import AsyncIterator

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from semantic_suggest.backend.api.deps import get_partition_router, get_session, get_solr_client
from semantic_suggest.backend.api.middleware import TraceContextMiddleware
from semantic_suggest.backend.api.routers.health import router as health_router
from semantic_suggest.backend.pipelines.similarity.routing import PartitionRouter
from semantic_suggest.backend.schemas.ids import new_uuid


pytestmark = pytest.mark.fastapi_gate


def _app(session: AsyncSession, solr_client, partition_router: PartitionRouter) -> FastAPI:
    async def _override_session() -> AsyncIterator[AsyncSession]:
        yield session  # docstring: reuse test session

    app = FastAPI()
    app.add_middleware(TraceContextMiddleware)
    app.include_router(health_router)
    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_solr_client] = lambda: solr_client
    app.dependency_overrides[get_partition_router] = lambda: partition_router
    return app


@pytest.mark.asyncio
async def test_health_router_gate(session: AsyncSession, fake_solr, solr_client) -> None:
    """All dependencies reachable -> status ok; trace headers propagate."""
    fake_solr.route("admin/ping", {"status": "OK"})
    trace_id = new_uuid()
    request_id = new_uuid()

    app = _app(session, solr_client, PartitionRouter(default_core="core_en"))
    headers = {"x-trace-id": str(trace_id), "x-request-id": str(request_id)}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.get("/health", headers=headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["db"]["ok"] is True
    assert data["solr"] == {
        "ok": True,
        "base_url": "http://solr.test/solr",
        "cores": [{"core": "core_en", "status": "OK", "ok": True}],
    }
    assert data["version"]["api"] == "v1"
    assert resp.headers["x-trace-id"] == str(trace_id)  # docstring: trace_id must propagate
    assert resp.headers["x-request-id"] == str(request_id)
    assert "x-response-time-ms" in resp.headers


@pytest.mark.asyncio
async def test_health_degraded_when_a_core_fails(session: AsyncSession, fake_solr, solr_client) -> None:
    def _ping(request: httpx.Request, form):
        if "/core_de/" in request.url.path:
            return httpx.ConnectError("refused")
        return {"status": "OK"}

    fake_solr.route("admin/ping", _ping)
    partition_router = PartitionRouter(core_map={(1, 0): "core_en", (1, 1): "core_de", (2, 0): "core_en"})

    app = _app(session, solr_client, partition_router)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "degraded"
    assert data["db"]["ok"] is True
    assert data["solr"]["ok"] is False
    assert data["solr"]["cores"] == [
        {"core": "core_en", "status": "OK", "ok": True},
        {"core": "core_de", "ok": False, "error": "backend.unavailable"},
    ]


@pytest.mark.asyncio
async def test_health_without_cores_is_degraded(session: AsyncSession, solr_client) -> None:
    app = _app(session, solr_client, PartitionRouter())
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.get("/health")

    assert resp.json()["status"] == "degraded"
    assert resp.json()["solr"]["cores"] == []
