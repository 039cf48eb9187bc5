# playground/fastapi_gate/test_app_gate.py

"""
[职责] app gate：create_app 的路由挂载与 lifespan 依赖装配。
[边界] 不触碰默认 DB：init_schema=False 或临时 sqlite URL；Solr 由 FakeSolr 应答。
[上游关系] backend/api/app.py。
[下游关系] 部署入口 semantic_suggest.backend.api.app:app。
"""

from __future__ import annotations

from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from semantic_suggest.backend.api.app import create_app
from semantic_suggest.backend.api.deps import get_app_settings, get_solr_client
from semantic_suggest.backend.db.engine import create_engine, create_sessionmaker
from semantic_suggest.backend.db.repo import SimilarityRepo
from semantic_suggest.backend.utils.errors import InvalidConfigurationError
from semantic_suggest.config import Settings


pytestmark = pytest.mark.fastapi_gate


@pytest.mark.asyncio
async def test_create_app_wires_dependencies() -> None:
    cfg = Settings(SOLR_BASE_URL="http://search/solr", SOLR_CORES="1:0=core_en,1:1=core_de")
    app = create_app(cfg, init_schema=False)

    paths = {str(getattr(route, "path", "")).rstrip("/") for route in app.routes}
    assert {"/suggestions", "/health"} <= paths
    assert app.dependency_overrides[get_app_settings]() is cfg

    async with app.router.lifespan_context(app):
        assert app.state.solr_client.base_url == "http://search/solr"
        assert app.state.partition_router.cores() == ["core_en", "core_de"]
        assert app.state.partition_router.resolve_core(1, 1) == "core_de"


@pytest.mark.asyncio
async def test_create_app_rejects_malformed_core_map() -> None:
    app = create_app(Settings(SOLR_CORES="x:0=core_en"), init_schema=False)
    with pytest.raises(InvalidConfigurationError):
        async with app.router.lifespan_context(app):
            pass


@pytest.mark.asyncio
async def test_lifespan_uses_configured_database(tmp_path: Path, fake_solr, solr_client, make_doc) -> None:
    db_url = f"sqlite+aiosqlite:///{(tmp_path / 'app.db').as_posix()}"
    cfg = Settings(
        SEMANTIC_SUGGEST_DATABASE_URL=db_url,
        SOLR_DEFAULT_CORE="core_en",
        VECTOR_SEARCH_ENABLED=False,
        DEFAULT_SIMILARITY_MODE="auto",
    )
    fake_solr.index(make_doc(5, title="Source", content="Body"))
    fake_solr.route("mlt", {"response": {"docs": [make_doc(7, score=2.0), make_doc(8, score=1.0)]}})

    app = create_app(cfg)
    app.dependency_overrides[get_solr_client] = lambda: solr_client
    async with app.router.lifespan_context(app):
        assert str(app.state.db_engine.url) == db_url
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.get("/suggestions", params={"uid": 5, "persist": "true"})
        assert resp.status_code == 200
        assert resp.json()["persisted"] is True

    engine = create_engine(url=db_url)
    try:
        async with create_sessionmaker(engine)() as session:
            stored = await SimilarityRepo(session).list_for_page(5)
    finally:
        await engine.dispose()
    assert [r.similar_page_id for r in stored] == [7, 8]


@pytest.mark.asyncio
async def test_solr_client_requires_lifespan() -> None:
    app = create_app(Settings(), init_schema=False)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        resp = await client.get("/suggestions", params={"uid": 5})

    assert resp.status_code == 503
    assert not hasattr(app.state, "solr_client")
