# src/semantic_suggest/backend/api/app.py

"""
[职责] FastAPI 应用工厂：注册 middleware、异常处理器与路由，并在 lifespan 中管理 httpx 连接池、DB 引擎与 schema。
[边界] 不含业务逻辑；Solr client / PartitionRouter / DB 引擎在启动时按同一份 Settings 装配一次，关闭时释放。
[上游关系] uvicorn semantic_suggest.backend.api.app:app 或测试直接调用 create_app。
[下游关系] routers/suggestions、routers/health。
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI

from semantic_suggest.backend.api.deps import get_app_settings
from semantic_suggest.backend.api.errors import register_exception_handlers
from semantic_suggest.backend.api.middleware import TraceContextMiddleware
from semantic_suggest.backend.api.routers.health import router as health_router
from semantic_suggest.backend.api.routers.suggestions import router as suggestions_router
from semantic_suggest.backend.db.engine import create_engine, create_sessionmaker, init_db
from semantic_suggest.backend.services.suggestion_service import build_partition_router, build_solr_client
from semantic_suggest.backend.utils.logging_ import configure_logging
from semantic_suggest.config import Settings, settings as default_settings


def create_app(app_settings: Optional[Settings] = None, *, init_schema: bool = True) -> FastAPI:
    """Build the API application (one shared httpx pool for all Solr calls)."""
    cfg = app_settings or default_settings
    configure_logging(level=getattr(logging, str(cfg.LOG_LEVEL).upper(), logging.INFO))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.partition_router = build_partition_router(cfg)  # docstring: 配置错误在启动时暴露
        db_url = str(cfg.SEMANTIC_SUGGEST_DATABASE_URL) if app_settings is not None else None
        engine = create_engine(url=db_url)  # docstring: 未显式传入 Settings 时沿用 DATABASE_URL 优先级
        app.state.db_engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(cfg.SOLR_TIMEOUT_S))
        app.state.solr_client = build_solr_client(cfg, http_client=http_client)
        try:
            if init_schema:
                await init_db(engine=engine)  # docstring: 幂等 create_all
            yield
        finally:
            await http_client.aclose()
            await engine.dispose()

    app = FastAPI(title="semantic-suggest", debug=bool(cfg.DEBUG), lifespan=lifespan)
    app.add_middleware(TraceContextMiddleware)
    register_exception_handlers(app)
    app.include_router(suggestions_router)
    app.include_router(health_router)
    if app_settings is not None:
        app.dependency_overrides[get_app_settings] = lambda: cfg  # docstring: 路由与 lifespan 使用同一份 Settings
    return app


app = create_app()
