# src/semantic_suggest/backend/api/deps.py

"""
[职责] API 依赖装配：提供 session、trace_context、SolrClient、PartitionRouter 与进程 Settings 注入。
[边界] 不做业务逻辑；不提交事务；client/router/sessionmaker 由 app lifespan 创建并挂在 app.state 上。
[上游关系] FastAPI 路由层调用依赖注入；测试通过 dependency_overrides 替换。
[下游关系] services/routers 通过本模块获取依赖实例。
"""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from semantic_suggest.backend.db.engine import SessionLocal
from semantic_suggest.backend.pipelines.similarity.backend import SolrClient
from semantic_suggest.backend.pipelines.similarity.routing import PartitionRouter
from semantic_suggest.backend.schemas.audit import TraceContext
from semantic_suggest.backend.schemas.ids import UUIDStr, new_uuid
from semantic_suggest.backend.services.suggestion_service import build_partition_router
from semantic_suggest.backend.utils.errors import BackendUnavailableError
from semantic_suggest.config import Settings, settings as default_settings


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    [职责] 获取数据库会话（每个 request 一个 session）。
    [边界] 不提交/回滚事务；仅负责创建与关闭。
    [上游关系] lifespan 按 Settings 挂载 app.state.sessionmaker；未装配时使用默认 SessionLocal。
    """
    maker = getattr(request.app.state, "sessionmaker", None) or SessionLocal
    async with maker() as session:
        yield session


def get_trace_context(request: Request) -> TraceContext:
    """
    [职责] 获取或创建 TraceContext（优先使用 middleware 注入）。
    [边界] 不写入日志；不校验 UUID 格式。
    """
    existing = getattr(request.state, "trace_context", None)
    if isinstance(existing, TraceContext):
        return existing  # docstring: 复用 middleware 注入的 TraceContext

    trace_id = str(getattr(request.state, "trace_id", "") or "").strip() or str(new_uuid())
    request_id = str(getattr(request.state, "request_id", "") or "").strip() or str(new_uuid())
    ctx = TraceContext(trace_id=UUIDStr(trace_id), request_id=UUIDStr(request_id))
    request.state.trace_context = ctx  # docstring: 写回 state 以复用
    request.state.trace_id = trace_id
    request.state.request_id = request_id
    return ctx


def get_app_settings() -> Settings:
    return default_settings


def get_solr_client(request: Request) -> SolrClient:
    """
    [职责] 获取进程级 SolrClient（lifespan 创建并关闭，复用连接池）。
    [边界] 不懒创建：lifespan 未运行时抛 BackendUnavailableError（503）。
    """
    client = getattr(request.app.state, "solr_client", None)
    if client is None:
        raise BackendUnavailableError(message="search client is not initialised; app lifespan has not started")
    return client


def get_partition_router(request: Request) -> PartitionRouter:
    """Process-wide PartitionRouter (built once from Settings)."""
    router = getattr(request.app.state, "partition_router", None)
    if router is None:
        router = build_partition_router(default_settings)
        request.app.state.partition_router = router
    return router
