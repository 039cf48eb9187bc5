# src/semantic_suggest/backend/db/engine.py

"""
[职责] 数据库引擎与会话工厂：创建 AsyncEngine / AsyncSession，并提供 schema 初始化与删除。
[边界] 不包含 ORM Model 定义；不包含业务事务编排（由 service/repo 负责）。
[上游关系] config.Settings.SEMANTIC_SUGGEST_DATABASE_URL 或环境变量提供连接串；scripts/init_db 调用 init_db。
[下游关系] api/app.py lifespan 按 Settings 自建 engine；api/deps.py 回落到 SessionLocal；tests 使用临时 sqlite 自建 engine。
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from semantic_suggest.config import settings

from .base import Base


def resolve_db_url(override: str | None = None) -> str:
    """
    Resolve database URL.

    Priority:
        1) explicit override (CLI --db-url / tests)
        2) env: DATABASE_URL
        3) settings: SEMANTIC_SUGGEST_DATABASE_URL (.env supported; defaults to repo-root/.Local sqlite)
    """
    if override:
        return override
    env_url = os.getenv("DATABASE_URL", "").strip()
    if env_url:
        return env_url
    return str(settings.SEMANTIC_SUGGEST_DATABASE_URL)


def _ensure_sqlite_dir(url: str) -> None:
    prefix = "sqlite+aiosqlite:///"
    if url.startswith(prefix) and ":memory:" not in url:
        Path(url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)  # docstring: 本地 sqlite 目录兜底


def create_engine(*, url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create AsyncEngine (sqlite via aiosqlite in local runs)."""
    db_url = resolve_db_url(url)
    _ensure_sqlite_dir(db_url)
    db_echo = echo if echo is not None else (os.getenv("SQL_ECHO", "0") == "1")  # docstring: SQL 打印开关
    return create_async_engine(db_url, echo=db_echo, future=True, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async sessionmaker."""  # docstring: expire_on_commit=False，提交后仍可读取对象
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


# --- global singletons (app runtime) ---
ENGINE: AsyncEngine = create_engine()  # docstring: 默认全局引擎
SessionLocal: async_sessionmaker[AsyncSession] = create_sessionmaker(ENGINE)  # docstring: 默认会话工厂


async def init_db(*, engine: AsyncEngine | None = None) -> None:
    """
    Initialize database schema (create_all).

    Must import models to register tables in Base.metadata.
    """
    from . import models  # noqa: F401  # docstring: 强制注册 ORM 表

    eng = engine or ENGINE
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(*, engine: AsyncEngine | None = None) -> None:
    """Drop all tables (local/dev/tests only)."""
    from . import models  # noqa: F401

    eng = engine or ENGINE
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

