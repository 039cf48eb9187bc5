# src/semantic_suggest/backend/services/suggestion_service.py

"""
[职责] suggestion_service：单文档相似建议的业务入口（设置归一化 + pipeline 编排 + 可选落库）。
[边界] 不暴露 HTTP 语义；不直接拼装 Solr 查询；事务仅在 persist=True 时由本模块提交/回滚。
[上游关系] api/routers/suggestions.py、scripts 调用 find_similar；build_* 工厂供 api lifespan 与 CLI 装配依赖。
[下游关系] pipelines/similarity.pipeline 执行检索；persist + SimilarityRepo 写入相似度表。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from semantic_suggest.backend.db.repo import SimilarityRepo
from semantic_suggest.backend.pipelines.base.context import PipelineContext
from semantic_suggest.backend.pipelines.similarity import persist as persist_mod
from semantic_suggest.backend.pipelines.similarity.backend import SolrClient
from semantic_suggest.backend.pipelines.similarity.pipeline import run_similarity_pipeline
from semantic_suggest.backend.pipelines.similarity.routing import (
    JsonPageTree,
    PageTree,
    PageTreeSiteResolver,
    PartitionRouter,
)
from semantic_suggest.backend.pipelines.similarity.types import DocumentRef
from semantic_suggest.backend.schemas.audit import TraceContext
from semantic_suggest.backend.schemas.similarity import SimilarityBundle, SimilaritySettings
from semantic_suggest.backend.utils.errors import InvalidConfigurationError
from semantic_suggest.backend.utils.logging_ import get_logger, log_event
from semantic_suggest.config import Settings, settings as default_settings


logger = get_logger("services.suggestion")


@dataclass(frozen=True)
class SuggestionResult:
    """
    [职责] 一次 find_similar 的结果（bundle + 落库状态）。
    [边界] persisted=False 可能是未请求落库、结果不可落库或写入失败（见日志）。
    """

    bundle: SimilarityBundle
    persisted: bool = False
    persisted_rows: int = 0


def build_solr_client(
    app_settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> SolrClient:
    """Assemble a SolrClient from process settings."""
    cfg = app_settings or default_settings
    return SolrClient(cfg.SOLR_BASE_URL, http_client=http_client, timeout_s=cfg.SOLR_TIMEOUT_S)


def build_partition_router(
    app_settings: Optional[Settings] = None,
    *,
    tree: Optional[PageTree] = None,
) -> PartitionRouter:
    """
    [职责] 由 Settings 装配 PartitionRouter（core 映射、默认 core、兜底根节点、可选页面树解析器）。
    [边界] SOLR_CORES 格式非法时转换为 InvalidConfigurationError；页面树文件只在 PAGE_TREE_PATH 配置时读取。
    """
    cfg = app_settings or default_settings
    try:
        core_map = cfg.core_map
    except ValueError as exc:
        raise InvalidConfigurationError(
            message=str(exc),
            detail={"setting": "SOLR_CORES"},
            cause=exc,
        ) from exc

    if tree is None and cfg.PAGE_TREE_PATH:
        tree = JsonPageTree.from_file(cfg.PAGE_TREE_PATH)  # docstring: 页面树导出（JSON）
    resolver = PageTreeSiteResolver(tree, cfg.site_root_ids) if tree is not None else None

    return PartitionRouter(
        site_resolver=resolver,
        core_map=core_map,
        default_core=cfg.SOLR_DEFAULT_CORE or None,
        default_root_id=cfg.DEFAULT_ROOT_PAGE_ID,
    )


def resolve_settings(
    settings_map: Optional[Mapping[str, Any]] = None,
    *,
    app_settings: Optional[Settings] = None,
    **overrides: Any,
) -> SimilaritySettings:
    """
    [职责] 合并插件设置映射与调用方覆盖项；mode 缺省时取 DEFAULT_SIMILARITY_MODE。
    [边界] 非法设置抛 InvalidConfigurationError。
    """
    cfg = app_settings or default_settings
    merged = dict(settings_map or {})
    has_mode = any(
        str(merged.get(k) or "").strip() for k in ("similarity_mode", "mode", "similarityMode")
    ) or bool(str(overrides.get("similarity_mode") or "").strip())
    if not has_mode:
        merged["similarity_mode"] = cfg.DEFAULT_SIMILARITY_MODE  # docstring: 进程级默认模式
    return SimilaritySettings.from_mapping(merged, **overrides)


async def find_similar(
    *,
    ref: DocumentRef,
    client: SolrClient,
    router: PartitionRouter,
    language_id: int = 0,
    settings_map: Optional[Mapping[str, Any]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    session: Optional[AsyncSession] = None,
    persist: bool = False,
    trace: Optional[TraceContext] = None,
    ctx: Optional[PipelineContext] = None,
    app_settings: Optional[Settings] = None,
) -> SuggestionResult:
    """
    [职责] find_similar：归一化设置 -> run_similarity_pipeline -> （可选）替换写入相似度表。
    [边界] InvalidConfigurationError 直接抛出；后端失败已在 pipeline 内降级；DB 写入失败回滚并记录，不影响返回的 bundle。
    [上游关系] GET /suggestions；bulk 之外的单页刷新脚本。
    [下游关系] SimilarityBundle 返回调用方；SimilarityRepo 写入。
    """
    cfg = app_settings or default_settings
    settings = resolve_settings(settings_map, app_settings=cfg, **dict(overrides or {}))
    ctx = ctx or PipelineContext.from_trace(trace)

    bundle = await run_similarity_pipeline(
        ref,
        settings,
        int(language_id),
        client=client,
        router=router,
        ctx=ctx,
        vector_enabled=bool(cfg.VECTOR_SEARCH_ENABLED),
        timeout_s=cfg.SOLR_TIMEOUT_S,
    )

    if not persist or session is None:
        return SuggestionResult(bundle=bundle)
    if not persist_mod.is_persistable(bundle):
        log_event(
            logger,
            logging.INFO,
            "similarity.persist.skipped",
            context=ctx,
            fields={"errors": dict(bundle.record.errors) or None, "doc_type": bundle.record.doc_type},
        )
        return SuggestionResult(bundle=bundle)

    try:
        rows = await persist_mod.persist_similarities(repo=SimilarityRepo(session), bundle=bundle)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        log_event(
            logger,
            logging.ERROR,
            "similarity.persist.failed",
            context=ctx,
            fields={"error": f"{exc.__class__.__name__}: {exc}"},
        )
        return SuggestionResult(bundle=bundle)

    log_event(logger, logging.INFO, "similarity.persisted", context=ctx, fields={"rows": rows})
    return SuggestionResult(bundle=bundle, persisted=True, persisted_rows=rows)
