# src/semantic_suggest/backend/services/bulk_service.py

"""
[职责] bulk_service：按站点遍历页面树，对每个内容页执行相似度检索并替换写入相似度表（批量预计算）。
[边界] 单页失败只计数并记录日志，不中断批次；配置非法在开始前 fail fast；不做进度条等终端展示。
[上游关系] scripts/update_similarities.py（CLI / 定时任务）调用 update_similarities。
[下游关系] run_similarity_pipeline 执行检索；persist + SimilarityRepo 写入；BulkReport 返回统计。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from semantic_suggest.backend.db.repo import SimilarityRepo
from semantic_suggest.backend.pipelines.base.context import PipelineContext
from semantic_suggest.backend.pipelines.similarity import persist as persist_mod
from semantic_suggest.backend.pipelines.similarity.backend import SolrClient
from semantic_suggest.backend.pipelines.similarity.mode import resolve_similarity_path
from semantic_suggest.backend.pipelines.similarity.pipeline import run_similarity_pipeline, validate_settings
from semantic_suggest.backend.pipelines.similarity.routing import PageTree, PartitionRouter, iter_content_pages
from semantic_suggest.backend.pipelines.similarity.types import DocumentRef
from semantic_suggest.backend.schemas.audit import TraceContext
from semantic_suggest.backend.schemas.similarity import SimilaritySettings
from semantic_suggest.backend.utils.constants import (
    DEFAULT_BOOST_FIELDS,
    DEFAULT_DOC_TYPE,
    DEFAULT_MAX_RESULTS,
    DEFAULT_MLT_FIELDS,
    DEFAULT_SMLT_MLT_WEIGHT,
    DEFAULT_SMLT_VECTOR_WEIGHT,
)
from semantic_suggest.backend.utils.errors import RoutingFailedError
from semantic_suggest.backend.utils.logging_ import get_logger, log_event
from semantic_suggest.config import Settings, settings as default_settings


logger = get_logger("services.bulk")

BULK_MODES = ("mlt", "smlt")  # docstring: 批量预计算只支持单请求路径

DEFAULT_BULK_SETTINGS: Dict[str, Any] = {
    "similarityMode": "mlt",
    "maxResults": DEFAULT_MAX_RESULTS,
    "minTermFreq": 1,
    "minDocFreq": 1,
    "mltFields": DEFAULT_MLT_FIELDS,
    "boostFields": DEFAULT_BOOST_FIELDS,
    "smltMode": "hybrid",
    "smltMltWeight": DEFAULT_SMLT_MLT_WEIGHT,
    "smltVectorWeight": DEFAULT_SMLT_VECTOR_WEIGHT,
    "minScore": 0,
    "minScoreRatio": 0,
    "allowedTypes": "",
    "excludeContentTypes": "",
    "filterByPids": "",
}  # docstring: 与前台默认设置一致（mode 由 CLI 指定）


@dataclass
class SiteReport:
    root_id: int
    pages: int = 0
    updated: int = 0
    errors: int = 0
    failed_pages: List[int] = field(default_factory=list)


@dataclass
class BulkReport:
    """
    [职责] 批次统计（updated/errors 总数 + 按站点明细）。
    [边界] updated 计数的是成功完成检索并写入的页面数（写入 0 行也计入）。
    """

    updated: int = 0
    errors: int = 0
    sites: List[SiteReport] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated": self.updated,
            "errors": self.errors,
            "sites": [
                {
                    "root_id": s.root_id,
                    "pages": s.pages,
                    "updated": s.updated,
                    "errors": s.errors,
                    "failed_pages": list(s.failed_pages),
                }
                for s in self.sites
            ],
        }


def resolve_site_roots(
    *,
    tree: PageTree,
    app_settings: Settings,
    site_root: Optional[int] = None,
) -> List[int]:
    """Explicit root, else SITE_ROOT_IDS, else is_siteroot rows of the tree."""
    if site_root is not None:
        return [int(site_root)]
    return list(app_settings.site_root_ids) or list(tree.site_roots())


class _CoreLimiter:
    """One semaphore per search core; pages of one core run one at a time."""

    def __init__(self, limit: int = 1) -> None:
        self._limit = max(1, int(limit))
        self._semaphores: Dict[str, asyncio.Semaphore] = {}

    def for_core(self, core: str) -> asyncio.Semaphore:
        sem = self._semaphores.get(core)
        if sem is None:
            sem = self._semaphores[core] = asyncio.Semaphore(self._limit)
        return sem


async def _update_page(
    *,
    page_uid: int,
    root_id: int,
    language_id: int,
    settings: SimilaritySettings,
    client: SolrClient,
    router: PartitionRouter,
    sessionmaker: async_sessionmaker[AsyncSession],
    write_lock: asyncio.Lock,
    limiter: _CoreLimiter,
    batch: TraceContext,
    app_settings: Settings,
    throttle_ms: int,
) -> bool:
    """
    [职责] 单页：检索 -> 替换写入；返回是否成功。
    [边界] 检索降级（record.errors 非空）视为失败且不覆盖旧数据；异常向上抛由调用方计数。
    """
    ref = DocumentRef(type=DEFAULT_DOC_TYPE, uid=int(page_uid))
    ctx = PipelineContext(trace_id=batch.trace_id, parent_request_id=str(batch.request_id))

    core = router.resolve_core(root_id, language_id)
    async with limiter.for_core(core):
        bundle = await run_similarity_pipeline(
            ref,
            settings,
            language_id,
            client=client,
            router=router,
            ctx=ctx,
            vector_enabled=bool(app_settings.VECTOR_SEARCH_ENABLED),
            timeout_s=app_settings.SOLR_TIMEOUT_S,
            root_id=root_id,
        )
        if throttle_ms > 0:
            await asyncio.sleep(throttle_ms / 1000.0)  # docstring: 降低单 core 压力

    if bundle.record.errors:
        log_event(
            logger,
            logging.WARNING,
            "bulk.page.failed",
            context=ctx,
            fields={"page_uid": page_uid, "errors": dict(bundle.record.errors)},
        )
        return False

    async with write_lock:
        async with sessionmaker() as session:
            try:
                rows = await persist_mod.persist_similarities(repo=SimilarityRepo(session), bundle=bundle)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    log_event(logger, logging.DEBUG, "bulk.page.updated", context=ctx, fields={"page_uid": page_uid, "rows": rows})
    return True


async def update_similarities(
    *,
    tree: PageTree,
    client: SolrClient,
    router: PartitionRouter,
    sessionmaker: async_sessionmaker[AsyncSession],
    settings_map: Optional[Mapping[str, Any]] = None,
    mode: Optional[str] = None,
    site_root: Optional[int] = None,
    language_id: int = 0,
    throttle_ms: int = 0,
    concurrency_per_core: int = 1,
    trace: Optional[TraceContext] = None,
    app_settings: Optional[Settings] = None,
) -> BulkReport:
    """
    [职责] update_similarities：枚举站点根下的内容页，逐页检索并替换写入，返回 BulkReport。
    [边界] 设置与 mode 在遍历前校验（InvalidConfigurationError 直接抛出）；单页异常被记录并计入 errors。
    [上游关系] scripts/update_similarities.py。
    [下游关系] run_similarity_pipeline、SimilarityRepo。
    """
    cfg = app_settings or default_settings
    merged = dict(DEFAULT_BULK_SETTINGS)
    merged.update(settings_map or {})
    settings = SimilaritySettings.from_mapping(merged, similarity_mode=mode)
    resolve_similarity_path(settings.similarity_mode, settings.effective_vector_enabled(cfg.VECTOR_SEARCH_ENABLED))
    validate_settings(settings)  # docstring: fail fast，避免整批页面逐个失败

    batch = trace or TraceContext()
    report = BulkReport()
    roots = resolve_site_roots(tree=tree, app_settings=cfg, site_root=site_root)
    if not roots:
        log_event(logger, logging.WARNING, "bulk.no_sites", context=batch)
        return report

    limiter = _CoreLimiter(concurrency_per_core)
    write_lock = asyncio.Lock()  # docstring: SQLite 单写者

    for root_id in roots:
        site = SiteReport(root_id=int(root_id))
        report.sites.append(site)
        page_uids = list(iter_content_pages(tree, root_id))
        site.pages = len(page_uids)
        log_event(
            logger,
            logging.INFO,
            "bulk.site.start",
            context=batch,
            fields={"root_id": root_id, "pages": site.pages, "mode": settings.similarity_mode},
        )

        async def _run(page_uid: int, root: int = int(root_id)) -> bool:
            try:
                return await _update_page(
                    page_uid=page_uid,
                    root_id=root,
                    language_id=int(language_id),
                    settings=settings,
                    client=client,
                    router=router,
                    sessionmaker=sessionmaker,
                    write_lock=write_lock,
                    limiter=limiter,
                    batch=batch,
                    app_settings=cfg,
                    throttle_ms=int(throttle_ms),
                )
            except RoutingFailedError as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "bulk.page.failed",
                    context=batch,
                    fields={"page_uid": page_uid, "error_code": exc.error_code, "error": exc.message},
                )
                return False
            except Exception as exc:
                log_event(
                    logger,
                    logging.ERROR,
                    "bulk.page.failed",
                    context=batch,
                    fields={"page_uid": page_uid, "error": f"{exc.__class__.__name__}: {exc}"},
                    exc_info=exc,
                )
                return False

        outcomes: Sequence[bool] = await asyncio.gather(*(_run(uid) for uid in page_uids))
        for page_uid, ok in zip(page_uids, outcomes):
            if ok:
                site.updated += 1
            else:
                site.errors += 1
                site.failed_pages.append(page_uid)
        report.updated += site.updated
        report.errors += site.errors
        log_event(
            logger,
            logging.INFO,
            "bulk.site.done",
            context=batch,
            fields={"root_id": root_id, "updated": site.updated, "errors": site.errors},
        )

    log_event(logger, logging.INFO, "bulk.done", context=batch, fields={"updated": report.updated, "errors": report.errors})
    return report
