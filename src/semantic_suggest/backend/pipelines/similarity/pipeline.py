# src/semantic_suggest/backend/pipelines/similarity/pipeline.py

"""
[职责] similarity pipeline：编排 mode -> routing -> query -> backend -> parse -> (fusion) -> policy，产出可审计的 SimilarityBundle。
[边界] 不落库（由 services 决定是否持久化）；配置错误 fail fast，后端类错误折叠为空结果并记录在 record.errors。
[上游关系] services/suggestion_service 与 bulk_service 调用；依赖 SolrClient、PartitionRouter、PipelineContext。
[下游关系] API 序列化 SimilarityBundle；persist 写入相似度表。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Dict, List, Optional

from semantic_suggest.backend.pipelines.base.context import PipelineContext
from semantic_suggest.backend.schemas.audit import TimingSnapshot
from semantic_suggest.backend.schemas.similarity import (
    SimilarityBundle,
    SimilarityRecord,
    SimilaritySettings,
    SuggestionItem,
)
from semantic_suggest.backend.utils.constants import (
    ALGORITHM_KEY,
    CORE_KEY,
    DOC_TYPE_KEY,
    DOC_UID_KEY,
    LANGUAGE_ID_KEY,
    ROOT_ID_KEY,
    TIMING_TOTAL_KEY,
)
from semantic_suggest.backend.utils.errors import (
    ALL_FAILED_CODE,
    BACKEND_UNAVAILABLE_CODE,
    BackendError,
    RoutingFailedError,
)
from semantic_suggest.backend.utils.logging_ import get_logger, log_event

from . import fusion as fusion_mod
from . import policy as policy_mod
from . import query as query_mod
from .backend import SolrClient
from .mode import resolve_similarity_path, uses_fusion
from .parse import parse_response
from .routing import Partition, PartitionRouter
from .types import Algorithm, Candidate, DocumentRef, FusionPolicy, QueryFilters, SimilarityPath, SubQueryResult


logger = get_logger("similarity.pipeline")

_ALGORITHM_BY_PATH: Dict[str, Algorithm] = {
    "lexical": "lexical",
    "vector": "vector",
    "hybrid_native": "hybrid-native",
}  # docstring: 单请求路径 -> 子查询算法标签
_COUNT_KEY_BY_PATH = {"lexical": "lexical_count", "vector": "vector_count", "hybrid_native": "fused_count"}


def _filters(settings: SimilaritySettings) -> QueryFilters:
    return query_mod.make_filters(
        allowed_types=settings.allowed_types,
        excluded_types=settings.excluded_types,
        container_ids=settings.filter_by_pids,
    )


def candidate_to_item(candidate: Candidate, *, rank: int) -> SuggestionItem:
    """Candidate -> SuggestionItem (rank is 1-based)."""
    return SuggestionItem(
        rank=int(rank),
        type=candidate.type,
        uid=int(candidate.document_ref.uid),
        title=candidate.title,
        url=candidate.url,
        type_label=candidate.type_label,
        score=float(candidate.score),
        subscores={k: float(v) for k, v in candidate.subscores.items()},
        snippet=candidate.snippet,
        algorithm_origin=candidate.algorithm_origin,
    )


class _SubQueries:
    """
    [职责] 单次检索内的子查询集合（lexical / vector / hybrid-native），共享 client/partition/settings。
    [边界] 每个子查询各自计时；异常不在此捕获（由 _guarded 统一转换为 SubQueryResult）。
    """

    def __init__(
        self,
        *,
        ref: DocumentRef,
        settings: SimilaritySettings,
        client: SolrClient,
        partition: Partition,
        ctx: PipelineContext,
        rows: int,
    ) -> None:
        self.ref = ref
        self.settings = settings
        self.client = client
        self.core = partition.core
        self.ctx = ctx
        self.rows = rows
        self.filters = _filters(settings)
        self.source_backend_id: Optional[str] = None

    def _not_indexed(self, algorithm: Algorithm) -> SubQueryResult:
        log_event(logger, logging.INFO, "similarity.not_indexed", context=self.ctx, fields={ALGORITHM_KEY: algorithm})
        return SubQueryResult.missing(algorithm)

    async def lexical(self) -> SubQueryResult:
        s = self.settings
        with self.ctx.timing.stage("lexical"):
            backend_id = await self.client.resolve_document_id(self.ref, core=self.core)
            if backend_id is None:
                return self._not_indexed("lexical")
            self.source_backend_id = backend_id
            descriptor = query_mod.build_lexical_query(
                self.ref,
                backend_id,
                mlt_fields=s.mlt_fields,
                min_term_freq=s.min_term_freq,
                min_doc_freq=s.min_doc_freq,
                boost_fields=s.boost_fields,
                rows=self.rows,
                filters=self.filters,
            )
            raw = await self.client.execute(descriptor, core=self.core, source_backend_id=backend_id)
            return SubQueryResult.success("lexical", parse_response(raw, exclude=self.ref, context=self.ctx))

    async def vector(self) -> SubQueryResult:
        s = self.settings
        with self.ctx.timing.stage("vector"):
            source_text = await self.client.resolve_document_content(self.ref, core=self.core)
            if source_text is None:
                return self._not_indexed("vector")
            descriptor = query_mod.build_vector_query(
                self.ref,
                source_text,
                model_name=s.vector_model_name,
                vector_field=s.vector_field,
                top_k=s.vector_top_k,
                rows=self.rows,
                filters=self.filters,
            )
            raw = await self.client.execute(descriptor, core=self.core)
            return SubQueryResult.success("vector", parse_response(raw, exclude=self.ref, context=self.ctx))

    async def hybrid_native(self) -> SubQueryResult:
        s = self.settings
        with self.ctx.timing.stage("hybrid_native"):
            backend_id = await self.client.resolve_document_id(self.ref, core=self.core)
            if backend_id is None:
                return self._not_indexed("hybrid-native")
            self.source_backend_id = backend_id
            descriptor = query_mod.build_hybrid_native_query(
                self.ref,
                backend_id,
                mlt_fields=s.mlt_fields,
                min_term_freq=s.min_term_freq,
                min_doc_freq=s.min_doc_freq,
                boost_fields=s.boost_fields,
                rows=self.rows,
                smlt_mode=s.smlt_mode,
                mlt_weight=s.smlt_mlt_weight,
                vector_weight=s.smlt_vector_weight,
                model_name=s.vector_model_name,
                filters=self.filters,
            )
            raw = await self.client.execute(descriptor, core=self.core, source_backend_id=backend_id)
            return SubQueryResult.success("hybrid-native", parse_response(raw, exclude=self.ref, context=self.ctx))


async def _guarded(
    algorithm: Algorithm,
    call: Awaitable[SubQueryResult],
    *,
    timeout_s: Optional[float],
    ctx: PipelineContext,
) -> SubQueryResult:
    """
    [职责] 为子查询套上超时，并把后端类异常显式转换为 SubQueryResult.failure。
    [边界] 只捕获 BackendError 与超时；配置错误等继续向上抛出。
    """
    try:
        if timeout_s is not None and timeout_s > 0:
            return await asyncio.wait_for(call, timeout=timeout_s)
        return await call
    except asyncio.TimeoutError:
        result = SubQueryResult.failure(algorithm, BACKEND_UNAVAILABLE_CODE, "sub-query timed out")
    except BackendError as exc:
        result = SubQueryResult.failure(algorithm, exc.error_code, exc.message)
    log_event(
        logger,
        logging.WARNING,
        "similarity.subquery.failed",
        context=ctx,
        fields={ALGORITHM_KEY: algorithm, "error_code": result.error_code, "error": result.message},
    )
    return result


def validate_settings(settings: SimilaritySettings) -> None:
    query_mod.validate_query_settings(
        mlt_fields=settings.mlt_fields,
        boost_fields=settings.boost_fields,
        model_name=settings.vector_model_name,
        vector_field=settings.vector_field,
        smlt_mode=settings.smlt_mode,
    )


async def run_similarity_pipeline(
    ref: DocumentRef,
    settings: SimilaritySettings,
    language_id: int = 0,
    *,
    client: SolrClient,
    router: PartitionRouter,
    ctx: Optional[PipelineContext] = None,
    vector_enabled: bool = False,
    timeout_s: Optional[float] = None,
    root_id: Optional[int] = None,
) -> SimilarityBundle:
    """
    [职责] run_similarity_pipeline：对单个源文档执行相似度检索，返回 SimilarityBundle（record + hits）。
    [边界] 仅 InvalidConfigurationError 会抛出；routing/backend/parse 失败均降级为空结果（record.errors 记录错误码）。
    root_id 已知时（bulk 按站点遍历）跳过站点根解析。
    [上游关系] suggestion_service.find_similar / bulk_service.update_similarities。
    [下游关系] API 响应、persist.persist_similarities。
    """
    ctx = ctx or PipelineContext()
    ctx.timing.reset()
    ctx.meta.update({DOC_TYPE_KEY: ref.type, DOC_UID_KEY: ref.uid, LANGUAGE_ID_KEY: int(language_id)})

    path: SimilarityPath = resolve_similarity_path(
        settings.similarity_mode, settings.effective_vector_enabled(vector_enabled)
    )  # docstring: 未知 mode 直接抛出
    validate_settings(settings)

    record = SimilarityRecord(
        doc_type=ref.type,
        doc_uid=ref.uid,
        language_id=int(language_id),
        requested_mode=settings.similarity_mode,
        resolved_path=path,
    )
    errors: Dict[str, str] = {}
    log_event(logger, logging.INFO, "similarity.start", context=ctx, fields={"path": path})

    with ctx.timing.stage("routing"):
        try:
            partition = router.resolve(ref, int(language_id), root_id=root_id, context=ctx)
        except RoutingFailedError as exc:
            partition = None
            errors["routing"] = exc.error_code
            log_event(
                logger,
                logging.WARNING,
                "similarity.routing.failed",
                context=ctx,
                fields={"error_code": exc.error_code, "error": exc.message},
            )

    if partition is None:
        return _finish(ctx, record, errors, hits=[])

    ctx.meta.update({ROOT_ID_KEY: partition.root_id, CORE_KEY: partition.core})
    ctx.with_provider("solr", {"core": partition.core, "base_url": client.base_url})
    record = record.model_copy(
        update={"root_id": partition.root_id, "core": partition.core, "partition_fallback": partition.fallback}
    )

    fused = uses_fusion(path)
    subs = _SubQueries(
        ref=ref,
        settings=settings,
        client=client,
        partition=partition,
        ctx=ctx,
        rows=query_mod.inflate_rows(settings.max_results, fused=fused),
    )

    counts: Dict[str, int] = {}
    if fused:
        lexical_res, vector_res = await asyncio.gather(
            _guarded("lexical", subs.lexical(), timeout_s=timeout_s, ctx=ctx),
            _guarded("vector", subs.vector(), timeout_s=timeout_s, ctx=ctx),
        )
        results = [lexical_res, vector_res]
        policy = FusionPolicy(lexical_weight=settings.lexical_weight, vector_weight=settings.vector_weight)
        ctx.with_provider(
            "fusion",
            {"lexical_weight": policy.lexical_weight, "vector_weight": policy.vector_weight, "rows": subs.rows},
        )
        with ctx.timing.stage("fusion"):
            ranked = fusion_mod.fuse_candidates(
                lexical_res.fold(), vector_res.fold(), policy, top_k=settings.max_results
            )
        counts = {
            "lexical_count": len(lexical_res.candidates),
            "vector_count": len(vector_res.candidates),
            "fused_count": len(ranked),
        }
    else:
        runner = {"lexical": subs.lexical, "vector": subs.vector, "hybrid_native": subs.hybrid_native}[path]
        single = await _guarded(_ALGORITHM_BY_PATH[path], runner(), timeout_s=timeout_s, ctx=ctx)
        results = [single]
        ranked = single.fold()
        counts = {_COUNT_KEY_BY_PATH[path]: len(ranked)}

    for res in results:
        if not res.ok:
            errors[res.algorithm] = str(res.error_code)
    if fused and all(not res.ok for res in results):
        errors["similarity"] = ALL_FAILED_CODE
        log_event(logger, logging.ERROR, "similarity.all_failed", context=ctx, fields={"path": path})

    with ctx.timing.stage("policy"):
        final = policy_mod.apply_result_policy(
            ranked,
            allowed_types=settings.allowed_types,
            excluded_types=settings.excluded_types,
            min_score=settings.min_score,
            min_score_ratio=settings.min_score_ratio,
            max_results=settings.max_results,
        )

    record = record.model_copy(
        update={
            **counts,
            "source_backend_id": subs.source_backend_id,
            "not_indexed": any(res.not_indexed for res in results) and not any(res.candidates for res in results),
        }
    )
    hits = [candidate_to_item(c, rank=i) for i, c in enumerate(final, start=1)]
    return _finish(ctx, record, errors, hits=hits)


def _finish(
    ctx: PipelineContext,
    record: SimilarityRecord,
    errors: Dict[str, str],
    *,
    hits: List[SuggestionItem],
) -> SimilarityBundle:
    timing = ctx.timing_ms(total_key=TIMING_TOTAL_KEY)
    total = timing.pop(TIMING_TOTAL_KEY, None)
    record = record.model_copy(
        update={
            "errors": dict(errors),
            "result_count": len(hits),
            "provider_snapshot": dict(ctx.provider_snapshot),
            "timing": TimingSnapshot(total_ms=total, breakdown=timing),
        }
    )
    log_event(
        logger,
        logging.INFO,
        "similarity.done",
        context=ctx,
        fields={"result_count": len(hits), "errors": dict(errors) or None},
    )
    return SimilarityBundle(record=record, hits=hits)
