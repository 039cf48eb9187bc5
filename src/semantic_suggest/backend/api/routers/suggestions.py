# src/semantic_suggest/backend/api/routers/suggestions.py

"""
[职责] Suggestions Router：GET /suggestions 返回某文档的相似文档建议与检索记录。
[边界] 不拼装查询、不做融合；查询参数只作为设置覆盖项传给 service；后端故障表现为 200 + 空列表。
[上游关系] 前端建议组件 / 站点渲染层调用。
[下游关系] suggestion_service.find_similar 执行检索（可选落库）。
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from semantic_suggest.backend.api.deps import (
    get_app_settings,
    get_partition_router,
    get_session,
    get_solr_client,
    get_trace_context,
)
from semantic_suggest.backend.api.errors import to_json_response
from semantic_suggest.backend.api.schemas_http.suggestions import SuggestionsResponse
from semantic_suggest.backend.pipelines.similarity.backend import SolrClient
from semantic_suggest.backend.pipelines.similarity.routing import PartitionRouter
from semantic_suggest.backend.pipelines.similarity.types import DocumentRef
from semantic_suggest.backend.schemas.audit import TraceContext
from semantic_suggest.backend.services.suggestion_service import find_similar
from semantic_suggest.backend.utils.constants import DEFAULT_DOC_TYPE
from semantic_suggest.backend.utils.errors import InvalidConfigurationError
from semantic_suggest.config import Settings


router = APIRouter(prefix="/suggestions", tags=["suggestions"])  # docstring: suggestions 路由前缀


@router.get("", response_model=SuggestionsResponse)
async def get_suggestions(
    uid: int = Query(..., description="Source document uid"),
    type: str = Query(default=DEFAULT_DOC_TYPE, description="Source document type, e.g. pages"),
    language: int = Query(default=0, ge=0, description="Language id"),
    mode: Optional[str] = Query(default=None, description="auto|lexical|vector|hybrid|mlt|knn|smlt"),
    max_results: Optional[int] = Query(default=None),
    min_score: Optional[float] = Query(default=None),
    min_score_ratio: Optional[float] = Query(default=None),
    allowed_types: Optional[str] = Query(default=None, description="Comma-separated whitelist"),
    exclude_types: Optional[str] = Query(default=None, description="Comma-separated blacklist"),
    persist: bool = Query(default=False, description="Replace stored similarities of a page source"),
    session: AsyncSession = Depends(get_session),
    trace_context: TraceContext = Depends(get_trace_context),
    client: SolrClient = Depends(get_solr_client),
    partition_router: PartitionRouter = Depends(get_partition_router),
    app_settings: Settings = Depends(get_app_settings),
) -> SuggestionsResponse:
    """
    [职责] 解析 (type, uid, language) 与设置覆盖项，调用 find_similar 并返回视图。
    [边界] 非法 uid/type 与非法设置 -> 400 ErrorResponse；其它领域错误按错误码映射。
    """
    try:
        try:
            ref = DocumentRef(type=type, uid=uid)
        except ValueError as exc:
            raise InvalidConfigurationError(
                message=str(exc),
                detail={"type": type, "uid": uid},
                cause=exc,
            ) from exc

        result = await find_similar(
            ref=ref,
            client=client,
            router=partition_router,
            language_id=language,
            overrides={
                "similarity_mode": mode,
                "max_results": max_results,
                "min_score": min_score,
                "min_score_ratio": min_score_ratio,
                "allowed_types": allowed_types,
                "excluded_types": exclude_types,
            },
            session=session,
            persist=persist,
            trace=trace_context,
            app_settings=app_settings,
        )
        return SuggestionsResponse(
            suggestions=result.bundle.hits,
            record=result.bundle.record,
            persisted=result.persisted,
        )
    except Exception as exc:
        return to_json_response(  # type: ignore[return-value]
            exc,
            trace_id=str(trace_context.trace_id),
            request_id=str(trace_context.request_id),
        )  # docstring: 异常映射为 ErrorResponse
