# src/semantic_suggest/backend/pipelines/similarity/persist.py

"""
[职责] persist：将 SimilarityBundle 的 hits 映射为相似度表行，并通过 SimilarityRepo 做幂等替换写入。
[边界] 只持久化 pages -> pages 建议（uid > 0）；不提交事务；不执行检索。
[上游关系] suggestion_service / bulk_service 在 pipeline 完成后调用。
[下游关系] tx_semanticsuggestion_similarities 表。
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from semantic_suggest.backend.db.repo.similarity_repo import SimilarityRepo
from semantic_suggest.backend.schemas.similarity import SimilarityBundle, SuggestionItem
from semantic_suggest.backend.utils.constants import DEFAULT_DOC_TYPE, PERSIST_SOURCE


def _rows_for(hits: Sequence[SuggestionItem]) -> List[Dict[str, float]]:
    return [
        {"similar_page_id": int(h.uid), "similarity_score": float(h.score)}
        for h in hits
        if h.type == DEFAULT_DOC_TYPE and int(h.uid) > 0
    ]  # docstring: 表结构只能表达页面之间的相似度


def is_persistable(bundle: SimilarityBundle) -> bool:
    rec = bundle.record
    if rec.errors:
        return False  # docstring: 降级结果不覆盖已有快照
    return rec.doc_type == DEFAULT_DOC_TYPE and rec.root_id is not None


async def persist_similarities(
    *,
    repo: SimilarityRepo,
    bundle: SimilarityBundle,
    source: str = PERSIST_SOURCE,
) -> int:
    """
    [职责] 以 (源页面, 语言, source) 为键替换写入；返回写入行数。
    [边界] 源文档非 pages、未完成路由或检索降级（record.errors 非空）时不写入（返回 0）。
    """
    if not is_persistable(bundle):
        return 0
    rec = bundle.record
    return await repo.replace_for_source(
        page_id=rec.doc_uid,
        root_page_id=int(rec.root_id or 0),
        language_id=rec.language_id,
        rows=_rows_for(bundle.hits),
        source=source,
    )
