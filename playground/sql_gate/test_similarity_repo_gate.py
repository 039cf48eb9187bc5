# playground/sql_gate/test_similarity_repo_gate.py

"""
[职责] repo gate：SimilarityRepo 的替换写入语义与 persist_similarities 的过滤规则。
[边界] 只用临时 sqlite；bundle 直接构造，不跑检索。
[上游关系] backend/db/repo/similarity_repo.py、backend/pipelines/similarity/persist.py。
[下游关系] suggestion_service / bulk_service 的落库行为依赖这里的契约。
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from semantic_suggest.backend.db.repo import SimilarityRepo
from semantic_suggest.backend.pipelines.similarity.persist import is_persistable, persist_similarities
from semantic_suggest.backend.schemas.similarity import SimilarityBundle, SimilarityRecord, SuggestionItem


pytestmark = pytest.mark.sql_gate


def _item(rank: int, uid: int, score: float, type: str = "pages") -> SuggestionItem:
    return SuggestionItem(rank=rank, type=type, uid=uid, score=score, algorithm_origin="lexical")


def _bundle(hits: List[SuggestionItem], **record: Any) -> SimilarityBundle:
    data: Dict[str, Any] = {"doc_type": "pages", "doc_uid": 10, "root_id": 1, "core": "core_en"}
    data.update(record)
    return SimilarityBundle(record=SimilarityRecord(**data), hits=hits)


@pytest.mark.asyncio
async def test_replace_for_source_is_idempotent(session: AsyncSession) -> None:
    repo = SimilarityRepo(session)
    rows = [{"similar_page_id": 11, "similarity_score": 0.9}, {"similar_page_id": 12, "similarity_score": 0.4}]

    assert await repo.replace_for_source(page_id=10, root_page_id=1, language_id=0, rows=rows, now=100) == 2
    assert await repo.replace_for_source(page_id=10, root_page_id=1, language_id=0, rows=rows, now=200) == 2
    await session.commit()

    stored = await repo.list_for_page(10)
    assert [(r.similar_page_id, r.similarity_score) for r in stored] == [(11, 0.9), (12, 0.4)]
    assert {r.tstamp for r in stored} == {200}
    assert await repo.count() == 2


@pytest.mark.asyncio
async def test_replace_scope_is_page_language_source(session: AsyncSession) -> None:
    repo = SimilarityRepo(session)
    await repo.replace_for_source(page_id=10, root_page_id=1, language_id=0, rows=[{"similar_page_id": 11, "similarity_score": 1.0}])
    await repo.replace_for_source(page_id=10, root_page_id=1, language_id=1, rows=[{"similar_page_id": 13, "similarity_score": 1.0}])
    await repo.replace_for_source(
        page_id=10, root_page_id=1, language_id=0, rows=[{"similar_page_id": 14, "similarity_score": 0.5}], source="manual"
    )
    await repo.replace_for_source(page_id=20, root_page_id=100, language_id=0, rows=[{"similar_page_id": 21, "similarity_score": 0.7}])

    assert await repo.replace_for_source(page_id=10, root_page_id=1, language_id=0, rows=[]) == 0
    await session.commit()

    assert await repo.list_for_page(10) == []
    assert [r.similar_page_id for r in await repo.list_for_page(10, language_id=1)] == [13]
    assert [r.similar_page_id for r in await repo.list_for_page(10, source="manual")] == [14]
    assert await repo.count(root_page_id=100) == 1
    assert await repo.ping() is True


@pytest.mark.asyncio
async def test_persist_keeps_pages_only(session: AsyncSession) -> None:
    bundle = _bundle([_item(1, 11, 0.8), _item(2, 5, 0.7, type="sys_file"), _item(3, 12, 0.3)])

    written = await persist_similarities(repo=SimilarityRepo(session), bundle=bundle)
    await session.commit()

    assert written == 2
    stored = await SimilarityRepo(session).list_for_page(10)
    assert [(r.similar_page_id, r.root_page_id) for r in stored] == [(11, 1), (12, 1)]


@pytest.mark.asyncio
async def test_persist_skips_degraded_and_non_page_sources(session: AsyncSession) -> None:
    repo = SimilarityRepo(session)
    await repo.replace_for_source(page_id=10, root_page_id=1, language_id=0, rows=[{"similar_page_id": 11, "similarity_score": 1.0}])
    await session.commit()

    degraded = _bundle([], errors={"lexical": "backend.unavailable"})
    news = _bundle([_item(1, 11, 0.8)], doc_type="tx_news_domain_model_news")
    unrouted = _bundle([_item(1, 11, 0.8)], root_id=None)

    for bundle in (degraded, news, unrouted):
        assert is_persistable(bundle) is False
        assert await persist_similarities(repo=repo, bundle=bundle) == 0
    await session.commit()

    assert [r.similar_page_id for r in await repo.list_for_page(10)] == [11]  # docstring: 旧快照未被覆盖
