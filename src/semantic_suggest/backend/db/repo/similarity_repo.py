# src/semantic_suggest/backend/db/repo/similarity_repo.py

"""
[职责] SimilarityRepo：相似度表的“先删后插”替换写入与按页面读取。
[边界] 不执行检索；不提交事务（由 service 控制 commit/rollback）。
[上游关系] pipelines/similarity/persist 将 SuggestionItem 映射为行数据后调用。
[下游关系] tx_semanticsuggestion_similarities 表；health/测试读取。
"""

from __future__ import annotations

import time
from typing import Iterable, List, Mapping, Optional

from sqlalchemy import delete, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from semantic_suggest.backend.utils.constants import PERSIST_SOURCE

from ..models.similarity import SimilarityModel


class SimilarityRepo:
    """Similarity repository (async SQLAlchemy)."""

    def __init__(self, session: AsyncSession):
        self._session = session  # docstring: DB 会话（由 deps/service 注入）

    async def replace_for_source(
        self,
        *,
        page_id: int,
        root_page_id: int,
        language_id: int,
        rows: Iterable[Mapping[str, float]],
        source: str = PERSIST_SOURCE,
        now: Optional[int] = None,
    ) -> int:
        """
        [职责] 删除 (page_id, language, source) 的旧行，再插入新集合；返回插入行数。
        [边界] rows 每项需含 similar_page_id/similarity_score；重复执行结果一致。
        """
        await self._session.execute(
            delete(SimilarityModel).where(
                SimilarityModel.page_id == int(page_id),
                SimilarityModel.sys_language_uid == int(language_id),
                SimilarityModel.source == source,
            )
        )
        ts = int(now if now is not None else time.time())
        models = [
            SimilarityModel(
                page_id=int(page_id),
                similar_page_id=int(row["similar_page_id"]),
                similarity_score=float(row["similarity_score"]),
                root_page_id=int(root_page_id),
                sys_language_uid=int(language_id),
                source=source,
                crdate=ts,
                tstamp=ts,
            )
            for row in rows
        ]
        self._session.add_all(models)
        await self._session.flush()
        return len(models)

    async def list_for_page(
        self, page_id: int, *, language_id: int = 0, source: Optional[str] = PERSIST_SOURCE
    ) -> List[SimilarityModel]:
        """Rows of one source page, best score first."""
        stmt = select(SimilarityModel).where(
            SimilarityModel.page_id == int(page_id),
            SimilarityModel.sys_language_uid == int(language_id),
        )
        if source is not None:
            stmt = stmt.where(SimilarityModel.source == source)
        stmt = stmt.order_by(SimilarityModel.similarity_score.desc(), SimilarityModel.uid.asc())
        res = await self._session.execute(stmt)
        return list(res.scalars().all())

    async def count(self, *, root_page_id: Optional[int] = None) -> int:
        stmt = select(func.count()).select_from(SimilarityModel)
        if root_page_id is not None:
            stmt = stmt.where(SimilarityModel.root_page_id == int(root_page_id))
        return int(await self._session.scalar(stmt) or 0)

    async def ping(self) -> bool:
        await self._session.execute(text("SELECT 1"))  # docstring: health 检查
        return True
