# src/semantic_suggest/backend/db/models/similarity.py

from __future__ import annotations

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from semantic_suggest.backend.utils.constants import PERSIST_SOURCE

from ..base import Base


class SimilarityModel(Base):
    """
    [职责] 页面相似度快照：一行表示 (page_id -> similar_page_id) 的一条建议及其分数。
    [边界] 只存 pages 类型；同一 (page_id, sys_language_uid, source) 的行整体替换，不做增量更新。
    [上游关系] bulk driver / suggestion service 在检索后经 SimilarityRepo.replace_for_source 写入。
    [下游关系] 链接分析/可视化等外部消费者按 page_id 或 root_page_id 读取。
    """

    __tablename__ = "tx_semanticsuggestion_similarities"
    __table_args__ = (
        Index("ix_similarities_page_lang_source", "page_id", "sys_language_uid", "source"),
    )

    uid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    page_id: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, index=True, comment="源页面 uid"
    )  # docstring: 替换键之一
    similar_page_id: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="相似页面 uid"
    )
    similarity_score: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, comment="最终（过滤后）分数"
    )
    root_page_id: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, index=True, comment="站点根节点"
    )
    sys_language_uid: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="语言")

    crdate: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="创建时间（unix 秒）")
    tstamp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="更新时间（unix 秒）")

    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PERSIST_SOURCE, comment="数据来源（solr）"
    )  # docstring: 其它来源的行不受替换影响
