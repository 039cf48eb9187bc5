# src/semantic_suggest/backend/api/schemas_http/suggestions.py

"""
[职责] /suggestions 的 HTTP 视图：建议列表 + 检索记录（调试/审计用）。
[边界] 仅描述输出结构；查询参数在 router 中声明。
[上游关系] routers/suggestions.py 由 SuggestionResult 组装。
[下游关系] 前端渲染建议卡片；运维读取 record.errors 排障。
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from semantic_suggest.backend.schemas.similarity import SimilarityRecord, SuggestionItem


class SuggestionsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    suggestions: List[SuggestionItem] = Field(default_factory=list)  # docstring: 已排序的建议
    record: SimilarityRecord = Field(...)  # docstring: 检索快照（mode/path/partition/errors/timing）
    persisted: bool = Field(default=False)  # docstring: persist=true 且写入成功时为 True
