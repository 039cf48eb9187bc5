# src/semantic_suggest/backend/schemas/audit.py

"""
[职责] Audit 契约层：统一 trace/request 标识与 timing 快照等可回放、可观测字段。
[边界] 不负责日志落盘（由 utils/logging_ 负责）；仅提供结构化字段定义。
[上游关系] api/middleware 或 CLI 为一次请求/一次批处理生成 TraceContext。
[下游关系] PipelineContext 复用 trace_id/request_id；SimilarityRecord 携带 timing 快照。
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .ids import UUIDStr, new_uuid


class TraceContext(BaseModel):
    """
    [职责] TraceContext：一次请求（或一次批处理）的追踪上下文。
    [边界] 仅标识与轻量 tags；不包含 span 级别细节。
    [上游关系] api/middleware 从 header 解析或生成；bulk driver 以 parent_request_id 串联每页检索。
    [下游关系] PipelineContext.from_trace 复用其 ID，日志字段透传。
    """

    model_config = ConfigDict(extra="allow")

    trace_id: UUIDStr = Field(default_factory=new_uuid)  # docstring: 全链路追踪ID
    request_id: UUIDStr = Field(default_factory=new_uuid)  # docstring: 单次请求ID

    parent_request_id: Optional[UUIDStr] = Field(default=None)  # docstring: 上游请求ID（批处理串联）
    tags: Dict[str, Any] = Field(default_factory=dict)  # docstring: 任意扩展 tags


class TimingSnapshot(BaseModel):
    """Per-stage timing in milliseconds."""  # docstring: SimilarityRecord.timing 的容器

    model_config = ConfigDict(extra="allow")

    total_ms: Optional[float] = Field(default=None)  # docstring: 总耗时（ms）
    breakdown: Dict[str, float] = Field(default_factory=dict)  # docstring: 分段耗时（key=阶段名）
