# src/semantic_suggest/backend/pipelines/base/context.py

"""
[职责] PipelineContext：单次相似度检索的运行上下文（trace/request id、计时器、provider 快照、检索元数据）。
[边界] 不持有 DB session 与 HTTP client；不做编排；只做“聚合与透传”。
[上游关系] api/services/scripts 构造（可从 TraceContext 继承 trace_id/request_id）。
[下游关系] pipeline 写入 timing/meta；log_event 从 ctx 与 ctx.meta 读取结构化日志字段。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from semantic_suggest.backend.schemas.audit import TraceContext
from semantic_suggest.backend.schemas.ids import UUIDStr, new_uuid

from .timing import TimingCollector


@dataclass
class PipelineContext:
    """
    [职责] 为一次 run_similarity_pipeline 调用提供可观测性字段。
    [边界] 不跨请求复用；bulk 每个文档新建一个 ctx（parent_request_id 串联批次）。
    """

    trace_id: UUIDStr = field(default_factory=new_uuid)  # docstring: 链路追踪ID
    request_id: UUIDStr = field(default_factory=new_uuid)  # docstring: 单次请求ID
    parent_request_id: Optional[str] = None  # docstring: bulk 批次ID（可选）

    timing: TimingCollector = field(default_factory=TimingCollector)

    provider_snapshot: Dict[str, Any] = field(default_factory=dict)  # docstring: 后端/算法参数快照
    meta: Dict[str, Any] = field(default_factory=dict)  # docstring: doc_type/doc_uid/root_id/language_id/core 等

    @classmethod
    def from_trace(
        cls,
        trace: Optional[TraceContext] = None,
        *,
        provider_snapshot: Optional[Dict[str, Any]] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> "PipelineContext":
        """
        [职责] 由 API/CLI 的 TraceContext 装配 PipelineContext。
        [边界] trace 缺失时生成新 ID；不触发 I/O。
        """
        if trace is None:
            return cls(provider_snapshot=provider_snapshot or {}, meta=meta or {})
        return cls(
            trace_id=UUIDStr(str(trace.trace_id)),
            request_id=UUIDStr(str(trace.request_id)),
            parent_request_id=str(trace.parent_request_id) if trace.parent_request_id else None,
            provider_snapshot=provider_snapshot or {},
            meta=meta or {},
        )

    def timing_ms(self, *, total_key: str = "total") -> Dict[str, float]:
        return self.timing.to_dict(total_key=total_key)

    def with_provider(self, kind: str, snapshot: Dict[str, Any]) -> None:
        """Store a provider snapshot (e.g. solr core, vector model) under `kind`."""
        k = str(kind).strip()
        if not k:
            return
        self.provider_snapshot[k] = snapshot
