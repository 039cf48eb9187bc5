# src/semantic_suggest/backend/api/schemas_http/_common.py

"""
[职责] HTTP Schema 公共组件：ErrorResponse 与 trace/request ID 类型，作为 API 契约基础。
[边界] 仅描述 HTTP 输入/输出结构；不负责 trace 注入、异常映射或业务逻辑。
[上游关系] api/errors 将 DomainError 映射到 ErrorResponse。
[下游关系] api/schemas_http/suggestions 与 routers 复用本模块结构。
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from semantic_suggest.backend.schemas.ids import UUIDStr


TraceId = UUIDStr  # docstring: trace_id（跨请求链路）
RequestId = UUIDStr  # docstring: request_id（单次请求）

ErrorDetail = Dict[str, Any]  # docstring: ErrorResponse.error.detail 结构（必须 JSON-safe）


class ErrorInfo(BaseModel):
    """
    [职责] ErrorInfo：统一错误载体（code/message/trace_id/detail）。
    [边界] code 为领域错误码（如 similarity.invalid_configuration）；HTTP status 由 api/errors.py 决定。
    """

    model_config = ConfigDict(extra="forbid")  # docstring: 锁死错误字段，避免 drift

    code: str = Field(..., min_length=1)  # docstring: 稳定错误码
    message: str = Field(..., min_length=1)  # docstring: 人类可读错误信息
    trace_id: TraceId = Field(...)  # docstring: 全链路追踪ID（由 middleware 注入）
    detail: ErrorDetail = Field(default_factory=dict)  # docstring: 结构化细节（可为空）


class ErrorResponse(BaseModel):
    """ErrorResponse: top-level wrapper of an HTTP error body."""

    model_config = ConfigDict(extra="forbid")

    error: ErrorInfo = Field(...)  # docstring: 错误主体
