# src/semantic_suggest/backend/api/errors.py

"""
[职责] API 错误映射：将异常统一转换为 ErrorResponse 与 HTTP status，并注册全局异常处理器。
[边界] 不负责 trace/request 注入（由 middleware/deps 负责）；未知异常只输出通用 internal_error。
[上游关系] routers 捕获异常后调用 to_json_response；create_app 调用 register_exception_handlers。
[下游关系] 返回 ErrorResponse 供前端与审计系统消费。
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from semantic_suggest.backend.api.schemas_http._common import ErrorResponse
from semantic_suggest.backend.schemas.ids import new_uuid
from semantic_suggest.backend.utils.errors import DomainError, to_http_error
from semantic_suggest.backend.utils.logging_ import get_logger, log_event

_TRACE_HEADER = "x-trace-id"  # docstring: trace header 约定
_REQUEST_HEADER = "x-request-id"  # docstring: request header 约定

logger = get_logger("api.errors")


def _ensure_trace_id(trace_id: Optional[str]) -> str:
    raw = str(trace_id or "").strip()
    if raw:
        return raw  # docstring: 保留上游 trace_id
    return str(new_uuid())  # docstring: 无 trace_id 时生成兜底


def to_error_response(
    error: Exception,
    *,
    trace_id: Optional[str] = None,
) -> Tuple[int, ErrorResponse]:
    """
    [职责] 将异常转换为 (status_code, ErrorResponse)。
    [边界] 不写 header；不记录日志。
    """
    resolved_trace_id = _ensure_trace_id(trace_id)
    status_code, payload = to_http_error(error, trace_id=resolved_trace_id)  # docstring: 领域错误映射
    return status_code, ErrorResponse.model_validate(payload)


def to_json_response(
    error: Exception,
    *,
    trace_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """
    [职责] 将异常转换为 JSONResponse（含 trace/request header 透传）。
    [边界] 不修改 error 语义；非 DomainError 记录 ERROR 日志（含堆栈）。
    [上游关系] routers 的 try/except 与全局异常处理器。
    """
    if not isinstance(error, DomainError):
        log_event(
            logger,
            logging.ERROR,
            "api.unhandled_error",
            context={"trace_id": trace_id, "request_id": request_id},
            fields={"error": f"{error.__class__.__name__}: {error}"},
            exc_info=error,
        )
    status_code, response = to_error_response(error, trace_id=trace_id)
    content: Dict[str, Any] = response.model_dump()

    headers: Dict[str, str] = {}
    if trace_id:
        headers[_TRACE_HEADER] = str(trace_id)  # docstring: 回写 trace_id header
    if request_id:
        headers[_REQUEST_HEADER] = str(request_id)  # docstring: 回写 request_id header

    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Map DomainError raised outside router try-blocks (e.g. dependencies) to ErrorResponse."""

    async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return to_json_response(
            exc,
            trace_id=getattr(request.state, "trace_id", None),
            request_id=getattr(request.state, "request_id", None),
        )

    app.add_exception_handler(DomainError, _domain_error_handler)
