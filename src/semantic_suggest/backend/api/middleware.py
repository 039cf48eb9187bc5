# src/semantic_suggest/backend/api/middleware.py

"""
[职责] API Middleware：注入 trace_id/request_id，统计请求耗时并记录访问日志。
[边界] 不做业务逻辑与异常处理；不重算 pipeline timing。
[上游关系] create_app 注册本 middleware。
[下游关系] deps.get_trace_context 读取 request.state.trace_context；响应头回写 trace/request/耗时。
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from semantic_suggest.backend.schemas.audit import TraceContext
from semantic_suggest.backend.schemas.ids import UUIDStr, new_uuid
from semantic_suggest.backend.utils.constants import TIMING_TOTAL_MS_KEY
from semantic_suggest.backend.utils.logging_ import get_logger, log_event

_TRACE_HEADER = "x-trace-id"  # docstring: trace header 约定
_REQUEST_HEADER = "x-request-id"  # docstring: request header 约定
_PARENT_HEADER = "x-parent-request-id"  # docstring: parent request header（可选）
_TIMING_HEADER = "x-response-time-ms"  # docstring: 请求总耗时 header

logger = get_logger("api.access")


def _header_id(request: Request, name: str) -> Optional[str]:
    raw = str(request.headers.get(name) or "").strip()
    return raw or None


class TraceContextMiddleware(BaseHTTPMiddleware):
    """
    [职责] 由 header 解析或生成 TraceContext，注入 request.state，并在响应头回写。
    [边界] 不捕获异常；异常映射由 api/errors.py 负责。
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_ts = time.perf_counter()

        trace_id = _header_id(request, _TRACE_HEADER) or str(new_uuid())
        request_id = _header_id(request, _REQUEST_HEADER) or str(new_uuid())
        parent_request_id = _header_id(request, _PARENT_HEADER)

        request.state.trace_context = TraceContext(
            trace_id=UUIDStr(trace_id),
            request_id=UUIDStr(request_id),
            parent_request_id=UUIDStr(parent_request_id) if parent_request_id else None,
        )
        request.state.trace_id = trace_id  # docstring: 便捷字段
        request.state.request_id = request_id  # docstring: 便捷字段
        request.state.parent_request_id = parent_request_id

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            total_ms = (time.perf_counter() - start_ts) * 1000.0
            request.state.timing_ms = {TIMING_TOTAL_MS_KEY: total_ms}
            log_event(
                logger,
                logging.INFO,
                "http.request",
                context=request.state.trace_context,
                fields={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    TIMING_TOTAL_MS_KEY: round(total_ms, 2),
                },
            )

        response.headers[_TRACE_HEADER] = trace_id
        response.headers[_REQUEST_HEADER] = request_id
        response.headers[_TIMING_HEADER] = f"{total_ms:.2f}"
        return response
