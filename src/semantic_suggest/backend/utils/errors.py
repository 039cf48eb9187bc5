# src/semantic_suggest/backend/utils/errors.py

"""
[职责] 统一领域错误合同（error_code/message/detail/cause）与 HTTP 映射策略（http_status/retryable）。
[边界] 不依赖 FastAPI/HTTPException；只定义相似度检索的错误种类。
[上游关系] pipelines/services 抛出 DomainError 子类；pipeline 边界将 BackendError 折叠为空结果。
[下游关系] api/errors.py 使用本模块将异常映射为 ErrorResponse 与 HTTP status。
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Tuple


ErrorDetail = Dict[str, Any]  # docstring: 错误细节类型（必须 JSON-safe）

ERROR_CODE_PATTERN = re.compile(r"^[a-z][a-z0-9]*(?:\.[a-z0-9_]+)+$")  # docstring: area.reason 规范

INVALID_CONFIGURATION_CODE = "similarity.invalid_configuration"
ROUTING_FAILED_CODE = "routing.failed"
BACKEND_UNAVAILABLE_CODE = "backend.unavailable"  # docstring: 传输层失败/超时
BACKEND_QUERY_ERROR_CODE = "backend.query_error"  # docstring: 查询被后端拒绝
UNPARSABLE_RESPONSE_CODE = "backend.unparsable_response"
ALL_FAILED_CODE = "similarity.all_failed"  # docstring: 所有子查询均失败（只出现在 record.errors）

INTERNAL_ERROR_CODE = "internal_error"  # docstring: 未知异常统一错误码
INTERNAL_ERROR_MESSAGE = "internal error"

ERROR_HTTP_STATUS_BY_CODE = {
    INTERNAL_ERROR_CODE: 500,
    INVALID_CONFIGURATION_CODE: 400,
    ROUTING_FAILED_CODE: 503,
    BACKEND_UNAVAILABLE_CODE: 503,
    BACKEND_QUERY_ERROR_CODE: 502,
    UNPARSABLE_RESPONSE_CODE: 502,
}

ERROR_RETRYABLE_BY_CODE = {BACKEND_UNAVAILABLE_CODE: True}  # docstring: 未列出的错误码不可重试


def _check_detail(detail: ErrorDetail) -> ErrorDetail:
    if not isinstance(detail, dict):
        raise ValueError("detail must be a dict")
    try:
        json.dumps(detail)
    except TypeError as exc:
        raise ValueError("detail must be JSON-serializable") from exc
    return detail


class DomainError(Exception):
    """
    [职责] 领域错误最小合同：error_code/message/detail/cause，并由错误码推导 http_status/retryable。
    [边界] 仅表达语义，不承担日志与 HTTP 输出；子类只声明 code 与默认 message。
    [上游关系] pipelines/services 抛出；必要时携带 cause。
    [下游关系] api/errors.py 映射 HTTP status 与 ErrorResponse。
    """

    code: str = INTERNAL_ERROR_CODE
    default_message: str = INTERNAL_ERROR_MESSAGE

    def __init__(
        self,
        *,
        message: Optional[str] = None,
        detail: Optional[ErrorDetail] = None,
        cause: Optional[Exception] = None,
        error_code: Optional[str] = None,
    ) -> None:
        code = error_code or self.code
        if code != INTERNAL_ERROR_CODE and not ERROR_CODE_PATTERN.match(code):
            raise ValueError(f"invalid error_code: {code}")
        msg = message or self.default_message
        super().__init__(msg)
        self.error_code = code
        self.message = msg
        self.detail = _check_detail(detail or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause  # docstring: 保留异常链路

    @property
    def http_status(self) -> int:
        return ERROR_HTTP_STATUS_BY_CODE.get(self.error_code, 500)

    @property
    def retryable(self) -> bool:
        return ERROR_RETRYABLE_BY_CODE.get(self.error_code, False)

    def to_dict(self) -> Dict[str, Any]:
        """ErrorResponse.error body without trace_id."""
        return {"code": self.error_code, "message": self.message, "detail": self.detail}


class InvalidConfigurationError(DomainError):
    """
    [职责] 配置非法（未知 similarityMode、无法解析的数值/权重、非法字段名等）。
    [边界] fail fast，不重试；是唯一会穿透 pipeline 的错误种类。
    """

    code = INVALID_CONFIGURATION_CODE
    default_message = "invalid configuration"


class RoutingFailedError(DomainError):
    """
    [职责] partition 路由失败（站点根节点或 (root, language) 对应的 core 无法解析）。
    [边界] 根节点失败由 PartitionRouter 走显式兜底；core 缺失由 pipeline 折叠为空结果。
    """

    code = ROUTING_FAILED_CODE
    default_message = "partition routing failed"


class BackendError(DomainError):
    """Base class for search backend interaction failures."""  # docstring: pipeline 按该基类折叠子查询失败

    code = BACKEND_QUERY_ERROR_CODE


class BackendUnavailableError(BackendError):
    """Transport failure or timeout (retryable)."""

    code = BACKEND_UNAVAILABLE_CODE
    default_message = "search backend unavailable"


class BackendQueryError(BackendError):
    """HTTP >= 400, non-JSON body or a Solr error payload."""

    code = BACKEND_QUERY_ERROR_CODE
    default_message = "search backend rejected query"


class UnparsableResponseError(BackendError):
    """
    [职责] 响应结构不匹配任何已知 shape。
    [边界] parser 默认不抛出（返回空 + 诊断事件）；供 strict 调用方使用。
    """

    code = UNPARSABLE_RESPONSE_CODE
    default_message = "unparsable backend response"


def to_http_error(
    error: Exception,
    *,
    trace_id: Optional[str] = None,
) -> Tuple[int, Dict[str, Any]]:
    """
    [职责] 将异常转换为 HTTP status + ErrorResponse payload（不耦合 FastAPI）。
    [边界] 未知异常统一 internal_error/500，不泄露异常文本。
    """
    if isinstance(error, DomainError):
        status_code = error.http_status
        payload = {"error": error.to_dict()}
    else:
        status_code = ERROR_HTTP_STATUS_BY_CODE[INTERNAL_ERROR_CODE]
        payload = {"error": {"code": INTERNAL_ERROR_CODE, "message": INTERNAL_ERROR_MESSAGE, "detail": {}}}

    if trace_id:
        payload["error"]["trace_id"] = trace_id  # docstring: API 层注入 trace_id
    return status_code, payload
