# src/semantic_suggest/backend/utils/logging_.py

"""
[职责] 定义结构化日志字段规范与统一 logger 获取方式，提供 JSON 格式化与安全输出 helper。
[边界] 不绑定具体日志后端；不强制 trace_id 注入，仅提供工具。
[上游关系] services/pipelines/api 通过 get_logger/log_event 组织日志上下文。
[下游关系] 日志后端（stdout/file）消费结构化字段做检索与排障（如 similarity.parse.unparsable 诊断）。
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .constants import TRACE_FIELD_KEYS


DEFAULT_LOGGER_NAME = "semantic_suggest"  # docstring: 统一 logger 根名称
DEFAULT_LOG_LEVEL = logging.INFO  # docstring: 默认日志级别
DEFAULT_MAX_TEXT_LEN = 160  # docstring: 安全文本预览长度

_LOG_RECORD_RESERVED = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
    "taskName",
}  # docstring: LogRecord 内置字段（不作为结构化额外字段）


class StructuredLogFormatter(logging.Formatter):
    """
    [职责] 将 LogRecord 转换为 JSON 字符串（含结构化字段）。
    [边界] 仅输出基础字段 + extra；不做敏感字段识别。
    [上游关系] configure_logging 创建 handler 后挂载。
    [下游关系] 日志收集系统解析 JSON 或 grep 关键字段。
    """

    def __init__(self, *, ensure_ascii: bool = True) -> None:
        super().__init__()
        self._ensure_ascii = ensure_ascii  # docstring: 保持 ASCII 输出，便于终端/存储兼容

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),  # docstring: UTC 时间戳
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extras = {
            k: v for k, v in record.__dict__.items() if k not in _LOG_RECORD_RESERVED and v is not None
        }  # docstring: 仅保留非空 extra 字段
        payload.update(extras)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)  # docstring: 异常堆栈文本
        if record.stack_info:
            payload["stack_info"] = record.stack_info

        return json.dumps(payload, ensure_ascii=self._ensure_ascii, default=str)


def configure_logging(
    *,
    logger_name: str = DEFAULT_LOGGER_NAME,
    level: int = DEFAULT_LOG_LEVEL,
    ensure_ascii: bool = True,
) -> logging.Logger:
    """
    [职责] 配置统一的 base logger（JSON formatter）。
    [边界] 不触碰 root logger；handler 只挂载一次。
    [上游关系] 进程入口（api app / CLI）或 get_logger 调用。
    [下游关系] get_logger 复用已配置的 base logger。
    """

    logger = logging.getLogger(logger_name)
    if logger.level == logging.NOTSET:
        logger.setLevel(level)  # docstring: 未显式设置时才写入默认级别

    has_handler = any(getattr(h, "name", "") == "structured_json" for h in logger.handlers)
    if not has_handler:
        handler = logging.StreamHandler()
        handler.name = "structured_json"  # docstring: 标记 handler，避免重复挂载
        handler.setFormatter(StructuredLogFormatter(ensure_ascii=ensure_ascii))
        logger.addHandler(handler)

    return logger


def get_logger(name: Optional[str] = None, *, level: Optional[int] = None) -> logging.Logger:
    """
    [职责] 获取项目统一 logger（自动确保 base logger 已配置）。
    [边界] 不覆写外部 logging 配置；仅保证本项目 logger 可用。
    """

    configure_logging()
    full_name = name or DEFAULT_LOGGER_NAME
    if name and not name.startswith(DEFAULT_LOGGER_NAME):
        full_name = f"{DEFAULT_LOGGER_NAME}.{name}"  # docstring: 统一挂载在项目根 logger 下
    logger = logging.getLogger(full_name)
    if level is not None:
        logger.setLevel(level)
    return logger


def build_log_fields(
    *,
    context: Optional[Any] = None,
    extra: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    [职责] 统一构建结构化日志字段（trace/request id + 相似度检索上下文）。
    [边界] 不生成缺失 trace_id；不校验字段合法性。
    [上游关系] log_event 调用；context 可为 PipelineContext / TraceContext / dict。
    [下游关系] logger.extra 供 StructuredLogFormatter 输出。
    """

    fields: Dict[str, Any] = {}
    if context is not None:
        for key in TRACE_FIELD_KEYS:
            value = _read_context_value(context, key)
            if value is not None:
                fields[key] = str(value)  # docstring: 统一转为字符串输出

    if extra:
        for key, value in extra.items():
            if value is not None:
                fields[key] = value  # docstring: 附加扩展字段
    return fields


def log_event(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    context: Optional[Any] = None,
    fields: Optional[Mapping[str, Any]] = None,
    exc_info: Optional[Any] = None,
) -> None:
    """
    [职责] 统一记录结构化日志（可自动附加 trace 字段）。
    [边界] message 使用点分事件名（如 similarity.subquery.failed）；不处理业务语义。
    """

    extra = build_log_fields(context=context, extra=fields)
    logger.log(level, message, extra=extra, exc_info=exc_info)


def truncate_text(text: Optional[str], *, max_len: int = DEFAULT_MAX_TEXT_LEN) -> Optional[str]:
    """Truncate free text before logging it."""  # docstring: 避免记录原始文档全文
    if text is None:
        return None
    s = str(text)
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]}...(truncated)"


def _read_context_value(context: Any, key: str) -> Optional[Any]:
    """
    [职责] 从 context 中安全读取字段值（支持 dict/对象属性/对象 meta）。
    [边界] 读取不到返回 None；不抛异常。
    """

    if isinstance(context, Mapping):
        return context.get(key)
    value = getattr(context, key, None)
    if value is None:
        meta = getattr(context, "meta", None)
        if isinstance(meta, Mapping):
            value = meta.get(key)  # docstring: PipelineContext.meta 中的检索上下文
    return value
