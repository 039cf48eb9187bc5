# src/semantic_suggest/backend/schemas/ids.py

"""
[职责] ID 契约层：统一 trace/request 等追踪 ID 的类型别名与生成策略（UUID v4 string）。
[边界] 不依赖数据库 ORM；不包含业务字段；文档标识使用 (type, uid) 的 DocumentRef，不在此定义。
[上游关系] 无（纯工具/契约层）。
[下游关系] schemas/audit、pipelines/base/context、api/middleware 生成与传递追踪 ID。
"""

from __future__ import annotations

from typing import NewType
from uuid import UUID, uuid4


UUIDStr = NewType("UUIDStr", str)  # docstring: 统一 UUID 字符串类型（运行时仍为 str）

TraceId = UUIDStr  # docstring: 全链路追踪 ID
RequestId = UUIDStr  # docstring: 单次请求 ID


def new_uuid() -> UUIDStr:
    """Generate UUID v4 as string."""  # docstring: 系统内追踪 ID 的默认生成策略
    return UUIDStr(str(uuid4()))


def is_uuid_str(value: str) -> bool:
    """Return True if value parses as UUID string."""  # docstring: 轻量校验工具（不抛异常）
    try:
        UUID(str(value))
        return True
    except (TypeError, ValueError):
        return False
