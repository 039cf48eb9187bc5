# src/semantic_suggest/backend/db/base.py

"""
[职责] ORM 基类：集中 DeclarativeBase 与命名约定，供所有 Model 共享 metadata。
[边界] 不定义具体表；不创建 engine。
[上游关系] 无。
[下游关系] db/models/* 继承 Base；engine.init_db 使用 Base.metadata.create_all。
"""

from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "pk": "pk_%(table_name)s",
}  # docstring: 稳定的索引/约束命名


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
