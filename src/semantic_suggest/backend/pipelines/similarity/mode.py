# src/semantic_suggest/backend/pipelines/similarity/mode.py

"""
[职责] Mode Selector：由配置的 mode token 与向量能力信号决定唯一算法路径。
[边界] 纯函数，无副作用；未知 token 直接抛 InvalidConfigurationError。
[上游关系] pipeline 在构建查询前调用。
[下游关系] 决定 query builder 构建哪些 descriptor 以及是否进入 fusion。
"""

from __future__ import annotations

from typing import Dict, Optional

from semantic_suggest.backend.utils.errors import InvalidConfigurationError

from .types import SimilarityPath


_EXPLICIT_PATHS: Dict[str, SimilarityPath] = {
    "lexical": "lexical",
    "vector": "vector",
    "hybrid": "hybrid",
    "mlt": "lexical",  # docstring: 旧 token 别名
    "knn": "vector",
    "smlt": "hybrid_native",  # docstring: 后端原生融合 handler
}


def resolve_similarity_path(mode: Optional[str], vector_enabled: bool) -> SimilarityPath:
    """
    [职责] auto -> hybrid（向量可用）/ lexical（不可用）；显式 token 总是覆盖能力信号。
    [边界] token 大小写/空白不敏感；空值按 auto 处理。
    """
    token = str(mode or "auto").strip().lower() or "auto"
    if token == "auto":
        return "hybrid" if vector_enabled else "lexical"
    path = _EXPLICIT_PATHS.get(token)
    if path is None:
        raise InvalidConfigurationError(
            message=f"unknown similarity mode: {mode!r}",
            detail={"mode": str(mode), "allowed": ["auto", *sorted(_EXPLICIT_PATHS)]},
        )
    return path


def uses_fusion(path: SimilarityPath) -> bool:
    return path == "hybrid"
