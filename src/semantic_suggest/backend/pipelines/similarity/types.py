# src/semantic_suggest/backend/pipelines/similarity/types.py
"""
[职责] Similarity types：相似度检索各阶段共享的最小公共类型（无 DB/HTTP 依赖）。
[边界] 仅定义不可变数据结构；不包含查询构建、解析或融合逻辑。
[上游关系] query/backend/parse/fusion/policy/pipeline 等模块 import 使用。
[下游关系] schemas/similarity 将 Candidate 映射为 SuggestionItem；persist 写入相似度表。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple

from semantic_suggest.backend.utils.constants import DEFAULT_LEXICAL_WEIGHT, DEFAULT_VECTOR_WEIGHT


Algorithm = Literal["lexical", "vector", "hybrid-native", "lookup"]  # docstring: 单次后端查询的算法标签
AlgorithmOrigin = Literal["lexical", "vector", "hybrid", "hybrid-native"]  # docstring: 候选来源
SimilarityPath = Literal["lexical", "vector", "hybrid", "hybrid_native"]  # docstring: Mode Selector 输出路径

QueryParams = Tuple[Tuple[str, str], ...]  # docstring: 有序 key/value 对（fq 等可重复 key）


@dataclass(frozen=True)
class DocumentRef:
    """
    [职责] 文档引用 (type, uid)：独立于索引表示的内容标识。
    [边界] uid 必须为正整数；构造后不可变。
    """

    type: str
    uid: int

    def __post_init__(self) -> None:
        if not str(self.type or "").strip():
            raise ValueError("document type is required")
        if isinstance(self.uid, bool) or int(self.uid) <= 0:
            raise ValueError(f"document uid must be > 0, got {self.uid!r}")

    @property
    def key(self) -> str:
        return f"{self.type}:{self.uid}"  # docstring: 融合去重 key


@dataclass(frozen=True)
class QueryFilters:
    """Type allow/deny lists plus container (pid) restriction."""

    allowed_types: Tuple[str, ...] = ()
    excluded_types: Tuple[str, ...] = ()
    container_ids: Tuple[int, ...] = ()


@dataclass(frozen=True)
class QueryDescriptor:
    """
    [职责] 一次后端调用的完整描述（handler + 参数对 + rows + 过滤条件）。
    [边界] 构建后不可变；params 已完成转义，backend 只负责编码传输。
    [上游关系] query.build_* 构造。
    [下游关系] SolrClient.execute 消费。
    """

    algorithm: Algorithm
    target: DocumentRef
    handler: str
    params: QueryParams
    rows: int
    field_weights: Tuple[Tuple[str, float], ...] = ()
    filters: QueryFilters = field(default_factory=QueryFilters)

    def get(self, key: str) -> Optional[str]:
        """First value for `key` (None when absent)."""
        for k, v in self.params:
            if k == key:
                return v
        return None

    def get_all(self, key: str) -> List[str]:
        return [v for k, v in self.params if k == key]


@dataclass(frozen=True)
class RawBackendResponse:
    """Decoded backend payload tagged with the algorithm that produced it."""

    algorithm: Algorithm
    payload: Mapping[str, Any]
    source_backend_id: Optional[str] = None  # docstring: MLT 源文档在索引中的 id（shape b 使用）


@dataclass(frozen=True)
class Candidate:
    """
    [职责] 统一候选结构（parse 产出；fusion/policy 以 replace 产出新实例）。
    [边界] score 在融合前为后端原生量纲，融合后为归一化加权分。
    """

    title: str
    url: str
    type: str
    type_label: str
    score: float
    subscores: Dict[str, float]
    snippet: str
    document_ref: DocumentRef
    algorithm_origin: AlgorithmOrigin

    @property
    def key(self) -> str:
        return self.document_ref.key


@dataclass(frozen=True)
class FusionPolicy:
    """Weights for lexical/vector fusion; the sum is not enforced."""

    lexical_weight: float = DEFAULT_LEXICAL_WEIGHT
    vector_weight: float = DEFAULT_VECTOR_WEIGHT


@dataclass(frozen=True)
class SubQueryResult:
    """
    [职责] 单个子查询的显式结果：ok(candidates) 或 failure(error_code, message)。
    [边界] 不抛异常；由 pipeline 显式折叠为空序列。
    """

    algorithm: Algorithm
    candidates: Tuple[Candidate, ...] = ()
    error_code: Optional[str] = None
    message: Optional[str] = None
    not_indexed: bool = False  # docstring: 源文档未入索引（合法空结果，不是错误）

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @classmethod
    def success(cls, algorithm: Algorithm, candidates: List[Candidate]) -> "SubQueryResult":
        return cls(algorithm=algorithm, candidates=tuple(candidates))

    @classmethod
    def missing(cls, algorithm: Algorithm) -> "SubQueryResult":
        return cls(algorithm=algorithm, not_indexed=True)

    @classmethod
    def failure(cls, algorithm: Algorithm, error_code: str, message: str) -> "SubQueryResult":
        return cls(algorithm=algorithm, error_code=error_code, message=message)

    def fold(self) -> List[Candidate]:
        return list(self.candidates) if self.ok else []  # docstring: 失败折叠为空序列
