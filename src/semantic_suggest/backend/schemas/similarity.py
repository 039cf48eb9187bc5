# src/semantic_suggest/backend/schemas/similarity.py

"""
[职责] Similarity 契约层：检索设置映射（SimilaritySettings）与结果快照（SimilarityRecord/SuggestionItem/SimilarityBundle）。
[边界] 不包含查询构建与融合实现；不依赖 ORM；设置非法统一转换为 InvalidConfigurationError。
[上游关系] API query/CLI 参数/插件 settings map 通过 SimilaritySettings.from_mapping 归一化。
[下游关系] pipeline 读取设置并产出 SimilarityBundle；api/services 序列化返回或落库。
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from semantic_suggest.backend.pipelines.similarity.query import (
    normalize_boost_fields,
    parse_csv_list,
    parse_int_list,
)
from semantic_suggest.backend.utils.constants import (
    DEFAULT_BOOST_FIELDS,
    DEFAULT_LEXICAL_WEIGHT,
    DEFAULT_MAX_RESULTS,
    DEFAULT_MLT_FIELDS,
    DEFAULT_SMLT_MLT_WEIGHT,
    DEFAULT_SMLT_VECTOR_WEIGHT,
    DEFAULT_VECTOR_FIELD,
    DEFAULT_VECTOR_MODEL,
    DEFAULT_VECTOR_TOP_K,
    DEFAULT_VECTOR_WEIGHT,
)
from semantic_suggest.backend.utils.errors import InvalidConfigurationError

from .audit import TimingSnapshot


ResolvedPath = Literal["lexical", "vector", "hybrid", "hybrid_native"]  # docstring: Mode Selector 输出
AlgorithmOrigin = Literal["lexical", "vector", "hybrid", "hybrid-native"]  # docstring: 候选来源


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)  # docstring: snake_case 字段名在前，overrides 优先于 camelCase 设置键


class SimilaritySettings(BaseModel):
    """
    [职责] 扁平设置映射的类型化视图（未知键忽略，缺省键取默认值，空字符串视为缺省）。
    [边界] 仅做类型/范围校验；mode token 的合法性由 Mode Selector 判定。
    [上游关系] from_mapping 接收 str->Any 映射（插件 settings、HTTP query、CLI 选项）。
    [下游关系] pipeline 构建查询、融合、过滤时读取。
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    similarity_mode: str = Field(default="auto", validation_alias=_alias("similarity_mode", "mode", "similarityMode"))
    max_results: int = Field(default=DEFAULT_MAX_RESULTS, ge=1, le=500, validation_alias=_alias("max_results", "maxResults"))

    min_term_freq: int = Field(default=1, ge=0, validation_alias=_alias("min_term_freq", "minTermFreq"))
    min_doc_freq: int = Field(default=1, ge=0, validation_alias=_alias("min_doc_freq", "minDocFreq"))
    mlt_fields: str = Field(default=DEFAULT_MLT_FIELDS, validation_alias=_alias("mlt_fields", "mltFields"))
    boost_fields: str = Field(default=DEFAULT_BOOST_FIELDS, validation_alias=_alias("boost_fields", "boostFields"))

    vector_top_k: int = Field(default=DEFAULT_VECTOR_TOP_K, ge=1, validation_alias=_alias("vector_top_k", "vectorTopK"))
    vector_model_name: str = Field(
        default=DEFAULT_VECTOR_MODEL, validation_alias=_alias("vector_model_name", "vectorModelName")
    )
    vector_field: str = Field(default=DEFAULT_VECTOR_FIELD, validation_alias=_alias("vector_field", "vectorField"))
    vector_search_enabled: Optional[bool] = Field(
        default=None, validation_alias=_alias("vector_search_enabled", "vectorSearchEnabled")
    )  # docstring: 覆盖进程级能力信号（None=沿用 Settings.VECTOR_SEARCH_ENABLED）

    lexical_weight: float = Field(
        default=DEFAULT_LEXICAL_WEIGHT, ge=0.0, validation_alias=_alias("lexical_weight", "lexicalWeight", "mltWeight")
    )
    vector_weight: float = Field(
        default=DEFAULT_VECTOR_WEIGHT, ge=0.0, validation_alias=_alias("vector_weight", "vectorWeight", "knnWeight")
    )

    smlt_mode: str = Field(default="hybrid", validation_alias=_alias("smlt_mode", "smltMode"))
    smlt_mlt_weight: float = Field(
        default=DEFAULT_SMLT_MLT_WEIGHT, ge=0.0, validation_alias=_alias("smlt_mlt_weight", "smltMltWeight")
    )
    smlt_vector_weight: float = Field(
        default=DEFAULT_SMLT_VECTOR_WEIGHT, ge=0.0, validation_alias=_alias("smlt_vector_weight", "smltVectorWeight")
    )

    min_score: float = Field(default=0.0, validation_alias=_alias("min_score", "minScore"))
    min_score_ratio: float = Field(default=0.0, validation_alias=_alias("min_score_ratio", "minScoreRatio"))

    allowed_types: List[str] = Field(default_factory=list, validation_alias=_alias("allowed_types", "allowedTypes"))
    excluded_types: List[str] = Field(
        default_factory=list, validation_alias=_alias("excluded_types", "excludeContentTypes", "excludedTypes")
    )
    filter_by_pids: List[int] = Field(default_factory=list, validation_alias=_alias("filter_by_pids", "filterByPids"))

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return {
                k: v for k, v in data.items() if v is not None and not (isinstance(v, str) and not v.strip())
            }  # docstring: 空值回落到默认值
        return data

    @field_validator("allowed_types", "excluded_types", mode="before")
    @classmethod
    def _split_types(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_csv_list(value)
        return value

    @field_validator("filter_by_pids", mode="before")
    @classmethod
    def _split_pids(cls, value: Any) -> Any:
        if isinstance(value, (str, int)):
            return parse_int_list(str(value))
        return value

    @field_validator("boost_fields")
    @classmethod
    def _check_boost_fields(cls, value: str) -> str:
        normalize_boost_fields(value)  # docstring: 仅校验 field^weight 形式，原值保留
        return value

    @field_validator("similarity_mode", "smlt_mode", "vector_model_name", "vector_field", "mlt_fields")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]] = None, **overrides: Any) -> "SimilaritySettings":
        """
        [职责] 从扁平设置映射构造 SimilaritySettings；overrides 优先。
        [边界] 任意校验失败都转换为 InvalidConfigurationError（不泄露 pydantic 异常）。
        """
        merged: Dict[str, Any] = dict(data or {})
        merged.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls.model_validate(merged)
        except ValidationError as exc:
            errors = [
                {"loc": ".".join(str(p) for p in err.get("loc", ())), "msg": str(err.get("msg", ""))}
                for err in exc.errors()
            ]
            raise InvalidConfigurationError(
                message="invalid similarity settings",
                detail={"errors": errors},
                cause=exc,
            ) from exc

    def effective_vector_enabled(self, default: bool) -> bool:
        return default if self.vector_search_enabled is None else bool(self.vector_search_enabled)


class SuggestionItem(BaseModel):
    """
    [职责] 单条相似文档建议（Candidate 的可序列化快照）。
    [边界] 不包含图片/媒体等展示增强字段。
    """

    model_config = ConfigDict(extra="forbid")

    rank: int = Field(..., ge=1)  # docstring: 最终列表中的位置（1-based）
    type: str = Field(...)
    uid: int = Field(..., gt=0)
    title: str = Field(default="")
    url: str = Field(default="")
    type_label: str = Field(default="")
    score: float = Field(default=0.0)
    subscores: Dict[str, float] = Field(default_factory=dict)  # docstring: lexical_score / vector_score
    snippet: str = Field(default="")
    algorithm_origin: AlgorithmOrigin = Field(...)


class SimilarityRecord(BaseModel):
    """
    [职责] 一次检索的可回放快照（请求模式、解析路径、partition、错误、计数、计时）。
    [边界] 不包含结果列表；errors 只记录错误码与简述，不含堆栈。
    [上游关系] run_similarity_pipeline 产出。
    [下游关系] API 响应 record 字段、bulk 统计、日志排障。
    """

    model_config = ConfigDict(extra="forbid")

    doc_type: str = Field(...)
    doc_uid: int = Field(..., gt=0)
    language_id: int = Field(default=0, ge=0)

    requested_mode: str = Field(default="auto")
    resolved_path: Optional[ResolvedPath] = Field(default=None)  # docstring: 配置非法前不会为空

    root_id: Optional[int] = Field(default=None)
    core: Optional[str] = Field(default=None)
    partition_fallback: bool = Field(default=False)  # docstring: 是否经过 routing 兜底
    source_backend_id: Optional[str] = Field(default=None)
    not_indexed: bool = Field(default=False)

    lexical_count: int = Field(default=0, ge=0)
    vector_count: int = Field(default=0, ge=0)
    fused_count: int = Field(default=0, ge=0)
    result_count: int = Field(default=0, ge=0)

    errors: Dict[str, str] = Field(default_factory=dict)  # docstring: key=阶段/算法，value=错误码
    provider_snapshot: Dict[str, Any] = Field(default_factory=dict)
    timing: TimingSnapshot = Field(default_factory=TimingSnapshot)


class SimilarityBundle(BaseModel):
    """Record + ranked suggestions of one retrieval."""

    model_config = ConfigDict(extra="forbid")

    record: SimilarityRecord = Field(...)
    hits: List[SuggestionItem] = Field(default_factory=list)
