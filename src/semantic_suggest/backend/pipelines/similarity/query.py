# src/semantic_suggest/backend/pipelines/similarity/query.py

"""
[职责] Query Builder：将 (DocumentRef, 算法路径, 参数) 转换为不可变的 QueryDescriptor（Solr MLT/KNN/smlt/lookup）。
[边界] 只负责参数构造与转义；不发起网络请求；不读取进程配置。
[上游关系] pipeline 根据 SimilaritySettings 调用 build_*；schemas/similarity 复用列表解析工具。
[下游关系] SolrClient.execute 按 descriptor.handler + params 发送请求。
"""

from __future__ import annotations

import html
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from semantic_suggest.backend.utils.constants import HYBRID_ROW_FACTOR, SOURCE_TEXT_MAX_CHARS
from semantic_suggest.backend.utils.errors import InvalidConfigurationError

from .types import DocumentRef, QueryDescriptor, QueryFilters


_SPECIAL_CHARS_RE = re.compile(r'([+\-&|!(){}\[\]^"~*?:\\/\s])')  # docstring: Lucene/Solr 查询语法控制字符
_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")  # docstring: 字段名/模型名白名单
_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")

MLT_HANDLER = "mlt"  # docstring: MoreLikeThis request handler
SELECT_HANDLER = "select"  # docstring: 标准查询 handler（KNN/lookup）
SMLT_HANDLER = "smlt"  # docstring: 后端原生语义 MLT handler

RESULT_FIELDS = "*,score"


# --- literal helpers ---


def escape_query_value(value: object) -> str:
    """
    [职责] 单次扫描转义查询语法控制字符（含反斜杠与空白），避免注入与二次转义。
    [边界] 仅处理字面量；不负责字段名校验。
    """
    return _SPECIAL_CHARS_RE.sub(r"\\\1", str(value))


def parse_csv_list(value: Optional[str]) -> List[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if value is None:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def parse_int_list(value: Optional[str]) -> List[int]:
    """
    [职责] 解析逗号分隔的整数列表（容器 pid 过滤）。
    [边界] 非整数项直接抛 InvalidConfigurationError（不静默丢弃）。
    """
    out: List[int] = []
    for part in parse_csv_list(value):
        try:
            out.append(int(part))
        except ValueError as exc:
            raise InvalidConfigurationError(
                message=f"invalid integer in list: {part!r}",
                detail={"value": str(value)},
                cause=exc,
            ) from exc
    return out


def parse_boost_fields(value: Optional[str]) -> List[Tuple[str, float]]:
    """
    [职责] 'content^0.5,title^1.2' -> [('content', 0.5), ('title', 1.2)]；无权重时为 1.0。
    [边界] 逗号与空白都可作为分隔符；权重必须是 float，字段名必须合法。
    """
    out: List[Tuple[str, float]] = []
    for token in re.split(r"[,\s]+", str(value or "").strip()):
        if not token:
            continue
        name, _, weight = token.partition("^")
        _require_field_name(name, setting="boostFields")
        try:
            out.append((name, float(weight) if weight else 1.0))
        except ValueError as exc:
            raise InvalidConfigurationError(
                message=f"invalid boost weight: {token!r}",
                detail={"boostFields": str(value)},
                cause=exc,
            ) from exc
    return out


def normalize_boost_fields(value: Optional[str]) -> str:
    """'content^0.5,title^1.2' -> 'content^0.5 title^1.2' (mlt.qf syntax)."""
    parts: List[str] = []
    for token in re.split(r"[,\s]+", str(value or "").strip()):
        if not token:
            continue
        name, sep, weight = token.partition("^")
        _require_field_name(name, setting="boostFields")
        if sep:
            try:
                float(weight)
            except ValueError as exc:
                raise InvalidConfigurationError(
                    message=f"invalid boost weight: {token!r}",
                    detail={"boostFields": str(value)},
                    cause=exc,
                ) from exc
        parts.append(token)
    return " ".join(parts)


def normalize_field_list(value: Optional[str], *, setting: str = "mltFields") -> str:
    fields = parse_csv_list(value)
    for name in fields:
        _require_field_name(name, setting=setting)
    return ",".join(fields)


def _require_field_name(name: str, *, setting: str) -> str:
    if not _FIELD_NAME_RE.match(name or ""):
        raise InvalidConfigurationError(
            message=f"invalid field name in {setting}: {name!r}",
            detail={"setting": setting, "value": str(name)},
        )
    return name


# --- text helpers ---


def strip_markup(text: object) -> str:
    """
    [职责] 去除 HTML 标签并解码实体，折叠空白。
    [边界] 非严格 HTML 解析；list 内容按空格拼接。
    """
    if text is None:
        return ""
    if isinstance(text, (list, tuple)):
        text = " ".join(str(t) for t in text if t is not None)
    cleaned = html.unescape(_TAG_RE.sub(" ", str(text)))
    return _WS_RE.sub(" ", cleaned).strip()


def build_source_text(title: object, content: object, *, max_chars: int = SOURCE_TEXT_MAX_CHARS) -> Optional[str]:
    """
    [职责] KNN 查询文本：title + content（去标签、折叠空白、截断到 embedding 输入上限）。
    [边界] 结果为空返回 None（调用方视为 not indexed）。
    """
    text = f"{strip_markup(title)} {strip_markup(content)}".strip()
    if len(text) > max_chars:
        text = text[:max_chars]
    return text or None


# --- filters ---


def build_filter_clauses(filters: QueryFilters) -> List[str]:
    """
    [职责] 类型白名单/黑名单与容器过滤 -> fq 子句列表。
    [边界] 白名单非空时忽略黑名单；容器 id 仅接受整数。
    """
    clauses: List[str] = []
    if filters.allowed_types:
        clauses.append(" OR ".join(f"type:{escape_query_value(t)}" for t in filters.allowed_types))
    elif filters.excluded_types:
        clauses.append(" AND ".join(f"-type:{escape_query_value(t)}" for t in filters.excluded_types))

    if filters.container_ids:
        pids = [str(int(pid)) for pid in filters.container_ids]
        clauses.append(f"pid:({' OR '.join(pids)})")
    return clauses


def make_filters(
    *,
    allowed_types: Iterable[str] = (),
    excluded_types: Iterable[str] = (),
    container_ids: Iterable[int] = (),
) -> QueryFilters:
    return QueryFilters(
        allowed_types=tuple(allowed_types),
        excluded_types=tuple(excluded_types),
        container_ids=tuple(int(p) for p in container_ids),
    )


def inflate_rows(max_results: int, *, fused: bool) -> int:
    """Sub-queries feeding fusion request `max_results * HYBRID_ROW_FACTOR` rows."""
    rows = max(1, int(max_results))
    return rows * HYBRID_ROW_FACTOR if fused else rows


def _with_filters(params: List[Tuple[str, str]], filters: QueryFilters) -> Tuple[Tuple[str, str], ...]:
    params.extend(("fq", clause) for clause in build_filter_clauses(filters))
    return tuple(params)


def _mlt_params(
    *,
    backend_id: str,
    mlt_fields: str,
    min_term_freq: int,
    min_doc_freq: int,
    boost_fields: str,
    rows: int,
) -> List[Tuple[str, str]]:
    return [
        ("q", f"id:{escape_query_value(backend_id)}"),
        ("mlt.fl", normalize_field_list(mlt_fields)),
        ("mlt.mintf", str(int(min_term_freq))),
        ("mlt.mindf", str(int(min_doc_freq))),
        ("mlt.boost", "true"),
        ("mlt.qf", normalize_boost_fields(boost_fields)),
        ("mlt.match.include", "false"),
        ("rows", str(int(rows))),
        ("fl", RESULT_FIELDS),
    ]


# --- descriptors ---


def build_lexical_query(
    target: DocumentRef,
    backend_id: str,
    *,
    mlt_fields: str,
    min_term_freq: int,
    min_doc_freq: int,
    boost_fields: str,
    rows: int,
    filters: QueryFilters = QueryFilters(),
) -> QueryDescriptor:
    """
    [职责] MoreLikeThis 查询：以源文档在索引中的 id 为种子，按 mlt.fl/mlt.qf 计算 TF-IDF 相似度。
    [边界] backend_id 来自 resolve_document_id；源文档不包含在结果中（mlt.match.include=false）。
    """
    params = _mlt_params(
        backend_id=backend_id,
        mlt_fields=mlt_fields,
        min_term_freq=min_term_freq,
        min_doc_freq=min_doc_freq,
        boost_fields=boost_fields,
        rows=rows,
    )
    return QueryDescriptor(
        algorithm="lexical",
        target=target,
        handler=MLT_HANDLER,
        params=_with_filters(params, filters),
        rows=int(rows),
        field_weights=tuple(parse_boost_fields(boost_fields)),
        filters=filters,
    )


def build_vector_query(
    target: DocumentRef,
    source_text: str,
    *,
    model_name: str,
    vector_field: str,
    top_k: int,
    rows: int,
    filters: QueryFilters = QueryFilters(),
) -> QueryDescriptor:
    """
    [职责] KNN 查询：由后端 text-to-vector 模型把源文本编码后做近邻检索，并排除源文档自身。
    [边界] 模型名/向量字段进入 local params，必须是合法标识符。
    """
    _require_field_name(model_name, setting="vectorModelName")
    _require_field_name(vector_field, setting="vectorField")
    knn = f"{{!knn_text_to_vector model={model_name} f={vector_field} topK={int(top_k)}}}{source_text}"
    params: List[Tuple[str, str]] = [
        ("q", knn),
        ("rows", str(int(rows))),
        ("fl", RESULT_FIELDS),
        ("fq", f"-(type:{escape_query_value(target.type)} AND uid:{int(target.uid)})"),
    ]
    return QueryDescriptor(
        algorithm="vector",
        target=target,
        handler=SELECT_HANDLER,
        params=_with_filters(params, filters),
        rows=int(rows),
        filters=filters,
    )


def build_hybrid_native_query(
    target: DocumentRef,
    backend_id: str,
    *,
    mlt_fields: str,
    min_term_freq: int,
    min_doc_freq: int,
    boost_fields: str,
    rows: int,
    smlt_mode: str,
    mlt_weight: float,
    vector_weight: float,
    model_name: str,
    filters: QueryFilters = QueryFilters(),
) -> QueryDescriptor:
    """
    [职责] 单请求原生 hybrid：后端 smlt handler 自行计算并混合 MLT 与向量分数。
    [边界] 客户端不再融合；返回的 mltScore/vectorScore 由 parser 读取为子分数。
    """
    _require_field_name(smlt_mode, setting="smltMode")
    _require_field_name(model_name, setting="vectorModelName")
    params = _mlt_params(
        backend_id=backend_id,
        mlt_fields=mlt_fields,
        min_term_freq=min_term_freq,
        min_doc_freq=min_doc_freq,
        boost_fields=boost_fields,
        rows=rows,
    )
    params.extend(
        [
            ("smlt.mode", smlt_mode),
            ("smlt.mltWeight", repr(float(mlt_weight))),
            ("smlt.vectorWeight", repr(float(vector_weight))),
            ("smlt.model", model_name),
        ]
    )
    return QueryDescriptor(
        algorithm="hybrid-native",
        target=target,
        handler=SMLT_HANDLER,
        params=_with_filters(params, filters),
        rows=int(rows),
        field_weights=tuple(parse_boost_fields(boost_fields)),
        filters=filters,
    )


def build_lookup_query(target: DocumentRef, fields: Sequence[str] = ("id",)) -> QueryDescriptor:
    """Point lookup `type:T AND uid:U` returning at most one document."""
    for name in fields:
        _require_field_name(name, setting="fl")
    params: Tuple[Tuple[str, str], ...] = (
        ("q", f"type:{escape_query_value(target.type)} AND uid:{int(target.uid)}"),
        ("fl", ",".join(fields)),
        ("rows", "1"),
    )
    return QueryDescriptor(algorithm="lookup", target=target, handler=SELECT_HANDLER, params=params, rows=1)


def validate_query_settings(
    *,
    mlt_fields: str,
    boost_fields: str,
    model_name: str,
    vector_field: str,
    smlt_mode: str,
) -> None:
    """
    [职责] 在发起任何请求前校验会进入查询语法的配置值（字段名、权重、模型名）。
    [边界] 失败抛 InvalidConfigurationError；不返回归一化结果。
    """
    normalize_field_list(mlt_fields)
    normalize_boost_fields(boost_fields)
    _require_field_name(model_name, setting="vectorModelName")
    _require_field_name(vector_field, setting="vectorField")
    _require_field_name(smlt_mode, setting="smltMode")
