# src/semantic_suggest/backend/pipelines/similarity/parse.py

"""
[职责] Response Parser：将异构的 Solr 响应形态归一化为有序 Candidate 列表。
[边界] 不发起请求；不融合/过滤；无法识别的结构返回空列表并输出诊断事件（strict 模式除外）。
[上游关系] pipeline 将 SolrClient.execute 返回的 RawBackendResponse 传入。
[下游关系] fusion/policy 消费 Candidate 列表。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from semantic_suggest.backend.utils.constants import (
    DEFAULT_DOC_TYPE,
    ELLIPSIS,
    SNIPPET_MAX_CHARS,
    SNIPPET_MIN_BREAK,
)
from semantic_suggest.backend.utils.errors import UnparsableResponseError
from semantic_suggest.backend.utils.logging_ import get_logger, log_event

from .query import strip_markup
from .types import Algorithm, AlgorithmOrigin, Candidate, DocumentRef, RawBackendResponse


logger = get_logger("similarity.parse")

RESULT_SECTIONS: Tuple[str, ...] = ("moreLikeThis", "response")  # docstring: 按顺序尝试的结果段

Docs = List[Mapping[str, Any]]
ShapeStrategy = Callable[[Any, Optional[str]], Optional[Docs]]

_ORIGIN_BY_ALGORITHM: Dict[str, AlgorithmOrigin] = {
    "lexical": "lexical",
    "vector": "vector",
    "hybrid-native": "hybrid-native",
}


def _docs_of(value: Any) -> Optional[Docs]:
    if isinstance(value, Mapping) and isinstance(value.get("docs"), list):
        return [d for d in value["docs"] if isinstance(d, Mapping)]
    return None


def _flat_pairs(section: Any, source_backend_id: Optional[str]) -> Optional[Docs]:
    """Shape (a): ["id1", {"numFound": .., "docs": [..]}, ...] (json.nl=flat)."""
    if not isinstance(section, list):
        return None
    for idx in range(1, len(section), 2):
        docs = _docs_of(section[idx])
        if docs is not None:
            return docs
    return None


def _keyed_by_source(section: Any, source_backend_id: Optional[str]) -> Optional[Docs]:
    """Shape (b): {"<source id>": {"docs": [..]}}; falls back to the first entry carrying docs."""
    if not isinstance(section, Mapping):
        return None
    if source_backend_id is not None:
        docs = _docs_of(section.get(source_backend_id))
        if docs is not None:
            return docs
    for value in section.values():
        docs = _docs_of(value)
        if docs is not None:
            return docs
    return None


def _direct_docs(section: Any, source_backend_id: Optional[str]) -> Optional[Docs]:
    """Shape (c): {"numFound": .., "docs": [..]}."""
    return _docs_of(section)


SHAPE_STRATEGIES: Tuple[ShapeStrategy, ...] = (_flat_pairs, _keyed_by_source, _direct_docs)


def locate_docs(payload: Mapping[str, Any], source_backend_id: Optional[str] = None) -> Optional[Docs]:
    """
    [职责] 依次在结果段（moreLikeThis -> response）上尝试各形态策略，返回第一个命中的 docs。
    [边界] 全部失败返回 None（不是错误）。
    """
    if not isinstance(payload, Mapping):
        return None
    for name in RESULT_SECTIONS:
        if name not in payload:
            continue
        section = payload[name]
        for strategy in SHAPE_STRATEGIES:
            docs = strategy(section, source_backend_id)
            if docs is not None:
                return docs
    return None


def build_snippet(content: Any, *, max_chars: int = SNIPPET_MAX_CHARS, min_break: int = SNIPPET_MIN_BREAK) -> str:
    """
    [职责] 去标签、折叠空白后截断到 max_chars；截断位置前的最后一个空格在 min_break 之后时在该空格处截断。
    [边界] 发生截断才追加省略号。
    """
    text = strip_markup(content)
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    last_space = cut.rfind(" ")
    if last_space > min_break:
        cut = cut[:last_space]
    return cut + ELLIPSIS


def build_type_label(doc_type: str) -> str:
    """'tx_news_domain_model_news' -> 'News news'; 'pages' -> 'Pages'."""
    label = str(doc_type or "").replace("tx_", "").replace("_domain_model_", " ").strip()
    return label[:1].upper() + label[1:]


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_uid(value: Any) -> int:
    if isinstance(value, list):
        value = value[0] if value else 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _first_text(value: Any) -> str:
    if isinstance(value, list):
        return strip_markup(value[0] if value else "")
    return "" if value is None else strip_markup(value)


def _subscores(algorithm: Algorithm, doc: Mapping[str, Any], score: float) -> Dict[str, float]:
    if algorithm == "lexical":
        return {"lexical_score": score}
    if algorithm == "vector":
        return {"vector_score": score}
    out: Dict[str, float] = {}
    if "mltScore" in doc:
        out["lexical_score"] = _as_float(doc.get("mltScore"))
    if "vectorScore" in doc:
        out["vector_score"] = _as_float(doc.get("vectorScore"))
    return out


def normalize_doc(doc: Mapping[str, Any], algorithm: Algorithm) -> Optional[Candidate]:
    """
    [职责] 单文档 -> Candidate（缺失字段取默认值，type 缺失为 pages）。
    [边界] uid 非正的文档无法被引用，返回 None。
    """
    uid = _as_uid(doc.get("uid"))
    if uid <= 0:
        return None
    doc_type = _first_text(doc.get("type")) or DEFAULT_DOC_TYPE
    score = _as_float(doc.get("score"))
    return Candidate(
        title=_first_text(doc.get("title")),
        url=_first_text(doc.get("url")),
        type=doc_type,
        type_label=build_type_label(doc_type),
        score=score,
        subscores=_subscores(algorithm, doc, score),
        snippet=build_snippet(doc.get("content")),
        document_ref=DocumentRef(type=doc_type, uid=uid),
        algorithm_origin=_ORIGIN_BY_ALGORITHM.get(algorithm, "lexical"),
    )


def parse_response(
    raw: RawBackendResponse,
    *,
    exclude: Optional[DocumentRef] = None,
    strict: bool = False,
    context: Optional[Any] = None,
) -> List[Candidate]:
    """
    [职责] RawBackendResponse -> 有序 Candidate 列表（保持后端顺序，按 DocumentRef 去重，排除源文档）。
    [边界] 结构无法识别：记录 similarity.parse.unparsable（含顶层 keys）并返回空；strict=True 时抛 UnparsableResponseError。
    """
    docs = locate_docs(raw.payload, raw.source_backend_id)
    if docs is None:
        top_level_keys = sorted(str(k) for k in raw.payload.keys()) if isinstance(raw.payload, Mapping) else []
        log_event(
            logger,
            logging.WARNING,
            "similarity.parse.unparsable",
            context=context,
            fields={"algorithm": raw.algorithm, "top_level_keys": top_level_keys},
        )
        if strict:
            raise UnparsableResponseError(detail={"algorithm": raw.algorithm, "top_level_keys": top_level_keys})
        return []

    out: List[Candidate] = []
    seen = set()
    for doc in docs:
        cand = normalize_doc(doc, raw.algorithm)
        if cand is None:
            continue
        if exclude is not None and cand.document_ref == exclude:
            continue  # docstring: 源文档不作为自身的建议
        if cand.key in seen:
            continue
        seen.add(cand.key)
        out.append(cand)
    return out


def first_doc(payload: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """First document of a plain select response (lookup queries)."""
    docs: Optional[Sequence[Mapping[str, Any]]] = locate_docs(payload)
    if not docs:
        return None
    return docs[0]
