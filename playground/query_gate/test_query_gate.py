# playground/query_gate/test_query_gate.py

"""
[职责] query gate：验证 MLT / KNN / smlt / lookup descriptor 的参数、转义、行数放大与过滤子句。
[边界] 只检查 descriptor 内容；不发送请求。
[上游关系] backend/pipelines/similarity/query.py。
[下游关系] SolrClient 直接编码这些参数，结构漂移会改变后端语义。
"""

from __future__ import annotations

import pytest

from semantic_suggest.backend.pipelines.similarity import query as query_mod
from semantic_suggest.backend.pipelines.similarity.types import DocumentRef, QueryFilters
from semantic_suggest.backend.utils.errors import InvalidConfigurationError


pytestmark = pytest.mark.query_gate

REF = DocumentRef(type="pages", uid=42)


def _lexical(**kw):
    args = dict(
        mlt_fields="content,title,keywords",
        min_term_freq=1,
        min_doc_freq=1,
        boost_fields="content^0.5,title^1.2,keywords^2.0",
        rows=6,
    )
    args.update(kw)
    return query_mod.build_lexical_query(REF, "site/pages/42", **args)


def test_escape_is_single_pass() -> None:
    """Backslash is escaped once, together with the other control characters."""  # docstring: 不二次转义
    assert query_mod.escape_query_value("a:b") == "a\\:b"
    assert query_mod.escape_query_value("a\\b") == "a\\\\b"
    assert query_mod.escape_query_value("x y") == "x\\ y"
    assert query_mod.escape_query_value("site/pages/42") == "site\\/pages\\/42"
    assert query_mod.escape_query_value("plain_id-1") == "plain_id\\-1"


def test_lexical_descriptor_params() -> None:
    d = _lexical()
    assert d.algorithm == "lexical"
    assert d.handler == "mlt"
    assert d.get("q") == "id:site\\/pages\\/42"
    assert d.get("mlt.fl") == "content,title,keywords"
    assert d.get("mlt.qf") == "content^0.5 title^1.2 keywords^2.0"
    assert d.get("mlt.mintf") == "1" and d.get("mlt.mindf") == "1"
    assert d.get("mlt.boost") == "true"
    assert d.get("mlt.match.include") == "false"
    assert d.get("rows") == "6"
    assert d.get("fl") == "*,score"
    assert d.field_weights == (("content", 0.5), ("title", 1.2), ("keywords", 2.0))
    assert d.get_all("fq") == []


def test_filter_clauses_allow_list_wins() -> None:
    filters = query_mod.make_filters(
        allowed_types=["pages", "tx_news_domain_model_news"],
        excluded_types=["sys_file"],
        container_ids=[3, 9],
    )
    d = _lexical(filters=filters)
    assert d.get_all("fq") == ["type:pages OR type:tx_news_domain_model_news", "pid:(3 OR 9)"]


def test_filter_clauses_deny_list() -> None:
    filters = query_mod.make_filters(excluded_types=["sys_file", "tt_content"])
    assert query_mod.build_filter_clauses(filters) == ["-type:sys_file AND -type:tt_content"]
    assert query_mod.build_filter_clauses(QueryFilters()) == []


def test_vector_descriptor_excludes_source() -> None:
    d = query_mod.build_vector_query(
        REF,
        "Title body text",
        model_name="llm",
        vector_field="vector",
        top_k=50,
        rows=12,
    )
    assert d.algorithm == "vector"
    assert d.handler == "select"
    assert d.get("q") == "{!knn_text_to_vector model=llm f=vector topK=50}Title body text"
    assert d.get("rows") == "12"
    assert d.get_all("fq") == ["-(type:pages AND uid:42)"]


def test_vector_descriptor_rejects_bad_model_name() -> None:
    with pytest.raises(InvalidConfigurationError):
        query_mod.build_vector_query(REF, "x", model_name="llm} evil", vector_field="vector", top_k=5, rows=5)


def test_hybrid_native_descriptor() -> None:
    d = query_mod.build_hybrid_native_query(
        REF,
        "site/pages/42",
        mlt_fields="content,title",
        min_term_freq=2,
        min_doc_freq=3,
        boost_fields="title^2",
        rows=6,
        smlt_mode="hybrid",
        mlt_weight=0.3,
        vector_weight=0.7,
        model_name="llm",
    )
    assert d.algorithm == "hybrid-native"
    assert d.handler == "smlt"
    assert d.get("smlt.mode") == "hybrid"
    assert d.get("smlt.mltWeight") == "0.3"
    assert d.get("smlt.vectorWeight") == "0.7"
    assert d.get("smlt.model") == "llm"
    assert d.get("mlt.mintf") == "2" and d.get("mlt.mindf") == "3"


def test_lookup_descriptor() -> None:
    d = query_mod.build_lookup_query(DocumentRef(type="tx_news_domain_model_news", uid=5), ("title", "content"))
    assert d.algorithm == "lookup"
    assert d.get("q") == "type:tx_news_domain_model_news AND uid:5"
    assert d.get("fl") == "title,content"
    assert d.rows == 1


def test_rows_inflated_only_for_fusion() -> None:
    assert query_mod.inflate_rows(6, fused=True) == 12
    assert query_mod.inflate_rows(6, fused=False) == 6


def test_source_text_strips_markup_and_truncates() -> None:
    text = query_mod.build_source_text("<h1>Hello</h1>", "<p>a&amp;b\n\n  c</p>")
    assert text == "Hello a&b c"
    long = query_mod.build_source_text("T", "x" * 5000)
    assert long is not None and len(long) == 2000
    assert query_mod.build_source_text("", "<br/>") is None


def test_boost_and_field_validation() -> None:
    assert query_mod.parse_boost_fields("title^2 content") == [("title", 2.0), ("content", 1.0)]
    with pytest.raises(InvalidConfigurationError):
        query_mod.normalize_boost_fields("title^x")
    with pytest.raises(InvalidConfigurationError):
        query_mod.normalize_field_list("content,ti tle;drop")
    with pytest.raises(InvalidConfigurationError):
        query_mod.validate_query_settings(
            mlt_fields="content",
            boost_fields="title^1",
            model_name="llm",
            vector_field="vector",
            smlt_mode="hybrid mode",
        )
