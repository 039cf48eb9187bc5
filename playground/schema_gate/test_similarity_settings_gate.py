# playground/schema_gate/test_similarity_settings_gate.py

"""
[职责] Schema gate：SimilaritySettings 的默认值、别名、空值回落与非法值转换；SimilarityRecord/SuggestionItem 合同。
[边界] 不触发 DB/Solr；只测试 Pydantic schema 行为。
[上游关系] backend/schemas/similarity.py、backend/utils/errors.py。
[下游关系] pipeline/services/api 依赖这些合同。
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from semantic_suggest.backend.schemas.audit import TimingSnapshot, TraceContext
from semantic_suggest.backend.schemas.ids import is_uuid_str
from semantic_suggest.backend.schemas.similarity import SimilarityRecord, SimilaritySettings, SuggestionItem
from semantic_suggest.backend.utils.errors import InvalidConfigurationError, to_http_error


pytestmark = pytest.mark.schema_gate


def test_settings_defaults() -> None:
    s = SimilaritySettings.from_mapping({})
    assert s.similarity_mode == "auto"
    assert s.max_results == 6
    assert s.min_term_freq == 1 and s.min_doc_freq == 1
    assert s.mlt_fields == "content,title,keywords"
    assert s.boost_fields == "content^0.5,title^1.2,keywords^2.0"
    assert s.vector_top_k == 50
    assert s.vector_model_name == "llm"
    assert (s.lexical_weight, s.vector_weight) == (0.4, 0.6)
    assert (s.smlt_mlt_weight, s.smlt_vector_weight) == (0.3, 0.7)
    assert s.min_score == 0.0 and s.min_score_ratio == 0.0
    assert s.allowed_types == [] and s.excluded_types == [] and s.filter_by_pids == []
    assert s.vector_search_enabled is None


def test_settings_accept_camel_case_string_map() -> None:
    """Plugin-style flat map of strings."""  # docstring: 字符串强制转换
    s = SimilaritySettings.from_mapping(
        {
            "similarityMode": "knn",
            "maxResults": "3",
            "mltWeight": "0.5",
            "knnWeight": "0.5",
            "excludeContentTypes": "tx_news_domain_model_news, sys_file",
            "filterByPids": "12,14",
            "minScoreRatio": "0.25",
            "showImage": "1",
        }
    )
    assert s.similarity_mode == "knn"
    assert s.max_results == 3
    assert (s.lexical_weight, s.vector_weight) == (0.5, 0.5)
    assert s.excluded_types == ["tx_news_domain_model_news", "sys_file"]
    assert s.filter_by_pids == [12, 14]
    assert s.min_score_ratio == 0.25


def test_blank_values_fall_back_to_defaults() -> None:
    s = SimilaritySettings.from_mapping({"maxResults": "", "mltFields": "  ", "allowedTypes": ""})
    assert s.max_results == 6
    assert s.mlt_fields == "content,title,keywords"
    assert s.allowed_types == []


def test_overrides_win_over_map_and_skip_none() -> None:
    s = SimilaritySettings.from_mapping({"maxResults": "9", "mode": "mlt"}, max_results=2, similarity_mode=None)
    assert s.max_results == 2
    assert s.similarity_mode == "mlt"


@pytest.mark.parametrize(
    "data",
    [
        {"maxResults": "many"},
        {"maxResults": "0"},
        {"filterByPids": "1,abc"},
        {"boostFields": "title^heavy"},
        {"lexicalWeight": "-1"},
    ],
)
def test_invalid_settings_raise_invalid_configuration(data) -> None:
    with pytest.raises(InvalidConfigurationError) as exc_info:
        SimilaritySettings.from_mapping(data)
    status, payload = to_http_error(exc_info.value, trace_id="t-1")
    assert status == 400
    assert payload["error"]["code"] == "similarity.invalid_configuration"
    assert payload["error"]["trace_id"] == "t-1"


def test_effective_vector_enabled_override() -> None:
    assert SimilaritySettings.from_mapping({}).effective_vector_enabled(True) is True
    assert SimilaritySettings.from_mapping({"vectorSearchEnabled": "false"}).effective_vector_enabled(True) is False
    assert SimilaritySettings.from_mapping({"vectorSearchEnabled": "1"}).effective_vector_enabled(False) is True


def test_suggestion_item_contract() -> None:
    item = SuggestionItem(rank=1, type="pages", uid=3, score=0.5, algorithm_origin="hybrid")
    assert item.subscores == {}
    with pytest.raises(ValidationError):
        SuggestionItem(rank=0, type="pages", uid=3, algorithm_origin="lexical")
    with pytest.raises(ValidationError):
        SuggestionItem(rank=1, type="pages", uid=3, algorithm_origin="fused")
    with pytest.raises(ValidationError):
        SuggestionItem(rank=1, type="pages", uid=3, algorithm_origin="lexical", image="x.png")


def test_similarity_record_defaults() -> None:
    rec = SimilarityRecord(doc_type="pages", doc_uid=7)
    assert rec.errors == {}
    assert rec.result_count == 0
    assert isinstance(rec.timing, TimingSnapshot)
    with pytest.raises(ValidationError):
        SimilarityRecord(doc_type="pages", doc_uid=0)


def test_trace_context_generates_ids() -> None:
    ctx = TraceContext()
    assert is_uuid_str(ctx.trace_id)
    assert ctx.parent_request_id is None
