# playground/policy_gate/test_policy_gate.py

"""
[职责] policy gate：白/黑名单、绝对阈值、相对阈值（基于过滤前首位）与截断的顺序语义。
[边界] 纯函数测试。
[上游关系] backend/pipelines/similarity/policy.py。
[下游关系] 最终返回给调用方的建议列表。
"""

from __future__ import annotations

from typing import List

import pytest

from semantic_suggest.backend.pipelines.similarity.policy import apply_result_policy
from semantic_suggest.backend.pipelines.similarity.types import Candidate, DocumentRef


pytestmark = pytest.mark.policy_gate


def _cands(*pairs) -> List[Candidate]:
    out = []
    for uid, score, doc_type in pairs:
        out.append(
            Candidate(
                title="",
                url="",
                type=doc_type,
                type_label="",
                score=score,
                subscores={},
                snippet="",
                document_ref=DocumentRef(type=doc_type, uid=uid),
                algorithm_origin="lexical",
            )
        )
    return out


def _scores(cands: List[Candidate]) -> List[float]:
    return [c.score for c in cands]


def test_min_score() -> None:
    cands = _cands((1, 0.9, "pages"), (2, 0.5, "pages"), (3, 0.2, "pages"))
    assert _scores(apply_result_policy(cands, min_score=0.3)) == [0.9, 0.5]


def test_min_score_ratio() -> None:
    cands = _cands((1, 0.8, "pages"), (2, 0.5, "pages"), (3, 0.1, "pages"))
    assert _scores(apply_result_policy(cands, min_score_ratio=0.5)) == [0.8, 0.5]


def test_threshold_is_inclusive() -> None:
    cands = _cands((1, 1.0, "pages"), (2, 0.5, "pages"))
    assert _scores(apply_result_policy(cands, min_score=0.5)) == [1.0, 0.5]


def test_ratio_uses_top_score_before_type_filter() -> None:
    """The leading score comes from the unfiltered list."""  # docstring: 相对阈值基准
    cands = _cands((1, 1.0, "sys_file"), (2, 0.6, "pages"), (3, 0.4, "pages"))
    out = apply_result_policy(cands, excluded_types=["sys_file"], min_score_ratio=0.5)
    assert [c.document_ref.uid for c in out] == [2]


def test_allow_list_overrides_deny_list() -> None:
    cands = _cands((1, 0.9, "pages"), (2, 0.8, "tx_news_domain_model_news"), (3, 0.7, "sys_file"))
    out = apply_result_policy(cands, allowed_types=["pages", "sys_file"], excluded_types=["pages"])
    assert [c.type for c in out] == ["pages", "sys_file"]
    out = apply_result_policy(cands, excluded_types=["sys_file"])
    assert [c.type for c in out] == ["pages", "tx_news_domain_model_news"]


def test_max_results_truncates_last() -> None:
    cands = _cands(*[(i, 1.0 - i / 10, "pages") for i in range(1, 9)])
    assert len(apply_result_policy(cands, max_results=3)) == 3
    assert apply_result_policy([], max_results=3, min_score_ratio=0.5) == []


def test_zero_thresholds_disable_filters() -> None:
    cands = _cands((1, 0.0, "pages"), (2, -1.0, "pages"))
    assert len(apply_result_policy(cands, min_score=0, min_score_ratio=0.9)) == 2
