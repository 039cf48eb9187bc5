# src/semantic_suggest/backend/pipelines/similarity/policy.py

"""
[职责] Result Policy Filter：类型白/黑名单、绝对阈值、相对阈值、条数截断。
[边界] 纯过滤，不重排（输入已按分数排序）；相对阈值基于过滤前的首位分数。
[上游关系] pipeline 在 parse/fusion 之后调用。
[下游关系] 产出最终 ranked result set。
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from .types import Candidate


def apply_result_policy(
    candidates: Sequence[Candidate],
    *,
    allowed_types: Iterable[str] = (),
    excluded_types: Iterable[str] = (),
    min_score: float = 0.0,
    min_score_ratio: float = 0.0,
    max_results: Optional[int] = None,
) -> List[Candidate]:
    """
    [职责] 依序应用：(1) 白名单（非空则跳过 2）(2) 黑名单 (3) minScore (4) minScoreRatio (5) maxResults。
    [边界] 阈值 <= 0 表示关闭；score < threshold 被丢弃（等于阈值保留）。
    """
    allowed = {t for t in allowed_types if t}
    excluded = {t for t in excluded_types if t}
    top_score = float(candidates[0].score) if candidates else 0.0  # docstring: 过滤前首位分数

    out = list(candidates)
    if allowed:
        out = [c for c in out if c.type in allowed]
    elif excluded:
        out = [c for c in out if c.type not in excluded]

    if min_score > 0:
        out = [c for c in out if c.score >= min_score]

    if min_score_ratio > 0 and top_score > 0:
        threshold = top_score * float(min_score_ratio)
        out = [c for c in out if c.score >= threshold]

    if max_results is not None:
        out = out[: max(0, int(max_results))]
    return out
