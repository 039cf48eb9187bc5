# src/semantic_suggest/backend/pipelines/similarity/fusion.py

"""
[职责] fusion：按各自最大分归一化 lexical/vector 候选，按 DocumentRef 合并并加权，产出去重后的稳定排序列表。
[边界] 纯函数；不落库；不过滤类型/阈值（由 policy 负责）。
[上游关系] pipeline 在 hybrid 路径上传入两路 parse 结果与 FusionPolicy。
[下游关系] policy.apply_result_policy 消费融合结果。
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, TypeVar, cast

from .types import Candidate, FusionPolicy


T = TypeVar("T")


@dataclass
class _Merged:
    """Per-DocumentRef accumulator."""  # docstring: 融合内部使用的可变累加结构

    first_seen: int
    lexical: Optional[Candidate] = None
    vector: Optional[Candidate] = None
    lexical_score: float = 0.0
    vector_score: float = 0.0

    @property
    def dual(self) -> bool:
        return self.lexical is not None and self.vector is not None


def normalize_scores(candidates: Sequence[Candidate]) -> List[Candidate]:
    """
    [职责] 用列表最大分做除数归一化到 [0,1]。
    [边界] 最大分 <= 0 时原样返回（避免除零放大）。
    """
    if not candidates:
        return []
    top = max(float(c.score) for c in candidates)
    if top <= 0:
        return list(candidates)
    return [replace(c, score=float(c.score) / top) for c in candidates]


def _choose(primary: T, fallback: T) -> T:
    if isinstance(primary, str) and not primary.strip():
        return fallback  # docstring: lexical 侧为空白时用 vector 侧补齐
    return primary


def _merge_display(lexical: Optional[Candidate], vector: Optional[Candidate]) -> Candidate:
    if lexical is None or vector is None:
        return cast(Candidate, lexical or vector)
    return replace(
        lexical,
        title=_choose(lexical.title, vector.title),
        url=_choose(lexical.url, vector.url),
        type_label=_choose(lexical.type_label, vector.type_label),
        snippet=_choose(lexical.snippet, vector.snippet),
    )


def fuse_candidates(
    lexical: Sequence[Candidate],
    vector: Sequence[Candidate],
    policy: FusionPolicy = FusionPolicy(),
    top_k: Optional[int] = None,
) -> List[Candidate]:
    """
    [职责] 加权融合：fused = lw * lexical + vw * vector（单路命中的另一路子分补 0）。
    [边界] 同分时双路命中优先，其次按首次出现顺序（lexical 列表在前）；top_k 为 None 时不截断。
    [上游关系] pipeline hybrid 路径。
    [下游关系] algorithm_origin：双路命中为 hybrid，单路保留原来源。
    """
    if top_k is not None and int(top_k) <= 0:
        return []

    merged: Dict[str, _Merged] = {}
    order = 0
    for cand in normalize_scores(lexical):
        slot = merged.get(cand.key)
        if slot is None:
            slot = merged[cand.key] = _Merged(first_seen=order)
            order += 1
        if slot.lexical is None:
            slot.lexical = cand
            slot.lexical_score = float(cand.score)
    for cand in normalize_scores(vector):
        slot = merged.get(cand.key)
        if slot is None:
            slot = merged[cand.key] = _Merged(first_seen=order)
            order += 1
        if slot.vector is None:
            slot.vector = cand
            slot.vector_score = float(cand.score)

    lw = float(policy.lexical_weight)
    vw = float(policy.vector_weight)

    scored = []
    for slot in merged.values():
        fused = lw * slot.lexical_score + vw * slot.vector_score
        base = _merge_display(slot.lexical, slot.vector)
        origin = "hybrid" if slot.dual else base.algorithm_origin
        cand = replace(
            base,
            score=fused,
            subscores={"lexical_score": slot.lexical_score, "vector_score": slot.vector_score},
            algorithm_origin=origin,
        )
        scored.append((cand, slot.dual, slot.first_seen))

    scored.sort(key=lambda item: (-item[0].score, not item[1], item[2]))  # docstring: 分数 > 双路 > 首见顺序
    out = [item[0] for item in scored]
    return out if top_k is None else out[: int(top_k)]
