# src/semantic_suggest/backend/pipelines/base/timing.py

"""
[职责] 阶段计时：为相似度 pipeline 收集 routing/resolve/lexical/vector/fusion/policy 等阶段耗时（ms）。
[边界] 不做 tracing/profiling；不写日志；只导出可 JSON 序列化的 timing dict。
[上游关系] pipelines/similarity/pipeline.py 用 stage(...) 包裹各阶段。
[下游关系] SimilarityRecord.timing_ms 与 gate tests 的结构断言。
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator


def _now_ms() -> float:
    return time.perf_counter() * 1000.0  # docstring: 单调时钟（仅用于相对耗时）


@dataclass
class TimingCollector:
    """
    [职责] 记录单次检索的分阶段耗时，导出时附加 total。
    [边界] 单协程内使用；并发子查询各自写入不同 key。
    """

    _stages_ms: Dict[str, float] = field(default_factory=dict)
    _start_ms: float = field(default_factory=_now_ms)

    def reset(self) -> None:
        self._stages_ms.clear()
        self._start_ms = _now_ms()  # docstring: total 重新起算

    @contextmanager
    def stage(self, key: str) -> Iterator[None]:
        """with timing.stage("lexical"): ... 退出时写入耗时（异常路径同样记录，同名阶段覆盖）。"""
        start = _now_ms()
        try:
            yield
        finally:
            self._stages_ms[str(key)] = max(0.0, _now_ms() - start)

    def total_ms(self) -> float:
        return _now_ms() - self._start_ms

    def to_dict(self, *, total_key: str = "total") -> Dict[str, float]:
        out = dict(self._stages_ms)
        out[total_key] = float(self.total_ms())  # docstring: total 不等于阶段之和（并发子查询重叠）
        return out
