# playground/mode_gate/test_mode_gate.py

"""
[职责] mode gate：锁死 mode token -> 算法路径的映射，以及 auto 对向量能力信号的依赖。
[边界] 纯函数测试；不触发网络与 DB。
[上游关系] backend/pipelines/similarity/mode.py。
[下游关系] pipeline 依据路径决定是否融合。
"""

from __future__ import annotations

import pytest

from semantic_suggest.backend.pipelines.similarity.mode import resolve_similarity_path, uses_fusion
from semantic_suggest.backend.utils.errors import InvalidConfigurationError


pytestmark = pytest.mark.mode_gate


@pytest.mark.parametrize(
    "token,expected",
    [
        ("lexical", "lexical"),
        ("vector", "vector"),
        ("hybrid", "hybrid"),
        ("mlt", "lexical"),
        ("knn", "vector"),
        ("smlt", "hybrid_native"),
        ("  MLT ", "lexical"),
    ],
)
@pytest.mark.parametrize("vector_enabled", [True, False])
def test_explicit_tokens_ignore_capability_signal(token: str, expected: str, vector_enabled: bool) -> None:
    assert resolve_similarity_path(token, vector_enabled) == expected


def test_auto_follows_vector_signal() -> None:
    """auto: vector available -> hybrid, otherwise lexical."""  # docstring: 能力信号驱动
    assert resolve_similarity_path("auto", True) == "hybrid"
    assert resolve_similarity_path("auto", False) == "lexical"
    assert resolve_similarity_path(None, True) == "hybrid"
    assert resolve_similarity_path("", False) == "lexical"


def test_unknown_token_fails_fast() -> None:
    with pytest.raises(InvalidConfigurationError) as exc_info:
        resolve_similarity_path("semantic", True)
    err = exc_info.value
    assert err.error_code == "similarity.invalid_configuration"
    assert err.http_status == 400
    assert err.detail["mode"] == "semantic"
    assert "smlt" in err.detail["allowed"]


def test_only_hybrid_fuses() -> None:
    assert uses_fusion("hybrid") is True
    assert uses_fusion("hybrid_native") is False
    assert uses_fusion("lexical") is False
