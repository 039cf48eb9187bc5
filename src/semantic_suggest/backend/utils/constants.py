# src/semantic_suggest/backend/utils/constants.py

"""
[职责] 集中定义默认常量与协议字段名（trace/timing/相似度默认值/Solr 字段），降低跨模块硬编码。
[边界] 不包含运行时可变配置；不读取环境变量；不依赖具体检索实现。
[上游关系] services/pipelines/api 在构建查询/记录/响应时引用这些稳定字段与默认值。
[下游关系] schemas/db/logging 等使用一致字段名以便审计与回放。
"""

from __future__ import annotations


TRACE_ID_KEY = "trace_id"  # docstring: trace_id 字段
REQUEST_ID_KEY = "request_id"  # docstring: request_id 字段
PARENT_REQUEST_ID_KEY = "parent_request_id"  # docstring: parent_request_id 字段

DOC_TYPE_KEY = "doc_type"  # docstring: 源文档类型字段
DOC_UID_KEY = "doc_uid"  # docstring: 源文档 uid 字段
ROOT_ID_KEY = "root_id"  # docstring: 站点根节点字段
LANGUAGE_ID_KEY = "language_id"  # docstring: 语言字段
CORE_KEY = "core"  # docstring: Solr core（partition）字段
ALGORITHM_KEY = "algorithm"  # docstring: 算法标识字段

TRACE_FIELD_KEYS = (  # docstring: 结构化日志推荐字段集合
    TRACE_ID_KEY,
    REQUEST_ID_KEY,
    PARENT_REQUEST_ID_KEY,
    DOC_TYPE_KEY,
    DOC_UID_KEY,
    ROOT_ID_KEY,
    LANGUAGE_ID_KEY,
    CORE_KEY,
)

TIMING_TOTAL_KEY = "total"  # docstring: timing_ms 的总耗时 key（短形式）
TIMING_TOTAL_MS_KEY = "total_ms"  # docstring: timing_ms 的总耗时 key（含单位）


# --- similarity defaults ---

DEFAULT_DOC_TYPE = "pages"  # docstring: 缺失 type 时的默认文档类型
DEFAULT_MAX_RESULTS = 6  # docstring: 默认建议条数
DEFAULT_MLT_FIELDS = "content,title,keywords"  # docstring: MLT 默认字段
DEFAULT_BOOST_FIELDS = "content^0.5,title^1.2,keywords^2.0"  # docstring: MLT 默认加权字段
DEFAULT_VECTOR_TOP_K = 50  # docstring: KNN 默认 topK
DEFAULT_VECTOR_MODEL = "llm"  # docstring: Solr model store 中的 embedding 模型名
DEFAULT_VECTOR_FIELD = "vector"  # docstring: 向量字段名
DEFAULT_LEXICAL_WEIGHT = 0.4  # docstring: hybrid 融合 lexical 权重
DEFAULT_VECTOR_WEIGHT = 0.6  # docstring: hybrid 融合 vector 权重
DEFAULT_SMLT_MLT_WEIGHT = 0.3  # docstring: 原生 hybrid（smlt）lexical 权重
DEFAULT_SMLT_VECTOR_WEIGHT = 0.7  # docstring: 原生 hybrid（smlt）vector 权重

HYBRID_ROW_FACTOR = 2  # docstring: 融合前子查询 rows 放大倍数
SOURCE_TEXT_MAX_CHARS = 2000  # docstring: KNN 查询文本上限（embedding 输入限制）
SNIPPET_MAX_CHARS = 200  # docstring: 摘要最大长度
SNIPPET_MIN_BREAK = 150  # docstring: 单词边界回退下限（距上限 50 字符内）
ELLIPSIS = "…"  # docstring: 截断省略号

EXCLUDED_DOKTYPES = (254, 255, 199)  # docstring: sysfolder / recycler / separator 不参与批量

PERSIST_SOURCE = "solr"  # docstring: 持久化 source 标识
