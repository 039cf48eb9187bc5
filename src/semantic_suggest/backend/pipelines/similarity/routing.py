# src/semantic_suggest/backend/pipelines/similarity/routing.py

"""
[职责] Partition 路由：由文档所在站点根节点与语言解析目标 Solr core，并提供页面树协议与 JSON 实现。
[边界] 根节点解析失败走显式兜底（首个可用根 -> DEFAULT_ROOT_PAGE_ID）；core 缺失抛 RoutingFailedError，绝不回落到错误语言的 core。
[上游关系] pipeline 在执行查询前调用 PartitionRouter.resolve；bulk driver 使用 PageTree 枚举页面。
[下游关系] SolrClient 使用 Partition.core 发送请求；SimilarityRecord 记录 root/core/fallback。
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

from semantic_suggest.backend.utils.constants import DEFAULT_DOC_TYPE, EXCLUDED_DOKTYPES
from semantic_suggest.backend.utils.errors import RoutingFailedError
from semantic_suggest.backend.utils.logging_ import get_logger, log_event

from .types import DocumentRef


logger = get_logger("similarity.routing")


class SiteResolver(Protocol):
    """External collaborator mapping a document to its site root."""

    def resolve_root(self, ref: DocumentRef) -> int:
        """Root page id of `ref`; raises RoutingFailedError when unknown."""
        ...

    def root_ids(self) -> Sequence[int]:
        """All known site roots in a stable order."""
        ...


@dataclass(frozen=True)
class PageRow:
    uid: int
    pid: int
    doktype: int = 1
    sys_language_uid: int = 0
    deleted: bool = False
    is_siteroot: bool = False

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "PageRow":
        return cls(
            uid=int(row["uid"]),
            pid=int(row.get("pid", 0) or 0),
            doktype=int(row.get("doktype", 1) or 1),
            sys_language_uid=int(row.get("sys_language_uid", 0) or 0),
            deleted=bool(row.get("deleted", False)),
            is_siteroot=bool(row.get("is_siteroot", False)),
        )


class PageTree(Protocol):
    def get(self, uid: int) -> Optional[PageRow]:
        ...

    def children(self, pid: int) -> List[PageRow]:
        ...

    def site_roots(self) -> List[int]:
        ...


class JsonPageTree:
    """
    [职责] 页面树的 JSON 导出实现（[{uid, pid, doktype, sys_language_uid, deleted, is_siteroot}, ...]）。
    [边界] 只读；按 uid 建索引，children 保持导出顺序。
    """

    def __init__(self, rows: Iterable[Mapping[str, Any]]) -> None:
        self._rows: Dict[int, PageRow] = {}
        self._children: Dict[int, List[PageRow]] = {}
        for raw in rows:
            row = PageRow.from_mapping(raw)
            if row.sys_language_uid == 0:
                self._rows.setdefault(row.uid, row)  # docstring: 默认语言行作为树结构
            self._children.setdefault(row.pid, []).append(row)

    @classmethod
    def from_file(cls, path: str | Path) -> "JsonPageTree":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(data, Mapping):
            data = data.get("pages", [])  # docstring: 兼容 {"pages": [...]} 包装
        if not isinstance(data, list):
            raise ValueError(f"page tree export must be a list of rows: {path}")
        return cls(data)

    def get(self, uid: int) -> Optional[PageRow]:
        return self._rows.get(int(uid))

    def children(self, pid: int) -> List[PageRow]:
        return list(self._children.get(int(pid), []))

    def site_roots(self) -> List[int]:
        return [row.uid for row in self._rows.values() if row.is_siteroot and not row.deleted]


def iter_content_pages(tree: PageTree, root_id: int) -> Iterator[int]:
    """
    [职责] 广度优先枚举 root（总是包含）及其下的默认语言内容页。
    [边界] 跳过 deleted 行与 folder/recycler/separator 类型，且不进入被跳过节点的子树。
    """
    seen = {int(root_id)}
    yield int(root_id)
    queue = deque([int(root_id)])
    while queue:
        pid = queue.popleft()
        for child in tree.children(pid):
            if child.uid in seen:
                continue
            if child.sys_language_uid != 0 or child.deleted or child.doktype in EXCLUDED_DOKTYPES:
                continue
            seen.add(child.uid)
            yield child.uid
            queue.append(child.uid)


class PageTreeSiteResolver:
    """
    [职责] 沿 pid 链向上查找站点根节点（配置的根或 is_siteroot 行）。
    [边界] 只能解析 pages 类型；其它类型与孤儿页抛 RoutingFailedError。
    """

    def __init__(self, tree: PageTree, root_ids: Sequence[int] = ()) -> None:
        self.tree = tree
        self._root_ids = [int(r) for r in root_ids] or list(tree.site_roots())

    def root_ids(self) -> Sequence[int]:
        return list(self._root_ids)

    def resolve_root(self, ref: DocumentRef) -> int:
        if ref.type != DEFAULT_DOC_TYPE:
            raise RoutingFailedError(
                message=f"cannot resolve site root for type {ref.type!r}",
                detail={"doc_type": ref.type, "doc_uid": ref.uid},
            )
        roots = set(self._root_ids)
        uid = int(ref.uid)
        visited = set()
        while uid and uid not in visited:
            visited.add(uid)
            if uid in roots:
                return uid
            row = self.tree.get(uid)
            if row is None:
                break
            if row.is_siteroot and not roots:
                return uid
            uid = row.pid
        raise RoutingFailedError(
            message="page is not below a known site root",
            detail={"doc_type": ref.type, "doc_uid": ref.uid},
        )


@dataclass(frozen=True)
class Partition:
    root_id: int
    language_id: int
    core: str
    fallback: bool = False  # docstring: 根节点是否经过兜底


class PartitionRouter:
    """
    [职责] (DocumentRef, language) -> Partition(root, language, core)。
    [边界] 根节点失败：首个可用根 -> default_root_id（记录 routing.fallback）；core 映射缺失：RoutingFailedError。
    """

    def __init__(
        self,
        *,
        site_resolver: Optional[SiteResolver] = None,
        core_map: Optional[Mapping[Tuple[int, int], str]] = None,
        default_core: Optional[str] = None,
        default_root_id: int = 1,
    ) -> None:
        self.site_resolver = site_resolver
        self.core_map: Dict[Tuple[int, int], str] = dict(core_map or {})
        self.default_core = default_core
        self.default_root_id = int(default_root_id)

    def resolve_root(self, ref: DocumentRef, *, context: Optional[Any] = None) -> Tuple[int, bool]:
        if self.site_resolver is None:
            return self.default_root_id, False
        try:
            return int(self.site_resolver.resolve_root(ref)), False
        except RoutingFailedError as exc:
            roots = list(self.site_resolver.root_ids())
            root = int(roots[0]) if roots else self.default_root_id
            log_event(
                logger,
                logging.WARNING,
                "routing.fallback",
                context=context,
                fields={"fallback_root_id": root, "reason": exc.message},
            )
            return root, True

    def resolve_core(self, root_id: int, language_id: int) -> str:
        if self.core_map:
            core = self.core_map.get((int(root_id), int(language_id)))
            if core:
                return core
            raise RoutingFailedError(
                message="no search core configured for site root and language",
                detail={"root_id": int(root_id), "language_id": int(language_id)},
            )
        if self.default_core:
            return self.default_core
        raise RoutingFailedError(message="no search core configured")

    def resolve(
        self,
        ref: DocumentRef,
        language_id: int = 0,
        *,
        root_id: Optional[int] = None,
        context: Optional[Any] = None,
    ) -> Partition:
        """root_id: known site root (bulk driver); skips site resolution."""
        if root_id is not None:
            root_id, fallback = int(root_id), False
        else:
            root_id, fallback = self.resolve_root(ref, context=context)
        core = self.resolve_core(root_id, language_id)
        return Partition(root_id=root_id, language_id=int(language_id), core=core, fallback=fallback)

    def cores(self) -> List[str]:
        """Distinct configured cores (health checks)."""
        cores = list(dict.fromkeys(self.core_map.values()))
        if not cores and self.default_core:
            cores = [self.default_core]
        return cores
