# playground/conftest.py

"""
[职责] playground 公共 fixtures：隔离的 aiosqlite 引擎/会话，以及基于 httpx.MockTransport 的 Solr 替身。
[边界] 不连接真实 Solr；每个测试使用独立临时 sqlite 文件，不污染默认本地库。
[上游关系] 各 *_gate 测试通过 fixture 名称注入。
[下游关系] SolrClient / SimilarityRepo / FastAPI routers 在 fixture 之上运行。
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

_REPO_ROOT = Path(__file__).resolve().parents[1]
_SRC_ROOT = _REPO_ROOT / "src"
if str(_SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(_SRC_ROOT))  # docstring: ensure local src import

from semantic_suggest.backend.db.engine import create_engine, create_sessionmaker, init_db  # noqa: E402
from semantic_suggest.backend.pipelines.similarity.backend import SolrClient  # noqa: E402

SOLR_BASE_URL = "http://solr.test/solr"


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    eng = create_engine(url=f"sqlite+aiosqlite:///{(tmp_path / 'gate.db').as_posix()}", echo=False)
    await init_db(engine=eng)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(sessionmaker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with sessionmaker() as s:
        yield s


def solr_doc(
    uid: int,
    *,
    type: str = "pages",
    score: float = 1.0,
    title: Optional[str] = None,
    content: str = "",
    url: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Indexed document as Solr returns it."""
    doc = {
        "id": f"site/{type}/{uid}",
        "type": type,
        "uid": uid,
        "title": title if title is not None else f"{type} {uid}",
        "content": content,
        "url": url if url is not None else f"/{type}/{uid}",
        "score": score,
    }
    doc.update(extra)
    return doc


class FakeSolr:
    """
    [职责] 记录请求并按 handler 返回预置载荷的 Solr 替身（MockTransport handler）。
    [边界] lookup（select + q=type:.. AND uid:..）由 indexed 文档表应答；其它请求按 handler 取 routes。
    """

    def __init__(self) -> None:
        self.indexed: Dict[Tuple[str, int], Dict[str, Any]] = {}
        self.routes: Dict[str, Any] = {}
        self.requests: List[Tuple[str, str, Dict[str, List[str]]]] = []

    def index(self, doc: Mapping[str, Any]) -> None:
        self.indexed[(str(doc["type"]), int(doc["uid"]))] = dict(doc)

    def route(self, handler: str, payload: Any) -> None:
        """payload: dict (JSON body), httpx.Response, Exception, or callable(request, form) -> any of those."""
        self.routes[handler] = payload

    def calls(self, handler: str) -> List[Dict[str, List[str]]]:
        return [form for _, h, form in self.requests if h == handler]

    def _lookup(self, form: Dict[str, List[str]]) -> Dict[str, Any]:
        q = form.get("q", [""])[0]
        type_part, _, uid_part = q.partition(" AND ")
        key = (type_part.split(":", 1)[-1].replace("\\", ""), int(uid_part.split(":", 1)[-1] or 0))
        doc = self.indexed.get(key)
        fields = form.get("fl", ["id"])[0].split(",")
        docs = [{k: v for k, v in doc.items() if k in fields}] if doc else []
        return {"response": {"numFound": len(docs), "start": 0, "docs": docs}}

    def handle(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path.rstrip("/").split("/")
        core, handler = parts[2], "/".join(parts[3:])
        form = parse_qs(request.content.decode("utf-8"), keep_blank_values=True)
        self.requests.append((core, handler, form))

        if handler == "select" and form.get("q", [""])[0].startswith("type:"):
            return httpx.Response(200, json=self._lookup(form))

        payload = self.routes.get(handler)
        if callable(payload) and not isinstance(payload, httpx.Response):
            payload = payload(request, form)
        if payload is None:
            return httpx.Response(404, text=f"no route for {handler}")
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, httpx.Response):
            return payload
        return httpx.Response(200, json=payload)


@pytest.fixture
def fake_solr() -> FakeSolr:
    return FakeSolr()


@pytest_asyncio.fixture
async def solr_client(fake_solr: FakeSolr) -> AsyncIterator[SolrClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_solr.handle))
    try:
        yield SolrClient(SOLR_BASE_URL, http_client=http_client, timeout_s=2.0)
    finally:
        await http_client.aclose()


@pytest.fixture
def make_solr_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], SolrClient]:
    """Factory for a SolrClient over an ad-hoc MockTransport handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> SolrClient:
        return SolrClient(SOLR_BASE_URL, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    return _make


@pytest.fixture
def make_doc() -> Callable[..., Dict[str, Any]]:
    return solr_doc
