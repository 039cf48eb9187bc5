# playground/backend_gate/test_solr_client_gate.py

"""
[职责] backend gate：SolrClient 的请求编码、文档解析（id/内容）与错误映射（超时/传输/HTTP/非 JSON/error 载荷）。
[边界] 通过 httpx.MockTransport 替身应答；不连接真实 Solr。
[上游关系] backend/pipelines/similarity/backend.py。
[下游关系] pipeline 依据异常类型折叠子查询。
"""

from __future__ import annotations

import httpx
import pytest

from semantic_suggest.backend.pipelines.similarity import query as query_mod
from semantic_suggest.backend.pipelines.similarity.types import DocumentRef
from semantic_suggest.backend.utils.errors import BackendQueryError, BackendUnavailableError


pytestmark = pytest.mark.backend_gate

REF = DocumentRef(type="pages", uid=5)


@pytest.mark.asyncio
async def test_execute_posts_form_and_tags_algorithm(fake_solr, solr_client) -> None:
    fake_solr.route("mlt", {"response": {"docs": [{"uid": 9, "score": 1.0}]}})
    descriptor = query_mod.build_lexical_query(
        REF, "site/pages/5", mlt_fields="content", min_term_freq=1, min_doc_freq=1, boost_fields="content^1", rows=4
    )
    raw = await solr_client.execute(descriptor, core="core_en", source_backend_id="site/pages/5")

    assert raw.algorithm == "lexical"
    assert raw.source_backend_id == "site/pages/5"
    assert raw.payload["response"]["docs"][0]["uid"] == 9
    core, handler, form = fake_solr.requests[-1]
    assert (core, handler) == ("core_en", "mlt")
    assert form["wt"] == ["json"]
    assert form["q"] == ["id:site\\/pages\\/5"]
    assert form["rows"] == ["4"]


@pytest.mark.asyncio
async def test_resolve_document_id_and_content(fake_solr, solr_client, make_doc) -> None:
    fake_solr.index(make_doc(5, title="<b>Hello</b>", content="<p>World   wide</p>"))

    assert await solr_client.resolve_document_id(REF, core="core_en") == "site/pages/5"
    assert await solr_client.resolve_document_content(REF, core="core_en") == "Hello World wide"

    lookup = fake_solr.calls("select")[0]
    assert lookup["q"] == ["type:pages AND uid:5"]
    assert lookup["fl"] == ["id"]
    assert lookup["rows"] == ["1"]


@pytest.mark.asyncio
async def test_unindexed_document_resolves_to_none(fake_solr, solr_client, make_doc) -> None:
    assert await solr_client.resolve_document_id(REF, core="core_en") is None
    assert await solr_client.resolve_document_content(REF, core="core_en") is None

    fake_solr.index(make_doc(5, title="", content="<br>"))
    assert await solr_client.resolve_document_content(REF, core="core_en") is None  # docstring: 空文本视为未索引


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [
        httpx.ReadTimeout("slow"),
        httpx.ConnectError("refused"),
        httpx.DecodingError("bad gzip"),
        httpx.TooManyRedirects("loop"),
    ],
)
async def test_transport_failures_map_to_unavailable(fake_solr, solr_client, exc) -> None:
    fake_solr.route("mlt", exc)
    descriptor = query_mod.build_lexical_query(
        REF, "x", mlt_fields="content", min_term_freq=1, min_doc_freq=1, boost_fields="", rows=1
    )
    with pytest.raises(BackendUnavailableError) as exc_info:
        await solr_client.execute(descriptor, core="core_en")
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(400, json={"error": {"msg": "undefined field"}}),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json=["not", "an", "object"]),
        httpx.Response(200, json={"error": {"msg": "model not found", "code": 400}}),
    ],
)
async def test_rejections_map_to_query_error(fake_solr, solr_client, response) -> None:
    fake_solr.route("select", response)
    descriptor = query_mod.build_vector_query(REF, "text", model_name="llm", vector_field="vector", top_k=5, rows=5)
    with pytest.raises(BackendQueryError) as exc_info:
        await solr_client.execute(descriptor, core="core_en")
    assert exc_info.value.error_code == "backend.query_error"
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_ping(fake_solr, solr_client) -> None:
    fake_solr.route("admin/ping", {"status": "OK"})
    assert await solr_client.ping("core_de") == {"core": "core_de", "status": "OK"}
    assert fake_solr.requests[-1][:2] == ("core_de", "admin/ping")


@pytest.mark.asyncio
async def test_repeated_filter_params_are_all_sent(fake_solr, solr_client) -> None:
    fake_solr.route("select", {"response": {"docs": []}})
    descriptor = query_mod.build_vector_query(
        REF,
        "text",
        model_name="llm",
        vector_field="vector",
        top_k=5,
        rows=5,
        filters=query_mod.make_filters(excluded_types=["sys_file"], container_ids=[3, 4]),
    )
    await solr_client.execute(descriptor, core="core_en")

    _, _, form = fake_solr.requests[-1]
    assert form["fq"] == [
        "-(type:pages AND uid:5)",
        "-type:sys_file",
        "pid:(3 OR 4)",
    ]  # docstring: 重复 key 按构建顺序全部编码
    assert form["wt"] == ["json"]
