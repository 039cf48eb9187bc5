# src/semantic_suggest/backend/pipelines/similarity/backend.py

"""
[职责] Backend Client Adapter：通过 httpx.AsyncClient 执行 QueryDescriptor，返回带算法标签的 RawBackendResponse。
[边界] 不解析结果结构（由 parse 负责）；不做 partition 路由（由 routing 负责）；不折叠错误（由 pipeline 负责）。
[上游关系] pipeline 传入 descriptor 与目标 core。
[下游关系] parse.parse_response 消费 RawBackendResponse；错误映射为 BackendUnavailableError/BackendQueryError。
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import httpx

from semantic_suggest.backend.utils.errors import BackendQueryError, BackendUnavailableError
from semantic_suggest.backend.utils.logging_ import truncate_text

from .parse import first_doc
from .query import build_lookup_query, build_source_text
from .types import DocumentRef, QueryDescriptor, RawBackendResponse


def form_fields(params: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    """Group (key, value) pairs into httpx form data; repeated keys such as fq keep their order."""
    data: Dict[str, List[str]] = {}
    for key, value in [*params, ("wt", "json")]:
        data.setdefault(str(key), []).append(str(value))
    return data


class SolrClient:
    """
    [职责] Solr HTTP 适配器（POST form 编码，wt=json）。
    [边界] http_client 由调用方持有生命周期（api lifespan / CLI / tests MockTransport）。
    """

    def __init__(
        self,
        base_url: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 5.0,
    ) -> None:
        self.base_url = str(base_url).rstrip("/")
        self.timeout_s = float(timeout_s)
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_s))  # docstring: 懒创建
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _url(self, core: str, handler: str) -> str:
        return f"{self.base_url}/{core}/{handler.lstrip('/')}"

    async def _post(self, core: str, handler: str, params: Iterable[Tuple[str, str]]) -> Mapping[str, Any]:
        url = self._url(core, handler)
        data = form_fields(params)
        try:
            response = await self.client.post(url, data=data)
        except httpx.TimeoutException as exc:
            raise BackendUnavailableError(
                message="search backend timed out",
                detail={"core": core, "handler": handler},
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:  # docstring: 传输/解码/重定向等请求期故障
            raise BackendUnavailableError(
                detail={"core": core, "handler": handler, "reason": exc.__class__.__name__},
                cause=exc,
            ) from exc

        if response.status_code >= 400:
            raise BackendQueryError(
                message=f"search backend returned HTTP {response.status_code}",
                detail={
                    "core": core,
                    "handler": handler,
                    "status_code": response.status_code,
                    "body": truncate_text(response.text) or "",
                },
            )
        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise BackendQueryError(
                message="search backend returned non-JSON body",
                detail={"core": core, "handler": handler, "body": truncate_text(response.text) or ""},
                cause=exc,
            ) from exc
        if not isinstance(payload, Mapping):
            raise BackendQueryError(
                message="search backend returned non-object JSON",
                detail={"core": core, "handler": handler},
            )
        error = payload.get("error")
        if error:
            msg = error.get("msg") if isinstance(error, Mapping) else str(error)
            raise BackendQueryError(
                message=f"search backend error: {truncate_text(str(msg))}",
                detail={"core": core, "handler": handler},
            )
        return payload

    async def execute(
        self,
        descriptor: QueryDescriptor,
        *,
        core: str,
        source_backend_id: Optional[str] = None,
    ) -> RawBackendResponse:
        """
        [职责] 执行单个 descriptor，返回 RawBackendResponse。
        [边界] 传输失败/超时 -> BackendUnavailableError；HTTP>=400、非 JSON、error 载荷 -> BackendQueryError。
        """
        payload = await self._post(core, descriptor.handler, descriptor.params)
        return RawBackendResponse(
            algorithm=descriptor.algorithm,
            payload=payload,
            source_backend_id=source_backend_id,
        )

    async def _lookup(self, ref: DocumentRef, *, core: str, fields: tuple) -> Optional[Mapping[str, Any]]:
        descriptor = build_lookup_query(ref, fields)
        payload = await self._post(core, descriptor.handler, descriptor.params)
        return first_doc(payload)

    async def resolve_document_id(self, ref: DocumentRef, *, core: str) -> Optional[str]:
        """Backend-native id of `ref`, or None when the document is not indexed."""
        doc = await self._lookup(ref, core=core, fields=("id",))
        if doc is None or doc.get("id") in (None, ""):
            return None
        return str(doc["id"])

    async def resolve_document_content(self, ref: DocumentRef, *, core: str) -> Optional[str]:
        """Title + content of `ref` as KNN query text (None when not indexed or empty)."""
        doc = await self._lookup(ref, core=core, fields=("title", "content"))
        if doc is None:
            return None
        return build_source_text(doc.get("title"), doc.get("content"))

    async def ping(self, core: str) -> Dict[str, Any]:
        """
        [职责] 健康检查：调用 core 的 admin/ping handler。
        [边界] 失败抛 BackendError 子类，由 health router 转换为状态字段。
        """
        payload = await self._post(core, "admin/ping", ())
        return {"core": core, "status": str(payload.get("status", "unknown"))}
