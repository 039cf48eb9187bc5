# src/semantic_suggest/backend/api/routers/health.py

"""
[职责] Health Router：探测 DB 与各 Solr core 的可用性并返回健康摘要。
[边界] 不执行检索；不写库；只做轻量探测。
[上游关系] 运维/监控系统调用。
[下游关系] SimilarityRepo.ping、SolrClient.ping。
"""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from semantic_suggest.backend.api.deps import get_partition_router, get_session, get_solr_client
from semantic_suggest.backend.db.repo import SimilarityRepo
from semantic_suggest.backend.pipelines.similarity.backend import SolrClient
from semantic_suggest.backend.pipelines.similarity.routing import PartitionRouter
from semantic_suggest.backend.utils.errors import BackendError


router = APIRouter(prefix="/health", tags=["health"])  # docstring: health 路由前缀


@router.get("")
async def health_check(
    session: AsyncSession = Depends(get_session),
    client: SolrClient = Depends(get_solr_client),
    partition_router: PartitionRouter = Depends(get_partition_router),
) -> Dict[str, Any]:
    """
    [职责] 检测 DB/Solr 可用性；任一依赖异常则 status=degraded。
    [边界] Solr 只 ping 已配置的 core；不做业务查询。
    """
    db_status: Dict[str, Any] = {"ok": True}
    try:
        await SimilarityRepo(session).ping()
    except SQLAlchemyError as exc:
        db_status = {"ok": False, "error": f"{exc.__class__.__name__}: {exc}"}

    cores: List[Dict[str, Any]] = []
    for core in partition_router.cores():
        try:
            cores.append({**(await client.ping(core)), "ok": True})
        except BackendError as exc:
            cores.append({"core": core, "ok": False, "error": exc.error_code})

    solr_ok = bool(cores) and all(c["ok"] for c in cores)
    status = "ok" if db_status["ok"] and solr_ok else "degraded"
    return {
        "status": status,
        "db": db_status,
        "solr": {"ok": solr_ok, "base_url": client.base_url, "cores": cores},
        "version": {"api": "v1"},
    }
