# src/semantic_suggest/backend/scripts/update_similarities.py

"""
[职责] 批量预计算 CLI：遍历页面树，为每个内容页查询相似页面并替换写入相似度表。
[边界] 只接受单请求路径的 mode（mlt / smlt）；参数错误与配置错误返回非 0 退出码；单页失败只计数。
[上游关系] 运维 / 定时任务调用（python -m semantic_suggest.backend.scripts.update_similarities）。
[下游关系] bulk_service.update_similarities。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Sequence

import httpx

from semantic_suggest.backend.db.engine import create_engine, create_sessionmaker, init_db
from semantic_suggest.backend.pipelines.similarity.routing import JsonPageTree, PageTree, PageTreeSiteResolver
from semantic_suggest.backend.schemas.audit import TraceContext
from semantic_suggest.backend.services.bulk_service import BULK_MODES, update_similarities
from semantic_suggest.backend.services.suggestion_service import build_partition_router, build_solr_client
from semantic_suggest.backend.utils.errors import DomainError
from semantic_suggest.backend.utils.logging_ import configure_logging, get_logger, log_event
from semantic_suggest.config import settings as app_settings


logger = get_logger("scripts.update_similarities")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Query the search backend for every page of a site and persist similarity results."
    )
    parser.add_argument("--tree", default=None, help="Page tree JSON export (defaults to PAGE_TREE_PATH)")
    parser.add_argument("-s", "--site", type=int, default=None, help="Site root page uid (default: all sites)")
    parser.add_argument("-l", "--language", type=int, default=0, help="Language uid")
    parser.add_argument("-m", "--mode", default="mlt", help="Similarity mode: mlt or smlt")
    parser.add_argument("--throttle-ms", dest="throttle_ms", type=int, default=0)  # docstring: 每次检索后的等待
    parser.add_argument("--db-url", dest="db_url", default=None)  # docstring: 显式 DB 连接串
    parser.add_argument("-v", "--verbose", action="store_true")  # docstring: 输出单页失败详情
    parser.add_argument("--json", action="store_true")  # docstring: 仅输出 JSON 结果
    return parser


def _load_tree(path: Optional[str]) -> PageTree:
    source = path or app_settings.PAGE_TREE_PATH
    if not source:
        raise ValueError("no page tree given (use --tree or set PAGE_TREE_PATH)")
    return JsonPageTree.from_file(source)


async def _run_async(args: argparse.Namespace) -> Dict[str, Any]:
    """
    [职责] 装配 engine/sessionmaker/SolrClient/PartitionRouter，执行批量更新并汇总结果。
    [边界] 连接池与引擎在结束时释放；领域错误写入 result.error。
    """
    start_ms = time.perf_counter() * 1000.0
    result: Dict[str, Any] = {"ok": True, "mode": args.mode, "language": args.language, "error": None}

    tree = _load_tree(args.tree)
    engine = create_engine(url=args.db_url)
    sessionmaker = create_sessionmaker(engine)
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(app_settings.SOLR_TIMEOUT_S))
    batch = TraceContext()
    try:
        await init_db(engine=engine)  # docstring: 幂等 create_all
        router = build_partition_router(app_settings, tree=tree)
        if router.site_resolver is None:
            router.site_resolver = PageTreeSiteResolver(tree, app_settings.site_root_ids)
        report = await update_similarities(
            tree=tree,
            client=build_solr_client(app_settings, http_client=http_client),
            router=router,
            sessionmaker=sessionmaker,
            mode=args.mode,
            site_root=args.site,
            language_id=args.language,
            throttle_ms=args.throttle_ms,
            trace=batch,
            app_settings=app_settings,
        )
        result.update(report.to_dict())
    except DomainError as exc:
        result["ok"] = False
        result["error"] = exc.to_dict()
        log_event(logger, logging.ERROR, "bulk.aborted", context=batch, fields={"error_code": exc.error_code})
    finally:
        await http_client.aclose()
        await engine.dispose()
        result["trace_id"] = str(batch.trace_id)
        result["duration_ms"] = round(time.perf_counter() * 1000.0 - start_ms, 2)
    return result


def _print_summary(*, result: Dict[str, Any], as_json: bool, verbose: bool) -> None:
    if as_json:
        print(json.dumps(result, ensure_ascii=True, default=str))
        return
    if not result.get("ok"):
        print(f"[update_similarities] error={result.get('error')}")
        return
    for site in result.get("sites", []):
        print(
            f"[update_similarities] site root={site['root_id']} pages={site['pages']} "
            f"updated={site['updated']} errors={site['errors']}"
        )
        if verbose and site["failed_pages"]:
            print(f"[update_similarities]   failed pages: {', '.join(str(p) for p in site['failed_pages'])}")
    if not result.get("sites"):
        print("[update_similarities] no sites configured")
    print(
        f"[update_similarities] done. {result.get('updated', 0)} pages updated, "
        f"{result.get('errors', 0)} errors ({result.get('duration_ms')} ms)"
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.mode not in BULK_MODES:
        print(f'[update_similarities] invalid mode "{args.mode}". Use {" or ".join(BULK_MODES)}.')
        return 1
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        result = asyncio.run(_run_async(args))
    except (OSError, ValueError) as exc:
        print(f"[update_similarities] error={exc.__class__.__name__}: {exc}")
        return 1
    _print_summary(result=result, as_json=bool(args.json), verbose=bool(args.verbose))
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
