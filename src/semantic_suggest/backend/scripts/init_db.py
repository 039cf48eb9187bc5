# src/semantic_suggest/backend/scripts/init_db.py

"""
[职责] 初始化相似度表结构（create_all / 可选 drop），提供可复现、可幂等的 CLI 入口。
[边界] 不执行检索；不写入业务数据。
[上游关系] 本地开发/CI/部署脚本调用；依赖 db.engine 的 init_db/drop_db。
[下游关系] schema 准备完成后供 services/api/bulk 使用。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import time
from typing import Any, Dict, Optional, Sequence

from semantic_suggest.backend.db.engine import create_engine, drop_db, init_db


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Initialize the similarity table schema (create_all).")
    parser.add_argument("--db-url", dest="db_url", default=None)  # docstring: 显式 DB 连接串
    parser.add_argument("--drop", action="store_true")  # docstring: 先 drop 再 create
    # docstring: SQL echo 三态开关：默认 None（由 engine/环境决定）；--echo 强制 True；--no-echo 强制 False
    echo_group = parser.add_mutually_exclusive_group()
    echo_group.add_argument("--echo", dest="echo", action="store_true", default=None)
    echo_group.add_argument("--no-echo", dest="echo", action="store_false")
    parser.add_argument("--json", action="store_true")  # docstring: 仅输出 JSON 结果
    return parser


async def _run_async(*, db_url: Optional[str], drop: bool, echo: Optional[bool]) -> Dict[str, Any]:
    """
    [职责] 执行 init_db 主流程（可选 drop），输出 JSON-safe 结果。
    [边界] 异常被记录到 result.error，由 main 转换为退出码。
    """
    start_ms = time.perf_counter() * 1000.0
    engine = create_engine(url=db_url, echo=echo)
    result: Dict[str, Any] = {
        "ok": True,
        "db_url": str(engine.url),
        "dropped": False,
        "created": False,
        "duration_ms": 0.0,
        "error": None,
    }
    try:
        if drop:
            await drop_db(engine=engine)
            result["dropped"] = True
        await init_db(engine=engine)
        result["created"] = True
    except Exception as exc:
        result["ok"] = False
        result["error"] = f"{exc.__class__.__name__}: {exc}"
    finally:
        await engine.dispose()  # docstring: 释放连接池
        result["duration_ms"] = round(time.perf_counter() * 1000.0 - start_ms, 2)
    return result


def _print_summary(*, result: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, ensure_ascii=True, default=str))
        return
    status = "ok" if result.get("ok") else "failed"
    print(f"[init_db] status={status}")
    print(f"[init_db] db_url={result.get('db_url')}")
    print(f"[init_db] dropped={result.get('dropped')} created={result.get('created')}")
    if result.get("error"):
        print(f"[init_db] error={result.get('error')}")
    print(f"[init_db] duration_ms={result.get('duration_ms')}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry: parse args, run, print summary; non-zero exit on failure."""
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    result = asyncio.run(_run_async(db_url=args.db_url, drop=bool(args.drop), echo=args.echo))
    _print_summary(result=result, as_json=bool(args.json))
    return 0 if result.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
