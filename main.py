"""CLI entrypoint for competitor-brief runs, the web server and its run history."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Optional, Tuple

import httpx
import uvicorn

from core import Topology
from orchestrator import CallbackEventSink, get_default_orchestrator
from utils.logger import setup_logger


DEFAULT_SERVER = "http://127.0.0.1:8765"


def _write_frame(frame: bytes) -> None:
    sys.stdout.buffer.write(frame)
    sys.stdout.buffer.flush()


def fetch_history(
    server: str,
    run_id: Optional[str] = None,
    *,
    client: Optional[httpx.Client] = None,
) -> Tuple[int, Any]:
    """
    Read run history from a running `serve` instance.

    Run history lives in that server's memory only, so a fresh CLI process
    has nothing of its own to report.
    """
    params = {"id": run_id} if run_id else None
    owns_client = client is None
    client = client or httpx.Client(timeout=10.0)
    try:
        response = client.get(f"{server.rstrip('/')}/api/history", params=params)
    finally:
        if owns_client:
            client.close()
    return response.status_code, response.json()


def main() -> None:
    parser = argparse.ArgumentParser(description="Competitor brief CLI")
    parser.add_argument("--plain-logs", action="store_true", help="Plain stderr logging instead of rich")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the pipeline and print SSE frames to stdout")
    run.add_argument("--competitor", required=True)
    run.add_argument("--mode", choices=[item.value for item in Topology], default=Topology.SEQUENTIAL.value)
    run.add_argument("--fresh", action="store_true", help="Bypass the run cache")

    history = sub.add_parser("history", help="List recent runs of a running server")
    history.add_argument("--server", default=DEFAULT_SERVER, help="Base URL of the `serve` instance")

    show = sub.add_parser("show", help="Print one recorded run from a running server")
    show.add_argument("--run-id", required=True)
    show.add_argument("--server", default=DEFAULT_SERVER, help="Base URL of the `serve` instance")

    serve = sub.add_parser("serve", help="Launch the SSE web API")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Bind host")
    serve.add_argument("--port", type=int, default=8765, help="Bind port")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()
    setup_logger(use_rich=not args.plain_logs)

    if args.command == "serve":
        uvicorn.run("webapp.app:app", host=args.host, port=args.port, reload=args.reload)
        return

    if args.command == "run":
        competitor = str(args.competitor or "").strip()
        if not competitor:
            parser.error("--competitor must not be empty")
        sink = CallbackEventSink(_write_frame)
        asyncio.run(
            get_default_orchestrator().start_run(competitor, Topology(args.mode), sink, bypass_cache=args.fresh)
        )
        return

    run_id = args.run_id if args.command == "show" else None
    try:
        status, body = fetch_history(args.server, run_id)
    except httpx.HTTPError as exc:
        print(json.dumps({"error": f"Server unreachable: {exc}", "server": args.server}, ensure_ascii=False))
        sys.exit(2)

    print(json.dumps(body, ensure_ascii=False))
    if status >= 400:
        sys.exit(1)


if __name__ == "__main__":
    main()
