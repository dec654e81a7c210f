"""Web App: FastAPI + SSE surface for competitor-brief runs."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from core import Topology
from orchestrator.events import ChannelEventSink
from utils.logger import setup_logger
from orchestrator.service import get_default_orchestrator


logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Strong references so background runs are not garbage-collected mid-flight.
_RUN_TASKS: Set["asyncio.Task[None]"] = set()


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


def _parse_topology(mode: Optional[str]) -> Optional[Topology]:
    try:
        return Topology(str(mode or Topology.SEQUENTIAL.value).strip())
    except ValueError:
        return None


def _on_run_finished(task: "asyncio.Task[None]", sink: ChannelEventSink) -> None:
    _RUN_TASKS.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error("Run task crashed", exc_info=task.exception())
    if not sink.detached:
        sink.close()


def _stream_run(subject: str, topology: Topology, *, bypass_cache: bool) -> StreamingResponse:
    sink = ChannelEventSink()
    orchestrator = get_default_orchestrator()

    async def _event_stream():
        task = asyncio.create_task(
            orchestrator.start_run(subject, topology, sink, bypass_cache=bypass_cache)
        )
        _RUN_TASKS.add(task)
        task.add_done_callback(lambda finished: _on_run_finished(finished, sink))
        try:
            async for frame in sink.frames():
                yield frame
        finally:
            # the run keeps going; its remaining writes raise StreamFault
            if not task.done():
                sink.detach()

    return StreamingResponse(
        _event_stream(),
        media_type="text/event-stream; charset=utf-8",
        headers=SSE_HEADERS,
    )


@asynccontextmanager
async def _lifespan(_: FastAPI):
    setup_logger()
    yield


app = FastAPI(title="Competitor Brief", version="1.0", lifespan=_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/favicon.ico", include_in_schema=False)
async def favicon() -> Response:
    return Response(status_code=204)


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/run")
async def run_stream(competitor: str = "", mode: str = "sequential", fresh: str = "") -> Response:
    subject = competitor.strip()
    topology = _parse_topology(mode)
    if not subject:
        return _bad_request("Missing competitor")
    if topology is None:
        return _bad_request("Invalid mode")
    return _stream_run(subject, topology, bypass_cache=fresh == "1")


@app.post("/api/run")
async def run_stream_post(request: Request) -> Response:
    try:
        body: Any = await request.json()
    except ValueError:
        return _bad_request("Invalid JSON body")
    if not isinstance(body, dict):
        return _bad_request("Invalid JSON body")

    subject = str(body.get("competitor") or "").strip()
    topology = _parse_topology(body.get("mode"))
    if not subject:
        return _bad_request("Missing competitor")
    if topology is None:
        return _bad_request("Invalid mode")
    return _stream_run(subject, topology, bypass_cache=True)


@app.get("/api/history")
async def history(id: str = "") -> JSONResponse:
    run_id = id.strip()
    orchestrator = get_default_orchestrator()
    if run_id:
        record = orchestrator.get_run(run_id)
        if record is None:
            return JSONResponse({"error": "Not found"}, status_code=404)
        return JSONResponse(record.model_dump(mode="json"))
    return JSONResponse(orchestrator.list_recent_runs().model_dump(mode="json"))
