from __future__ import annotations

import asyncio
import json
import time
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.responses import StreamingResponse

from buildheal.adapters.github_actions import build_event_from_workflow_run
from buildheal.broadcast.channel import BroadcastChannel, Subscription
from buildheal.broadcast.webhooks import WebhookRelay
from buildheal.engine.engine import RemediationEngine
from buildheal.errors import InvalidEvent, NotFound
from buildheal.models import ApplyResult, DashboardSnapshot, EnrichedUpdate, RemediationRecord
from buildheal.settings import Settings
from buildheal.telemetry.audit import tail_jsonl

VERSION = "0.1.0"

router = APIRouter()


class ApplyRequest(BaseModel):
    create_pr: bool = False


class SimulateRequest(BaseModel):
    repo_name: str
    error_type: str = "lint"


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    App factory used by uvicorn and tests. Each app owns its own engine and channel.
    """
    s = settings or Settings()
    channel = BroadcastChannel(queue_size=s.broadcast_queue_size)
    relay = WebhookRelay(webhook_urls_json=s.integration_webhook_urls_json, topics_json=s.integration_topics_json)
    if relay.enabled:
        channel.add_listener(relay)
        relay.start()

    new_app = FastAPI(title="BUILDHEAL", version=VERSION)
    new_app.state.settings = s
    new_app.state.channel = channel
    new_app.state.webhook_relay = relay
    new_app.state.engine = RemediationEngine.from_settings(s, channel=channel)
    new_app.include_router(router)
    return new_app


def _engine(request: Request) -> RemediationEngine:
    return request.app.state.engine


async def stream_broadcast_sse(sub: Subscription, *, poll_interval_s: float = 0.25) -> AsyncGenerator[str, None]:
    """
    Server-sent events for one channel subscription. Unsubscribes when the client goes away.
    """
    yield ": hello\n\n"
    last_ping = time.monotonic()
    try:
        while True:
            for msg in sub.drain():
                data = json.dumps(msg.payload, ensure_ascii=False, default=str)
                yield f"event: {msg.topic}\ndata: {data}\n\n"
            now = time.monotonic()
            if now - last_ping >= 2.0:
                last_ping = now
                yield ": ping\n\n"
            await asyncio.sleep(poll_interval_s)
    finally:
        sub.close()


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    return {"ok": True, "version": VERSION}


@router.post("/api/builds/{repo_name:path}", response_model=EnrichedUpdate)
def build_update(repo_name: str, body: Dict[str, Any], request: Request) -> EnrichedUpdate:
    try:
        return _engine(request).handle_build_update(repo_name, body)
    except InvalidEvent as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/webhooks/github/workflow_run", response_model=EnrichedUpdate)
def github_workflow_run(body: Dict[str, Any], request: Request) -> EnrichedUpdate:
    try:
        repo_name, event = build_event_from_workflow_run(body)
        return _engine(request).handle_build_update(repo_name, event)
    except InvalidEvent as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/api/remediation/{build_id}", response_model=RemediationRecord)
def get_remediation(build_id: str, request: Request) -> RemediationRecord:
    try:
        return _engine(request).get_remediation(build_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail="No remediation found for this build") from e


@router.post("/api/remediation/{build_id}/apply", response_model=ApplyResult)
def apply_remediation(build_id: str, request: Request, body: ApplyRequest | None = None) -> ApplyResult:
    try:
        return _engine(request).apply_remediation(build_id, create_pr=bool(body and body.create_pr))
    except NotFound as e:
        raise HTTPException(status_code=404, detail="No remediation found for this build") from e


@router.post("/api/simulate-failure", response_model=EnrichedUpdate)
def simulate_failure(body: SimulateRequest, request: Request) -> EnrichedUpdate:
    return _engine(request).simulate_failure(body.repo_name, body.error_type)


@router.get("/api/dashboard", response_model=DashboardSnapshot)
def dashboard(request: Request) -> DashboardSnapshot:
    return _engine(request).dashboard_snapshot()


@router.get("/api/audit/recent")
def audit_recent(request: Request, n: int = 200) -> JSONResponse:
    settings: Settings = request.app.state.settings
    records = [r.__dict__ for r in tail_jsonl(settings.audit_log_path, max_lines=max(1, min(n, 2000)))]
    return JSONResponse({"records": records})


@router.get("/api/stream")
async def stream(request: Request) -> StreamingResponse:
    channel: BroadcastChannel = request.app.state.channel
    return StreamingResponse(stream_broadcast_sse(channel.subscribe()), media_type="text/event-stream")


app = create_app()
