import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response, StreamingResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

load_dotenv()

from metrics_prom import DELTAS, INFLIGHT, RATE_LIMITED, REQ_COUNT, STREAM_LATENCY_MS, UPSTREAM_ERRORS
from obs_log import Timer, ensure_request_id, log
from otel import get_tracer, setup_tracing
from prompt_context import build_messages, system_prompt
from rate_limit import RATE_LIMITER, client_identity
from schemas import ConversationRequest, ErrorResponse
from sse_events import error_frame, sse_done
from stream_relay import RelayStats, relay_events
from upstream import (
    api_key,
    build_completion_body,
    completion_stream,
    make_client,
    model_name,
    read_error_text,
)

# 로깅 설정 (uvicorn 로그와 통합)
logger = logging.getLogger("uvicorn")

AGENT_PATH = "/api/agent"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 서버 시작 시 실행
    if setup_tracing():
        logger.info("LIFESPAN: OTLP tracing enabled.")
    # system prompt 파일은 시작 시 한 번 읽어 캐시 (요청 경로에서 blocking read 방지)
    logger.info("LIFESPAN: system prompt loaded (%s chars).", len(system_prompt()))
    logger.info("LIFESPAN: relay ready (rate limit %s req / %ss).", RATE_LIMITER.max_requests, RATE_LIMITER.window_sec)

    yield

    # Shutdown: 서버 종료 시 실행
    logger.info("LIFESPAN: Shutdown initiated. tracked clients=%s", RATE_LIMITER.tracked_keys())

app = FastAPI(title="Dashboard Assistant Relay", lifespan=lifespan)


def _error(status: int, message: str, *, rid: str, client: str, event: str, headers: Optional[Dict[str, str]] = None):
    REQ_COUNT.labels(status=str(status)).inc()
    log(event, request_id=rid, client=client, status=status, error=message)
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=message).model_dump(),
        headers=headers,
    )


async def _read_body(request: Request) -> Dict[str, Any]:
    # JSON 객체가 아니면 빈 dict 취급 -> message 없음으로 400
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _validation_message(e: ValidationError) -> str:
    err = e.errors()[0]
    where = ".".join(str(p) for p in err.get("loc", ())) or "body"
    return f"Invalid request: {where}: {err.get('msg')}"


@app.get("/health")
def health():
    return {"ok": True}

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

@app.exception_handler(StarletteHTTPException)
async def agent_method_not_allowed(request: Request, exc: StarletteHTTPException):
    # /api/agent 는 POST 외 모든 메서드를 같은 405 JSON으로 거절
    if exc.status_code != 405 or request.url.path != AGENT_PATH:
        return await http_exception_handler(request, exc)

    REQ_COUNT.labels(status="405").inc()
    return JSONResponse(
        status_code=405,
        content=ErrorResponse(error="Method not allowed").model_dump(),
        headers={"Allow": "POST"},
    )

@app.post(AGENT_PATH)
async def agent(request: Request):
    rid = ensure_request_id(request.headers.get("x-request-id"))
    client = client_identity(request)

    # 1) rate limit (거절된 시도는 기록하지 않음)
    if not RATE_LIMITER.hit(client):
        RATE_LIMITED.inc()
        retry = RATE_LIMITER.retry_after(client)
        headers = {"Retry-After": str(max(1, int(retry + 0.999)))} if retry is not None else None
        return _error(429, "Too many requests. Please slow down.", rid=rid, client=client,
                      event="agent_rate_limited", headers=headers)

    # 2) payload 검증
    body = await _read_body(request)
    if not body.get("message"):
        return _error(400, "Missing message", rid=rid, client=client, event="agent_bad_request")

    try:
        req = ConversationRequest.model_validate(body)
    except ValidationError as e:
        return _error(400, _validation_message(e), rid=rid, client=client, event="agent_bad_request")

    # 3) 설정 확인
    key = api_key()
    model = model_name()
    if not key:
        return _error(500, "Server misconfigured: OPENAI_API_KEY not set", rid=rid, client=client,
                      event="agent_misconfigured")

    REQ_COUNT.labels(status="200").inc()

    async def event_gen():
        timer = Timer.start()
        stats = RelayStats()
        outcome = "ok"
        INFLIGHT.inc()
        span = get_tracer().start_span("upstream.chat_completions", attributes={"llm.model": model})

        try:
            messages = build_messages(req.message, req.history)
            payload = build_completion_body(
                model=model,
                messages=messages,
                temperature=req.temperature,
                max_tokens=req.max_tokens,
            )

            async with make_client() as http:
                async with completion_stream(http, key=key, body=payload) as resp:
                    span.set_attribute("http.status_code", resp.status_code)

                    if not resp.is_success:
                        text = await read_error_text(resp)
                        outcome = "upstream_status"
                        UPSTREAM_ERRORS.labels(kind="status").inc()
                        log("agent_upstream_error", request_id=rid, client=client,
                            upstream_status=resp.status_code, error=text[:500])
                        yield error_frame(text)
                        yield sse_done()
                        return

                    async for frame in relay_events(
                        resp.aiter_bytes(),
                        stats,
                        is_disconnected=request.is_disconnected,
                    ):
                        yield frame

            if stats.cancelled:
                outcome = "cancelled"

        except Exception as e:
            # 스트리밍 중 예외는 error 이벤트로 전달
            outcome = "exception"
            UPSTREAM_ERRORS.labels(kind="exception").inc()
            span.record_exception(e)
            log("agent_upstream_error", request_id=rid, client=client, error=str(e), error_type=type(e).__name__)
            yield error_frame(str(e) or type(e).__name__)
            yield sse_done()

        finally:
            span.end()
            INFLIGHT.dec()
            DELTAS.inc(stats.deltas)
            latency = timer.ms()
            STREAM_LATENCY_MS.observe(latency)

            log(
                "agent_stream_cancelled" if outcome == "cancelled" else "agent_stream_done",
                request_id=rid,
                client=client,
                model=model,
                history_len=len(req.history),
                deltas=stats.deltas,
                upstream_done=stats.done_seen,
                outcome=outcome,
                latency_ms=latency,
            )

    headers = dict(SSE_HEADERS)
    headers["X-Request-ID"] = rid
    return StreamingResponse(
        event_gen(),
        media_type="text/event-stream; charset=utf-8",
        headers=headers,
    )
