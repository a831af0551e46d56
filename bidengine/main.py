# =============================================
# File: bidengine/main.py
# Purpose: FastAPI app - evidence search API with request logging + metrics
# =============================================
import time
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from loguru import logger

from bidengine.routers import metrics, search
from bidengine.utils import slog
from bidengine.utils.logging import configure_logging
from bidengine.utils.metrics import record_endpoint

load_dotenv()
configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await search.close_provider()


app = FastAPI(title="BidEngine Evidence Search", lifespan=lifespan)


@app.middleware("http")
async def _logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    req_id = slog.new_request_id()
    client_ip = request.client.host if request.client else None
    try:
        response = await call_next(request)
    except Exception as e:
        latency_ms = int((time.perf_counter() - start) * 1000)
        ctx = getattr(request.state, "log_context", {})
        slog.log_event(
            "request.error",
            request_id=req_id,
            path=str(request.url.path),
            method=request.method,
            latency_ms=latency_ms,
            client_ip=client_ip,
            error=str(e),
            **(ctx or {}),
        )
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        raise
    latency_ms = int((time.perf_counter() - start) * 1000)
    ctx = getattr(request.state, "log_context", {}) or {}
    ctx.setdefault("rate_limited", response.status_code == 429)
    slog.finalize_request_log(
        request_id=req_id,
        method=request.method,
        path=str(request.url.path),
        status=response.status_code,
        latency_ms=latency_ms,
        client_ip=client_ip,
        ctx=ctx,
    )
    record_endpoint(method=request.method, path=str(request.url.path), latency_ms=latency_ms)
    response.headers["X-Request-ID"] = req_id
    return response


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(search.router)
app.include_router(metrics.router)
