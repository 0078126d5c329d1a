# Weeknight API Main Entry Point
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .db import create_all
from .deps import get_cook_machine
from .errors import WeeknightError, InternalError
from .middleware import trace_id_middleware, get_trace_id
from .settings import settings
from .routers.ready import router as ready_router
from .routers.cook import router as cook_router
from .routers.recipes import router as recipes_router
from .routers.tonight import router as tonight_router

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("weeknight")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.db_auto_create:
        create_all()
    machine = get_cook_machine()
    keepalive = asyncio.create_task(machine.broadcaster.keepalive_loop(settings.cook_keepalive_seconds))
    logger.info(f"Weeknight API {settings.app_version} starting (ai_mode={settings.ai_mode})")
    try:
        yield
    finally:
        keepalive.cancel()
        machine.shutdown()
        logger.info("Weeknight API stopped; cook timers cancelled")


# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

app = FastAPI(title="Weeknight API", version=settings.app_version, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(trace_id_middleware)


def _error_response(request: Request, exc: WeeknightError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "message": exc.message, "code": exc.code, "trace_id": get_trace_id(request)},
    )


@app.exception_handler(WeeknightError)
async def weeknight_error_handler(request: Request, exc: WeeknightError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error_response(request, exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # Details stay in the log; clients only see the generic message.
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_response(request, InternalError())


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/version")
def version():
    return {"version": settings.app_version}


app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(cook_router, prefix="/api", tags=["cook"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(tonight_router, prefix="/api", tags=["tonight"])
