import logging
import random
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import Database
from .exceptions import SocialGraphError, StorageError
from .routers.blocks import router as blocks_router
from .routers.connections import router as connections_router
from .routers.follow import router as follow_router
from .routers.health import router as health_router
from .routers.social_graph import router as social_graph_router
from .routers.users import router as users_router
from .services.social_graph import SocialGraph

logger = logging.getLogger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", [
                        "method", "route", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5)
)

STATUS_BY_ERROR = {
    "bad_request": 400,
    "forbidden": 403,
    "not_found": 404,
    "storage_unavailable": 503,
}

CODE_MAP = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
    429: "too_many_requests",
    503: "storage_unavailable",
}


def _error_response(request: Request, status_code: int, code: str, message: str,
                    details=None, headers: Optional[dict] = None) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    response_headers = {"X-Request-ID": request_id}
    if headers:
        response_headers.update(headers)
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "request_id": request_id},
        headers=response_headers,
    )


async def social_graph_error_handler(request: Request, exc: SocialGraphError):
    status_code = STATUS_BY_ERROR.get(exc.code, 500)
    if isinstance(exc, StorageError):
        logger.error(
            f"Storage unavailable rid={getattr(request.state, 'request_id', None)} operation={exc.operation}")
    return _error_response(request, status_code, exc.code, exc.message)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error_response(request, exc.status_code, CODE_MAP.get(exc.status_code, "error"),
                           message, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"Validation error rid={getattr(request.state, 'request_id', None)}")
    return _error_response(request, 422, "validation_error", "Validation error",
                           details=jsonable_errors(exc))


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception instances that JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Build the API application.

    The database handle and graph facade are created here rather than in the
    lifespan so an app driven without lifespan events (tests) is usable.
    """
    db = database or Database()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level)
        if settings.create_tables_on_startup:
            await db.create_tables()
        logger.info(f"{settings.app_name} started on {db.dialect_name}")
        yield
        await db.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Connections, follows, blocks and graph queries for a professional network.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.database = db
    app.state.graph = SocialGraph(db)

    app.include_router(health_router)
    app.include_router(connections_router)
    app.include_router(follow_router)
    app.include_router(blocks_router)
    app.include_router(social_graph_router)
    app.include_router(users_router)

    app.add_exception_handler(SocialGraphError, social_graph_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_and_metrics(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        # Lightweight JSON log (sample all in debug, sample 10% in prod)
        if settings.debug or random.random() < 0.1:
            logger.info({
                "event": "request",
                "method": request.method,
                "path": request.url.path,
                "rid": request_id,
            })
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error rid={request_id}")
            response = _error_response(request, 500, "internal_server_error", "Internal Server Error")
        REQUEST_LATENCY.observe(time.perf_counter() - start)
        route = getattr(request.scope.get("route"), "path", request.url.path)
        REQUEST_COUNT.labels(method=request.method,
                             route=route, status=response.status_code).inc()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/metrics")
    async def metrics(request: Request):
        # In dev/debug mode, expose metrics without auth
        if not settings.debug:
            token = request.headers.get("X-Metrics-Token")
            if not settings.metrics_token or token != settings.metrics_token:
                return JSONResponse(status_code=403, content={"detail": "Forbidden"})
        data = generate_latest()
        return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()
