import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from dataweb.app import database
from dataweb.app.config import settings
from dataweb.app.errors import GatewayError
from dataweb.app.routers import auth as auth_router
from dataweb.app.routers import chat as chat_router
from dataweb.app.routers import health as health_router
from dataweb.app.routers import upload as upload_router
from dataweb.app.services.analysis_client import close_analysis_client, get_analysis_client

# All dataweb.* loggers inherit this
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(name)s] %(levelname)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("dataweb")

_HTTP_ERROR_KINDS = {
    404: ("not_found", "Route not found"),
    405: ("validation", "Method not allowed"),
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await run_in_threadpool(database.get_engine)
    if await run_in_threadpool(get_analysis_client().is_healthy):
        logger.info("Analysis service is ready at %s", settings.ANALYSIS_SERVICE_URL)
    else:
        logger.warning("Analysis service not available yet at %s", settings.ANALYSIS_SERVICE_URL)
    yield
    logger.info("Shutting down")
    await run_in_threadpool(close_analysis_client)
    await run_in_threadpool(database.shutdown)


app = FastAPI(title="DataWeb Gateway API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, kind: str, message: str, headers: dict[str, str] | None = None):
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "kind": kind},
        headers=headers,
    )


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    if exc.status_code >= 500 and exc.kind == "internal":
        logger.error("Internal error on %s %s: %s", request.method, request.url.path, exc.__context__ or exc)
    return _error_response(exc.status_code, exc.kind, exc.message, exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"Invalid value for '{location}': {errors[0].get('msg')}" if location else errors[0].get("msg", message)
    return _error_response(400, "validation", message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    fallback_kind = "validation" if exc.status_code < 500 else "internal"
    kind, message = _HTTP_ERROR_KINDS.get(exc.status_code, (fallback_kind, str(exc.detail)))
    return _error_response(exc.status_code, kind, message, getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "internal", "Internal server error")


app.include_router(auth_router.router, prefix="/api/auth", tags=["auth"])
app.include_router(upload_router.router, prefix="/api", tags=["upload"])
app.include_router(chat_router.router, prefix="/api", tags=["chat"])
app.include_router(health_router.router, prefix="/api", tags=["health"])
