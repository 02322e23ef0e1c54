import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from price_api.binance_client import BinanceClient
from price_api.config import Settings, load_settings
from price_api.deps import get_gateway, get_settings
from price_api.errors import AppError, ValidationError
from price_api.gateway import PriceGateway
from price_api.models import (
    BatchRequest,
    BatchResponse,
    ErrorResponse,
    HealthStatus,
    PricePoint,
)
from price_api.validation import validate_batch, validate_symbol

logger = logging.getLogger(__name__)

SERVICE_NAME = "Binance Price API"
SERVICE_VERSION = "1.0.0"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

router = APIRouter()


@router.get("/health", response_model=HealthStatus)
async def health(gateway: PriceGateway = Depends(get_gateway)):
    return await gateway.check_health()


@router.get("/prices/{symbol}", response_model=PricePoint, responses=ERROR_RESPONSES)
async def get_price(symbol: str, gateway: PriceGateway = Depends(get_gateway)):
    normalized = validate_symbol(symbol)
    logger.info("Fetching price for %s", normalized)
    return await gateway.fetch_one(normalized)


@router.post(
    "/prices/batch",
    response_model=BatchResponse,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}},
)
async def get_prices(
    body: BatchRequest,
    gateway: PriceGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    if body.symbols is None:
        raise ValidationError("symbols field is required")
    symbols = validate_batch(body.symbols, max_symbols=settings.max_batch_symbols)
    logger.info("Fetching batch prices for %d symbols: %s", len(symbols), symbols)
    results = await gateway.fetch_batch(symbols)
    return BatchResponse.from_results(results)


def _error(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = {"code": code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s (%s)",
            request.method,
            request.url.path,
            exc.message,
            exc.code,
            exc_info=exc,
        )
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    issues = [
        {"path": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.warning("%s %s rejected: invalid request %s", request.method, request.url.path, issues)
    return _error(400, "VALIDATION_ERROR", "Request validation failed", {"issues": issues})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return _error(404, "NOT_FOUND", "Resource not found")
    if exc.status_code == 405:
        return _error(405, "METHOD_NOT_ALLOWED", "Method not allowed")
    return _error(exc.status_code, "HTTP_ERROR", str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
    return _error(500, "INTERNAL_SERVER_ERROR", "An unexpected error occurred")


def create_app(settings: Optional[Settings] = None, gateway: Optional[PriceGateway] = None) -> FastAPI:
    """Build the HTTP application.

    An injected ``gateway`` is used as is. Without one, the lifespan builds a
    :class:`BinanceClient` from ``settings`` at startup and closes it at
    shutdown.
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        if getattr(app.state, "gateway", None) is None:
            client = BinanceClient(
                settings.upstream_base_url,
                timeout_s=settings.request_timeout_s,
                api_key=settings.binance_api_key,
            )
            app.state.gateway = PriceGateway(client)
        try:
            yield
        finally:
            if client is not None:
                await client.aclose()
                app.state.gateway = None

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        logger.info("Incoming request %s %s", request.method, request.url.path)
        response = await call_next(request)
        latency_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Response sent %s %s status=%d latency_ms=%d",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
        )
        return response

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    prefix = settings.api_prefix

    @app.get(prefix + "/")
    async def root():
        return {
            "name": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "endpoints": {
                "health": f"{prefix}/health",
                "singlePrice": f"{prefix}/prices/{{symbol}}",
                "batchPrice": f"{prefix}/prices/batch",
            },
        }

    app.include_router(router, prefix=prefix)
    return app
