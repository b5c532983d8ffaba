"""IBAN service — FastAPI application entry point.

Routes:
  GET /validate/{iban}          validate, optionally ?validateBankCode=1&getBIC=1
  GET /countries                supported country codes and names
  GET /calculate/{cc}/{bank}/{account}
  GET /v2/calculate/{cc}/{bank}/{account}   calculated IBAN + full validation
  GET /metrics                  in-process metrics register (local metrics only)
  GET /health
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from ibanservice.config import Settings, settings
from ibanservice.database import close_db, create_engine, create_session_factory, init_db
from ibanservice.iban import CalculationError, Iban, calculate_iban, country_names
from ibanservice.orchestrator.pipeline import ValidationPipeline
from ibanservice.orchestrator.schemas import CalculationResponse, ValidationRequest, ValidationResult
from ibanservice.services.augmenter import BankDataAugmenter
from ibanservice.services.cache import ResultCache
from ibanservice.services.metrics import InMemoryMetricsRegister, MetricsDispatcher, create_metrics_sink

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger("ibanservice")

JSON_MEDIA_TYPE = "application/json; charset=utf-8"

router = APIRouter()


def _json_body_response(body: str, status_code: int = 200) -> Response:
    """Write a pre-rendered body; Content-Length is the exact encoded length."""
    return Response(
        content=body,
        status_code=status_code,
        media_type=JSON_MEDIA_TYPE,
        headers={"Access-Control-Allow-Origin": "*"},
    )


# ═══════════════ ENDPOINTS ═══════════════

@router.get("/health")
async def health(request: Request):
    state = request.app.state
    return {
        "status": "ok",
        "environment": state.settings.environment,
        "metrics": state.metrics_sink.name,
    }


@router.get("/validate/{iban}")
async def validate(
    request: Request,
    iban: str,
    validate_bank_code: str | None = Query(None, alias="validateBankCode"),
    get_bic: str | None = Query(None, alias="getBIC"),
):
    pipeline: ValidationPipeline = request.app.state.pipeline

    start = time.monotonic()
    body, status = await pipeline.handle(iban, validate_bank_code, get_bic)
    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Validate | status=%d | %dms | iban=%s | bank_code=%s | bic=%s",
        status, elapsed_ms, iban[:6], validate_bank_code, get_bic,
    )
    return _json_body_response(body, status)


@router.get("/validate")
@router.get("/validate/")
async def validate_empty(
    request: Request,
    validate_bank_code: str | None = Query(None, alias="validateBankCode"),
    get_bic: str | None = Query(None, alias="getBIC"),
):
    return await validate(request, "", validate_bank_code, get_bic)


@router.get("/countries")
async def countries():
    return country_names()


def _calculate(country_code: str, bank_code: str, account_number: str) -> Iban | JSONResponse:
    try:
        return calculate_iban(country_code, bank_code, account_number)
    except CalculationError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})


@router.get("/calculate/{country_code}/{bank_code}/{account_number}")
async def calculate(country_code: str, bank_code: str, account_number: str):
    iban = _calculate(country_code, bank_code, account_number)
    if isinstance(iban, JSONResponse):
        return iban
    return CalculationResponse(iban=iban.value, ibanPrintFormat=iban.print_format).model_dump(exclude_none=True)


@router.get("/v2/calculate/{country_code}/{bank_code}/{account_number}")
async def calculate_and_validate(request: Request, country_code: str, bank_code: str, account_number: str):
    iban = _calculate(country_code, bank_code, account_number)
    if isinstance(iban, JSONResponse):
        return iban

    pipeline: ValidationPipeline = request.app.state.pipeline
    body, _ = await pipeline.run(ValidationRequest(
        raw_iban=iban.value,
        want_bank_code_check=True,
        want_bic=True,
    ))
    response = CalculationResponse(
        iban=iban.value,
        ibanPrintFormat=iban.print_format,
        result=ValidationResult.from_json(body),
    )
    return response.model_dump(exclude_none=True)


@router.get("/metrics")
async def metrics(request: Request):
    sink = request.app.state.metrics_sink
    if not isinstance(sink, InMemoryMetricsRegister):
        return JSONResponse(status_code=404, content={"error": "Metrics are sent to the remote collector."})
    return sink.snapshot()


# ═══════════════ APP ═══════════════

def create_app(config: Settings | None = None) -> FastAPI:
    """Build the app and its process-wide services (cache, metrics, database)."""
    config = config or settings

    engine = create_engine(config.database_url)
    cache = ResultCache(
        default_ttl=config.cache_ttl_seconds,
        sweep_interval=config.cache_sweep_seconds,
        maxsize=config.cache_maxsize,
        redis_url=config.redis_url,
    )
    metrics_sink = create_metrics_sink(config)
    dispatcher = MetricsDispatcher(metrics_sink, config.environment)
    pipeline = ValidationPipeline(
        cache=cache,
        augmenter=BankDataAugmenter(create_session_factory(engine)),
        metrics=dispatcher,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("IBAN service starting | env=%s | metrics=%s", config.environment, metrics_sink.name)

        db_ok = await init_db(engine)
        logger.info("Database: %s", "connected" if db_ok else "unavailable (continuing without bank data)")

        if config.redis_url:
            redis_ok = await cache.connect()
            logger.info("Redis: %s", "connected" if redis_ok else "unavailable (using in-memory cache)")

        cache.start_sweeper()

        yield

        await dispatcher.drain()
        await cache.stop_sweeper()
        await cache.disconnect()
        await close_db(engine)
        logger.info("IBAN service shutting down")

    app = FastAPI(
        title="IBAN Validation API",
        description="IBAN validation with bank code check and BIC lookup",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.engine = engine
    app.state.cache = cache
    app.state.metrics_sink = metrics_sink
    app.state.metrics = dispatcher
    app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.include_router(router)
    return app


def __getattr__(name: str):
    # `uvicorn ibanservice.main:app` builds the env-configured app on first access
    if name == "app":
        application = create_app()
        globals()["app"] = application
        return application
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
