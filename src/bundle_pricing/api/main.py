import json
import logging
import sys
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

# Add src to path for internal imports
src_path = Path(__file__).parent.parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from bundle_pricing import __version__
from bundle_pricing.config.settings import get_settings
from bundle_pricing.engine import RequestFacts
from bundle_pricing.errors import (
    USER_MESSAGES,
    ErrorCode,
    NotFoundError,
    PricingEngineError,
    ValidationError,
)
from bundle_pricing.api.state import get_engine

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Bundle Pricing API",
    description="Rule-driven pricing for data bundles with a step-by-step audit trail",
    version=__version__,
)

# Enable CORS for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CalcRequest(BaseModel):
    days: int = Field(ge=1)
    group: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    payment_method: Optional[str] = None
    strategy_id: Optional[str] = None
    include_debug_info: bool = False
    correlation_id: Optional[str] = None


def _to_request_facts(req: CalcRequest) -> RequestFacts:
    try:
        return RequestFacts(
            days=req.days,
            group=req.group or settings.default_group,
            country=req.country,
            region=req.region,
            payment_method=req.payment_method or settings.default_payment_method,
            strategy_id=req.strategy_id,
            include_debug_info=req.include_debug_info,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail={"code": e.code.value, "message": e.message})


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail={"code": e.code.value, "message": e.user_message})
    if isinstance(e, PricingEngineError):
        logger.error("Pricing failed (%s): %s", e.code.value, e.message)
        return HTTPException(status_code=500, detail={"code": e.code.value, "message": e.user_message})
    logger.exception("Unexpected pricing failure")
    return HTTPException(status_code=500, detail={
        "code": ErrorCode.INTERNAL_ERROR.value,
        "message": USER_MESSAGES[ErrorCode.INTERNAL_ERROR],
    })


@app.get("/")
async def root():
    return {"status": "online", "message": "Bundle Pricing API Active"}


@app.post("/calculate")
async def calculate_price(req: CalcRequest):
    request = _to_request_facts(req)
    try:
        result = await get_engine().calculate(request)
    except Exception as e:
        raise _http_error(e)
    return jsonable_encoder(result.to_dict())


@app.post("/calculate/stream")
async def calculate_price_stream(req: CalcRequest):
    """Newline-delimited JSON: one update per pricing step, then a terminal update."""
    request = _to_request_facts(req)
    engine = get_engine()

    async def lines():
        async for update in engine.iter_updates(request, correlation_id=req.correlation_id):
            yield json.dumps(jsonable_encoder(update.to_dict())) + "\n"

    return StreamingResponse(lines(), media_type="application/x-ndjson")


@app.post("/rules/invalidate")
async def invalidate_rules():
    get_engine().invalidate_rules()
    return {"status": "invalidated"}


@app.get("/system/status")
async def get_status():
    engine = get_engine()
    cached = getattr(engine.rule_repository, 'cached_strategies', None)
    return {
        "engine_active": True,
        "version": __version__,
        "currency": engine.settings.currency,
        "rules_file": str(engine.settings.rules_file),
        "rules_cache_ttl_seconds": engine.settings.rules_cache_ttl_seconds,
        "cached_strategies": cached() if callable(cached) else [],
        "markup_entries": len(engine.markup_matrix),
        "fee_methods": sorted(engine.fee_matrix.entries),
    }


def run():
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    logger.info("Starting Bundle Pricing API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())
