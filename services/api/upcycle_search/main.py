from fastapi import FastAPI, Header, Request, Query as QueryParam
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.routing import Route
from pydantic import BaseModel
from typing import List
import logging
import os
from contextlib import asynccontextmanager

from elasticsearch import ApiError
from elastic_transport import TransportError
from scalar_fastapi import get_scalar_api_reference

from upcycle_search.config.logging import (
    clear_request_id,
    configure_logging,
    set_request_id,
)
from upcycle_search.errors import InvalidSearchParameter
from upcycle_search.search.ai_search import search_with_ai
from upcycle_search.search.inference import InferenceFailedError
from upcycle_search.search.nearby import DEFAULT_RADIUS_KM, search_nearby
from upcycle_search.tools.es_client import ensure_indices

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Avoid bootstrapping indices when running under pytest or explicit test env
    if os.getenv("PYTEST_CURRENT_TEST") or os.getenv("APP_ENV") == "test":
        logger.info("Skipping index bootstrap in test mode")
    else:
        ensure_indices()
    yield


app = FastAPI(
    title="UpCycle Search API", lifespan=lifespan, docs_url=None, redoc_url=None
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = set_request_id(request.headers.get(REQUEST_ID_HEADER))
    try:
        response = await call_next(request)
    finally:
        clear_request_id()
    response.headers[REQUEST_ID_HEADER] = rid
    return response


@app.exception_handler(InvalidSearchParameter)
async def invalid_parameter_handler(request: Request, exc: InvalidSearchParameter):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=400, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query")]
    field = ".".join(loc) or "body"
    message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    logger.info("Rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"message": message, "field": field})


@app.exception_handler(InferenceFailedError)
async def inference_failed_handler(request: Request, exc: InferenceFailedError):
    return JSONResponse(status_code=502, content=exc.failure.to_payload())


@app.exception_handler(ApiError)
@app.exception_handler(TransportError)
async def store_error_handler(request: Request, exc: Exception):
    logger.error(
        "Store error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc
    )
    return JSONResponse(status_code=500, content={"message": "Server error"})


@app.get("/docs", include_in_schema=False)
def scalar_docs() -> HTMLResponse:
    return get_scalar_api_reference(
        openapi_url=app.openapi_url,
        title="UpCycle Search API Docs",
    )


@app.get("/api/materials/nearby")
def nearby_materials(
    lat: str | None = QueryParam(default=None),
    lng: str | None = QueryParam(default=None),
    radius: str = QueryParam(default=str(DEFAULT_RADIUS_KM)),
    category: str | None = QueryParam(default=None),
):
    return search_nearby(lat, lng, radius=radius, category=category)


class AISearchRequest(BaseModel):
    query: str | None = None
    latitude: float | str | None = None
    longitude: float | str | None = None
    radius: float | str | None = None


@app.post("/api/search/ai")
def ai_search(
    body: AISearchRequest,
    x_user_email: str | None = Header(default=None),
):
    return search_with_ai(
        body.query,
        latitude=body.latitude,
        longitude=body.longitude,
        radius=body.radius,
        user_email=x_user_email,
    )


# Simple health and route inspection
@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/__routes")
def routes() -> List[str]:
    return [r.path for r in app.routes if isinstance(r, Route)]
