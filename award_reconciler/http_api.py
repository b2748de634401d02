"""
FastAPI HTTP Server for award-reconciler.

Provides a REST API for segment grouping, booking options, live
verification and airline lookup.

Run with:
    uvicorn award_reconciler.http_api:app --reload

Or using the CLI:
    award-reconciler-api

Environment Variables:
    AWARD_RECONCILER_API_KEY: API key for authentication (optional)
    AWARD_RECONCILER_RATE_LIMIT: Requests per minute (default: 60)
    AWARD_RECONCILER_CORS_ORIGINS: JSON list of CORS origins (default: ["*"])
    AWARD_RECONCILER_DIRECTORY_PATH: Directory JSON file (airports, airlines, reliability)
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from . import __version__
from .alliances import alliance_of
from .cache import generate_cache_key
from .config import get_config
from .directory import AirlineDirectory, StaticDirectory, resolve_city_names
from .display import visible_results
from .errors import ErrorCode, InvalidRequestError, ReconcilerException, VerificationRejected
from .schema import ItineraryCard
from .utils import validate_airport_code, validate_date
from .verification import LiveVerifier, plan_card

logger = logging.getLogger(__name__)

# ============================================================================
# Rate Limiting
# ============================================================================

class RateLimiter:
    """Simple in-memory per-client rate limiter."""

    def __init__(self, requests_per_minute: int = 60):
        self.requests_per_minute = requests_per_minute
        self.requests: Dict[str, List[float]] = defaultdict(list)

    def _prune(self, client_id: str) -> None:
        minute_ago = time.time() - 60
        self.requests[client_id] = [t for t in self.requests[client_id] if t > minute_ago]

    def is_allowed(self, client_id: str) -> bool:
        """Check if a request is allowed, recording it when it is."""
        self._prune(client_id)

        if len(self.requests[client_id]) >= self.requests_per_minute:
            return False

        self.requests[client_id].append(time.time())
        return True

    def get_remaining(self, client_id: str) -> int:
        self._prune(client_id)
        return max(0, self.requests_per_minute - len(self.requests[client_id]))


rate_limiter = RateLimiter(get_config().rate_limit)

# ============================================================================
# Shared services
# ============================================================================

_directory: Optional[AirlineDirectory] = None
_verifier: Optional[LiveVerifier] = None
_services_lock = threading.Lock()


def get_directory() -> AirlineDirectory:
    """Directory loaded from ``directory_path``, or an empty one."""
    global _directory

    if _directory is None:
        with _services_lock:
            if _directory is None:
                path = get_config().directory_path
                _directory = StaticDirectory.from_json_file(path) if path else StaticDirectory()
    return _directory


def get_verifier() -> LiveVerifier:
    global _verifier

    if _verifier is None:
        directory = get_directory()
        with _services_lock:
            if _verifier is None:
                _verifier = LiveVerifier(
                    catalog=directory.catalog(),
                    reliability=directory.get_reliability(),
                )
    return _verifier


def set_services(
    directory: Optional[AirlineDirectory] = None,
    verifier: Optional[LiveVerifier] = None,
) -> None:
    """Replace the shared directory and verifier; None resets to lazy defaults."""
    global _directory, _verifier

    with _services_lock:
        _directory = directory
        _verifier = verifier

# ============================================================================
# Request/Response Models
# ============================================================================

class CardRequestModel(BaseModel):
    """An itinerary card with its flight rows inline."""
    route: Union[str, List[str]] = Field(..., description='Route airports, "SEA-ANC-NRT" or a list')
    date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="Reference date (YYYY-MM-DD)")
    itinerary: List[Dict[str, Any]] = Field(..., min_length=1, description="Flight rows in order")
    index: int = Field(0, ge=0, description="Card position in its result list")

    model_config = {
        "json_schema_extra": {
            "example": {
                "route": "SEA-NRT",
                "date": "2024-05-01",
                "itinerary": [{
                    "FlightNumbers": "AS 1",
                    "DepartsAt": "2024-05-01T10:00:00Z",
                    "ArrivesAt": "2024-05-02T13:00:00Z",
                    "TotalDuration": 660,
                    "JCount": 2,
                }],
            }
        }
    }

    def to_card(self) -> ItineraryCard:
        try:
            return ItineraryCard.from_dict(self.model_dump(), index=self.index)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidRequestError.from_code(message=f"Invalid itinerary: {e}")


class VerifyRequestModel(CardRequestModel):
    """A card plus the program chosen per group."""
    selections: Dict[str, Optional[str]] = Field(
        ...,
        description='Program per group, keyed by start index ("0") or span ("SEA-NRT")',
    )
    seats: int = Field(1, ge=1, description="Number of seats")

    def group_selections(self) -> Dict[Union[int, str], Optional[str]]:
        return {(int(k) if k.isdigit() else k): v for k, v in self.selections.items()}


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str = __version__
    timestamp: str
    features: Dict[str, bool]

# ============================================================================
# FastAPI Application
# ============================================================================

app = FastAPI(
    title="Award Reconciler API",
    description="""
**Award Reconciler API** groups award itineraries by booking alliance and
verifies selected programs against live search.

## Authentication

Set the `X-API-Key` header if authentication is enabled.

## Rate Limiting

Default: 60 requests per minute per IP address.
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# ============================================================================
# Dependencies
# ============================================================================

async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
    """Verify API key if authentication is enabled."""
    expected = get_config().api_key
    if not expected:
        return None

    if not api_key:
        raise HTTPException(status_code=401, detail="API key required. Set X-API-Key header.")

    if api_key != expected:
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key


async def check_rate_limit(request: Request) -> None:
    """Check rate limit for the request."""
    client_ip = request.client.host if request.client else "unknown"

    if not rate_limiter.is_allowed(client_ip):
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Try again in 60 seconds.",
            headers={"X-RateLimit-Remaining": str(rate_limiter.get_remaining(client_ip))},
        )

# ============================================================================
# Endpoints
# ============================================================================

@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Award Reconciler API", "docs": "/docs"}


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint."""
    config = get_config()
    return HealthResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        features={
            "live_verification": bool(config.live_verification_programs),
            "shared_cache": config.cache_backend == "sqlite",
            "directory": config.directory_path is not None,
        },
    )


@app.post("/groups", tags=["Itineraries"], dependencies=[Depends(check_rate_limit)])
async def groups_endpoint(
    request: CardRequestModel,
    api_key: Optional[str] = Depends(verify_api_key),
    directory: AirlineDirectory = Depends(get_directory),
):
    """
    Split an itinerary into groups of one booking classification.

    Each group is either unreliable or shares one alliance.
    """
    card = request.to_card()
    plan = plan_card(card, directory.catalog(), directory.get_reliability())
    cities = resolve_city_names(directory, card.route)
    return {
        "card_key": card.card_key,
        "groups": [{**g.to_dict(), "span": s} for g, s in zip(plan.groups, plan.spans)],
        "cities": cities.to_dict(),
    }


@app.post("/booking-options", tags=["Itineraries"], dependencies=[Depends(check_rate_limit)])
async def booking_options_endpoint(
    request: CardRequestModel,
    api_key: Optional[str] = Depends(verify_api_key),
    verifier: LiveVerifier = Depends(get_verifier),
):
    """
    Booking programs for each group of an itinerary.

    `recommended` lists the programs that can be live-verified.
    """
    return verifier.plan(request.to_card()).to_dict()


@app.post("/verify", tags=["Verification"], dependencies=[Depends(check_rate_limit)])
async def verify_endpoint(
    request: VerifyRequestModel,
    api_key: Optional[str] = Depends(verify_api_key),
    verifier: LiveVerifier = Depends(get_verifier),
):
    """
    Verify the selected programs against live search.

    Failed lookups appear under `failures` and never fail the request.
    """
    card = request.to_card()
    outcome = await verifier.verify(card, request.group_selections(), request.seats)
    plan = verifier.plan(card)

    response = outcome.to_dict()
    response["visible"] = [
        {"group_start": v.group.start, "span": v.span, "merged": v.merged}
        for v in visible_results(card, plan.groups, outcome.results)
    ]
    return response


@app.get("/cache-key", tags=["Verification"], dependencies=[Depends(check_rate_limit)])
async def cache_key_endpoint(
    program: str = Query(..., min_length=2, max_length=3),
    from_iata: str = Query(..., alias="from"),
    to_iata: str = Query(..., alias="to"),
    depart: str = Query(...),
    seats: int = Query(1, ge=1),
    api_key: Optional[str] = Depends(verify_api_key),
):
    """Cache key a live-search lookup is stored under."""
    try:
        from_iata = validate_airport_code(from_iata)
        to_iata = validate_airport_code(to_iata)
    except ValueError as e:
        raise InvalidRequestError.from_code(ErrorCode.INVALID_AIRPORT, message=str(e))
    try:
        depart = validate_date(depart)
    except ValueError as e:
        raise InvalidRequestError.from_code(ErrorCode.INVALID_DATE, message=str(e))

    return {"key": generate_cache_key(program, from_iata, to_iata, depart, seats)}


@app.get("/airlines/{code}", tags=["Airlines"], dependencies=[Depends(check_rate_limit)])
async def airline_endpoint(
    code: str,
    api_key: Optional[str] = Depends(verify_api_key),
    directory: AirlineDirectory = Depends(get_directory),
):
    """Catalog row and alliance for one airline code."""
    code = code.upper()
    record = directory.catalog().get(code)
    alliance = alliance_of(code)
    if record is None and alliance is None:
        raise HTTPException(status_code=404, detail=f"Unknown airline: {code}")

    return {
        "code": code,
        "record": record.to_dict() if record else None,
        "alliance": alliance.value if alliance else None,
        "alliance_name": alliance.display_name if alliance else None,
    }


@app.get("/cities", tags=["Airports"], dependencies=[Depends(check_rate_limit)])
async def cities_endpoint(
    iatas: str = Query(..., description="Comma-separated IATA codes"),
    api_key: Optional[str] = Depends(verify_api_key),
    directory: AirlineDirectory = Depends(get_directory),
):
    """City names for IATA codes; unknown codes are returned as-is."""
    codes = [c.strip() for c in iatas.split(",") if c.strip()]
    return resolve_city_names(directory, codes).to_dict()

# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(ReconcilerException)
async def reconciler_exception_handler(request: Request, exc: ReconcilerException):
    """Structured errors keep their code and suggested action."""
    status_code = 422 if isinstance(exc, (VerificationRejected, InvalidRequestError)) else 502
    logger.warning(f"{request.url.path}: {exc.error.code.value}: {exc.error.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.to_dict(), "status_code": status_code},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG") else None,
        },
    )

# ============================================================================
# CLI Entry Point
# ============================================================================

def run(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the FastAPI server."""
    import uvicorn

    logger.info(f"Starting Award Reconciler API on http://{host}:{port}")
    logger.info(f"API Docs: http://{host}:{port}/docs")

    uvicorn.run(
        "award_reconciler.http_api:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    import sys

    logging.basicConfig(
        level=get_config().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    host = sys.argv[1] if len(sys.argv) > 1 else "0.0.0.0"
    port = int(sys.argv[2]) if len(sys.argv) > 2 else 8000

    run(host=host, port=port, reload=True)
