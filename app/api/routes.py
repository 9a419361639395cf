"""Async FastAPI routes for the DomaVault analytics API.

- Domain analysis (single, batch, compare, quick score)
- Activity history passthrough
- Doma Poll API proxy for registry events
- Service metadata (health, supported TLDs)
"""
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.core.auth import get_client_api_key, resolve_api_key
from app.core.logging import get_logger
from app.domain.requests import AnalyzeRequest, DomainListRequest
from app.infrastructure.doma import DomaAPIError, DomaClient, get_doma_client
from app.infrastructure.redis import get_rate_limiter
from app.services.analysis import (
    DomainNotFoundError,
    analyze_domain,
    analyze_many,
    compare_domains,
    get_activities,
    get_quick_score,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api")

SUPPORTED_TLDS = ["eth", "crypto", "blockchain", "nft", "dao", "web3"]
MAX_BATCH_DOMAINS = 10
MIN_COMPARE_DOMAINS = 2
MAX_COMPARE_DOMAINS = 5


def _clean_domains(domains: Optional[List[str]]) -> List[str]:
    return [d.strip() for d in domains or [] if d and d.strip()]


# -----------------
# ANALYSIS ENDPOINTS
# -----------------

@router.post("/analyze")
async def analyze(
    req: AnalyzeRequest,
    header_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Analyze a single domain and derive lending terms.

    Example:
        POST /api/analyze
        {"domainName": "crypto.eth"}
    """
    domain_name = (req.domain_name or "").strip()
    if not domain_name:
        raise HTTPException(status_code=400, detail="Domain name is required")

    logger.info(f"Analyzing domain: {domain_name}", extra={"domain": domain_name})
    api_key = resolve_api_key(header_key, req.api_key)

    try:
        return await analyze_domain(client, domain_name, api_key)
    except DomainNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:
        logger.error(f"Analysis error for {domain_name}: {exc}", exc_info=True, extra={"domain": domain_name})
        raise HTTPException(status_code=500, detail="Failed to analyze domain")


@router.post("/analyze-batch")
async def analyze_batch(
    req: DomainListRequest,
    header_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Analyze up to 10 domains concurrently; failures are reported per domain."""
    domains = _clean_domains(req.domains)
    if not domains:
        raise HTTPException(status_code=400, detail="Array of domain names is required")
    if len(domains) > MAX_BATCH_DOMAINS:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_BATCH_DOMAINS} domains per batch")

    api_key = resolve_api_key(header_key, req.api_key)

    try:
        results = await analyze_many(client, domains, api_key)
    except Exception as exc:
        logger.error(f"Batch analysis error: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to analyze domains")

    return {"success": True, "total": len(domains), "results": results}


@router.post("/compare")
async def compare(
    req: DomainListRequest,
    header_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Compare 2-5 domains and pick the strongest collateral."""
    domains = _clean_domains(req.domains)
    if not MIN_COMPARE_DOMAINS <= len(domains) <= MAX_COMPARE_DOMAINS:
        raise HTTPException(
            status_code=400,
            detail=f"Provide {MIN_COMPARE_DOMAINS}-{MAX_COMPARE_DOMAINS} domains to compare"
        )

    api_key = resolve_api_key(header_key, req.api_key)

    try:
        comparison = await compare_domains(client, domains, api_key)
    except Exception as exc:
        logger.error(f"Comparison error: {exc}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to compare domains")

    return {"success": True, "comparison": comparison}


@router.get("/activities/{domain_name}")
async def activities(
    domain_name: str,
    api_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Name and token activity history for a domain."""
    try:
        return await get_activities(client, domain_name, api_key)
    except DomainNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:
        logger.error(f"Activities fetch error for {domain_name}: {exc}", exc_info=True, extra={"domain": domain_name})
        raise HTTPException(status_code=500, detail="Failed to fetch activities")


@router.get("/quick-score/{domain_name}")
async def quick_score(
    domain_name: str,
    api_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Score from name activity and label quality only (no token history)."""
    try:
        return await get_quick_score(client, domain_name, api_key)
    except DomainNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:
        logger.error(f"Quick score error for {domain_name}: {exc}", exc_info=True, extra={"domain": domain_name})
        raise HTTPException(status_code=500, detail="Failed to calculate quick score")


# -----------------
# EVENT ENDPOINTS
# -----------------

def _poll_error(exc: DomaAPIError) -> HTTPException:
    if exc.status_code in (400, 401, 403):
        return HTTPException(status_code=exc.status_code, detail=exc.message)
    logger.error(f"Doma Poll API error: {exc.message}")
    return HTTPException(status_code=502, detail=exc.message)


@router.get("/events")
async def poll_events(
    event_types: Optional[List[str]] = Query(default=None, alias="eventTypes"),
    limit: Optional[int] = Query(default=None, ge=1),
    finalized_only: bool = Query(default=True, alias="finalizedOnly"),
    api_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Next page of Doma registry events (requires an API key with EVENTS permission)."""
    try:
        page = await client.poll_events(api_key, event_types=event_types, limit=limit, finalized_only=finalized_only)
    except DomaAPIError as exc:
        raise _poll_error(exc)
    return {"success": True, **page.to_wire()}


@router.post("/events/ack/{last_event_id}")
async def ack_events(
    last_event_id: int = Path(ge=0),
    api_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Acknowledge processed events up to ``last_event_id``."""
    try:
        await client.ack_events(last_event_id, api_key)
    except DomaAPIError as exc:
        raise _poll_error(exc)
    return {"success": True, "lastEventId": last_event_id}


@router.post("/events/reset/{event_id}")
async def reset_events(
    event_id: int = Path(ge=0),
    api_key: Optional[str] = Depends(get_client_api_key),
    client: DomaClient = Depends(get_doma_client),
):
    """Rewind the poll cursor to ``event_id``."""
    try:
        await client.reset_poll(event_id, api_key)
    except DomaAPIError as exc:
        raise _poll_error(exc)
    return {"success": True, "eventId": event_id}


# -----------------
# METADATA ENDPOINTS
# -----------------

@router.get("/health")
async def health_check(client: DomaClient = Depends(get_doma_client)):
    """Health check endpoint (no key required)."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "domaEndpoint": client.endpoint,
        "demoMode": client.resolve_key() is None,
        "rateLimiter": get_rate_limiter().backend,
    }


@router.get("/supported-tlds")
async def supported_tlds():
    """TLDs the dashboard offers; actual availability depends on the registry."""
    return {
        "tlds": SUPPORTED_TLDS,
        "note": "Availability depends on Doma registry",
    }
