"""Domain analysis orchestration.

Fetches a name and its token history from the Doma registry (or demo data
when no usable key is available), runs the scoring formulas and assembles
the response documents served by the API.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.logging import get_logger, LogTimer
from app.domain.registry import NameRecord, TokenActivity
from app.infrastructure.demo_data import demo_name_record, demo_token_activities
from app.infrastructure.doma import DomaAPIError, DomaClient
from app.services import scoring

logger = get_logger(__name__)

DATA_SOURCE_LIVE = "Doma Subgraph"
DATA_SOURCE_DEMO = "Demo Data"


class DomainNotFoundError(Exception):
    """The registry has no record for the requested name."""

    def __init__(self, domain_name: str):
        super().__init__(f'Domain "{domain_name}" not found in Doma registry')
        self.domain_name = domain_name


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# -----------------
# REGISTRY LOOKUPS
# -----------------

async def resolve_name_record(
    client: DomaClient, domain_name: str, api_key: Optional[str] = None
) -> Tuple[Optional[NameRecord], bool]:
    """Fetch a name record, falling back to demo data on missing or rejected keys.

    Returns:
        Tuple of (record, used_demo); record is None for unknown names

    Raises:
        DomaAPIError: For upstream failures that are not key problems
    """
    if not client.resolve_key(api_key):
        logger.info(f"Demo mode: no Doma API key, creating mock data for {domain_name}",
                    extra={"domain": domain_name, "data_source": DATA_SOURCE_DEMO})
        return demo_name_record(domain_name), True

    try:
        return await client.fetch_name(domain_name, api_key), False
    except DomaAPIError as e:
        if not e.is_auth_failure:
            raise
        logger.info(f"Demo mode: creating mock data for {domain_name} ({e.message})",
                    extra={"domain": domain_name, "data_source": DATA_SOURCE_DEMO})
        return demo_name_record(domain_name), True


async def resolve_token_activities(
    client: DomaClient, token_id: Optional[str], api_key: Optional[str] = None, demo: bool = False
) -> Tuple[List[TokenActivity], bool]:
    """Fetch token activities with the same demo fallback as name records.

    ``demo`` forces mock activities, used when the name record itself was mocked.
    """
    if not token_id:
        return [], False

    if demo or not client.resolve_key(api_key):
        logger.info(f"Demo mode: creating mock token activities for {token_id}",
                    extra={"token_id": token_id, "data_source": DATA_SOURCE_DEMO})
        return demo_token_activities(token_id), True

    try:
        return await client.fetch_token_activities(token_id, api_key), False
    except DomaAPIError as e:
        if not e.is_auth_failure:
            raise
        logger.info(f"Demo mode: creating mock token activities for {token_id} ({e.message})",
                    extra={"token_id": token_id, "data_source": DATA_SOURCE_DEMO})
        return demo_token_activities(token_id), True


async def _load_domain(
    client: DomaClient, domain_name: str, api_key: Optional[str]
) -> Tuple[NameRecord, List[TokenActivity], bool]:
    record, name_demo = await resolve_name_record(client, domain_name, api_key)
    if record is None:
        raise DomainNotFoundError(domain_name)

    token_activities, token_demo = await resolve_token_activities(
        client, record.primary_token_id, api_key, demo=name_demo
    )
    return record, token_activities, name_demo or token_demo


# -----------------
# ANALYSES
# -----------------

async def analyze_domain(
    client: DomaClient, domain_name: str, api_key: Optional[str] = None
) -> Dict[str, Any]:
    """Full creditworthiness analysis of a single domain.

    Raises:
        DomainNotFoundError: If the registry does not know the name
        DomaAPIError: For upstream failures other than key problems
    """
    with LogTimer(logger, f"analyze:{domain_name}"):
        record, token_activities, used_demo = await _load_domain(client, domain_name, api_key)

        scored = scoring.score_domain(
            record.name,
            record.activities,
            token_activities,
            settings.eth_usd_price,
        )

    logger.info(
        f"Analyzed {record.name}: score {scored['overallScore']} ({scored['riskTier']})",
        extra={"domain": record.name, "data_source": DATA_SOURCE_DEMO if used_demo else DATA_SOURCE_LIVE},
    )

    return {
        "success": True,
        "domainName": record.name,
        **scored,
        "metadata": {
            "analyzedAt": _utc_now(),
            "dataSource": DATA_SOURCE_DEMO if used_demo else DATA_SOURCE_LIVE,
            "apiEndpoint": client.endpoint,
            "tokenId": record.primary_token_id,
            "totalTokenActivities": len(token_activities),
            "totalNameActivities": len(record.activities),
        },
    }


async def analyze_many(
    client: DomaClient, domain_names: List[str], api_key: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Analyze several domains concurrently; one failure does not sink the batch.

    Returns:
        One outcome per input, in input order:
        ``{domain, status: fulfilled|rejected, data, error}``
    """
    results = await asyncio.gather(
        *(analyze_domain(client, name, api_key) for name in domain_names),
        return_exceptions=True,
    )

    outcomes = []
    for name, result in zip(domain_names, results):
        if isinstance(result, Exception):
            if not isinstance(result, (DomainNotFoundError, DomaAPIError)):
                logger.error(f"Batch analysis failed for {name}: {result}",
                             exc_info=result, extra={"domain": name})
            outcomes.append({"domain": name, "status": "rejected", "data": None, "error": str(result)})
        else:
            outcomes.append({"domain": name, "status": "fulfilled", "data": result, "error": None})
    return outcomes


async def compare_domains(
    client: DomaClient, domain_names: List[str], api_key: Optional[str] = None
) -> Dict[str, Any]:
    """Side-by-side comparison of 2-5 domains.

    Failed analyses appear with null metrics, count as 0 towards the average
    and are never picked as the best domain.
    """
    outcomes = await analyze_many(client, domain_names, api_key)

    rows = []
    best_name: Optional[str] = None
    best_score: Optional[int] = None
    total = 0
    for outcome in outcomes:
        data = outcome["data"]
        if data is None:
            rows.append({
                "name": outcome["domain"],
                "score": None,
                "riskTier": None,
                "collateralValue": None,
                "maxLoan": None,
                "error": outcome["error"],
            })
            continue

        score = data["overallScore"]
        total += score
        rows.append({
            "name": data["domainName"],
            "score": score,
            "riskTier": data["riskTier"],
            "collateralValue": data["collateralValue"],
            "maxLoan": data["maxLoanAmount"],
        })
        if best_score is None or score > best_score:
            best_name, best_score = data["domainName"], score

    return {
        "domains": rows,
        "bestDomain": best_name,
        "averageScore": scoring.round_half_up(total / len(outcomes)) if outcomes else 0,
    }


async def get_activities(
    client: DomaClient, domain_name: str, api_key: Optional[str] = None
) -> Dict[str, Any]:
    """Raw name and token activity history of a domain."""
    record, token_activities, used_demo = await _load_domain(client, domain_name, api_key)

    return {
        "success": True,
        "domain": domain_name,
        "nameActivities": [activity.to_wire() for activity in record.activities],
        "tokenActivities": [activity.to_wire() for activity in token_activities],
        "summary": {
            "totalNameActivities": len(record.activities),
            "totalTokenActivities": len(token_activities),
            "tokenId": record.primary_token_id,
            "dataSource": DATA_SOURCE_DEMO if used_demo else DATA_SOURCE_LIVE,
        },
    }


async def get_quick_score(
    client: DomaClient, domain_name: str, api_key: Optional[str] = None
) -> Dict[str, Any]:
    """Cheap estimate from name activity and label quality; skips token history."""
    record, used_demo = await resolve_name_record(client, domain_name, api_key)
    if record is None:
        raise DomainNotFoundError(domain_name)

    quality = scoring.assess_domain_quality(record.name)
    name_score = scoring.score_name_activities(record.activities)
    score = scoring.quick_score(name_score["score"], quality["score"])

    return {
        "success": True,
        "domain": domain_name,
        "quickScore": score,
        "estimatedTier": scoring.tier_name(score),
        "dataSource": DATA_SOURCE_DEMO if used_demo else DATA_SOURCE_LIVE,
        "note": "Quick score based on name activities and domain quality only",
    }
