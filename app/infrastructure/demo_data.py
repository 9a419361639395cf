"""Deterministic registry records served in demo mode.

Used when no Doma API key is available or the registry rejects the key, so
the dashboard still renders a plausible analysis. Timestamps are relative to
``now``; everything else is fixed.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from app.domain.registry import NameRecord, TokenActivity

DEMO_OWNER = "0x1234567890abcdef1234567890abcdef12345678"
DEMO_TOKEN_ID = "12345"
DEFAULT_TLD = "eth"


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _split_name(domain_name: str) -> Tuple[str, str]:
    parts = domain_name.split(".")
    sld = parts[0]
    tld = parts[1] if len(parts) > 1 and parts[1] else DEFAULT_TLD
    return sld, tld


def demo_name_record(domain_name: str, now: Optional[datetime] = None) -> NameRecord:
    """Claimed, tokenized name with a single token on network 1."""
    now = now or datetime.now(timezone.utc)
    sld, tld = _split_name(domain_name)
    tokenized_at = _iso(now - timedelta(days=90))

    return NameRecord.model_validate({
        "name": domain_name,
        "expiresAt": _iso(now + timedelta(days=365)),
        "tokenizedAt": tokenized_at,
        "eoi": None,
        "claimedBy": DEMO_OWNER,
        "transferLock": False,
        "tokens": [{
            "tokenId": DEMO_TOKEN_ID,
            "owner": DEMO_OWNER,
            "networkId": 1,
            "createdAt": tokenized_at,
        }],
        "activities": [
            {
                "type": "CLAIMED",
                "txHash": "0xabcd1234...",
                "sld": sld,
                "tld": tld,
                "createdAt": _iso(now - timedelta(days=100)),
                "claimedBy": DEMO_OWNER,
            },
            {
                "type": "TOKENIZED",
                "txHash": "0xefgh5678...",
                "sld": sld,
                "tld": tld,
                "createdAt": tokenized_at,
                "networkId": 1,
            },
        ],
    })


def demo_token_activities(token_id: str, now: Optional[datetime] = None) -> List[TokenActivity]:
    """One transfer, one open listing at 2.5 ETH and one 2.0 ETH offer."""
    now = now or datetime.now(timezone.utc)
    records = [
        {
            "type": "TRANSFERRED",
            "txHash": "0x1111...",
            "tokenId": token_id,
            "createdAt": _iso(now - timedelta(days=30)),
            "finalized": True,
            "transferredTo": "0xabcd1234...",
            "transferredFrom": DEMO_OWNER,
        },
        {
            "type": "LISTED",
            "txHash": "0x2222...",
            "tokenId": token_id,
            "createdAt": _iso(now - timedelta(days=15)),
            "finalized": True,
            "orderId": "order_123",
            "seller": "0xabcd1234...",
            "payment": {"amount": "2.5", "currency": "ETH"},
            "startsAt": _iso(now - timedelta(days=15)),
            "expiresAt": _iso(now + timedelta(days=15)),
        },
        {
            "type": "OFFER_RECEIVED",
            "txHash": "0x3333...",
            "tokenId": token_id,
            "createdAt": _iso(now - timedelta(days=10)),
            "finalized": True,
            "orderId": "offer_456",
            "buyer": "0xefgh5678...",
            "seller": "0xabcd1234...",
            "payment": {"amount": "2.0", "currency": "ETH"},
            "expiresAt": _iso(now + timedelta(days=5)),
        },
    ]
    return [TokenActivity.model_validate(record) for record in records]
