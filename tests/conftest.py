"""Pytest configuration and shared fixtures."""
import os

# Configure before the app (and its settings) are imported
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_ENABLED"] = "false"
os.environ.pop("DOMA_API_KEY", None)

import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from app.domain.registry import NameRecord, TokenActivity
from app.infrastructure.doma import DomaClient, get_doma_client
from app.infrastructure.redis import get_rate_limiter


TEST_ENDPOINT = "https://doma.test/graphql"


@pytest.fixture
def mock_name_record():
    """Registry record for a claimed, tokenized, once-renewed name."""
    return NameRecord.model_validate({
        "name": "crypto.eth",
        "expiresAt": "2027-10-17T00:00:00.000Z",
        "tokenizedAt": "2026-07-19T00:00:00.000Z",
        "claimedBy": "0xowner",
        "transferLock": False,
        "tokens": [{"tokenId": "777", "owner": "0xowner", "networkId": 1}],
        "activities": [
            {"type": "CLAIMED", "txHash": "0x01", "sld": "crypto", "tld": "eth"},
            {"type": "RENEWED", "txHash": "0x02", "sld": "crypto", "tld": "eth", "expiresAt": "2027-10-17"},
            {"type": "TOKENIZED", "txHash": "0x03", "sld": "crypto", "tld": "eth", "networkId": 1},
        ],
    })


@pytest.fixture
def mock_token_activities():
    """Two sales to distinct buyers, an open listing and six offers."""
    records = [
        {"type": "PURCHASED", "buyer": "0xb1", "seller": "0xs1", "payment": {"amount": "1.5", "currency": "ETH"}},
        {"type": "PURCHASED", "buyer": "0xb2", "seller": "0xs1", "payment": {"amount": "2.5", "currency": "ETH"}},
        {"type": "LISTED", "seller": "0xb2", "payment": {"amount": "3.0", "currency": "ETH"}},
        {"type": "TRANSFERRED", "transferredTo": "0xb1", "transferredFrom": "0xs1"},
        {"type": "TRANSFERRED", "transferredTo": "0xb2", "transferredFrom": "0xb1"},
    ]
    records += [
        {"type": "OFFER_RECEIVED", "buyer": f"0xo{i}", "payment": {"amount": "1.0", "currency": "ETH"}}
        for i in range(6)
    ]
    return [TokenActivity.model_validate(r) for r in records]


@pytest.fixture
def doma_client():
    """DomaClient with a server key configured and registry calls mocked out."""
    client = DomaClient(endpoint=TEST_ENDPOINT, api_key="server-key")
    client.fetch_name = AsyncMock(return_value=None)
    client.fetch_token_activities = AsyncMock(return_value=[])
    client.poll_events = AsyncMock()
    client.ack_events = AsyncMock(return_value=None)
    client.reset_poll = AsyncMock(return_value=None)
    return client


@pytest.fixture
def demo_client():
    """DomaClient without any key: every lookup is served from demo data."""
    client = DomaClient(endpoint=TEST_ENDPOINT, api_key="")
    client.fetch_name = AsyncMock(side_effect=AssertionError("registry must not be called in demo mode"))
    client.fetch_token_activities = AsyncMock(side_effect=AssertionError("registry must not be called in demo mode"))
    return client


@pytest.fixture
def test_client(doma_client):
    """FastAPI test client wired to the mocked registry client."""
    from main import app
    app.dependency_overrides[get_doma_client] = lambda: doma_client
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def demo_test_client(demo_client):
    """FastAPI test client running in demo mode."""
    from main import app
    app.dependency_overrides[get_doma_client] = lambda: demo_client
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Each test starts with fresh rate-limit counters."""
    get_rate_limiter().reset()
    yield
