"""Integration tests for API routes."""
import httpx
import pytest
from fastapi import status
from unittest.mock import patch

from app.domain.registry import PollResponse
from app.infrastructure.doma import DomaAPIError, DomaClient, get_doma_client


class TestAnalyzeRoutes:
    """Test single-domain analysis endpoints."""

    def test_analyze_demo_mode(self, demo_test_client):
        """Without any key the dashboard still gets a full analysis."""
        response = demo_test_client.post("/api/analyze", json={"domainName": "crypto.eth"})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["overallScore"] == 790
        assert data["riskTier"] == "Medium Risk"
        assert data["maxLTV"] == 60
        assert data["metadata"]["dataSource"] == "Demo Data"
        assert "X-Request-ID" in response.headers

    def test_analyze_live(self, test_client, doma_client, mock_name_record, mock_token_activities):
        doma_client.fetch_name.return_value = mock_name_record
        doma_client.fetch_token_activities.return_value = mock_token_activities

        response = test_client.post("/api/analyze", json={"domainName": " crypto.eth "})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["metadata"]["dataSource"] == "Doma Subgraph"
        doma_client.fetch_name.assert_awaited_once_with("crypto.eth", None)

    def test_analyze_body_key_forwarded(self, test_client, doma_client, mock_name_record):
        doma_client.fetch_name.return_value = mock_name_record

        test_client.post("/api/analyze", json={"domainName": "crypto.eth", "apiKey": "body-key"})

        doma_client.fetch_name.assert_awaited_once_with("crypto.eth", "body-key")

    def test_analyze_header_key_wins(self, test_client, doma_client, mock_name_record):
        doma_client.fetch_name.return_value = mock_name_record

        test_client.post(
            "/api/analyze",
            json={"domainName": "crypto.eth", "apiKey": "body-key"},
            headers={"x-doma-api-key": "header-key"},
        )

        doma_client.fetch_name.assert_awaited_once_with("crypto.eth", "header-key")

    @pytest.mark.parametrize("body", [{}, {"domainName": ""}, {"domainName": "   "}])
    def test_analyze_requires_domain(self, test_client, body):
        response = test_client.post("/api/analyze", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"success": False, "error": "Domain name is required"}

    def test_analyze_unknown_domain(self, test_client):
        response = test_client.post("/api/analyze", json={"domainName": "nobody.eth"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == 'Domain "nobody.eth" not found in Doma registry'

    def test_analyze_upstream_failure(self, test_client, doma_client):
        doma_client.fetch_name.side_effect = DomaAPIError("HTTP 503: Service Unavailable", 503)

        response = test_client.post("/api/analyze", json={"domainName": "crypto.eth"})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"success": False, "error": "Failed to analyze domain"}

    def test_analyze_malformed_body(self, test_client):
        response = test_client.post(
            "/api/analyze",
            content="not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False

    def test_quick_score(self, demo_test_client):
        response = demo_test_client.get("/api/quick-score/crypto.eth")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["quickScore"] == 894
        assert data["estimatedTier"] == "Low Risk"

    def test_quick_score_unknown_domain(self, test_client):
        response = test_client.get("/api/quick-score/nobody.eth")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_quick_score_upstream_failure(self, test_client, doma_client):
        doma_client.fetch_name.side_effect = DomaAPIError("HTTP 502: Bad Gateway", 502)

        response = test_client.get("/api/quick-score/crypto.eth")

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error"] == "Failed to calculate quick score"

    def test_analyze_rejected_key_serves_demo(self, test_client):
        """A GraphQL key error from the registry still yields a demo analysis."""
        from main import app
        client = DomaClient(
            endpoint="https://doma.test/graphql",
            api_key="rejected-key",
            transport=httpx.MockTransport(lambda request: httpx.Response(
                200, json={"errors": [{"message": "API Key is missing or invalid"}]}
            )),
        )
        app.dependency_overrides[get_doma_client] = lambda: client

        response = test_client.post("/api/analyze", json={"domainName": "crypto.eth"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["metadata"]["dataSource"] == "Demo Data"


class TestBatchRoutes:
    """Test batch analysis and comparison endpoints."""

    def test_batch_demo(self, demo_test_client):
        response = demo_test_client.post("/api/analyze-batch", json={"domains": ["crypto.eth", "web3.nft"]})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["total"] == 2
        assert [r["status"] for r in data["results"]] == ["fulfilled", "fulfilled"]

    def test_batch_partial_failure(self, test_client, doma_client, mock_name_record):
        async def fetch_name(name, api_key=None):
            return mock_name_record if name == "crypto.eth" else None

        doma_client.fetch_name.side_effect = fetch_name

        response = test_client.post("/api/analyze-batch", json={"domains": ["crypto.eth", "nobody.eth"]})

        assert response.status_code == status.HTTP_200_OK
        results = response.json()["results"]
        assert results[0]["status"] == "fulfilled"
        assert results[1] == {
            "domain": "nobody.eth",
            "status": "rejected",
            "data": None,
            "error": 'Domain "nobody.eth" not found in Doma registry',
        }

    @pytest.mark.parametrize("body", [{}, {"domains": []}, {"domains": ["", " "]}])
    def test_batch_requires_domains(self, test_client, body):
        response = test_client.post("/api/analyze-batch", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Array of domain names is required"

    def test_batch_limit(self, test_client):
        domains = [f"name{i}.eth" for i in range(11)]

        response = test_client.post("/api/analyze-batch", json={"domains": domains})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Maximum 10 domains per batch"

    def test_compare_demo_tie_keeps_first(self, demo_test_client):
        """abc.eth and crypto.eth both score 790; the first listed wins."""
        response = demo_test_client.post("/api/compare", json={"domains": ["crypto.eth", "abc.eth"]})

        assert response.status_code == status.HTTP_200_OK
        comparison = response.json()["comparison"]
        assert [row["name"] for row in comparison["domains"]] == ["crypto.eth", "abc.eth"]
        assert [row["score"] for row in comparison["domains"]] == [790, 790]
        assert comparison["bestDomain"] == "crypto.eth"
        assert comparison["averageScore"] == 790

    @pytest.mark.parametrize("domains", [["crypto.eth"], [f"n{i}.eth" for i in range(6)]])
    def test_compare_bounds(self, test_client, domains):
        response = test_client.post("/api/compare", json={"domains": domains})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Provide 2-5 domains to compare"

    @patch("app.api.routes.compare_domains")
    def test_compare_unexpected_failure(self, mock_compare, test_client):
        mock_compare.side_effect = RuntimeError("boom")

        response = test_client.post("/api/compare", json={"domains": ["a.eth", "b.eth"]})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"success": False, "error": "Failed to compare domains"}


class TestActivityRoutes:
    """Test activity history endpoint."""

    def test_activities(self, test_client, doma_client, mock_name_record, mock_token_activities):
        doma_client.fetch_name.return_value = mock_name_record
        doma_client.fetch_token_activities.return_value = mock_token_activities

        response = test_client.get("/api/activities/crypto.eth")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert len(data["nameActivities"]) == 3
        assert len(data["tokenActivities"]) == 11
        assert data["summary"]["tokenId"] == "777"

    def test_activities_unknown_domain(self, test_client):
        response = test_client.get("/api/activities/nobody.eth")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_activities_demo(self, demo_test_client):
        response = demo_test_client.get("/api/activities/crypto.eth")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["summary"]["dataSource"] == "Demo Data"


class TestEventRoutes:
    """Test Poll API proxy endpoints."""

    def test_poll_events(self, test_client, doma_client):
        doma_client.poll_events.return_value = PollResponse.model_validate({
            "events": [{"id": 3, "type": "NAME_CLAIMED", "name": "crypto.eth", "eventData": {}}],
            "lastId": 3,
            "hasMoreEvents": True,
        })

        response = test_client.get(
            "/api/events?eventTypes=NAME_CLAIMED&limit=5&finalizedOnly=false",
            headers={"Authorization": "Bearer caller-key"},
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["success"] is True
        assert data["lastId"] == 3
        assert data["hasMoreEvents"] is True
        assert data["events"][0]["name"] == "crypto.eth"
        doma_client.poll_events.assert_awaited_once_with(
            "caller-key", event_types=["NAME_CLAIMED"], limit=5, finalized_only=False
        )

    @pytest.mark.parametrize("upstream_status,expected", [
        (401, status.HTTP_401_UNAUTHORIZED),
        (403, status.HTTP_403_FORBIDDEN),
        (500, status.HTTP_502_BAD_GATEWAY),
        (None, status.HTTP_502_BAD_GATEWAY),
    ])
    def test_poll_error_mapping(self, test_client, doma_client, upstream_status, expected):
        doma_client.poll_events.side_effect = DomaAPIError("Poll failed", upstream_status)

        response = test_client.get("/api/events")

        assert response.status_code == expected
        assert response.json() == {"success": False, "error": "Poll failed"}

    def test_ack(self, test_client, doma_client):
        response = test_client.post("/api/events/ack/42")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True, "lastEventId": 42}
        doma_client.ack_events.assert_awaited_once_with(42, None)

    def test_reset(self, test_client, doma_client):
        response = test_client.post("/api/events/reset/0", headers={"x-doma-api-key": "k"})

        assert response.status_code == status.HTTP_200_OK
        doma_client.reset_poll.assert_awaited_once_with(0, "k")

    def test_reset_negative_id(self, test_client, doma_client):
        response = test_client.post("/api/events/reset/-1")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        doma_client.reset_poll.assert_not_called()


class TestMetadataRoutes:
    """Test service metadata endpoints."""

    def test_health(self, test_client):
        response = test_client.get("/api/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["domaEndpoint"] == "https://doma.test/graphql"
        assert data["demoMode"] is False
        assert data["rateLimiter"] == "memory"

    def test_health_demo_mode(self, demo_test_client):
        assert demo_test_client.get("/api/health").json()["demoMode"] is True

    def test_supported_tlds(self, test_client):
        response = test_client.get("/api/supported-tlds")

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "tlds": ["eth", "crypto", "blockchain", "nft", "dao", "web3"],
            "note": "Availability depends on Doma registry",
        }

    def test_root(self, test_client):
        response = test_client.get("/")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "running"
        assert any("/api/analyze" in line for line in data["endpoints"])

    def test_unknown_endpoint(self, test_client):
        response = test_client.get("/api/does-not-exist")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"success": False, "error": "Endpoint not found"}
