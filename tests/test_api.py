"""
Tests for the shared request contract

CORS preflight handling, CORS headers on every response and the
{error, details} envelope.
"""

import pytest

from retailiq.errors import UpstreamError


class TestCors:
    """Tests for CORS handling."""

    @pytest.mark.parametrize("path", ["/activate-user", "/stripe-webhook", "/get-voices", "/does-not-exist"])
    def test_preflight(self, client, path):
        response = client.options(path)

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET, POST, DELETE, OPTIONS"
        assert "stripe-signature" in response.headers["access-control-allow-headers"]
        assert response.content == b""

    def test_headers_on_success(self, client):
        response = client.post("/get-agent-session", json={"agentId": "agent-123"})

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_headers_on_error(self, client):
        response = client.post("/get-agent-session", json={})

        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "*"


class TestErrorEnvelope:
    """Tests for the error envelope."""

    def test_malformed_json(self, client):
        response = client.post(
            "/activate-user", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert "error" in response.json()

    def test_upstream_error_carries_provider_detail(self, client, mock_elevenlabs):
        mock_elevenlabs.get_signed_url.side_effect = UpstreamError(
            "Agent not found", detail={"status": "agent_not_found"}, upstream_status=404
        )

        response = client.post("/get-agent-session", json={"agentId": "gone"})

        assert response.status_code == 400
        assert response.json() == {"error": "Agent not found", "details": {"status": "agent_not_found"}}

    def test_unexpected_error_is_reported(self, client, mock_elevenlabs):
        mock_elevenlabs.get_signed_url.side_effect = RuntimeError("connection reset")

        response = client.post("/get-agent-session", json={"agentId": "agent-123"})

        assert response.status_code == 400
        assert response.json() == {"error": "connection reset", "details": "RuntimeError: connection reset"}
        assert response.headers["access-control-allow-origin"] == "*"

    def test_value_error_details(self, client):
        response = client.post("/test-prompt", json={})

        assert response.json() == {"error": "Prompt is required", "details": "ValueError: Prompt is required"}


class TestUpstreamErrors:
    """Tests for provider error extraction."""

    def test_error_detail_from_json(self):
        from unittest.mock import MagicMock

        from retailiq.errors import error_detail

        response = MagicMock()
        response.json.return_value = {"error": {"message": "No such customer"}}

        assert error_detail(response) == "No such customer"

    def test_raise_for_upstream(self):
        from unittest.mock import MagicMock

        from retailiq.errors import raise_for_upstream

        response = MagicMock(ok=False, status_code=422)
        response.json.return_value = {"detail": "voice_id missing"}

        with pytest.raises(UpstreamError) as excinfo:
            raise_for_upstream(response, "Failed to create agent")

        assert str(excinfo.value) == "voice_id missing"
        assert excinfo.value.upstream_status == 422
