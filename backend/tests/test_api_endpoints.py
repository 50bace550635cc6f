"""Tests for API endpoints."""

import threading

import pytest
from unittest.mock import patch
import json

from squad_metrics.errors import (
    AuthenticationError,
    DashboardError,
    NoBoardsFoundError,
    RateLimitError,
    RemoteError,
    UnavailableError,
)


SNAPSHOT = {
    "sprint": {"id": "100", "name": "Sprint 1"},
    "squads": [{"id": "board-1", "name": "Growth Hacking", "completionPercentage": 77}],
    "alerts": [],
    "tasks": [],
}


class TestHealth:
    """Test health check endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["status"] == "ok"
        assert data["environment"] == "development"
        assert "timestamp" in data


class TestJiraData:
    """Test the dashboard snapshot endpoint."""

    def test_success_wraps_snapshot(self, client, dashboard_service):
        """Should return the snapshot under the data key."""
        dashboard_service.get_dashboard_snapshot.return_value = SNAPSHOT

        response = client.get("/api/jira-data")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["data"]["squads"][0]["completionPercentage"] == 77
        dashboard_service.get_dashboard_snapshot.assert_called_once_with(None)

    def test_project_keys_query_param(self, client, dashboard_service):
        """Should pass the projectKeys filter through to the service."""
        dashboard_service.get_dashboard_snapshot.return_value = SNAPSHOT

        response = client.get("/api/jira-data?projectKeys=GH,%20CONT")

        assert response.status_code == 200
        dashboard_service.get_dashboard_snapshot.assert_called_once_with(("GH", "CONT"))

    @pytest.mark.parametrize("error, status, message", [
        (AuthenticationError("Unauthorized", 401), 401, "Authentication failed: Invalid Jira credentials"),
        (AuthenticationError("Forbidden", 403), 401, "Authentication failed: Access denied"),
        (RateLimitError("Too many requests", 429), 429, "Rate limit exceeded, please try again later"),
        (UnavailableError("Bad gateway", 502), 503, "Jira API is currently unavailable"),
        (UnavailableError("refused", reason="unreachable"), 503, "Jira API is currently unavailable"),
        (UnavailableError("timed out", reason="timeout"), 504, "Request to Jira API timed out after 30s"),
        (NoBoardsFoundError("No boards found (Scrum or Kanban)"), 503, "No boards found in Jira"),
        (RemoteError("Bad request", 400), 500, "An unexpected error occurred"),
        (DashboardError("boom"), 500, "An unexpected error occurred"),
        (KeyError("squads"), 500, "An unexpected error occurred"),
    ])
    def test_error_mapping(self, client, dashboard_service, error, status, message):
        """Should map failures to status codes and a uniform error body."""
        dashboard_service.get_dashboard_snapshot.side_effect = error

        response = client.get("/api/jira-data")

        assert response.status_code == status
        data = json.loads(response.data)
        assert data["error"] == message
        assert data["statusCode"] == status
        assert "timestamp" in data

    def test_error_body_hides_internal_details(self, client, dashboard_service):
        """Should not leak exception text to the client."""
        dashboard_service.get_dashboard_snapshot.side_effect = Exception("password=hunter2")

        response = client.get("/api/jira-data")

        assert b"hunter2" not in response.data

    @patch("jira_proxy.api.jira_data.REQUEST_TIMEOUT", 0.05)
    def test_slow_aggregation_times_out(self, client, dashboard_service):
        """Should return 504 once the request deadline passes."""
        release = threading.Event()
        dashboard_service.get_dashboard_snapshot.side_effect = lambda keys: release.wait(2)

        try:
            response = client.get("/api/jira-data")
        finally:
            release.set()

        assert response.status_code == 504
        data = json.loads(response.data)
        assert data["error"] == "Request timed out - Jira API is taking too long to respond"


class TestCacheInvalidate:
    """Test cache invalidation endpoint."""

    def test_invalidate(self, client, dashboard_service):
        response = client.post("/api/cache/invalidate")

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data["data"]["success"] is True
        assert data["data"]["message"] == "Cache invalidated successfully"
        assert data["data"]["keys"] == ["dashboard-data", "all-boards-config"]
        dashboard_service.invalidate.assert_called_once_with()

    def test_invalidate_requires_post(self, client):
        response = client.get("/api/cache/invalidate")
        assert response.status_code == 405


class TestCors:
    """Test CORS headers for the dashboard frontend."""

    def test_api_allows_any_origin(self, client, dashboard_service):
        dashboard_service.get_dashboard_snapshot.return_value = SNAPSHOT

        response = client.get("/api/jira-data", headers={"Origin": "http://localhost:5173"})

        assert response.headers["Access-Control-Allow-Origin"] == "*"
