"""Shared fixtures for dashboard backend tests."""

import pytest
import random
import sys
import os
from datetime import datetime, timezone
from unittest.mock import Mock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from squad_metrics.cache import TTLCache
from squad_metrics.config import DashboardConfig
from squad_metrics.models import Board, BoardContext, Issue, Sprint


FIXED_NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def jira_response(status_code=200, payload=None):
    """Mock requests.Response with the given status and JSON body."""
    return Mock(status_code=status_code, json=lambda: payload if payload is not None else {})


def make_issue(key, status="To Do", points=None, priority="Medium", assignee="Ana",
               issue_type="Story", created="2024-01-08T09:00:00.000+0000",
               resolved=None, flagged=False):
    """Build an Issue from a Jira-shaped payload."""
    fields = {
        "summary": f"Summary of {key}",
        "status": {"name": status},
        "priority": {"name": priority} if priority else None,
        "assignee": {"displayName": assignee} if assignee else None,
        "issuetype": {"name": issue_type},
        "created": created,
        "resolutiondate": resolved,
        "flagged": flagged,
    }
    if points is not None:
        fields["customfield_10016"] = points
    return Issue.from_payload({"id": key.split("-")[1], "key": key, "fields": fields})


@pytest.fixture
def mock_jira_credentials():
    """Mock Jira credentials for testing."""
    return {
        "server": "https://test.atlassian.net",
        "email": "test@example.com",
        "token": "test-token-123"
    }


@pytest.fixture
def dashboard_config():
    """Validated configuration without a project filter."""
    return DashboardConfig(
        jira_domain="test.atlassian.net",
        jira_email="test@example.com",
        jira_api_token="test-token-123",
        cache_ttl=120,
        environment="development"
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def sample_sprint_payload():
    """Sample active sprint as returned by the Agile API."""
    return {
        "id": 100,
        "name": "Sprint 1",
        "state": "active",
        "startDate": "2024-01-01T00:00:00.000Z",
        "endDate": "2024-01-14T00:00:00.000Z",
        "goal": "Complete feature X"
    }


@pytest.fixture
def board_a():
    return Board(id=1, name="quadro GH", kind="scrum")


@pytest.fixture
def board_b():
    return Board(id=2, name="Support kanban", kind="kanban")


@pytest.fixture
def active_sprint(sample_sprint_payload):
    return Sprint.from_payload(sample_sprint_payload)


@pytest.fixture
def sprint_issues():
    """Two Done issues at 5 SP and one In Progress at 3 SP, no blockers."""
    return [
        make_issue("GH-1", status="Done", points=5, resolved="2024-01-09T15:30:00.000+0000"),
        make_issue("GH-2", status="Closed", points=5, assignee="Bruno",
                   resolved="2024-01-10T10:00:00.000+0000"),
        make_issue("GH-3", status="In Progress", points=3, issue_type="Bug",
                   created="2024-01-05T09:00:00.000+0000"),
    ]


@pytest.fixture
def contexts(board_a, board_b, active_sprint):
    """Board A with an active sprint, board B without one."""
    return [BoardContext(board_a, active_sprint), BoardContext(board_b, None)]


@pytest.fixture
def mock_client(board_a, board_b, active_sprint, sprint_issues):
    """JiraClient double serving the two-board scenario."""
    client = Mock()
    client.list_boards.return_value = [board_a, board_b]
    client.get_active_sprint.side_effect = lambda board_id: active_sprint if board_id == 1 else None
    client.get_all_sprints.side_effect = lambda board_id: [active_sprint] if board_id == 1 else []
    client.get_sprint_issues.return_value = sprint_issues
    client.get_board_history.side_effect = lambda board_id: (
        [make_issue("GH-9", assignee="Carla", issue_type="Epic")] if board_id == 1 else []
    )
    return client


@pytest.fixture
def dashboard_service():
    """DashboardService double for the HTTP layer."""
    service = Mock()
    service.invalidate.return_value = ["dashboard-data", "all-boards-config"]
    return service


@pytest.fixture
def app(dashboard_config, dashboard_service):
    """Create Flask test app."""
    from jira_proxy import create_app
    app = create_app(dashboard_config, dashboard_service)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
