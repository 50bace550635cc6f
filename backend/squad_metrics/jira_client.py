"""Jira Agile REST client with pagination, 429 backoff and error mapping."""

import logging
import time
from typing import Iterable, Optional

import requests

from squad_metrics.errors import (
    AuthenticationError,
    DashboardError,
    RateLimitError,
    RemoteError,
    UnavailableError,
)
from squad_metrics.models import Board, Issue, Sprint

logger = logging.getLogger(__name__)

AGILE_API = "/rest/agile/1.0"
REQUEST_TIMEOUT = 30
MAX_RETRIES = 3

BOARD_PAGE_SIZE = 50
SPRINT_PAGE_SIZE = 50
ISSUE_PAGE_SIZE = 100

HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class JiraClient:
    """Read-only client for the Jira Agile API.

    Callers never see partial pages: every list method keeps requesting
    until the API reports the last page. Rate-limited calls are retried
    here, so callers only get a RateLimitError once retries run out.
    """

    def __init__(self, server: str, email: str, token: str,
                 timeout: int = REQUEST_TIMEOUT):
        self.server = server.rstrip("/")
        self.email = email
        self.token = token
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "JiraClient":
        return cls(config.base_url, config.jira_email, config.jira_api_token)

    def _request(self, endpoint: str, params: Optional[dict] = None):
        """Make an authenticated GET against the Agile API.

        429 answers are retried up to MAX_RETRIES times, waiting 1s, 2s
        and 4s. Any other error status is raised immediately.
        """
        url = f"{self.server}{AGILE_API}{endpoint}"

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = requests.get(
                    url,
                    auth=(self.email, self.token),
                    headers=HEADERS,
                    params=params,
                    timeout=self.timeout
                )
            except requests.exceptions.Timeout as e:
                logger.error(f"Timeout calling {endpoint}: {e}")
                raise UnavailableError(
                    f"Request to Jira API timed out after {self.timeout}s", reason="timeout"
                ) from e
            except requests.exceptions.ConnectionError as e:
                logger.error(f"Cannot reach Jira at {self.server}: {e}")
                raise UnavailableError(
                    "Jira API is currently unavailable", reason="unreachable"
                ) from e

            if response.status_code == 429 and attempt < MAX_RETRIES:
                delay = 2 ** attempt
                logger.warning(
                    f"Rate limited on {endpoint}, retry {attempt + 1}/{MAX_RETRIES} in {delay}s"
                )
                time.sleep(delay)
                continue
            break

        if 200 <= response.status_code < 300:
            return response.json()

        error = self._classify_error(response)
        logger.error(f"Error calling {endpoint}: {error}")
        raise error

    @staticmethod
    def _classify_error(response) -> RemoteError:
        status = response.status_code
        message = f"Jira API error: {status}"
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            messages = data.get("errorMessages")
            if isinstance(messages, list) and messages:
                message = str(messages[0])

        if status in (401, 403):
            return AuthenticationError(message, status)
        if status == 429:
            return RateLimitError(message, status)
        if status >= 500:
            return UnavailableError(message, status, reason="server")
        return RemoteError(message, status)

    def _paginate_until_last(self, endpoint: str, params: dict, page_size: int) -> list:
        """Collect ``values`` pages until the API reports ``isLast``."""
        values = []
        start_at = 0

        while True:
            data = self._request(
                endpoint,
                params={**params, "startAt": start_at, "maxResults": page_size}
            )
            page = data.get("values", [])
            values.extend(page)

            if data.get("isLast", True) or not page:
                break

            start_at += page_size

        return values

    def _paginate_until_total(self, endpoint: str, key: str, page_size: int,
                              params: Optional[dict] = None) -> list:
        """Collect ``key`` pages until ``startAt`` passes the reported ``total``."""
        items = []
        start_at = 0

        while True:
            data = self._request(
                endpoint,
                params={**(params or {}), "startAt": start_at, "maxResults": page_size}
            )
            page = data.get(key, [])
            items.extend(page)
            total = data.get("total", 0)
            start_at += page_size

            if start_at >= total or not page:
                break

        return items

    def list_boards(self, project_keys: Optional[Iterable[str]] = None) -> list:
        """List boards, optionally only those of the given project keys.

        Args:
            project_keys: Project keys to filter by. A key whose lookup
                fails is logged and skipped; without a filter, errors
                propagate.

        Returns:
            List of Board, each board id appearing once
        """
        boards = {}

        if project_keys:
            logger.info(f"Fetching boards for projects: {', '.join(project_keys)}")
            for project_key in project_keys:
                try:
                    raw_boards = self._paginate_until_last(
                        "/board", {"projectKeyOrId": project_key}, BOARD_PAGE_SIZE
                    )
                except DashboardError as e:
                    logger.warning(f"Failed to fetch boards for project {project_key}: {e}")
                    continue
                for raw in raw_boards:
                    board = Board.from_payload(raw)
                    boards.setdefault(board.id, board)
        else:
            for raw in self._paginate_until_last("/board", {}, BOARD_PAGE_SIZE):
                board = Board.from_payload(raw)
                boards.setdefault(board.id, board)

        logger.info(f"Found {len(boards)} total boards")
        for board in boards.values():
            logger.debug(f"  - ID: {board.id}, Name: \"{board.name}\", Type: {board.kind}")

        return list(boards.values())

    def get_active_sprint(self, board_id: int) -> Optional[Sprint]:
        """First active sprint of a board, or None."""
        data = self._request(f"/board/{board_id}/sprint", params={"state": "active"})
        values = data.get("values", [])
        if not values:
            return None
        return Sprint.from_payload(values[0])

    def get_all_sprints(self, board_id: int) -> list:
        """Every sprint of a board, in all states.

        Kanban boards answer 400 on the sprint endpoint; that is reported
        as an empty list rather than an error.
        """
        try:
            raw_sprints = self._paginate_until_total(
                f"/board/{board_id}/sprint", "values", SPRINT_PAGE_SIZE
            )
        except RemoteError as e:
            if e.status_code == 400:
                logger.info(f"Board {board_id} doesn't support sprints (Kanban board) - skipping")
                return []
            raise

        sprints = [Sprint.from_payload(raw) for raw in raw_sprints]
        states = [s.state for s in sprints]
        logger.info(
            f"Board {board_id}: Found {len(sprints)} total sprints "
            f"(active: {states.count('active')}, closed: {states.count('closed')}, "
            f"future: {states.count('future')})"
        )
        return sprints

    def get_sprint_issues(self, board_id: int, sprint_id: int) -> list:
        raw_issues = self._paginate_until_total(
            f"/board/{board_id}/sprint/{sprint_id}/issue", "issues", ISSUE_PAGE_SIZE
        )
        return [Issue.from_payload(raw) for raw in raw_issues]

    def get_closed_sprints(self, board_id: int, limit: int = 5) -> list:
        """Closed sprints of a board, a single page of at most ``limit``."""
        data = self._request(
            f"/board/{board_id}/sprint",
            params={"state": "closed", "maxResults": limit}
        )
        return [Sprint.from_payload(raw) for raw in data.get("values", [])[:limit]]

    def get_board_history(self, board_id: int) -> list:
        """All issues on a board, regardless of sprint."""
        raw_issues = self._paginate_until_total(
            f"/board/{board_id}/issue", "issues", ISSUE_PAGE_SIZE
        )
        return [Issue.from_payload(raw) for raw in raw_issues]

    def validate_connectivity(self) -> int:
        """List boards once to prove the domain and credentials work.

        Returns:
            Number of boards visible to the configured user
        """
        logger.info("Validating Jira connectivity...")
        boards = self.list_boards()
        logger.info(f"Successfully connected to Jira API (found {len(boards)} boards)")
        return len(boards)
