"""Immutable records for the data pulled from Jira."""

from dataclasses import dataclass
from typing import Optional

from squad_metrics.normalization import resolve_story_points


@dataclass(frozen=True)
class Board:
    id: int
    name: str
    kind: str = "scrum"

    @classmethod
    def from_payload(cls, data: dict) -> "Board":
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            kind=data.get("type", "scrum"),
        )


@dataclass(frozen=True)
class Sprint:
    id: int
    name: str
    state: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    goal: Optional[str] = None

    @classmethod
    def from_payload(cls, data: dict) -> "Sprint":
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            state=data.get("state", "future"),
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
            goal=data.get("goal"),
        )


@dataclass(frozen=True)
class Issue:
    """One Jira issue, flattened out of the REST ``fields`` object.

    Story points are resolved at construction time so every consumer sees
    the same value for the same payload.
    """

    id: str
    key: str
    summary: str
    status: str
    issue_type: str
    created: str
    priority: Optional[str] = None
    assignee: Optional[str] = None
    resolved: Optional[str] = None
    flagged: bool = False
    story_points: float = 0

    @classmethod
    def from_payload(cls, data: dict) -> "Issue":
        fields = data.get("fields") or {}
        return cls(
            id=str(data.get("id", "")),
            key=data.get("key", ""),
            summary=fields.get("summary") or "",
            status=(fields.get("status") or {}).get("name") or "",
            issue_type=(fields.get("issuetype") or {}).get("name") or "",
            created=fields.get("created") or "",
            priority=(fields.get("priority") or {}).get("name"),
            assignee=(fields.get("assignee") or {}).get("displayName"),
            resolved=fields.get("resolutiondate"),
            flagged=fields.get("flagged") is True,
            story_points=resolve_story_points(fields),
        )


@dataclass(frozen=True)
class BoardContext:
    """A board plus its active sprint (``None`` for kanban or idle boards)."""

    board: Board
    sprint: Optional[Sprint] = None
