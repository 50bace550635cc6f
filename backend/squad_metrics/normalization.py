"""Pure mapping functions from raw Jira vocabulary to the dashboard taxonomy.

Nothing in this module performs I/O or keeps state, so the functions can be
called from any number of worker threads.
"""

import math
import re
from typing import Optional

DONE = "Done"
IN_PROGRESS = "In Progress"
IN_REVIEW = "In Review"
TO_DO = "To Do"

HIGH = "High"
MEDIUM = "Medium"
LOW = "Low"


def _field(name):
    return lambda fields: fields.get(name)


# Evaluated in order; the first usable value wins.
STORY_POINT_ACCESSORS = (
    _field("story_points"),
    _field("customfield_10028"),
    _field("customfield_10016"),
)

DONE_KEYWORDS = (
    "done", "closed", "resolved",
    "concluído", "concluida", "finalizado", "completo",
)
PROGRESS_KEYWORDS = (
    "em andamento", "em desenvolvimento", "fazendo", "doing",
    "working", "desenvolvimento", "coding",
)
# Only count as "In Progress" when the status is not a pending one
GUARDED_PROGRESS_KEYWORDS = ("progress", "dev")
PROGRESS_EXCLUSIONS = ("pendente",)
REVIEW_KEYWORDS = (
    "review", "revisão", "revisao", "qa", "test",
    "homologação", "homologacao",
)

HIGH_PRIORITY_KEYWORDS = ("high", "critical", "blocker")
LOW_PRIORITY_KEYWORDS = ("low", "trivial")

BOARD_ABBREVIATIONS = {
    "CONT": "Squad de Content",
    "GWT": "Squad de Growth",
    "CHN": "Squad de Channel",
    "SCC": "Squad CW Cast/CW Class",
    "EM": "Equipe de Marketing",
    "CDM": "Campanhas de Marketing",
    "GH": "Growth Hacking",
    "IM": "Inbound Marketing",
    "CRON": "Cronograma do Marketing",
    "FDP": "Feedback de Produto",
    "FDI": "Forno de Ideias",
    "LDC": "Lideranças do CEO",
    "DEV": "Time de Produto da CW",
    "AO": "Agile Onboarding",
    "AC": "Atividades Comerciais",
    "BLOG": "Blog",
    "CHAP": "Chapters",
    "CRI": "Criação",
}

_QUALIFIER_PREFIX = re.compile(r"^(quadro|board|squad)\s+", re.IGNORECASE)
_QUALIFIER_SUFFIX = re.compile(r"\s+(quadro|board|squad)$", re.IGNORECASE)
_WELL_FORMED_NAME = re.compile(r"^(Squad|Equipe|Time)\s+[a-z]+\s+[A-Z]")
_SHORT_CODE = re.compile(r"^[A-Z]{2,5}$")


def round_half_up(value: float, ndigits: int = 0):
    """Round .5 away from zero for positive values (2.5 -> 3, not 2).

    Returns an int when ``ndigits`` is 0, else a float with that many decimals.
    """
    if ndigits == 0:
        return int(math.floor(value + 0.5))
    scale = 10 ** ndigits
    return math.floor(value * scale + 0.5) / scale


def date_part(value: Optional[str]) -> str:
    """Return the ``YYYY-MM-DD`` part of a Jira timestamp, or ``""``."""
    if not value:
        return ""
    return value.split("T")[0]


def resolve_story_points(issue: dict) -> float:
    """Story points of an issue, looked up through STORY_POINT_ACCESSORS.

    Accepts either a raw issue payload or its ``fields`` object. Empty,
    zero and non-numeric values are skipped; the result defaults to 0.
    """
    fields = issue.get("fields", issue) or {}

    for accessor in STORY_POINT_ACCESSORS:
        value = accessor(fields)
        if value is None or value == "":
            continue
        try:
            points = float(value)
        except (TypeError, ValueError):
            continue
        if points:
            return int(points) if points.is_integer() else points

    return 0


def normalize_status(name: Optional[str]) -> str:
    """Map a (possibly Portuguese) status name onto the four board columns."""
    lower = (name or "").lower()

    if any(word in lower for word in DONE_KEYWORDS):
        return DONE

    excluded = any(word in lower for word in PROGRESS_EXCLUSIONS)
    if any(word in lower for word in PROGRESS_KEYWORDS) or (
        not excluded and any(word in lower for word in GUARDED_PROGRESS_KEYWORDS)
    ):
        return IN_PROGRESS

    if any(word in lower for word in REVIEW_KEYWORDS):
        return IN_REVIEW

    # Backlog, "A Fazer", "Tarefas pendentes", ...
    return TO_DO


def normalize_priority(name: Optional[str] = None) -> str:
    lower = (name or "").lower()
    if any(word in lower for word in HIGH_PRIORITY_KEYWORDS):
        return HIGH
    if any(word in lower for word in LOW_PRIORITY_KEYWORDS):
        return LOW
    return MEDIUM


def normalize_issue_type(name: Optional[str]) -> str:
    """Clean an issue type name without re-mapping it."""
    if not name or not name.strip():
        return "Unknown"
    return name.strip()


def format_board_name(name: Optional[str]) -> str:
    """Turn a Jira board name into the squad name shown on the dashboard.

    Examples:
        "quadro GH"        -> "Growth Hacking"
        "SCC board"        -> "Squad CW Cast/CW Class"
        "Squad de Content" -> "Squad de Content"
        "XYZ"              -> "Squad XYZ"
    """
    if not name:
        return "Unknown Squad"

    trimmed = name.strip()
    cleaned = _QUALIFIER_SUFFIX.sub("", _QUALIFIER_PREFIX.sub("", trimmed)).strip()

    mapped = BOARD_ABBREVIATIONS.get(cleaned.upper())
    if mapped:
        return mapped

    if _WELL_FORMED_NAME.match(trimmed):
        return trimmed

    if _SHORT_CODE.match(cleaned):
        return f"Squad {cleaned}"

    return cleaned or trimmed


def determine_health(completion_pct: float, blocker_count: int,
                     has_issues: bool = True) -> str:
    """Traffic-light health of a squad's sprint.

    The thresholds overlap, so the rules are evaluated strictly in this
    order: empty sprint, many blockers, on track, behind, otherwise at risk.
    """
    if not has_issues:
        return "yellow"

    if blocker_count >= 3:
        return "red"

    if completion_pct >= 70 and blocker_count == 0:
        return "green"

    if completion_pct < 40 or blocker_count >= 2:
        return "red"

    return "yellow"


def is_blocker(priority_name: Optional[str], flagged: bool, status: str) -> bool:
    """An open issue with a blocker priority or an explicit flag."""
    if status == DONE:
        return False
    return "blocker" in (priority_name or "").lower() or bool(flagged)


def generate_burndown(total: float, completion_rate: float, rng) -> list:
    """Ten-day burndown: the ideal line plus a jittered "actual" line.

    ``rng`` is a ``random.Random``; the jitter is part of the chart's
    approximation, not real history.
    """
    days = 10
    ideal_per_day = total / days
    remaining = total
    points = []

    for day in range(days + 1):
        ideal = total - ideal_per_day * day
        if day > 0:
            variance = (rng.random() - 0.3) * (total * 0.08)
            remaining = max(0, remaining - (ideal_per_day * completion_rate + variance))
        points.append({
            "day": day,
            "ideal": round_half_up(ideal),
            "actual": round_half_up(remaining),
        })

    return points
