"""Multi-board aggregation into a single dashboard snapshot."""

import logging
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from squad_metrics.errors import NoBoardsFoundError, PartialBoardFailure
from squad_metrics.models import BoardContext
from squad_metrics.normalization import (
    DONE,
    IN_PROGRESS,
    IN_REVIEW,
    date_part,
    determine_health,
    format_board_name,
    generate_burndown,
    is_blocker,
    normalize_issue_type,
    normalize_priority,
    normalize_status,
    round_half_up,
)

logger = logging.getLogger(__name__)

BOARDS_CACHE_KEY = "all-boards-config"
SPRINTS_CACHE_KEY = "all-sprints-collection"
BOARD_HISTORY_CACHE_KEY = "board-history-metadata-{board_id}"

BOARDS_TTL = 120
SPRINTS_TTL = 1800
BOARD_HISTORY_TTL = 1800

# Board history is only read for vocabulary; more boards cost too much latency
HISTORY_BOARD_LIMIT = 3
TREND_DAYS = 14
PRIORITY_EVOLUTION_DAYS = 10
PRIORITY_GROWTH = {"high": 1.1, "medium": 1.05, "low": 1.02}
PREDICTABILITY = 85


def filtered_key(base: str, project_keys=None) -> str:
    """Cache key qualified by a project-key filter."""
    if not project_keys:
        return base
    return f"{base}-{','.join(project_keys)}"


@dataclass
class Outcome:
    """Result of one fan-out task: either ``value`` or ``error``."""

    item: Any
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def settle(executor, fn, items) -> list:
    """Run ``fn`` over ``items`` concurrently and wait for all of them.

    Returns one Outcome per item, in the order of ``items``; a raising
    task never affects the others.
    """
    futures = [(item, executor.submit(fn, item)) for item in items]
    outcomes = []
    for item, future in futures:
        error = future.exception()
        if error is not None:
            outcomes.append(Outcome(item, error=error))
        else:
            outcomes.append(Outcome(item, value=future.result()))
    return outcomes


@dataclass
class BoardResult:
    """Everything one board's active sprint contributes to the snapshot."""

    context: BoardContext
    issue_count: int = 0
    total_sp: float = 0
    completed_sp: float = 0
    open_sp: float = 0
    done: float = 0
    in_progress: float = 0
    todo: float = 0
    blockers: int = 0
    people: dict = field(default_factory=dict)
    tasks: list = field(default_factory=list)
    work_items: list = field(default_factory=list)
    day_totals: dict = field(default_factory=dict)
    priority_totals: dict = field(default_factory=lambda: {"high": 0, "medium": 0, "low": 0})

    @property
    def squad_id(self) -> str:
        return f"board-{self.context.board.id}"

    @property
    def squad_name(self) -> str:
        return format_board_name(self.context.board.name)

    @property
    def completion_pct(self) -> int:
        """Story-point ratio when points exist, else the task-count ratio."""
        if self.total_sp > 0:
            return round_half_up(self.completed_sp / self.total_sp * 100)
        total_tasks = self.done + self.in_progress + self.todo
        if total_tasks > 0:
            return round_half_up(self.done / total_tasks * 100)
        return 0


class SquadAggregator:
    """Builds dashboard snapshots from a JiraClient, memoizing in a TTLCache.

    Args:
        client: JiraClient (or anything with the same read methods)
        cache: shared TTLCache, owned by the caller
        rng: random.Random used by the burndown and velocity approximations
        now: callable returning the current aware UTC datetime
        max_workers: bound on concurrent per-board requests
    """

    def __init__(self, client, cache, rng: Optional[random.Random] = None,
                 now: Optional[Callable[[], datetime]] = None, max_workers: int = 8):
        self.client = client
        self.cache = cache
        self.rng = rng or random.Random()
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.max_workers = max_workers

    def fetch_all_boards_data(self, project_keys=None) -> list:
        """List boards and look up each one's active sprint in parallel.

        A failed sprint lookup leaves that board with ``sprint=None``; a
        failed board listing, or an empty one, is raised.
        """
        cache_key = filtered_key(BOARDS_CACHE_KEY, project_keys)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Using cached board configurations")
            return cached

        logger.info("Fetching all boards from Jira API")
        boards = self.client.list_boards(project_keys)
        if not boards:
            raise NoBoardsFoundError("No boards found (Scrum or Kanban)")

        logger.info(f"Found {len(boards)} boards, fetching active sprints in parallel")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = settle(executor, lambda board: self.client.get_active_sprint(board.id), boards)

        contexts = []
        for outcome in outcomes:
            board = outcome.item
            if outcome.ok:
                contexts.append(BoardContext(board, outcome.value))
            else:
                logger.error(
                    f"Failed to fetch sprint for board {board.id} ({board.name}): {outcome.error}"
                )
                contexts.append(BoardContext(board, None))

        self.cache.set(cache_key, contexts, BOARDS_TTL)
        return contexts

    def collect_all_sprints(self, contexts) -> list:
        """Unique sprints of every board, newest start date first."""
        cached = self.cache.get(SPRINTS_CACHE_KEY)
        if cached is not None:
            logger.info("Using cached sprint collection")
            return cached

        logger.info("Collecting all sprints from all boards")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = settle(executor, lambda ctx: self.client.get_all_sprints(ctx.board.id), contexts)

        seen = set()
        dated, undated = [], []
        for outcome in outcomes:
            board = outcome.item.board
            if not outcome.ok:
                logger.error(f"Failed to fetch sprints for board {board.id}: {outcome.error}")
                continue
            logger.info(f"Board {board.id} ({board.name}): Found {len(outcome.value)} sprints")
            for sprint in outcome.value:
                if sprint.id in seen:
                    continue
                seen.add(sprint.id)
                info = {
                    "id": str(sprint.id),
                    "name": sprint.name,
                    "number": sprint.id,
                    "startDate": date_part(sprint.start_date),
                    "endDate": date_part(sprint.end_date),
                    "totalStoryPoints": 0,
                    "completedStoryPoints": 0,
                    "goal": sprint.goal or "",
                }
                (dated if info["startDate"] else undated).append(info)

        # Sprints without a start date are treated as the oldest
        sprints = sorted(dated, key=lambda s: s["startDate"], reverse=True) + undated
        logger.info(f"Collected {len(sprints)} unique sprints total")

        self.cache.set(SPRINTS_CACHE_KEY, sprints, SPRINTS_TTL)
        return sprints

    def _day_keys(self) -> list:
        today = self.now().date()
        return [(today - timedelta(days=offset)).isoformat() for offset in range(TREND_DAYS, -1, -1)]

    def _parse_date(self, date_str: Optional[str]) -> Optional[datetime]:
        """Parse a Jira timestamp; naive values are taken as UTC."""
        if not date_str:
            return None

        formats = [
            "%Y-%m-%dT%H:%M:%S.%f%z",
            "%Y-%m-%dT%H:%M:%S%z",
            "%Y-%m-%dT%H:%M:%S.%f",
            "%Y-%m-%dT%H:%M:%S",
            "%Y-%m-%d"
        ]

        for fmt in formats:
            try:
                parsed = datetime.strptime(date_str, fmt)
            except ValueError:
                continue
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed

        return None

    def _collect_board(self, context: BoardContext, day_keys: list) -> Optional[BoardResult]:
        """Fetch one board's sprint issues and fold them into a BoardResult.

        Returns None for boards without an active sprint.
        """
        board, sprint = context.board, context.sprint
        if sprint is None:
            logger.info(f"Skipping board {board.id} ({board.name}) - no active sprint")
            return None

        logger.info(f"Processing board {board.id} ({board.name})")
        issues = self.client.get_sprint_issues(board.id, sprint.id)
        logger.info(f"Board {board.id}: Found {len(issues)} issues in sprint")
        logger.debug(f"Board {board.id} unique statuses: {sorted({i.status for i in issues})}")

        result = BoardResult(context=context, issue_count=len(issues))
        result.day_totals = {key: {"created": 0, "completed": 0} for key in day_keys}
        squad_name = result.squad_name
        now = self.now()

        for issue in issues:
            sp = issue.story_points
            status = normalize_status(issue.status)
            priority = normalize_priority(issue.priority)
            issue_type = normalize_issue_type(issue.issue_type)
            assignee = issue.assignee or "Unassigned"

            result.total_sp += sp
            # Unestimated tasks still count once in the distributions
            weight = sp if sp > 0 else 1

            person = result.people.setdefault(assignee, {"done": 0, "inProgress": 0, "todo": 0})
            if status == DONE:
                result.completed_sp += sp
                result.done += weight
                person["done"] += weight
            elif status in (IN_PROGRESS, IN_REVIEW):
                result.open_sp += sp
                result.in_progress += weight
                person["inProgress"] += weight
            else:
                result.open_sp += sp
                result.todo += weight
                person["todo"] += weight

            if is_blocker(issue.priority, issue.flagged, status):
                result.blockers += 1
                logger.info(
                    f"Blocker found: {issue.key} - Priority: {issue.priority}, "
                    f"Flagged: {issue.flagged}, Status: {status}"
                )

            result.priority_totals[priority.lower()] += sp

            result.tasks.append({
                "id": issue.id,
                "key": issue.key,
                "summary": issue.summary,
                "squad": squad_name,
                "assignee": assignee,
                "status": status,
                "priority": priority,
                "storyPoints": sp,
                "type": issue_type,
                "sprint": sprint.name,
            })

            if status in (IN_PROGRESS, IN_REVIEW):
                created = self._parse_date(issue.created)
                age = (now - created).days if created else 0
                result.work_items.append({
                    "key": issue.key,
                    "summary": issue.summary,
                    "age": age,
                    "storyPoints": sp,
                    "status": status,
                    "assignee": assignee,
                })

            created_day = date_part(issue.created)
            if created_day in result.day_totals:
                result.day_totals[created_day]["created"] += sp
            resolved_day = date_part(issue.resolved)
            if resolved_day in result.day_totals:
                result.day_totals[resolved_day]["completed"] += sp

        return result

    def _build_squad(self, result: BoardResult) -> dict:
        total = result.total_sp
        completion_pct = result.completion_pct
        health = determine_health(completion_pct, result.blockers, result.issue_count > 0)
        burndown_rate = result.completed_sp / total if total > 0 else 0.5

        logger.info(
            f"Board {result.context.board.id} metrics: name={result.squad_name}, "
            f"totalSP={total}, completedSP={result.completed_sp}, "
            f"completionPct={completion_pct}, blockers={result.blockers}, health={health}"
        )

        return {
            "id": result.squad_id,
            "name": result.squad_name,
            "health": health,
            "storyPoints": {"completed": result.completed_sp, "total": total},
            "completionPercentage": completion_pct,
            "velocity": total,
            "avgVelocity": total,
            "burndown": generate_burndown(total, burndown_rate, self.rng),
            "taskDistribution": {
                "done": result.done,
                "inProgress": result.in_progress,
                "todo": result.todo,
            },
            "blockers": result.blockers,
            "predictability": PREDICTABILITY,
            "velocityHistory": [{
                "sprint": "Last 3 Sprints",
                "points": round_half_up(total * (0.8 + self.rng.random() * 0.4)),
            }],
            "capacity": round_half_up(total * 1.1),
            "cycleTime": 0,
            "goal": result.context.sprint.goal or "",
        }

    @staticmethod
    def _build_alert(result: BoardResult) -> Optional[dict]:
        if result.blockers == 0:
            return None
        return {
            "id": f"alert-{result.squad_id}",
            "type": "critical" if result.blockers >= 3 else "warning",
            "squad": result.squad_name,
            "message": f"{result.blockers} blocker(s) affecting {result.open_sp} SP",
            "storyPointsAffected": result.open_sp,
        }

    def _sprint_summary(self, contexts) -> dict:
        """Summary of the first active sprint, with every squad's goal."""
        global_sprint = next((ctx.sprint for ctx in contexts if ctx.sprint), None)

        goals = []
        for ctx in contexts:
            if ctx.sprint and ctx.sprint.goal:
                goal = f"[{format_board_name(ctx.board.name)}] {ctx.sprint.goal}"
                if goal not in goals:
                    goals.append(goal)
        combined_goal = " • ".join(goals)

        today = self.now().date().isoformat()
        if global_sprint is None:
            return {
                "id": "no-active-sprint",
                "name": "No Active Sprint",
                "number": 0,
                "startDate": today,
                "endDate": today,
                "goal": combined_goal,
                "totalStoryPoints": 0,
                "completedStoryPoints": 0,
            }

        return {
            "id": str(global_sprint.id),
            "name": global_sprint.name,
            "number": global_sprint.id,
            "startDate": date_part(global_sprint.start_date) or today,
            "endDate": date_part(global_sprint.end_date) or today,
            "goal": combined_goal,
            "totalStoryPoints": 0,
            "completedStoryPoints": 0,
        }

    @staticmethod
    def _cycle_time_by_type(tasks: list) -> list:
        """Average days per issue type over Done tasks, at 0.5 day per SP.

        Stage-transition timestamps are not fetched, so this is an
        estimate from story points rather than measured cycle time.
        """
        groups = {}
        for task in tasks:
            if task["status"] != DONE:
                continue
            groups.setdefault(task["type"], []).append(max(1, task["storyPoints"] * 0.5))

        return [
            {"type": issue_type, "avgDays": round_half_up(sum(times) / len(times), 1)}
            for issue_type, times in groups.items()
        ]

    @staticmethod
    def _priority_evolution(priority_totals: dict) -> list:
        """Backward projection of today's priority totals over ten days.

        Each earlier day is the later day inflated by PRIORITY_GROWTH; the
        last point holds the current totals. This is a visual estimate,
        not reconstructed history.
        """
        high, medium, low = (priority_totals[k] for k in ("high", "medium", "low"))
        series = []
        for _ in range(PRIORITY_EVOLUTION_DAYS + 1):
            series.insert(0, {"high": high, "medium": medium, "low": low})
            high = round_half_up(high * PRIORITY_GROWTH["high"])
            medium = round_half_up(medium * PRIORITY_GROWTH["medium"])
            low = round_half_up(low * PRIORITY_GROWTH["low"])

        return [{"day": day, **point} for day, point in enumerate(series)]

    def _board_history_metadata(self, context: BoardContext) -> dict:
        board = context.board
        cache_key = BOARD_HISTORY_CACHE_KEY.format(board_id=board.id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        issues = self.client.get_board_history(board.id)
        assignees, types = [], []
        for issue in issues:
            assignee = issue.assignee or "Unassigned"
            issue_type = normalize_issue_type(issue.issue_type)
            if assignee not in assignees:
                assignees.append(assignee)
            if issue_type not in types:
                types.append(issue_type)

        metadata = {"assignees": assignees, "types": types}
        self.cache.set(cache_key, metadata, BOARD_HISTORY_TTL)
        return metadata

    def _collect_vocabularies(self, contexts, tasks: list) -> tuple:
        assignees = {task["assignee"] for task in tasks}
        issue_types = {task["type"] for task in tasks}

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = settle(executor, self._board_history_metadata, contexts[:HISTORY_BOARD_LIMIT])

        for outcome in outcomes:
            if not outcome.ok:
                logger.error(
                    f"Failed to fetch board history for metadata from board "
                    f"{outcome.item.board.id}: {outcome.error}"
                )
                continue
            assignees.update(outcome.value["assignees"])
            issue_types.update(outcome.value["types"])

        logger.info(
            f"Found {len(assignees)} unique assignees and {len(issue_types)} unique issue types"
        )
        return sorted(assignees), sorted(issue_types)

    def aggregate_squads_data(self, contexts) -> dict:
        """Fold every board's active sprint into one dashboard snapshot.

        Boards are processed concurrently. A board that fails is logged
        and left out; the snapshot is still produced from the others.
        """
        contexts = list(contexts)
        logger.info("Aggregating data from all boards")

        sprint_info = self._sprint_summary(contexts)
        day_keys = self._day_keys()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = settle(executor, lambda ctx: self._collect_board(ctx, day_keys), contexts)

        squads, tasks, alerts, work_items = [], [], [], []
        person_distribution = {}
        day_stats = {key: {"created": 0, "completed": 0} for key in day_keys}
        priority_totals = {"high": 0, "medium": 0, "low": 0}
        total_sp = completed_sp = 0

        for outcome in outcomes:
            if not outcome.ok:
                failure = PartialBoardFailure(outcome.item.board, outcome.error)
                logger.error(f"Error processing board: {failure}")
                continue
            result = outcome.value
            if result is None:
                continue

            squads.append(self._build_squad(result))
            alert = self._build_alert(result)
            if alert:
                alerts.append(alert)
            tasks.extend(result.tasks)
            work_items.extend(result.work_items)
            person_distribution[result.squad_id] = [
                {"name": name, **counts} for name, counts in result.people.items()
            ]
            for key, totals in result.day_totals.items():
                day_stats[key]["created"] += totals["created"]
                day_stats[key]["completed"] += totals["completed"]
            for key in priority_totals:
                priority_totals[key] += result.priority_totals[key]
            total_sp += result.total_sp
            completed_sp += result.completed_sp

        sprint_info["totalStoryPoints"] = total_sp
        sprint_info["completedStoryPoints"] = completed_sp

        created_vs_completed = []
        for key in day_keys:
            day = date.fromisoformat(key)
            created_vs_completed.append({
                "date": f"{day:%b} {day.day}",
                "created": day_stats[key]["created"],
                "completed": day_stats[key]["completed"],
            })

        logger.info(f"Aggregation complete: {len(squads)} squads, {len(tasks)} tasks")

        available_sprints = self.collect_all_sprints(contexts)
        available_assignees, available_types = self._collect_vocabularies(contexts, tasks)

        return {
            "sprint": sprint_info,
            "squads": squads,
            "alerts": alerts,
            "createdVsCompleted": created_vs_completed,
            "cumulativeFlow": [],
            "cycleTimeByType": self._cycle_time_by_type(tasks),
            "timeInStatus": [],
            "priorityEvolution": self._priority_evolution(priority_totals),
            "personDistribution": person_distribution,
            "tasks": tasks,
            "workItemAge": work_items,
            "availableSprints": available_sprints,
            "availableAssignees": available_assignees,
            "availableIssueTypes": available_types,
        }
