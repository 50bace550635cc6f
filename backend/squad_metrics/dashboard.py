"""Cache-or-aggregate entry point used by the HTTP layer."""

import logging
import threading
import time
from typing import Iterable, Optional

from squad_metrics.aggregator import BOARDS_CACHE_KEY, SquadAggregator, filtered_key
from squad_metrics.cache import DEFAULT_TTL, TTLCache
from squad_metrics.jira_client import JiraClient

logger = logging.getLogger(__name__)

DASHBOARD_CACHE_KEY = "dashboard-data"
INVALIDATION_KEYS = (DASHBOARD_CACHE_KEY, BOARDS_CACHE_KEY)


class DashboardService:
    """Serves dashboard snapshots, aggregating only on a cache miss."""

    def __init__(self, client, cache, project_keys: Optional[Iterable[str]] = None,
                 snapshot_ttl: float = DEFAULT_TTL, aggregator: Optional[SquadAggregator] = None):
        self.client = client
        self.cache = cache
        self.project_keys = tuple(project_keys) if project_keys else None
        self.snapshot_ttl = snapshot_ttl
        self.aggregator = aggregator or SquadAggregator(client, cache)
        self._filters = set()
        self._filters_lock = threading.Lock()

    @classmethod
    def from_config(cls, config, cache: Optional[TTLCache] = None) -> "DashboardService":
        if cache is None:
            cache = TTLCache(default_ttl=config.cache_ttl)
        return cls(
            JiraClient.from_config(config),
            cache,
            project_keys=config.project_keys,
            snapshot_ttl=config.cache_ttl,
        )

    def get_dashboard_snapshot(self, project_keys: Optional[Iterable[str]] = None) -> dict:
        """Return the cached snapshot, or aggregate and cache a fresh one.

        Args:
            project_keys: Overrides the configured project-key filter

        Raises:
            DashboardError: board discovery or authentication failed
        """
        keys = tuple(project_keys) if project_keys else self.project_keys
        cache_key = filtered_key(DASHBOARD_CACHE_KEY, keys)
        if keys:
            with self._filters_lock:
                self._filters.add(keys)

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Cache hit - returning cached dashboard data")
            return cached

        logger.info("Cache miss - fetching fresh data from Jira API")
        started = time.monotonic()

        contexts = self.aggregator.fetch_all_boards_data(keys)
        snapshot = self.aggregator.aggregate_squads_data(contexts)
        self.cache.set(cache_key, snapshot, self.snapshot_ttl)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Fetched and aggregated data in {elapsed_ms}ms: {len(snapshot['squads'])} squads, "
            f"{len(snapshot['tasks'])} tasks, {len(snapshot['alerts'])} alerts"
        )
        return snapshot

    def invalidate(self, keys: Optional[Iterable[str]] = None) -> list:
        """Drop cached entries so the next request hits Jira again.

        Each key is dropped as given, qualified by the configured
        project-key filter, and qualified by every filter a snapshot was
        requested with.

        Returns:
            The cache keys that were invalidated
        """
        with self._filters_lock:
            filters = [self.project_keys] + sorted(self._filters)

        dropped = []
        for key in keys or INVALIDATION_KEYS:
            for variant in [key] + [filtered_key(key, f) for f in filters]:
                if variant not in dropped:
                    self.cache.invalidate(variant)
                    dropped.append(variant)

        logger.info(f"Cache invalidated: {', '.join(dropped)}")
        return dropped
