"""Environment-driven settings, validated once at startup."""

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from squad_metrics.errors import ConfigurationError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REQUIRED_VARS = ("JIRA_DOMAIN", "JIRA_EMAIL", "JIRA_API_TOKEN")


@dataclass(frozen=True)
class DashboardConfig:
    jira_domain: str
    jira_email: str
    jira_api_token: str
    cache_ttl: int = 120
    port: int = 3001
    environment: str = "development"
    project_keys: Optional[tuple] = None

    @property
    def base_url(self) -> str:
        return f"https://{self.jira_domain}"

    @property
    def is_development(self) -> bool:
        return self.environment != "production"


def _parse_int(environ, name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"Configuration error: {name} must be an integer, got {raw!r}.")


def parse_project_keys(raw: Optional[str]) -> Optional[tuple]:
    """Split a comma-separated key list, dropping blanks. ``None`` if empty."""
    if not raw:
        return None
    keys = tuple(k.strip() for k in raw.split(",") if k.strip())
    return keys or None


def load_config(environ=None) -> DashboardConfig:
    """Build a DashboardConfig from environment variables.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Raises:
        ConfigurationError: a required variable is missing or malformed
    """
    if environ is None:
        environ = os.environ

    for name in REQUIRED_VARS:
        value = environ.get(name)
        if not value or not value.strip():
            raise ConfigurationError(
                f"Configuration error: {name} is required. Please set it in your environment."
            )

    domain = environ["JIRA_DOMAIN"].strip()
    email = environ["JIRA_EMAIL"].strip()
    token = environ["JIRA_API_TOKEN"].strip()

    if not EMAIL_PATTERN.match(email):
        raise ConfigurationError(
            "Configuration error: JIRA_EMAIL has invalid format. Expected format: user@example.com"
        )

    if "://" in domain:
        raise ConfigurationError(
            "Configuration error: JIRA_DOMAIN has invalid format. "
            "Expected format: your-domain.atlassian.net (without http:// or https://)"
        )

    environment = environ.get("ENVIRONMENT") or environ.get("FLASK_ENV") or "development"
    project_keys = parse_project_keys(environ.get("JIRA_PROJECT_KEYS"))
    if project_keys:
        logger.info(f"Filtering boards by project keys: {', '.join(project_keys)}")

    return DashboardConfig(
        jira_domain=domain.rstrip("/"),
        jira_email=email,
        jira_api_token=token,
        cache_ttl=_parse_int(environ, "CACHE_TTL", 120),
        port=_parse_int(environ, "PORT", 3001),
        environment="production" if environment == "production" else "development",
        project_keys=project_keys,
    )
