"""Start the dashboard backend."""

import logging
import sys

from jira_proxy import create_app
from squad_metrics.config import load_config
from squad_metrics.dashboard import DashboardService
from squad_metrics.errors import AuthenticationError, ConfigurationError, DashboardError, UnavailableError

logger = logging.getLogger("run")


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )

    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    service = DashboardService.from_config(config)

    try:
        service.client.validate_connectivity()
    except AuthenticationError:
        logger.error(
            "Authentication failed: Invalid Jira credentials. "
            "Please check JIRA_EMAIL and JIRA_API_TOKEN."
        )
        return 1
    except UnavailableError:
        logger.error(f"Cannot reach Jira API at {config.base_url}. Please check JIRA_DOMAIN.")
        return 1
    except DashboardError as e:
        logger.error(f"Jira API validation failed: {e}")
        return 1

    app = create_app(config, service)
    app.run(host="0.0.0.0", port=config.port, debug=config.is_development, use_reloader=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
