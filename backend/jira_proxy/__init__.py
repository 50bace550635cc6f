"""Flask application factory."""

from datetime import datetime, timezone

from flask import Flask
from flask_cors import CORS

from squad_metrics.config import load_config
from squad_metrics.dashboard import DashboardService


def create_app(config=None, service=None):
    """Create and configure the Flask application.

    Args:
        config: DashboardConfig; loaded from the environment when omitted
        service: DashboardService; built from ``config`` when omitted
    """
    app = Flask(__name__)

    if config is None:
        config = load_config()
    if service is None:
        service = DashboardService.from_config(config)

    app.config["DASHBOARD_CONFIG"] = config
    app.config["DASHBOARD_SERVICE"] = service

    # Enable CORS for the dashboard frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": "*",
            "methods": ["GET", "POST", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"]
        },
        r"/health": {"origins": "*"}
    }, send_wildcard=True)

    # Register blueprints
    from jira_proxy.api import jira_data
    app.register_blueprint(jira_data.bp)

    if config.project_keys:
        app.logger.info(f"Filtering boards by project keys: {', '.join(config.project_keys)}")
    else:
        app.logger.info("No project key filter configured, all boards will be aggregated")

    # Health check endpoint
    @app.route("/health")
    def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config.environment
        }

    return app
