"""Dashboard data and cache management endpoints."""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from squad_metrics.config import parse_project_keys
from squad_metrics.errors import (
    AuthenticationError,
    NoBoardsFoundError,
    RateLimitError,
    UnavailableError,
)

bp = Blueprint("jira_data", __name__, url_prefix="/api")

# Upper bound for one dashboard request; the result is abandoned after it
REQUEST_TIMEOUT = 60

_executor = ThreadPoolExecutor(max_workers=4)


def error_response(status_code, message):
    """Build the JSON error body shared by every endpoint."""
    return jsonify({
        "error": message,
        "statusCode": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }), status_code


def get_project_keys():
    """Optional comma-separated ``projectKeys`` query param."""
    return parse_project_keys(request.args.get("projectKeys"))


@bp.route("/jira-data", methods=["GET"])
def get_jira_data():
    """Get the aggregated dashboard snapshot.

    Query params:
        - projectKeys: Optional comma-separated project keys, overriding
          the configured filter

    Returns:
        - {"data": snapshot} on success. Clients written against the bare
          snapshot body must read the ``data`` key instead.
        - 401 / 429 / 503 / 504 / 500 error bodies otherwise
    """
    service = current_app.config["DASHBOARD_SERVICE"]
    config = current_app.config["DASHBOARD_CONFIG"]
    logger = current_app.logger
    show_trace = config.is_development

    future = _executor.submit(service.get_dashboard_snapshot, get_project_keys())

    try:
        snapshot = future.result(timeout=REQUEST_TIMEOUT)
    except FuturesTimeoutError:
        logger.error(f"Request timeout after {REQUEST_TIMEOUT}s")
        return error_response(504, "Request timed out - Jira API is taking too long to respond")
    except AuthenticationError as e:
        logger.error(f"Jira authentication failed: {e}")
        if e.status_code == 403:
            return error_response(401, "Authentication failed: Access denied")
        return error_response(401, "Authentication failed: Invalid Jira credentials")
    except RateLimitError as e:
        logger.error(f"Jira rate limit exhausted: {e}")
        return error_response(429, "Rate limit exceeded, please try again later")
    except UnavailableError as e:
        logger.error(f"Jira unavailable ({e.reason}): {e}", exc_info=show_trace)
        if e.reason == "timeout":
            return error_response(504, "Request to Jira API timed out after 30s")
        return error_response(503, "Jira API is currently unavailable")
    except NoBoardsFoundError as e:
        logger.error(f"No boards found: {e}")
        return error_response(503, "No boards found in Jira")
    except Exception as e:
        logger.error(f"Error fetching Jira data: {e}", exc_info=show_trace)
        return error_response(500, "An unexpected error occurred")

    return jsonify({"data": snapshot})


@bp.route("/cache/invalidate", methods=["POST"])
def invalidate_cache():
    """Drop the cached snapshot and board list so the next request refetches."""
    service = current_app.config["DASHBOARD_SERVICE"]
    current_app.logger.info("Cache invalidation requested")

    keys = service.invalidate()

    return jsonify({
        "data": {
            "success": True,
            "message": "Cache invalidated successfully",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "keys": keys
        }
    })
