#!/usr/bin/env python3
"""corsgate -- Route handlers.

database mode:
    /         "Hello! Database version: <version()>"  (500 "Database error")
    /health   "OK"

static mode:
    /         fixed greeting

Routes answer GET, POST, PUT and DELETE alike (HEAD comes with GET).

All bodies are text/plain.  Handlers keep no state of their own; the only
shared resource is the injected store.
"""

import logging

from corsgate.resilience.errors import StoreQueryError

logger = logging.getLogger("corsgate.server.handlers")

TEXT_MIMETYPE = "text/plain"
# Every method the CORS gate advertises except OPTIONS, which never gets here
ROUTE_METHODS = ["GET", "POST", "PUT", "DELETE"]
HEALTH_BODY = "OK"
DATABASE_ERROR_BODY = "Database error"
INTERNAL_ERROR_BODY = "Internal Server Error"


def _text(body, status=200):
    from flask import Response
    return Response(body, status=status, mimetype=TEXT_MIMETYPE)


# ---------------------------------------------------------------------------
# database mode
# ---------------------------------------------------------------------------
def register_store_routes(app, store):
    """Register the store-backed home page and the liveness probe.

    Args:
        app:   Flask app.
        store: Object exposing fetch_version() -> str (normally a StorePool).
    """

    @app.route("/", methods=ROUTE_METHODS)
    def home():
        """GET / -- report the database server version."""
        try:
            version = store.fetch_version()
        except StoreQueryError as exc:
            logger.error("Version query failed: %s", exc)
            return _text(DATABASE_ERROR_BODY, 500)
        return _text("Hello! Database version: {}".format(version))

    @app.route("/health", methods=ROUTE_METHODS)
    def health():
        """GET /health -- liveness only; does not touch the store."""
        return _text(HEALTH_BODY)


# ---------------------------------------------------------------------------
# static mode
# ---------------------------------------------------------------------------
def register_static_routes(app, greeting):
    @app.route("/", methods=ROUTE_METHODS)
    def home():
        return _text(greeting)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
def register_error_handlers(app):
    """Turn unhandled handler exceptions into a plain-text 500.

    404 and 405 keep Werkzeug's default responses.
    """

    @app.errorhandler(500)
    def internal_error(exc):
        original = getattr(exc, "original_exception", None) or exc
        logger.error("Internal server error: %s", original)
        return _text(INTERNAL_ERROR_BODY, 500)
