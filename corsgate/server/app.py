#!/usr/bin/env python3
"""corsgate -- HTTP Server.

Flask application factory and CLI entry point.  One composition root serves
both modes:

    database   GET / reports the PostgreSQL version, GET /health is a
               liveness probe.  Requires DATABASE_URL.
    static     GET / returns a fixed greeting.  No store.

Every response passes through the CORS gate (corsgate.server.cors).

Usage:
    # Development
    corsgate --port 8080
    corsgate --mode static

    # Production (gunicorn)
    gunicorn "corsgate.server.app:create_app_from_env()" --bind 0.0.0.0:8080 --timeout 15

Exit status is 1 when configuration is missing, the database cannot be
reached, or the listening socket cannot be bound.
"""

import argparse
import atexit
import logging
import os
import signal
import sys

from werkzeug.serving import WSGIRequestHandler, make_server

from corsgate.config import VALID_MODES, ServerConfig, load_config, load_env_file
from corsgate.db.connection_pool import open_store
from corsgate.resilience.correlation import (
    CorrelationLogFilter,
    clear_correlation_id,
    register_correlation_middleware,
    set_correlation_id,
)
from corsgate.resilience.errors import ConfigurationError, CorsGateError
from corsgate.server.cors import CorsPolicy, register_cors
from corsgate.server.handlers import (
    register_error_handlers,
    register_static_routes,
    register_store_routes,
)

logger = logging.getLogger("corsgate.server")

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_LOG_LEVEL = "INFO"

# Tags log lines emitted while the server is being assembled
STARTUP_CORRELATION_ID = "startup"


# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------
def resolve_log_level(name=None):
    """Normalize a level name; raise ConfigurationError for unknown names."""
    level = (name or DEFAULT_LOG_LEVEL).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(
            "LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, "
            "got {!r}".format(name),
            config_key="LOG_LEVEL",
        )
    return level


def configure_logging(level=DEFAULT_LOG_LEVEL):
    """Send all log records to stderr, tagged with the request correlation id."""
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationLogFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------
def create_app(config: ServerConfig, store=None, flask_config=None):
    """Flask application factory.

    Args:
        config:       Resolved ServerConfig.
        store:        Store capability (StorePool or compatible).  Required in
                      database mode, ignored in static mode.
        flask_config: Optional dict of Flask configuration overrides.

    Returns:
        Configured Flask app instance.

    Raises:
        ConfigurationError: database mode without a store.
    """
    from flask import Flask

    app = Flask(__name__)
    if flask_config:
        app.config.update(flask_config)

    # ---- Request stages (order matters) ----

    # 1. Correlation id, so preflights are tagged too
    register_correlation_middleware(app)

    # 2. CORS gate, may short-circuit OPTIONS
    policy = register_cors(app, CorsPolicy.from_config(config))
    logger.info("CORS configured: allow_origin=%s", policy.allow_origin)

    register_error_handlers(app)

    # ---- Routes ----
    if config.uses_store:
        if store is None:
            raise ConfigurationError(
                "database mode requires a store", config_key="SERVER_MODE")
        register_store_routes(app, store)
        app.extensions["corsgate.store"] = store
    else:
        register_static_routes(app, config.greeting)

    logger.info("corsgate app initialized (mode=%s)", config.mode)
    return app


def create_app_from_env():
    """Factory for WSGI servers: resolve config, open the store, build the app."""
    config = load_config()
    store = None
    if config.uses_store:
        store = open_store(config)
        atexit.register(store.close)
    return create_app(config, store)


# ---------------------------------------------------------------------------
# Server loop
# ---------------------------------------------------------------------------
def build_request_handler(socket_timeout):
    """WSGIRequestHandler whose connection sockets time out on read and write."""

    class TimeoutRequestHandler(WSGIRequestHandler):
        timeout = socket_timeout

    return TimeoutRequestHandler


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt


def serve(app, config: ServerConfig):
    """Bind the listening socket and serve until interrupted.

    Raises:
        OSError: the socket could not be bound.
    """
    server = make_server(
        config.host,
        config.port,
        app,
        threaded=True,
        request_handler=build_request_handler(config.socket_timeout),
    )
    previous = signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)
    logger.info("Server listening on %s:%d...", config.host, server.server_port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
    finally:
        server.server_close()
        signal.signal(signal.SIGTERM, previous)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------
def build_parser():
    parser = argparse.ArgumentParser(
        prog="corsgate",
        description="Minimal HTTP service with a CORS gate (database or static mode).",
    )
    parser.add_argument(
        "--host", type=str, default=None,
        help="Host to bind to (default: 0.0.0.0, env: HOST)",
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port to listen on (default: 8080, env: PORT)",
    )
    parser.add_argument(
        "--mode", choices=VALID_MODES, default=None,
        help="Serving mode (default: database, env: SERVER_MODE)",
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        help="Log level (default: INFO, env: LOG_LEVEL)",
    )
    return parser


def main(argv=None):
    """CLI entry point.  Returns the process exit status."""
    args = build_parser().parse_args(argv)

    # .env may set LOG_LEVEL, so it is read before logging is configured
    load_env_file()
    try:
        level = resolve_log_level(args.log_level or os.environ.get("LOG_LEVEL"))
    except ConfigurationError as exc:
        configure_logging()
        logger.critical("%s", exc)
        return 1
    configure_logging(level)

    set_correlation_id(STARTUP_CORRELATION_ID)
    try:
        return _run(args)
    finally:
        clear_correlation_id()


def _run(args):
    try:
        config = load_config(
            env_file=False, host=args.host, port=args.port, mode=args.mode)
    except ConfigurationError as exc:
        logger.critical("%s", exc)
        return 1

    store = None
    try:
        if config.uses_store:
            store = open_store(config)
            logger.info("Successfully connected to PostgreSQL!")
        app = create_app(config, store)
        serve(app, config)
    except CorsGateError as exc:
        logger.critical("%s", exc)
        return 1
    except OSError as exc:
        logger.critical("Could not bind %s:%s: %s", config.host, config.port, exc)
        return 1
    finally:
        if store is not None:
            store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
