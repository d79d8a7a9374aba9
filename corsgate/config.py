#!/usr/bin/env python3
"""corsgate -- Server Configuration.

Resolves every runtime setting exactly once at startup into an immutable
ServerConfig.  Request handling never touches os.environ; the CORS gate and
the store receive their values from this object.

Environment:
    DATABASE_URL     PostgreSQL DSN (required when SERVER_MODE=database)
    PORT             Listen port (default: 8080)
    CORS_ALLOW       Access-Control-Allow-Origin value (default: *)
    SERVER_MODE      "database" or "static" (default: database)
    HOST             Bind address (default: 0.0.0.0)
    SOCKET_TIMEOUT   Per-connection socket timeout in seconds (default: 15)
    DB_POOL_MIN      Minimum pooled connections (default: 1)
    DB_POOL_MAX      Maximum pooled connections (default: 10)
    GREETING         Static-mode greeting (default: Hello, World!)

A .env file in the working directory is loaded first when present.  Values
already set in the process environment take precedence over the file.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from corsgate.resilience.errors import ConfigurationError

logger = logging.getLogger("corsgate.config")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
MODE_DATABASE = "database"
MODE_STATIC = "static"
VALID_MODES = (MODE_DATABASE, MODE_STATIC)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_ALLOW_ORIGIN = "*"
DEFAULT_SOCKET_TIMEOUT = 15.0
DEFAULT_POOL_MIN = 1
DEFAULT_POOL_MAX = 10
DEFAULT_GREETING = "Hello, World!"


@dataclass(frozen=True)
class ServerConfig:
    """Process-wide settings, fixed for the lifetime of the server."""

    mode: str = MODE_DATABASE
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    allow_origin: str = DEFAULT_ALLOW_ORIGIN
    database_url: Optional[str] = None
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    pool_min_conn: int = DEFAULT_POOL_MIN
    pool_max_conn: int = DEFAULT_POOL_MAX
    greeting: str = DEFAULT_GREETING

    @property
    def uses_store(self) -> bool:
        return self.mode == MODE_DATABASE


# ---------------------------------------------------------------------------
# Env parsing helpers
# ---------------------------------------------------------------------------
def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    raw = (env.get(name) or "").strip()
    return raw or default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            "{} must be an integer, got {!r}".format(name, raw), config_key=name
        )


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            "{} must be a number, got {!r}".format(name, raw), config_key=name
        )


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load a .env file into os.environ without overriding existing values.

    Returns True if a file was found and loaded.
    """
    env_path = Path(path) if path else Path.cwd() / ".env"
    if not env_path.is_file():
        logger.info("No .env file found, using system environment variables")
        return False
    load_dotenv(str(env_path), override=False)
    logger.info("Loaded .env from %s", env_path)
    return True


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def validate_config(config: ServerConfig) -> ServerConfig:
    """Check cross-field constraints; raise ConfigurationError on violation."""
    if config.mode not in VALID_MODES:
        raise ConfigurationError(
            "SERVER_MODE must be one of {}, got {!r}".format(
                ", ".join(VALID_MODES), config.mode),
            config_key="SERVER_MODE",
        )
    if config.uses_store and not config.database_url:
        raise ConfigurationError(
            "DATABASE_URL is not set in environment variables",
            config_key="DATABASE_URL",
        )
    if not 0 <= config.port <= 65535:
        raise ConfigurationError(
            "PORT must be between 0 and 65535, got {}".format(config.port),
            config_key="PORT",
        )
    if config.socket_timeout <= 0:
        raise ConfigurationError(
            "SOCKET_TIMEOUT must be positive, got {}".format(config.socket_timeout),
            config_key="SOCKET_TIMEOUT",
        )
    if config.pool_min_conn < 1 or config.pool_max_conn < config.pool_min_conn:
        raise ConfigurationError(
            "DB_POOL_MIN/DB_POOL_MAX must satisfy 1 <= min <= max, got {}/{}".format(
                config.pool_min_conn, config.pool_max_conn),
            config_key="DB_POOL_MAX",
        )
    return config


def load_config(env: Optional[Mapping[str, str]] = None, env_file: bool = True,
                **overrides) -> ServerConfig:
    """Resolve a ServerConfig from the environment.

    Args:
        env:       Mapping to read from (default: os.environ).
        env_file:  Load ./.env before reading os.environ.  Ignored when an
                   explicit env mapping is given.
        overrides: Field values that win over the environment (CLI flags).
                   None values are ignored.

    Raises:
        ConfigurationError: a value is missing or malformed.
    """
    if env is None:
        if env_file:
            load_env_file()
        env = os.environ

    values = {
        "mode": _env_str(env, "SERVER_MODE", MODE_DATABASE).lower(),
        "host": _env_str(env, "HOST", DEFAULT_HOST),
        "port": _env_int(env, "PORT", DEFAULT_PORT),
        "allow_origin": _env_str(env, "CORS_ALLOW", DEFAULT_ALLOW_ORIGIN),
        "database_url": (env.get("DATABASE_URL") or "").strip() or None,
        "socket_timeout": _env_float(env, "SOCKET_TIMEOUT", DEFAULT_SOCKET_TIMEOUT),
        "pool_min_conn": _env_int(env, "DB_POOL_MIN", DEFAULT_POOL_MIN),
        "pool_max_conn": _env_int(env, "DB_POOL_MAX", DEFAULT_POOL_MAX),
        "greeting": env.get("GREETING") or DEFAULT_GREETING,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})

    return validate_config(ServerConfig(**values))
