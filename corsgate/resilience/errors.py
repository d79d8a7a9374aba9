#!/usr/bin/env python3
"""corsgate Resilience — Structured Exception Hierarchy.

Two failure classes exist in the service:

    - startup-fatal: the process logs a critical message and exits non-zero
      (ConfigurationError, StoreUnavailableError).
    - per-request: the request ends with a 500 and the server keeps serving
      (StoreQueryError).

Usage:
    from corsgate.resilience.errors import ConfigurationError

    raise ConfigurationError("DATABASE_URL is not set", config_key="DATABASE_URL")
"""


class CorsGateError(Exception):
    """Base exception for all corsgate errors.

    Attributes:
        component: Name of the component that raised (e.g. "config", "store").
        fatal: Whether the error must terminate the process at startup.
    """

    def __init__(self, message: str, component: str = "", fatal: bool = False):
        super().__init__(message)
        self.component = component
        self.fatal = fatal


class ConfigurationError(CorsGateError):
    """Configuration error — missing or invalid configuration."""

    def __init__(self, message: str, config_key: str = ""):
        super().__init__(message, component="config", fatal=True)
        self.config_key = config_key


class StoreUnavailableError(CorsGateError):
    """The store pool could not be created or did not answer a ping."""

    def __init__(self, message: str):
        super().__init__(message, component="store", fatal=True)


class StoreQueryError(CorsGateError):
    """A query against an open pool failed.

    Recoverable: reported to the client as a 500.
    """

    def __init__(self, message: str, query: str = ""):
        super().__init__(message, component="store", fatal=False)
        self.query = query
