#!/usr/bin/env python3
"""corsgate Resilience Package — Errors and Correlation IDs."""

from corsgate.resilience.correlation import (  # noqa: F401
    CORRELATION_HEADER,
    CorrelationLogFilter,
    get_correlation_id,
    register_correlation_middleware,
    set_correlation_id,
)
from corsgate.resilience.errors import (  # noqa: F401
    ConfigurationError,
    CorsGateError,
    StoreQueryError,
    StoreUnavailableError,
)
