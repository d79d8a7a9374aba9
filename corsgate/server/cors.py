#!/usr/bin/env python3
"""corsgate -- CORS Gate.

Applies one cross-origin policy to every request the app handles.

Two stages are registered on the Flask app:

    before_request  OPTIONS (preflight) -> 204, empty body; the route handler
                    is never reached.  Any other method falls through
                    untouched.
    after_request   Sets the three policy headers on every outgoing
                    response, including 204 preflights and 404/405/500
                    responses produced downstream.

The policy is resolved once at startup and handed to register_cors();
the gate never reads the environment.

Usage:
    from corsgate.server.cors import CorsPolicy, register_cors
    register_cors(app, CorsPolicy(allow_origin="https://app.example.com"))
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger("corsgate.server.cors")

WILDCARD_ORIGIN = "*"
ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"


@dataclass(frozen=True)
class CorsPolicy:
    allow_origin: str = WILDCARD_ORIGIN

    @classmethod
    def from_config(cls, config) -> "CorsPolicy":
        return cls(allow_origin=config.allow_origin or WILDCARD_ORIGIN)

    @property
    def is_wildcard(self) -> bool:
        return self.allow_origin == WILDCARD_ORIGIN

    def headers(self) -> dict:
        return {
            "Access-Control-Allow-Origin": self.allow_origin or WILDCARD_ORIGIN,
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
        }


def is_preflight(method: str) -> bool:
    return (method or "").upper() == "OPTIONS"


def register_cors(app, policy: CorsPolicy = None) -> CorsPolicy:
    """Register the CORS gate on a Flask app and return the active policy."""
    from flask import make_response, request

    policy = policy or CorsPolicy()
    cors_headers = policy.headers()

    if policy.is_wildcard:
        logger.warning(
            "CORS allow-origin is the wildcard '*'; any origin may call this "
            "API. Set CORS_ALLOW to restrict it."
        )

    @app.before_request
    def _handle_preflight():
        if is_preflight(request.method):
            return make_response("", 204)
        return None

    @app.after_request
    def _add_cors_headers(response):
        for name, value in cors_headers.items():
            response.headers[name] = value
        return response

    return policy
