"""corsgate HTTP server: app factory, CORS gate, route handlers."""
