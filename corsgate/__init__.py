"""corsgate -- minimal HTTP service behind a single-origin CORS gate."""

__version__ = "1.0.0"
