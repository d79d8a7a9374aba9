"""corsgate database package."""
