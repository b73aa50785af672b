"""Input and filter sanitization."""
