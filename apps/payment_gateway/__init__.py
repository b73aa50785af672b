"""Payment Gateway HTTP service."""
