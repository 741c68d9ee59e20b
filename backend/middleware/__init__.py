"""Request-level auth and rate limiting."""
