"""In-memory caches shared across backend services."""

from .response_cache import DEFAULT_TTL_SECONDS, ResponseCache

__all__ = ["DEFAULT_TTL_SECONDS", "ResponseCache"]
