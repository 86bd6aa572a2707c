"""
Failure taxonomy for the market data subsystem.

None of these escape to the plan generator: adapters convert them to
fallback output at their boundary, the cache manager logs persistence
problems and carries on. Maintenance reads that reach the HTTP layer are
mapped to 502/503 responses in api/main.py.
"""


class MarketDataError(Exception):
    """Base class for all market data failures."""


class AdapterUnavailable(MarketDataError):
    """Provider is not configured (missing API key or base URL)."""


class ProviderFailure(MarketDataError):
    """Network error, non-2xx status, rate limit or malformed payload."""


class GeocodeFailure(ProviderFailure):
    """Location could not be resolved to coordinates."""


class PersistenceFailure(MarketDataError):
    """Durable store read or write failed."""
