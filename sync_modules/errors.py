"""
Exception types for Saleor Catalog Sync.

Transient failures (network errors, rate limiting) are retried inside
SaleorClient; everything raised from here on is fatal to the run.
"""


class SyncError(Exception):
    """Base class for all sync failures."""


class ConfigError(SyncError):
    """Required configuration is missing or malformed."""


class CatalogError(SyncError):
    """The curated catalog document is missing or invalid."""


class DataIntegrityError(SyncError):
    """Local catalog and remote state disagree (missing mapping, missing id)."""


class SyncCancelled(SyncError):
    """The operator aborted the run."""


class SaleorAPIError(SyncError):
    """Base class for failures reported by the remote service."""


class RateLimitExceeded(SaleorAPIError):
    """The service kept answering "Too Many Requests" after every retry."""


class ProtocolError(SaleorAPIError):
    """The response could not be interpreted (no data, not JSON)."""


class RemoteBusinessError(SaleorAPIError):
    """
    GraphQL-level or mutation-level errors on an otherwise successful call.

    Attributes:
        errors: Raw error entries as returned by the service
    """

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])
