from __future__ import annotations


class AffiliateError(Exception):
    category: str = "unknown"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AffiliateError):
    category = "not_found"
    status_code = 404


class ConflictError(AffiliateError):
    category = "conflict"
    status_code = 409


class GoneError(AffiliateError):
    """Link exists but is retired or past its expiry; redirect path only."""

    category = "gone"
    status_code = 410


class ValidationError(AffiliateError):
    category = "validation"
    status_code = 400


class StorageError(AffiliateError):
    category = "storage"
    status_code = 503
