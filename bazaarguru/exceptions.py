"""Exception hierarchy shared by services, handlers and CLI tools."""


class BazaarGuruError(Exception):
    """Base class for application errors."""


class AffiliateError(BazaarGuruError):
    """Affiliate link generation or tracking failed."""


class StoreNotFoundError(AffiliateError):
    """No active affiliate store matches the requested id or domain."""

    def __init__(self, store_ref: str):
        super().__init__(f"Store not found: {store_ref}")
        self.store_ref = store_ref


class InvalidURLError(AffiliateError):
    """URL cannot be turned into an affiliate link."""

    def __init__(self, url: str):
        super().__init__(f"Invalid URL format: {url}")
        self.url = url


class SubIdCollisionError(AffiliateError):
    """Generated SubID already exists in the database."""


class BackendError(BazaarGuruError):
    """Deals backend returned an error or was unreachable."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class HealthCheckError(BazaarGuruError):
    """Target service failed its health check."""
