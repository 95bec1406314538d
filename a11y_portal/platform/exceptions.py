import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from a11y_portal.platform.response import api_response


class ScanEngineError(Exception):
    """Base class for every error raised by the scan engine."""


class AuditError(ScanEngineError):
    """A single page could not be audited. The scan carries on."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(message)


class ScanInfrastructureError(ScanEngineError):
    """Fatal for the whole run: the job ends up failed."""


class AuditorUnavailableError(ScanInfrastructureError):
    """The audit capability could not be initialized at all."""


class ProgressStoreError(ScanInfrastructureError):
    """The checkpoint could not be read or written."""


class InvalidScanTransition(ScanEngineError):
    def __init__(self, scan_id: str, current, target):
        self.scan_id = scan_id
        self.current = current
        self.target = target
        super().__init__(
            f"Scan {scan_id} cannot move from '{_value(current)}' to '{_value(target)}'"
        )


class ScanNotFoundError(ScanEngineError):
    def __init__(self, scan_id: str):
        self.scan_id = scan_id
        super().__init__(f"Scan {scan_id} not found")


class SiteNotFoundError(ScanEngineError):
    def __init__(self, site_id: str):
        self.site_id = site_id
        super().__init__(f"Site {site_id} not found")


class SitemapDiscoveryError(ScanEngineError):
    """The sitemap could not be fetched or yielded no page URLs."""


class ScanRateLimitExceeded(ScanEngineError):
    def __init__(self, site_id: str, limit: int, remaining: int, reset_time):
        self.site_id = site_id
        self.limit = limit
        self.remaining = remaining
        self.reset_time = reset_time
        super().__init__(f"Rate limit exceeded. Maximum {limit} scans per hour per site.")


def _value(state) -> str:
    return getattr(state, "value", str(state))


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(ScanNotFoundError)
    @app.exception_handler(SiteNotFoundError)
    async def not_found_handler(request: Request, exc: ScanEngineError):
        return api_response(message=str(exc), status_code=status.HTTP_404_NOT_FOUND)

    @app.exception_handler(InvalidScanTransition)
    async def transition_handler(request: Request, exc: InvalidScanTransition):
        return api_response(
            message=str(exc),
            status_code=status.HTTP_409_CONFLICT,
            data={"current_status": _value(exc.current)},
        )

    @app.exception_handler(SitemapDiscoveryError)
    async def discovery_handler(request: Request, exc: SitemapDiscoveryError):
        return api_response(
            message=f"URL discovery failed: {exc}",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(ScanRateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: ScanRateLimitExceeded):
        return api_response(
            message=str(exc),
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            data={"limit": exc.limit, "remaining": exc.remaining, "reset_time": exc.reset_time},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
