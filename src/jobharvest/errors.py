"""Exception hierarchy for jobharvest.

The ``category`` of each error is what ends up in ``scrape_errors.error_type``.
"""


class JobHarvestError(Exception):
    """Base class for all jobharvest errors."""

    category = "Error"


class ConfigurationError(JobHarvestError):
    """Invalid options, rejected before any browser or database work."""

    category = "ConfigurationError"


# =============================================================================
# Authentication
# =============================================================================


class AuthenticationError(JobHarvestError):
    category = "AuthenticationError"


class SessionNotFoundError(AuthenticationError):
    category = "SessionNotFound"


class SessionExpiredError(AuthenticationError):
    category = "SessionExpired"


class SessionCorruptError(AuthenticationError):
    category = "SessionCorrupt"


class LoginTimeoutError(AuthenticationError):
    category = "LoginTimeout"


# =============================================================================
# Scraping
# =============================================================================


class NavigationError(JobHarvestError):
    """Page load timeout, missing element or rate-limit response."""

    category = "NavigationError"


class ExtractionError(JobHarvestError):
    """A listing or job detail page could not be parsed."""

    category = "ExtractionError"


class PersistenceError(JobHarvestError):
    category = "PersistenceError"


class FatalScrapeError(JobHarvestError):
    """Aborts the whole run."""

    category = "FatalError"


class BrowserLaunchError(FatalScrapeError):
    category = "BrowserLaunchError"


class LoginWallError(FatalScrapeError):
    category = "LoginWall"


class BrowserNotStartedError(JobHarvestError):
    category = "BrowserNotStarted"