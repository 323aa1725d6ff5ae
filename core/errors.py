"""
Error taxonomy for the LinkedIn connection automation.

Every error raised inside this project carries a typed ``recoverable`` flag so
retry policies never have to guess. Message sniffing is kept only for errors
that come out of Playwright, which are not typed by recoverability.
"""

from typing import Any, Dict, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

# Substrings that mark a driver error as transient.
TRANSIENT_MESSAGE_PATTERNS = (
    "timeout",
    "network",
    "connection",
    "element not found",
    "page not loaded",
    "navigation failed",
)

CRITICAL_MESSAGE_PATTERNS = ("critical", "fatal")


class AutomationError(Exception):
    """
    Base class for errors raised by the automation.

    Args:
        message: Human-readable cause
        recoverable: Whether retrying may help; defaults to the class default
        context: Diagnostic key/value pairs captured when the error was raised
        critical: Abort the whole processing batch instead of skipping one item
    """

    code = "AUTOMATION_ERROR"
    default_recoverable = True

    def __init__(
        self,
        message: str,
        recoverable: Optional[bool] = None,
        context: Optional[Dict[str, Any]] = None,
        critical: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.recoverable = self.default_recoverable if recoverable is None else recoverable
        self.context = dict(context or {})
        self.critical = critical

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "critical": self.critical,
            "context": self.context,
        }


class ConfigurationError(AutomationError):
    """A required setting is missing or invalid."""

    code = "CONFIGURATION_ERROR"
    default_recoverable = False


class LoginError(AutomationError):
    """Credentials were rejected or a security challenge was shown."""

    code = "LOGIN_ERROR"
    default_recoverable = False


class NavigationError(AutomationError):
    """The target screen or the suggestions list did not appear."""

    code = "NAVIGATION_ERROR"


class ConnectionActionError(AutomationError):
    """Sending a connection request to one person failed."""

    code = "CONNECTION_ERROR"


class BrowserError(AutomationError):
    """Browser session level failure."""

    code = "BROWSER_ERROR"


class CircuitOpenError(AutomationError):
    """The circuit breaker is open; wait for the recovery window."""

    code = "CIRCUIT_BREAKER_OPEN"
    default_recoverable = False


def error_message(error: Optional[BaseException]) -> str:
    """Human-readable cause of ``error``, never empty."""
    if error is None:
        return "Unknown error"
    text = str(error).strip()
    return text or type(error).__name__


def _message_matches(error: BaseException, patterns) -> bool:
    text = str(error).lower()
    return any(pattern in text for pattern in patterns)


def is_retryable_error(error: BaseException) -> bool:
    """Default retry predicate.

    Errors raised by this project answer with their ``recoverable`` flag.
    Playwright timeouts are always transient; other driver errors fall back
    to message patterns.
    """
    if isinstance(error, AutomationError):
        return error.recoverable
    if isinstance(error, PlaywrightTimeoutError):
        return True
    return _message_matches(error, TRANSIENT_MESSAGE_PATTERNS)


def is_critical_error(error: BaseException) -> bool:
    """True when an error must abort the batch rather than skip one item."""
    if isinstance(error, AutomationError) and error.critical:
        return True
    return _message_matches(error, CRITICAL_MESSAGE_PATTERNS)
