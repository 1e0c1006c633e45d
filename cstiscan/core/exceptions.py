"""
cstiscan Exception Hierarchy

Structured exceptions for the scanner. Almost every browser interaction is
fail-soft (caught at the interaction boundary and turned into a negative
result), so these types mostly travel between the browser adapter and the
code that classifies failures.

Exception Categories:
- BrowserError: Browser interaction failures (transient, never fatal to a scan)
- NavigationError: A page could not be reached (transient)
- ScriptEvaluationError: In-page script threw (ReferenceError is split out)
- CatalogError: Engine catalog tables are inconsistent (permanent, load time)
- ConfigError: Configuration issues (permanent)

Usage:
    from cstiscan.core.exceptions import ScriptReferenceError

    try:
        await page.evaluate(probe)
    except ScriptReferenceError:
        # Probe target undefined - engine absent
        return False
"""

from typing import Optional, Dict, Any


class CstiScanException(Exception):
    """Base exception for all cstiscan errors.

    Attributes:
        message: Human-readable error description
        retry_eligible: Whether this error type is transient
        error_code: Optional error code for logging
        context: Additional context about the error
    """

    retry_eligible: bool = False
    error_code: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.cause = cause

    def __str__(self) -> str:
        base = self.message
        if self.error_code:
            base = f"[{self.error_code}] {base}"
        if self.context:
            base = f"{base} | context={self.context}"
        return base


# =============================================================================
# BROWSER ERRORS (Transient - treated as a negative result for one step)
# =============================================================================

class BrowserError(CstiScanException):
    """Base class for browser interaction failures."""
    retry_eligible = True
    error_code = "BROWSER"


class NavigationError(BrowserError):
    """Navigation, history traversal or reload failed."""
    error_code = "NAV"

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        super().__init__(message, context=context, **kwargs)


class NavigationTimeoutError(NavigationError):
    """Navigation did not settle within its budget."""
    error_code = "NAV_TIMEOUT"


class ScriptEvaluationError(BrowserError):
    """A script evaluated in page context threw."""
    error_code = "SCRIPT"


class ScriptReferenceError(ScriptEvaluationError):
    """The script referenced an undefined global (JS ReferenceError)."""
    error_code = "SCRIPT_REF"


class ScriptTimeoutError(ScriptEvaluationError):
    """The script did not return within its budget."""
    error_code = "SCRIPT_TIMEOUT"


# =============================================================================
# CATALOG ERRORS (Permanent - fix the catalog tables)
# =============================================================================

class CatalogError(CstiScanException):
    """Engine catalog tables are not key-consistent."""
    error_code = "CATALOG"


class UnknownEngineError(CatalogError):
    """An engine identifier does not exist in the catalog."""
    error_code = "CATALOG_UNKNOWN"

    def __init__(self, engine_id: str, **kwargs):
        context = kwargs.pop("context", {})
        context["engine"] = engine_id
        super().__init__(f"Unknown template engine: {engine_id}", context=context, **kwargs)
        self.engine_id = engine_id


# =============================================================================
# CONFIG ERRORS (Permanent - fix config and restart)
# =============================================================================

class ConfigError(CstiScanException):
    """Base class for configuration errors."""
    error_code = "CONFIG"


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""
    error_code = "CONFIG_INVALID"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_transient(exc: Exception) -> bool:
    """Check if an exception is transient (a failed step, not a broken setup)."""
    if isinstance(exc, CstiScanException):
        return exc.retry_eligible
    import asyncio
    return isinstance(exc, asyncio.TimeoutError)


def wrap_exception(
    exc: Exception,
    wrapper_class: type,
    message: Optional[str] = None
) -> CstiScanException:
    """Wrap a standard exception in a CstiScanException.

    Args:
        exc: The original exception
        wrapper_class: The CstiScanException subclass to wrap with
        message: Optional custom message (defaults to str(exc))

    Returns:
        A CstiScanException wrapping the original
    """
    return wrapper_class(
        message or str(exc),
        cause=exc
    )


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    # Base
    "CstiScanException",

    # Browser
    "BrowserError",
    "NavigationError",
    "NavigationTimeoutError",
    "ScriptEvaluationError",
    "ScriptReferenceError",
    "ScriptTimeoutError",

    # Catalog
    "CatalogError",
    "UnknownEngineError",

    # Config
    "ConfigError",
    "InvalidConfigError",

    # Helpers
    "is_transient",
    "wrap_exception",
]
