"""Exceptions raised by the capture engine.

Only ``NoBrowsingSession`` is meant to reach the host. Strategy-level errors
(``NetworkError``, ``AuthenticationRequired``, ``NotAPDF``) are absorbed by the
orchestrator, which moves on to the next strategy or attempt.
"""

from typing import Optional


class CaptureError(Exception):
    """Base class for capture engine errors."""


class NetworkError(CaptureError):
    """Transport failure while fetching or downloading a URL."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class AuthenticationRequired(NetworkError):
    """Server answered with an auth challenge (401/407).

    Retried exactly like a NetworkError: the native download path exists
    to route around authentication that cookies alone cannot satisfy.
    """


class NotAPDF(CaptureError):
    """A payload was fetched but does not start with the PDF magic bytes."""

    def __init__(self, url: str, diagnostics: str):
        super().__init__(f"Not a PDF: {url}")
        self.url = url
        self.diagnostics = diagnostics


class NoBrowsingSession(CaptureError):
    """No browsing session is available to acquire from."""
