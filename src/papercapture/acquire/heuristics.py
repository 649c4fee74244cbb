"""URL and response heuristics for spotting PDF endpoints.

These only decide fetch order and retry eagerness. Nothing here is ever
enough to declare a capture: bytes always go through ``sniff.is_pdf``.
"""

import logging
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse, urlunparse

from papercapture.acquire.config import DEFAULT_PDF_PATH_PATTERNS, DEFAULT_WEAK_QUERY_MARKERS
from papercapture.models import ResponseSignal

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = ("application/pdf", "application/x-pdf")


class URLHeuristics:
    """Pattern tables for "this URL probably serves a PDF".

    Args:
        path_patterns: Substrings that mark a PDF path (case-insensitive).
        weak_query_markers: Query substrings treated as a weak positive
            (``doi``, ``urlid``). Pass an empty tuple to disable.
    """

    def __init__(
        self,
        path_patterns: Iterable[str] = DEFAULT_PDF_PATH_PATTERNS,
        weak_query_markers: Iterable[str] = DEFAULT_WEAK_QUERY_MARKERS,
    ):
        self.path_patterns = tuple(p.lower() for p in path_patterns)
        self.weak_query_markers = tuple(m.lower() for m in weak_query_markers)

    def looks_like_pdf_url(self, url: Optional[str]) -> bool:
        if not url:
            return False

        url_lower = url.lower()
        parsed = urlparse(url_lower)
        path = parsed.path

        if url_lower.endswith(".pdf") or path.endswith(".pdf"):
            return True

        # IOP Science and many others
        if path.endswith("/pdf"):
            return True

        if any(pattern in path for pattern in self.path_patterns):
            return True

        query = parsed.query
        if query:
            if "format=pdf" in query or "type=pdf" in query:
                return True
            if "pdf" in query and "download" in query:
                return True
            if any(marker in query for marker in self.weak_query_markers):
                return True

        return False

    def is_pdf_response(self, signal: ResponseSignal) -> bool:
        """High-confidence check on a navigation response's headers."""
        mime = (signal.mime_type or "").lower()
        if mime in PDF_MIME_TYPES:
            return True

        disposition = (signal.content_disposition or "").lower()
        if "attachment" in disposition or ".pdf" in disposition:
            return True

        # Binary response on a PDF-looking URL
        if self.looks_like_pdf_url(signal.url) and mime in ("", "application/octet-stream"):
            return True

        return False


_default = URLHeuristics()


def looks_like_pdf_url(url: Optional[str]) -> bool:
    """Check a URL against the default pattern tables."""
    return _default.looks_like_pdf_url(url)


def is_pdf_response(signal: ResponseSignal) -> bool:
    """Check a response signal against the default pattern tables."""
    return _default.is_pdf_response(signal)


def is_pdf_content_type(content_type: Optional[str]) -> bool:
    """True for ``application/pdf`` / ``application/x-pdf`` (parameters ignored)."""
    if not content_type:
        return False
    return content_type.split(";", 1)[0].strip().lower() in PDF_MIME_TYPES


# --- Publisher direct-PDF URLs ---


def _host_matches(host: str, publisher: str) -> bool:
    """Match a publisher host directly or behind a hyphenating proxy.

    EZproxy suffix mode turns nature.com into nature-com.proxy.example.edu.
    """
    return publisher in host or publisher.replace(".", "-") in host


def _with_path(url: str, path: str) -> str:
    parsed = urlparse(url)
    return urlunparse(parsed._replace(path=path))


def _append(suffix: str, *already: str) -> Callable[[str, str], Optional[str]]:
    def rule(url: str, path: str) -> Optional[str]:
        if path.endswith(suffix) or any(marker in path for marker in already):
            return None
        parsed = urlparse(url)
        return urlunparse(parsed._replace(path=parsed.path + suffix))

    return rule


def _swap(old: str, new: str, *already: str) -> Callable[[str, str], Optional[str]]:
    def rule(url: str, path: str) -> Optional[str]:
        if any(marker in path for marker in already):
            return None
        return _with_path(url, path.replace(old, new, 1))

    return rule


# (publisher host, "prefix" | "contains", path marker, rewrite rule)
DIRECT_PDF_RULES: list[tuple[str, str, str, Callable[[str, str], Optional[str]]]] = [
    ("iopscience.iop.org", "prefix", "/article/", _append("/pdf")),
    ("journals.aps.org", "contains", "/abstract/", _swap("/abstract/", "/pdf/")),
    ("nature.com", "prefix", "/articles/", _append(".pdf")),
    ("academic.oup.com", "contains", "/article/", _append("/pdf", "/article-pdf/")),
    ("aanda.org", "prefix", "/articles/", _append("/pdf")),
    ("science.org", "prefix", "/doi/", _swap("/doi/", "/doi/pdf/", "/doi/pdf/")),
    (
        "onlinelibrary.wiley.com",
        "prefix",
        "/doi/",
        _swap("/doi/", "/doi/pdfdirect/", "/doi/pdfdirect/", "/doi/pdf/"),
    ),
    ("pubs.aip.org", "contains", "/article/", _append("/pdf")),
    ("annualreviews.org", "prefix", "/doi/", _swap("/doi/", "/doi/pdf/", "/doi/pdf/")),
    ("pnas.org", "prefix", "/doi/", _swap("/doi/", "/doi/pdf/", "/doi/pdf/")),
    ("royalsocietypublishing.org", "prefix", "/doi/", _swap("/doi/", "/doi/pdf/", "/doi/pdf/")),
]


def direct_pdf_url(url: Optional[str]) -> Optional[str]:
    """Derive a publisher's direct PDF URL from an article landing page.

    Returns None when no publisher rule applies or the URL already points at
    the PDF. Oxford Academic's real PDF paths carry components we cannot
    derive, but appending /pdf usually redirects there.
    """
    if not url:
        return None

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    path = parsed.path

    for publisher, mode, marker, rule in DIRECT_PDF_RULES:
        if not _host_matches(host, publisher):
            continue
        matched = path.startswith(marker) if mode == "prefix" else marker in path
        if not matched:
            continue
        derived = rule(url, path)
        if derived and derived != url:
            logger.debug(f"Derived direct PDF URL for {publisher}: {derived}")
            return derived
        return None

    return None
