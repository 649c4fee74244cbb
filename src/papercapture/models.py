"""Core data models for papercapture."""

from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional

# CandidateURL.source_kind values
PRIMARY = "primary"
REDIRECT_CHAIN = "redirect_chain"
IFRAME = "iframe"
EMBED = "embed"
DERIVED = "derived"

# AcquisitionAttempt.outcome values
PENDING = "pending"
NOT_PDF = "not_pdf"
NETWORK_ERROR = "network_error"
SUCCESS = "success"

# PageInspection kinds that mean "the page is showing a PDF"
STRONG_PAGE_KINDS = frozenset({"content_type", "embed", "object", "pdfjs", "plugin", "minimal"})


def _header(headers: Mapping[str, str], name: str) -> str:
    """Case-insensitive header lookup."""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return str(value)
    return ""


@dataclass(frozen=True)
class ResponseSignal:
    """What the host saw for one navigation response."""

    url: str
    mime_type: str = ""
    content_disposition: str = ""
    content_length: Optional[int] = None
    status_code: Optional[int] = None

    @classmethod
    def from_headers(
        cls, url: str, status_code: Optional[int], headers: Mapping[str, str]
    ) -> "ResponseSignal":
        """Build a signal from raw response headers.

        The mime type is the Content-Type without parameters, lowercased.
        """
        content_type = _header(headers, "Content-Type")
        mime_type = content_type.split(";", 1)[0].strip().lower()
        length = _header(headers, "Content-Length")
        return cls(
            url=url,
            mime_type=mime_type,
            content_disposition=_header(headers, "Content-Disposition"),
            content_length=int(length) if length.isdigit() else None,
            status_code=status_code,
        )


@dataclass(frozen=True)
class CandidateURL:
    """A URL worth checking for PDF bytes, tagged with where it came from."""

    url: str
    source_kind: str = PRIMARY  # "primary" | "redirect_chain" | "iframe" | "embed" | "derived"


@dataclass
class PageInspection:
    """Result of the host's DOM inspection of the current page."""

    kind: str = "none"
    urls: list[str] = field(default_factory=list)

    @property
    def is_strong(self) -> bool:
        """True if the DOM says the page is displaying a PDF."""
        return self.kind in STRONG_PAGE_KINDS


@dataclass
class PublicationInfo:
    """Metadata of the paper being captured, used for fallback file names."""

    authors: list[str] = field(default_factory=list)
    year: Optional[int] = None
    title: str = ""

    @property
    def first_author_surname(self) -> str:
        """Surname of the first author ("Smith, John" or "John Smith")."""
        if not self.authors or not self.authors[0].strip():
            return ""
        first = self.authors[0].strip()
        if "," in first:
            return first.split(",", 1)[0].strip()
        return first.split()[-1]


@dataclass
class CaptureResult:
    """Validated PDF bytes handed back to the host. At most one per session."""

    data: bytes
    suggested_filename: str
    source_url: str
    strategy: str = ""  # which detection path produced it

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class AcquisitionAttempt:
    """One pass over the detection strategies."""

    attempt_number: int
    scheduled_delay_ms: int
    outcome: str = PENDING  # "pending" | "not_pdf" | "network_error" | "success"
    strategies: list[str] = field(default_factory=list)


class RedirectChain:
    """Ordered URLs visited during one top-level navigation."""

    def __init__(self):
        self._urls: list[str] = []

    def append(self, url: str) -> None:
        if url:
            self._urls.append(url)

    def reset(self) -> None:
        self._urls = []

    @property
    def urls(self) -> list[str]:
        return list(self._urls)

    def others(self, url: Optional[str]) -> Iterator[str]:
        """Yield chain members other than ``url``, first occurrence only."""
        seen = {url}
        for member in self._urls:
            if member in seen:
                continue
            seen.add(member)
            yield member

    def __len__(self) -> int:
        return len(self._urls)
