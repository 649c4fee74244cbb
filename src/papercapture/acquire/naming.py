"""Suggested filenames for captured PDFs."""

import re
from typing import Optional
from urllib.parse import unquote, urlparse

from papercapture.models import PublicationInfo

_UNSAFE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def safe_filename(name: str) -> str:
    """Replace characters that are not allowed in file names."""
    return _UNSAFE.sub("_", name).strip() or "document.pdf"


def last_path_component(url: Optional[str]) -> str:
    """Last non-empty path segment of ``url``, percent-decoded."""
    if not url:
        return ""
    path = unquote(urlparse(url).path)
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else ""


def publication_filename(publication: Optional[PublicationInfo], suffix: str = "") -> str:
    """``{surname}_{year|NoYear}_{firstTitleWord}{suffix}.pdf``."""
    if publication is None:
        return f"document{suffix}.pdf"
    author = publication.first_author_surname or "Unknown"
    year = str(publication.year) if publication.year and publication.year > 0 else "NoYear"
    words = publication.title.split()
    title_word = words[0] if words else "Document"
    return f"{author}_{year}_{title_word}{suffix}.pdf"


def suggested_filename(
    url: Optional[str],
    publication: Optional[PublicationInfo] = None,
    suffix: str = "",
) -> str:
    """Derive a filename for a PDF captured from ``url``.

    Uses the URL's last path component when it ends in .pdf, appends .pdf
    to any other non-empty last component, and otherwise falls back to the
    publication metadata.

    Args:
        url: URL the bytes came from.
        publication: Metadata for the fallback name.
        suffix: Inserted before ``.pdf`` (e.g. "_capture").
    """
    component = last_path_component(url)
    if component.lower().endswith(".pdf"):
        if suffix:
            component = f"{component[:-4]}{suffix}.pdf"
        return safe_filename(component)
    if component:
        return safe_filename(f"{component}{suffix}.pdf")
    return safe_filename(publication_filename(publication, suffix))
