"""PDF magic-byte validation and diagnostics for rejected payloads."""

from typing import Optional

from papercapture.acquire.errors import NotAPDF

PDF_MAGIC = b"%PDF"  # 25 50 44 46


def is_pdf(data: Optional[bytes]) -> bool:
    """Validate that data starts with PDF magic bytes.

    Fails closed: None and anything shorter than four bytes is not a PDF.
    """
    if not data or len(data) < len(PDF_MAGIC):
        return False
    return bytes(data[: len(PDF_MAGIC)]) == PDF_MAGIC


def magic_hex(data: bytes, length: int = 16) -> str:
    """First ``length`` bytes as space-separated hex, e.g. ``25 50 44 46``."""
    return " ".join(f"{b:02X}" for b in data[:length])


def looks_like_html(data: bytes) -> bool:
    """True for payloads starting with '<' or carrying a DOCTYPE."""
    if data[:1] == b"<":
        return True
    return b"DOCTYPE" in data[:15].upper()


def describe_payload(data: bytes) -> str:
    """One-line diagnostic for a payload that failed PDF validation."""
    parts = [
        f"size={len(data)} bytes",
        f"magic={magic_hex(data) or '(empty)'}",
        f"html={looks_like_html(data)}",
    ]
    try:
        text = data[:500].decode("utf-8")
    except UnicodeDecodeError:
        text = ""
    if text:
        preview = text.replace("\n", " ").replace("\r", " ")[:200]
        parts.append(f"preview={preview!r}")
    return ", ".join(parts)


def ensure_pdf(data: bytes, url: str) -> bytes:
    """Return ``data`` unchanged if it is a PDF, else raise NotAPDF."""
    if not is_pdf(data):
        raise NotAPDF(url, describe_payload(data or b""))
    return data
