"""Tests for PDF magic-byte validation."""

import pytest

from papercapture.acquire.errors import NotAPDF
from papercapture.acquire.sniff import describe_payload, ensure_pdf, is_pdf, looks_like_html, magic_hex


class TestIsPdf:
    def test_pdf_magic(self):
        assert is_pdf(b"%PDF-1.4\n")

    def test_exactly_four_bytes(self):
        assert is_pdf(bytes([0x25, 0x50, 0x44, 0x46]))

    def test_short_buffers_fail_closed(self):
        assert not is_pdf(b"")
        assert not is_pdf(b"%")
        assert not is_pdf(b"%PD")

    def test_none(self):
        assert not is_pdf(None)

    def test_html(self):
        assert not is_pdf(b"<html><body>%PDF</body></html>")

    def test_arbitrary_binary(self):
        assert not is_pdf(b"\x89PNG\r\n\x1a\n")
        assert not is_pdf(b"PK\x03\x04")

    def test_magic_not_at_start(self):
        assert not is_pdf(b" %PDF-1.7")


class TestDiagnostics:
    def test_magic_hex(self):
        assert magic_hex(b"%PDF") == "25 50 44 46"

    def test_magic_hex_truncates(self):
        assert magic_hex(bytes(range(32)), length=4) == "00 01 02 03"

    def test_looks_like_html(self):
        assert looks_like_html(b"<html>")
        assert looks_like_html(b"  <!doctype html>")
        assert not looks_like_html(b"%PDF-1.7")

    def test_describe_html_payload(self, html_bytes):
        description = describe_payload(html_bytes)
        assert f"size={len(html_bytes)} bytes" in description
        assert "magic=3C 21" in description
        assert "html=True" in description
        assert "preview=" in description

    def test_describe_empty_payload(self):
        assert "magic=(empty)" in describe_payload(b"")

    def test_describe_binary_has_no_preview(self):
        assert "preview" not in describe_payload(b"\xff\xfe\xfa\x00garbage")


class TestEnsurePdf:
    def test_returns_data(self, pdf_bytes):
        assert ensure_pdf(pdf_bytes, "https://x.org/a.pdf") is pdf_bytes

    def test_raises_with_diagnostics(self, html_bytes):
        with pytest.raises(NotAPDF) as exc_info:
            ensure_pdf(html_bytes, "https://x.org/a.pdf")
        assert exc_info.value.url == "https://x.org/a.pdf"
        assert "html=True" in exc_info.value.diagnostics
