"""Tests for suggested filenames and publication metadata."""

from papercapture.acquire.naming import (
    last_path_component,
    publication_filename,
    safe_filename,
    suggested_filename,
)
from papercapture.models import PublicationInfo


class TestLastPathComponent:
    def test_basic(self):
        assert last_path_component("https://x.org/a/b/paper.pdf") == "paper.pdf"

    def test_trailing_slash(self):
        assert last_path_component("https://x.org/a/b/") == "b"

    def test_percent_decoded(self):
        assert last_path_component("https://x.org/files/my%20paper.pdf") == "my paper.pdf"

    def test_root_and_empty(self):
        assert last_path_component("https://x.org/") == ""
        assert last_path_component(None) == ""


class TestSuggestedFilename:
    def test_pdf_component(self):
        assert suggested_filename("https://x.org/content/paper123.pdf?download=1") == "paper123.pdf"

    def test_non_pdf_component_gets_extension(self):
        assert suggested_filename("https://x.org/doi/pdf/10.1103/PhysRevD.1.1") == "PhysRevD.1.1.pdf"

    def test_suffix(self):
        assert suggested_filename("https://x.org/paper.pdf", suffix="_capture") == "paper_capture.pdf"
        assert suggested_filename("https://x.org/article/abc", suffix="_capture") == "abc_capture.pdf"

    def test_publication_fallback(self):
        pub = PublicationInfo(authors=["Jane Smith"], year=2021, title="Galaxy rotation curves")
        assert suggested_filename("https://x.org/", pub) == "Smith_2021_Galaxy.pdf"

    def test_generic_fallback(self):
        assert suggested_filename(None) == "document.pdf"
        assert suggested_filename("", suffix="_capture") == "document_capture.pdf"

    def test_unsafe_characters_replaced(self):
        assert safe_filename('a:b/c*d?.pdf') == "a_b_c_d_.pdf"


class TestPublicationFilename:
    def test_missing_fields(self):
        assert publication_filename(PublicationInfo()) == "Unknown_NoYear_Document.pdf"

    def test_zero_year(self):
        pub = PublicationInfo(authors=["Doe, John"], year=0, title="Notes")
        assert publication_filename(pub) == "Doe_NoYear_Notes.pdf"

    def test_surname_forms(self):
        assert PublicationInfo(authors=["Smith, John"]).first_author_surname == "Smith"
        assert PublicationInfo(authors=["John Q. Smith"]).first_author_surname == "Smith"
        assert PublicationInfo(authors=["  "]).first_author_surname == ""
