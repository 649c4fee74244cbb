"""papercapture: capture publisher PDFs from an authenticated browsing session."""

__version__ = "0.1.0"
