"""Command-line interface for papercapture."""

import argparse
import logging
import sys

from dotenv import load_dotenv

# Load .env file from the working directory
load_dotenv()


def main():
    """Main CLI entry point."""
    from papercapture.cli import capture, proxy

    modules = [capture, proxy]

    from papercapture import __version__

    parser = argparse.ArgumentParser(
        prog="papercapture",
        description="Capture publisher PDFs from an authenticated browser session",
    )
    parser.add_argument("--version", action="version", version=f"papercapture {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for mod in modules:
        mod.register(subparsers)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()
        sys.exit(1)
