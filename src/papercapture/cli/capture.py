"""Capture command: open a browser on a URL and save the first PDF it yields."""

import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def register(subparsers):
    """Register the capture command."""
    p = subparsers.add_parser("capture", help="Capture the PDF behind a publisher URL")
    p.add_argument("url", type=str, help="Article or PDF URL to open")
    p.add_argument(
        "--dest",
        type=str,
        default=None,
        help="Output directory for PDFs (default: ~/.papercapture/captured/)",
    )
    p.add_argument("--headless", action="store_true", help="Run the browser without a window")
    p.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="Seconds to wait for a PDF, including time to log in (default: 300)",
    )
    p.add_argument(
        "--proxy",
        action="store_true",
        help="If nothing is captured, reload the page through the configured library proxy",
    )
    p.add_argument(
        "--manual",
        action="store_true",
        help="If nothing is captured, capture whatever the page shows (page render fallback)",
    )
    p.add_argument("--author", action="append", default=[], help="Author name (repeatable)")
    p.add_argument("--year", type=int, default=None, help="Publication year")
    p.add_argument("--title", type=str, default="", help="Publication title")
    p.set_defaults(func=cmd_capture)


def cmd_capture(args):
    """Capture a PDF and write it to the destination directory."""
    from papercapture.acquire.config import load_capture_config
    from papercapture.state import get_cache_dir

    dest_dir = Path(args.dest) if args.dest else get_cache_dir() / "captured"
    config = load_capture_config()
    if args.proxy and not config.proxy.is_configured:
        _offer_proxy_setup(config)

    try:
        path = asyncio.run(_capture(args, dest_dir, config))
    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(130)

    if path is None:
        sys.exit(1)
    print(f"\nPDF saved to: {path}")


def _offer_proxy_setup(config) -> None:
    """--proxy without a configured proxy: ask for one before the browser opens."""
    from papercapture.acquire.config import save_proxy_config
    from papercapture.cli.proxy import prompt_proxy_config

    print("--proxy was given but no library proxy is configured.")
    proxy = prompt_proxy_config()
    if proxy is None:
        print("No proxy set; continuing without proxy retry.")
        return
    save_proxy_config(proxy)
    config.proxy = proxy


async def _wait(event: asyncio.Event, timeout: float) -> bool:
    try:
        await asyncio.wait_for(event.wait(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False


async def _capture(args, dest_dir: Path, config):
    from playwright.async_api import async_playwright
    from tqdm import tqdm

    from papercapture.acquire.orchestrator import DetectionOrchestrator
    from papercapture.acquire.session import PlaywrightBrowsingSession
    from papercapture.models import PublicationInfo
    from papercapture.state import get_cache_dir

    publication = None
    if args.author or args.year or args.title:
        publication = PublicationInfo(authors=args.author, year=args.year, title=args.title)

    storage_state = get_cache_dir() / "browser_session" / "storage_state.json"
    captured = asyncio.Event()
    saved: list[Path] = []  # mutable container for the callback
    bars: list = []

    def on_progress(received, expected):
        if not bars:
            bars.append(tqdm(total=expected, unit="B", unit_scale=True, desc="Downloading"))
        bar = bars[0]
        if expected and bar.total != expected:
            bar.total = expected
        bar.n = received
        bar.refresh()

    def on_captured(result):
        dest_dir.mkdir(parents=True, exist_ok=True)
        path = dest_dir / result.suggested_filename
        path.write_bytes(result.data)
        saved.append(path)
        print(f"\nCaptured {result.size} bytes via {result.strategy}")
        captured.set()

    def on_error(message):
        print(message)

    print(f"\nOpening browser for: {args.url}")
    if not args.headless:
        print("Log in if the publisher asks; the PDF is saved as soon as it is detected.\n")

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=args.headless)
        context_opts = {"accept_downloads": True}
        if storage_state.exists():
            context_opts["storage_state"] = str(storage_state)
        context = await browser.new_context(**context_opts)
        page = await context.new_page()

        session = PlaywrightBrowsingSession(
            page,
            download_timeout=config.native_download_timeout,
            max_redirects=config.max_redirects,
        )
        orchestrator = DetectionOrchestrator(
            session,
            on_captured,
            publication=publication,
            config=config,
            on_error=on_error,
            on_progress=on_progress,
            initial_url=args.url,
        )
        session.attach(orchestrator)

        try:
            try:
                await page.goto(args.url, wait_until="domcontentloaded", timeout=30000)
            except Exception as e:
                # PDF attachments abort the navigation; the download handler takes over
                logger.debug(f"Navigation did not complete: {e}")

            done = await _wait(captured, args.timeout)

            if not done and args.proxy:
                proxied = orchestrator.proxy_retry_url()
                if proxied:
                    print(f"Retrying through library proxy: {proxied}")
                    try:
                        await page.goto(proxied, wait_until="domcontentloaded", timeout=30000)
                    except Exception as e:
                        logger.debug(f"Proxy navigation did not complete: {e}")
                    done = await _wait(captured, args.timeout)

            if not done and args.manual:
                print("Trying manual capture of the current page...")
                await orchestrator.manual_capture()
                done = captured.is_set()

            if not done:
                print(orchestrator.error_message or "Timed out waiting for a PDF.")

            storage_state.parent.mkdir(parents=True, exist_ok=True)
            await context.storage_state(path=str(storage_state))
        finally:
            orchestrator.close()
            for bar in bars:
                bar.close()
            await context.close()
            await browser.close()

    return saved[0] if saved else None
