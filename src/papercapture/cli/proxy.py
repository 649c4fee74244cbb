"""Library proxy commands: proxy {setup, status}."""

import dataclasses
import sys
from typing import Optional

# (proxy_type, menu label, example of the value asked for)
_PROXY_CHOICES = [
    ("ezproxy_prefix", "EZproxy, login URL prefix", "https://proxy.lib.umich.edu/login?url="),
    ("ezproxy_suffix", "EZproxy, hostname suffix", ".proxy.lib.umich.edu"),
    ("vpn", "VPN or campus network, no rewriting", ""),
]


def register(subparsers):
    """Register proxy commands."""
    proxy_parser = subparsers.add_parser("proxy", help="Configure library proxy access")
    proxy_subparsers = proxy_parser.add_subparsers(dest="proxy_command", help="Proxy subcommands")

    proxy_subparsers.add_parser("setup", help="Choose how capture retries through your library")
    proxy_subparsers.add_parser("status", help="Show proxy configuration")

    proxy_parser.set_defaults(func=cmd_proxy)


def cmd_proxy(args):
    """Dispatch proxy subcommands."""
    if args.proxy_command == "setup":
        cmd_proxy_setup(args)
    elif args.proxy_command == "status":
        cmd_proxy_status(args)
    else:
        print("Usage: papercapture proxy {setup|status}")


def prompt_proxy_config():
    """Ask which proxy rewrites capture retries should use.

    Returns:
        A ProxyConfig, or None if the answer was not a listed choice or the
        prefix/suffix was left empty.
    """
    from papercapture.acquire.config import INSTITUTION_PRESETS, ProxyConfig

    print("\nWhen a page yields no PDF, capture can reload it through your library proxy.")
    for number, (_, label, example) in enumerate(_PROXY_CHOICES, start=1):
        hint = f"  (e.g. {example})" if example else ""
        print(f"  {number}. {label}{hint}")
    if INSTITUTION_PRESETS:
        print(f"  Presets: {', '.join(INSTITUTION_PRESETS)}")

    choice = input("Choice: ").strip().lower()
    if choice in INSTITUTION_PRESETS:
        return dataclasses.replace(INSTITUTION_PRESETS[choice])
    if not choice.isdigit() or not 1 <= int(choice) <= len(_PROXY_CHOICES):
        return None

    proxy_type = _PROXY_CHOICES[int(choice) - 1][0]
    config = ProxyConfig(proxy_type=proxy_type)
    if proxy_type == "ezproxy_prefix":
        config.proxy_url = input("Login URL prefix: ").strip()
        if not config.proxy_url:
            return None
    elif proxy_type == "ezproxy_suffix":
        config.proxy_suffix = input("Hostname suffix: ").strip()
        if not config.proxy_suffix:
            return None
    config.institution_name = input("Institution name (optional): ").strip()
    return config


def _print_config(config, config_path: Optional[str] = None):
    print(f"  Type:        {config.proxy_type}")
    print(f"  Institution: {config.institution_name or '-'}")
    if config.proxy_url:
        print(f"  URL:         {config.proxy_url}")
    if config.proxy_suffix:
        print(f"  Suffix:      {config.proxy_suffix}")
    print(f"  Enabled:     {'yes' if config.enabled else 'no'}")
    if config_path:
        print(f"  Config file: {config_path}")


def cmd_proxy_setup(args):
    """Prompt for a proxy and save it."""
    from papercapture.acquire.config import save_proxy_config

    config = prompt_proxy_config()
    if config is None:
        print("Invalid choice.")
        sys.exit(1)

    save_proxy_config(config)
    print("\nProxy saved:")
    _print_config(config)
    print("\nUse 'papercapture capture URL --proxy' to retry through it.")


def cmd_proxy_status(args):
    """Show proxy configuration."""
    from papercapture.acquire.config import load_proxy_config
    from papercapture.state import get_config_path

    config = load_proxy_config()
    if not config.is_configured:
        print("No proxy configured.")
        print("Run 'papercapture proxy setup' to configure.")
        return

    print("\nProxy Configuration:")
    _print_config(config, str(get_config_path()))
