"""Tests for CLI argument wiring and proxy commands."""

import argparse
import sys
from unittest.mock import AsyncMock, patch

import pytest

from papercapture.acquire.config import ProxyConfig, load_proxy_config, save_proxy_config
from papercapture.cli import capture, main
from papercapture.cli.proxy import prompt_proxy_config


class TestCaptureParser:
    def _parse(self, argv):
        parser = argparse.ArgumentParser()
        subparsers = parser.add_subparsers(dest="command")
        capture.register(subparsers)
        return parser.parse_args(argv)

    def test_defaults(self):
        args = self._parse(["capture", "https://x.org/a"])
        assert args.url == "https://x.org/a"
        assert args.dest is None
        assert not args.headless
        assert args.author == []
        assert args.func is capture.cmd_capture

    def test_publication_metadata(self):
        args = self._parse(
            ["capture", "https://x.org/a", "--author", "Smith, J", "--author", "Doe, A",
             "--year", "2020", "--title", "Halos", "--proxy", "--manual"]
        )
        assert args.author == ["Smith, J", "Doe, A"]
        assert args.year == 2020
        assert args.title == "Halos"
        assert args.proxy and args.manual


class TestProxyCommands:
    def test_status_unconfigured(self, isolated_home, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["papercapture", "proxy", "status"])
        main()
        out = capsys.readouterr().out
        assert "No proxy configured." in out

    def test_status_configured(self, isolated_home, monkeypatch, capsys):
        save_proxy_config(
            ProxyConfig(
                proxy_type="ezproxy_suffix",
                proxy_suffix=".proxy.lib.umich.edu",
                institution_name="University of Michigan",
            )
        )
        monkeypatch.setattr(sys, "argv", ["papercapture", "proxy", "status"])
        main()
        out = capsys.readouterr().out
        assert "ezproxy_suffix" in out
        assert ".proxy.lib.umich.edu" in out

    def test_setup_preset(self, isolated_home, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["papercapture", "proxy", "setup"])
        monkeypatch.setattr("builtins.input", lambda prompt="": "umich")
        main()

        config = load_proxy_config()
        assert config.proxy_type == "ezproxy_prefix"
        assert config.institution_name == "University of Michigan"

    def test_setup_invalid_choice(self, isolated_home, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["papercapture", "proxy", "setup"])
        monkeypatch.setattr("builtins.input", lambda prompt="": "9")
        with pytest.raises(SystemExit):
            main()

    def test_no_command(self, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["papercapture"])
        with pytest.raises(SystemExit):
            main()


def _answers(monkeypatch, *answers):
    replies = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(replies))


class TestPromptProxyConfig:
    def test_suffix_choice(self, monkeypatch):
        _answers(monkeypatch, "2", ".proxy.lib.umich.edu", "UMich")
        config = prompt_proxy_config()
        assert config.proxy_type == "ezproxy_suffix"
        assert config.proxy_suffix == ".proxy.lib.umich.edu"
        assert config.institution_name == "UMich"

    def test_vpn_asks_only_for_name(self, monkeypatch):
        _answers(monkeypatch, "3", "")
        config = prompt_proxy_config()
        assert config.proxy_type == "vpn"
        assert config.institution_name == ""

    def test_empty_prefix_rejected(self, monkeypatch):
        _answers(monkeypatch, "1", "  ")
        assert prompt_proxy_config() is None

    def test_preset_is_a_copy(self, monkeypatch):
        _answers(monkeypatch, "umich")
        config = prompt_proxy_config()
        config.enabled = False
        _answers(monkeypatch, "umich")
        assert prompt_proxy_config().enabled


class TestCaptureProxyOffer:
    def _run(self, argv, tmp_path):
        parser = argparse.ArgumentParser()
        capture.register(parser.add_subparsers(dest="command"))
        args = parser.parse_args(argv + ["--dest", str(tmp_path)])
        run = AsyncMock(return_value=tmp_path / "a.pdf")
        with patch("papercapture.cli.capture._capture", new=run):
            capture.cmd_capture(args)
        return run.call_args.args[2]

    def test_unconfigured_proxy_prompts_and_saves(self, isolated_home, monkeypatch, tmp_path):
        _answers(monkeypatch, "umich")
        config = self._run(["capture", "https://x.org/a", "--proxy"], tmp_path)

        assert config.proxy.institution_name == "University of Michigan"
        assert load_proxy_config().proxy_type == "ezproxy_prefix"

    def test_declined_prompt_continues_without_proxy(self, isolated_home, monkeypatch, tmp_path):
        _answers(monkeypatch, "nope")
        config = self._run(["capture", "https://x.org/a", "--proxy"], tmp_path)

        assert not config.proxy.is_configured
        assert not load_proxy_config().is_configured

    def test_no_prompt_without_flag(self, isolated_home, monkeypatch, tmp_path):
        monkeypatch.setattr("builtins.input", lambda prompt="": pytest.fail("prompted"))
        config = self._run(["capture", "https://x.org/a"], tmp_path)

        assert not config.proxy.is_configured
