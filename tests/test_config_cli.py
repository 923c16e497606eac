"""
Test suite for configuration loading and the command-line interface.
"""

import argparse

import pytest
from pydantic import ValidationError

from batchcache import __version__
from batchcache.cli import create_parser, parse_universe, run_demo
from batchcache.config import BatcherConfig, get_config, set_config


class TestBatcherConfig:
    """Tests for environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("BATCHCACHE_WINDOW_SIZE", raising=False)
        config = BatcherConfig(_env_file=None)

        assert config.window_size == 10
        assert config.fetch_timeout_seconds is None
        assert config.resolver_ids_param == "ids"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("BATCHCACHE_WINDOW_SIZE", "25")
        monkeypatch.setenv("BATCHCACHE_RESOLVER_URL", "https://api.example.com")
        monkeypatch.setenv("BATCHCACHE_FETCH_TIMEOUT_SECONDS", "1.5")

        config = BatcherConfig(_env_file=None)

        assert config.window_size == 25
        assert config.resolver_url == "https://api.example.com"
        assert config.fetch_timeout_seconds == 1.5

    def test_window_size_validated(self):
        with pytest.raises(ValidationError):
            BatcherConfig(window_size=0)

    def test_global_config(self):
        config = BatcherConfig(window_size=3)
        set_config(config)
        try:
            assert get_config() is config
        finally:
            set_config(None)


class TestUniverseParsing:
    """Tests for the --universe argument."""

    def test_ranges_and_single_ids(self):
        assert parse_universe("1-3,10,20-22") == [1, 2, 3, 10, 20, 21, 22]

    def test_descending_range(self):
        assert parse_universe("5-3") == [5, 4, 3]

    def test_negative_id(self):
        assert parse_universe("-4") == [-4]

    def test_invalid_part(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_universe("1-x")


class TestCli:
    """Tests for argument parsing and the demo command."""

    def test_fetch_arguments(self):
        args = create_parser().parse_args(
            ["fetch", "--url", "http://localhost:8000", "--universe", "1-20", "5", "6"]
        )

        assert args.command == "fetch"
        assert args.ids == [5, 6]
        assert args.universe == list(range(1, 21))
        assert args.window == 10

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--version"])

        assert __version__ in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_demo_batches_rows(self, capsys):
        args = create_parser().parse_args(["demo", "--rows", "12", "--latency", "0.01", "--window", "5"])

        assert await run_demo(args) == 0

        out = capsys.readouterr().out
        assert "resolver called with 5 ids: [1000, 1001, 1002, 1003, 1004]" in out
        assert "1011: row 11" in out
        assert out.count("1000: row 0") == 2
