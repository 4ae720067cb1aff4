"""Shared fixtures for CLI command tests."""

import json
import logging
import os

import pytest
from click.testing import CliRunner

from netkeeper.cli.main import cli


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    """Drop the handler each invocation installs (its stream dies with the runner)."""
    yield
    logger = logging.getLogger("netkeeper")
    for handler in list(logger.handlers):
        if getattr(handler, "_netkeeper_handler", False):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def queue_file(tmp_path):
    return tmp_path / "queue.json"


@pytest.fixture
def config_file(tmp_path, queue_file):
    """Config file with a base URL and a file-backed queue."""
    path = tmp_path / "netkeeper.toml"
    path.write_text(
        f"""
[client]
base_url = "https://api.test"

[queue]
storage_path = "{queue_file.as_posix()}"
"""
    )
    return path


@pytest.fixture
def invoke(cli_runner, config_file, monkeypatch):
    """Invoke the CLI with the test config; returns (result, parsed stdout)."""
    for name in list(os.environ):
        if name.startswith("NETKEEPER_"):
            monkeypatch.delenv(name)

    def _invoke(*args, config=None):
        argv = ["--config", str(config or config_file), "--log-level", "CRITICAL", *args]
        result = cli_runner.invoke(cli, argv)
        payload = json.loads(result.stdout) if result.stdout.strip() else None
        return result, payload

    return _invoke
