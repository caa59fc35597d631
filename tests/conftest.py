"""Shared fixtures for climan tests."""

import json
import logging

import pytest
from click.testing import CliRunner

from climan import core
from climan.executor import RequestResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def global_climan_dir(tmp_path, monkeypatch):
    """Override the global ~/.climan directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".climan"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    return fake_global


@pytest.fixture
def tmp_project(tmp_path, monkeypatch, global_climan_dir):
    """Run in an empty project directory with an isolated global config dir."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture(autouse=True)
def release_log_handlers():
    """Close handlers installed by setup_logging so log files are released."""
    yield
    for name in ("climan", "climan.output"):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()


def make_request_result(
    status_code=200,
    body=None,
    headers=None,
    elapsed_ms=42.0,
    headers_ms=30.0,
    error=None,
):
    """Factory for fake RequestResult objects.

    dict/list bodies are JSON-encoded, str bodies UTF-8 encoded.
    """
    r = RequestResult()
    r.status_code = status_code
    r.headers = headers or {}
    if isinstance(body, dict | list):
        r.body = json.dumps(body).encode()
    elif isinstance(body, str):
        r.body = body.encode()
    else:
        r.body = body or b""
    r.elapsed_ms = elapsed_ms
    r.headers_ms = headers_ms
    r.error = error
    return r
