"""
Pytest configuration and fixtures for fetch-client-core tests.
"""

import asyncio
import inspect
import json

import pytest

from fetch_client.core.config import ClientConfig, RetryOptions
from fetch_client.core.logging.config import LoggingConfig
from fetch_client.core.transport import TransportResponse


class ScriptedTransport:
    """
    Fake transport that plays back a script of steps and records every call.

    A step is an exception instance (raised), or a callable
    ``(url, init) -> TransportResponse`` (sync or async). The last step
    repeats once the script is exhausted.
    """

    def __init__(self, *steps):
        self.steps = list(steps)
        self.calls = []
        self.responses = []

    @property
    def call_count(self):
        return len(self.calls)

    async def __call__(self, url, init):
        self.calls.append((url, init))
        index = min(len(self.calls) - 1, len(self.steps) - 1)
        step = self.steps[index]

        if isinstance(step, BaseException):
            raise step

        result = step(url, init)
        if inspect.isawaitable(result):
            result = await result
        self.responses.append(result)
        return result


def _respond(status=200, content=b"", headers=None, status_text=None):
    """Step that returns a fresh buffered response."""

    def _step(url, init):
        return TransportResponse.from_bytes(
            status, content, headers, status_text=status_text, url=url
        )

    return _step


def _respond_json(data, status=200, headers=None):
    all_headers = {"content-type": "application/json"}
    all_headers.update(headers or {})
    return _respond(status, json.dumps(data).encode(), all_headers)


def _hang(seconds=10.0):
    """Step that never answers within a test's timeout."""

    async def _step(url, init):
        await asyncio.sleep(seconds)
        return TransportResponse.from_bytes(200, b"late", url=url)

    return _step


@pytest.fixture
def base_url():
    """Base URL for testing."""
    return "https://api.example.com"


@pytest.fixture
def scripted():
    """Factory for ScriptedTransport."""
    return ScriptedTransport


@pytest.fixture
def respond():
    return _respond


@pytest.fixture
def respond_json():
    return _respond_json


@pytest.fixture
def hang():
    return _hang


@pytest.fixture
def fast_retry():
    """Retry options without real waiting."""
    return RetryOptions(retry_delay=0.0, max_retry_delay=0.0)


@pytest.fixture
def config(base_url, fast_retry):
    """ClientConfig pointing at base_url with instant retries."""
    return ClientConfig(base_url=base_url, retry=fast_retry)


@pytest.fixture
def logging_config_with_file(tmp_path):
    """
    LoggingConfig with JSON file logging into a temporary directory.
    """
    return LoggingConfig.create(
        level="DEBUG",
        format="json",
        enable_console=False,
        enable_file=True,
        file_path=str(tmp_path / "requests.log"),
    )
