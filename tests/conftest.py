"""Shared fixtures and HTTP fakes."""

import json
import sys

import pytest
from loguru import logger

from gitlab_transfer.api.client import GitLabClient
from gitlab_transfer.config.config import GitLabInstanceConfig, TransferConfig

SOURCE_URL = 'https://gitlab.example.com'
DESTINATION_URL = 'https://gitlab.com'


class FakeContent:
    """Stand-in for ``aiohttp.StreamReader``."""

    def __init__(self, body: bytes, error: Exception = None):
        self.body = body
        self.error = error

    async def iter_chunked(self, size):
        for start in range(0, len(self.body), size):
            yield self.body[start : start + size]
        if self.error is not None:
            raise self.error


class FakeResponse:
    """Stand-in for ``aiohttp.ClientResponse``."""

    def __init__(self, status, body=b'', headers=None, error=None):
        self.status = status
        self.body = body
        self.headers = headers or {}
        self.content = FakeContent(body, error)

    async def text(self):
        return self.body.decode()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def json_response(status, data=None, headers=None):
    body = json.dumps(data).encode() if data is not None else b''
    return FakeResponse(
        status, body, headers={'Content-Type': 'application/json', **(headers or {})}
    )


class FakeSession:
    """Replays queued responses and records every request."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self.closed = False

    def _respond(self, method, url, kwargs):
        self.calls.append({'method': method, 'url': url, **kwargs})
        if not self.responses:
            raise AssertionError(f'Unexpected request: {method} {url}')
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def request(self, method, url, **kwargs):
        return self._respond(method, url, kwargs)

    def get(self, url, **kwargs):
        return self._respond('GET', url, kwargs)

    def post(self, url, **kwargs):
        return self._respond('POST', url, kwargs)

    async def close(self):
        self.closed = True


class SleepRecorder:
    """Async sleep replacement that only records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_client(url, token, responses=None):
    session = FakeSession(responses)
    client = GitLabClient(GitLabInstanceConfig(url=url, token=token), session=session)
    return client, session


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record['message']), level='DEBUG')
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def transfer_config(tmp_path):
    return TransferConfig(export_file=str(tmp_path / 'export.tar.gz'))
