"""Shared fixtures for the receipt OCR tests."""

from pathlib import Path

import httpx
import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"

SERVER_URL = "https://ocr.test"


def task_xml(task_id: str, status: str, result_url: str = None, error: str = None) -> str:
    """Build a task response envelope the way the service renders it."""
    attributes = f'id="{task_id}" registrationTime="2016-10-29T23:02:36Z" status="{status}"'
    if result_url:
        attributes += f' resultUrl="{result_url}"'
    if error:
        attributes += f' error="{error}"'
    return f'<?xml version="1.0" encoding="utf-8"?><response><task {attributes} /></response>'


def error_xml(message: str) -> str:
    return f'<?xml version="1.0" encoding="utf-8"?><error><message language="english">{message}</message></error>'


@pytest.fixture
def receipt_result_text() -> str:
    return (FIXTURES_DIR / "receipt_result.txt").read_text(encoding="utf-8")


@pytest.fixture
def receipt_image(tmp_path) -> Path:
    path = tmp_path / "receipt.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg-bytes")
    return path


@pytest.fixture
def mock_http():
    """Return a factory for httpx clients backed by a request handler."""
    clients = []

    def factory(handler) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    return factory
