"""
Integration Tests for the Receipt Pipeline

Runs submit -> poll -> fetch -> extract against a mocked recognition
service.

Tests:
- Successful recognition (awaitable and callback forms)
- Failure in any stage is reported once, with no items
- Per-task result files

Run with: pytest tests/test_receipt_pipeline.py -v
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from conftest import SERVER_URL, task_xml
from ocr.clients.ocr_sdk_client import OCRSDKClient
from ocr.exceptions import FileError, NetworkError, RemoteTaskError
from ocr.models import ExtractedItem
from ocr.services.receipt_pipeline import ReceiptPipeline
from ocr.services.result_fetcher import ResultFetcher
from ocr.services.status_poller import StatusPoller

EXPECTED_ITEMS = [
    ExtractedItem(description="Dragon Roll ", price="$10.99"),
    ExtractedItem(description="Curry Rice ", price="6.50"),
    ExtractedItem(description="Thai Iced Tea ", price="$3.5"),
]


class FakeService:
    """Routes requests the way the recognition service and its result store would."""

    def __init__(self, submit_status="Queued", statuses=None, result_body="", result_url="https://x/y"):
        self.submit_status = submit_status
        self.result_url = result_url
        self.statuses = list(statuses or [])
        self.result_body = result_body
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/processReceipt":
            return httpx.Response(200, text=task_xml("T1", self.submit_status))
        if request.url.path == "/getTaskStatus":
            status = self.statuses.pop(0)
            if isinstance(status, Exception):
                raise status
            result_url = self.result_url if status == "Completed" else None
            error = "Image is corrupted" if status == "ProcessingFailed" else None
            return httpx.Response(200, text=task_xml("T1", status, result_url, error))
        if str(request.url) == "https://x/y":
            return httpx.Response(200, text=self.result_body)
        return httpx.Response(404)

    def paths(self):
        return [request.url.path for request in self.requests]


def build_pipeline(mock_http, service, result_dir, max_attempts=120) -> ReceiptPipeline:
    http_client = mock_http(service)
    client = OCRSDKClient("app", "secret", server_url=SERVER_URL, http_client=http_client)
    return ReceiptPipeline(
        client=client,
        poller=StatusPoller(client, max_attempts=max_attempts, sleep=AsyncMock()),
        fetcher=ResultFetcher(http_client=http_client),
        result_dir=result_dir,
    )


class TestRecognizeReceipt:
    """Test the awaitable entry point."""

    @pytest.mark.asyncio
    async def test_returns_items_in_receipt_order(
        self, mock_http, receipt_image, receipt_result_text, tmp_path
    ):
        service = FakeService(
            statuses=["Queued", "InProgress", "Completed"],
            result_body=receipt_result_text,
        )
        pipeline = build_pipeline(mock_http, service, tmp_path / "results")

        items = await pipeline.recognize_receipt(receipt_image)

        assert items == EXPECTED_ITEMS
        assert service.paths() == [
            "/processReceipt",
            "/getTaskStatus",
            "/getTaskStatus",
            "/getTaskStatus",
            "/y",
        ]

    @pytest.mark.asyncio
    async def test_result_stored_per_task_by_default(
        self, mock_http, receipt_image, receipt_result_text, tmp_path
    ):
        service = FakeService(statuses=["Completed"], result_body=receipt_result_text)
        pipeline = build_pipeline(mock_http, service, tmp_path / "results")

        await pipeline.recognize_receipt(receipt_image)

        stored = tmp_path / "results" / "T1.txt"
        assert stored.read_text(encoding="utf-8") == receipt_result_text
        assert pipeline.result_path_for("T1") == stored

    @pytest.mark.asyncio
    async def test_task_id_tagged_for_error_tracking(
        self, mock_http, receipt_image, receipt_result_text, tmp_path
    ):
        service = FakeService(statuses=["Completed"], result_body=receipt_result_text)
        pipeline = build_pipeline(mock_http, service, tmp_path / "results")

        with patch("ocr.services.receipt_pipeline.set_tag") as set_tag:
            await pipeline.recognize_receipt(receipt_image)

        set_tag.assert_called_once_with("ocr_task_id", "T1")

    @pytest.mark.asyncio
    async def test_explicit_result_path(
        self, mock_http, receipt_image, receipt_result_text, tmp_path
    ):
        service = FakeService(statuses=["Completed"], result_body=receipt_result_text)
        pipeline = build_pipeline(mock_http, service, tmp_path / "results")
        destination = tmp_path / "custom" / "result.xml"

        await pipeline.recognize_receipt(receipt_image, result_path=destination)

        assert destination.exists()
        assert not (tmp_path / "results" / "T1.txt").exists()

    @pytest.mark.asyncio
    async def test_inactive_task_after_submit(self, mock_http, receipt_image, tmp_path):
        service = FakeService(submit_status="NotEnoughCredits")
        pipeline = build_pipeline(mock_http, service, tmp_path)

        with pytest.raises(RemoteTaskError) as exc_info:
            await pipeline.recognize_receipt(receipt_image)

        assert "NotEnoughCredits" in exc_info.value.message
        assert service.paths() == ["/processReceipt"]

    @pytest.mark.asyncio
    async def test_failed_task(self, mock_http, receipt_image, tmp_path):
        service = FakeService(statuses=["InProgress", "ProcessingFailed"])
        pipeline = build_pipeline(mock_http, service, tmp_path)

        with pytest.raises(RemoteTaskError) as exc_info:
            await pipeline.recognize_receipt(receipt_image)

        assert exc_info.value.message == "Error processing the task: Image is corrupted"
        assert exc_info.value.task.status == "ProcessingFailed"
        assert "/y" not in service.paths()

    @pytest.mark.asyncio
    async def test_missing_image(self, mock_http, tmp_path):
        service = FakeService()
        pipeline = build_pipeline(mock_http, service, tmp_path)

        with pytest.raises(FileError):
            await pipeline.recognize_receipt(tmp_path / "missing.jpg")

        assert service.requests == []


class TestRecognizeReceiptWithCallback:
    """Test the callback entry point."""

    @pytest.mark.asyncio
    async def test_callback_receives_items(
        self, mock_http, receipt_image, receipt_result_text, tmp_path
    ):
        service = FakeService(
            statuses=["Queued", "InProgress", "Completed"],
            result_body=receipt_result_text,
        )
        pipeline = build_pipeline(mock_http, service, tmp_path)
        on_complete = MagicMock()

        await pipeline.recognize_receipt_with_callback(receipt_image, on_complete)

        on_complete.assert_called_once_with(None, EXPECTED_ITEMS)

    @pytest.mark.asyncio
    async def test_callback_receives_network_error_once(self, mock_http, receipt_image, tmp_path):
        request = httpx.Request("GET", f"{SERVER_URL}/getTaskStatus")
        service = FakeService(
            statuses=["Queued", httpx.ConnectError("connection reset", request=request)]
        )
        pipeline = build_pipeline(mock_http, service, tmp_path)
        on_complete = MagicMock()

        await pipeline.recognize_receipt_with_callback(receipt_image, on_complete)

        on_complete.assert_called_once()
        error, items = on_complete.call_args.args
        assert isinstance(error, NetworkError)
        assert items is None
        assert list(tmp_path.iterdir()) == [receipt_image]

    @pytest.mark.asyncio
    async def test_callback_receives_malformed_result_url_once(
        self, mock_http, receipt_image, tmp_path
    ):
        service = FakeService(statuses=["Completed"], result_url="http://[::1")
        pipeline = build_pipeline(mock_http, service, tmp_path / "results")
        on_complete = MagicMock()

        await pipeline.recognize_receipt_with_callback(receipt_image, on_complete)

        on_complete.assert_called_once()
        error, items = on_complete.call_args.args
        assert isinstance(error, NetworkError)
        assert items is None
        assert service.paths() == ["/processReceipt", "/getTaskStatus"]

    @pytest.mark.asyncio
    async def test_callback_receives_remote_failure(self, mock_http, receipt_image, tmp_path):
        service = FakeService(statuses=["Failed"])
        pipeline = build_pipeline(mock_http, service, tmp_path)
        on_complete = MagicMock()

        await pipeline.recognize_receipt_with_callback(receipt_image, on_complete)

        error, items = on_complete.call_args.args
        assert isinstance(error, RemoteTaskError)
        assert error.message == "Error processing the task"
        assert items is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
