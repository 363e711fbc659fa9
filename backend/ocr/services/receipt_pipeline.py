"""
Receipt Recognition Pipeline

End-to-end recognition of one receipt image:
1. Submit the image to the recognition service
2. Poll the task until it is no longer active
3. Download the result to a per-task file
4. Extract {description, price} items from the downloaded text

Stages run strictly in order. The first failure ends the call; nothing is
retried and no partial item list is returned.

Usage:
- API: POST /api/receipt
- Standalone: python -m ocr.services.receipt_pipeline <image>
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

from logging_config import set_task_context, clear_task_context
from sentry_integration import set_tag
from ocr.clients.ocr_sdk_client import OCRSDKClient
from ocr.exceptions import OCRError, RemoteTaskError
from ocr.models import ExtractedItem, ProcessingSettings
from ocr.services.result_fetcher import ResultFetcher
from ocr.services.status_poller import StatusPoller
from ocr.services.text_extractor import TextExtractor

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Optional[Exception], Optional[List[ExtractedItem]]], None]


class ReceiptPipeline:
    """
    Orchestrates submit -> poll -> fetch -> extract for a single receipt.

    One instance can serve concurrent calls: each call owns its task, its
    poll loop and, unless told otherwise, a result file named after the
    task id.
    """

    def __init__(
        self,
        client: OCRSDKClient,
        poller: Optional[StatusPoller] = None,
        fetcher: Optional[ResultFetcher] = None,
        extractor: Optional[TextExtractor] = None,
        processing_settings: Optional[ProcessingSettings] = None,
        result_dir: Union[str, Path] = "storage/results"
    ):
        self.client = client
        self.poller = poller or StatusPoller(client)
        self.fetcher = fetcher or ResultFetcher(timeout=client.timeout)
        self.extractor = extractor or TextExtractor()
        self.processing_settings = processing_settings or ProcessingSettings()
        self.result_dir = Path(result_dir)

    @classmethod
    def from_settings(cls, settings) -> "ReceiptPipeline":
        """Build a pipeline wired from application settings."""
        client = OCRSDKClient.from_settings(settings)
        return cls(
            client=client,
            poller=StatusPoller(
                client,
                interval=settings.OCR_POLL_INTERVAL_SECONDS,
                max_attempts=settings.max_poll_attempts,
            ),
            fetcher=ResultFetcher(timeout=settings.OCR_REQUEST_TIMEOUT_SECONDS),
            processing_settings=settings.processing_settings(),
            result_dir=settings.OCR_RESULT_DIR,
        )

    def result_path_for(self, task_id: str) -> Path:
        return self.result_dir / f"{task_id}.txt"

    async def recognize_receipt(
        self,
        image_path: Union[str, Path],
        result_path: Optional[Union[str, Path]] = None
    ) -> List[ExtractedItem]:
        """
        Recognize a receipt image and return its items in receipt order.

        Args:
            image_path: Local receipt image
            result_path: Where to store the downloaded result
                         (default: <result_dir>/<task id>.txt)

        Raises:
            OCRError subclasses from whichever stage failed
        """
        task = await self.client.submit(str(image_path), self.processing_settings)
        set_task_context(task.id)
        set_tag("ocr_task_id", task.id)
        try:
            if not self.client.is_active(task):
                raise RemoteTaskError(f"Unexpected task status {task.status}", task=task)

            task = await self.poller.wait_for_completion(task.id)

            if not task.is_completed:
                message = "Error processing the task"
                if task.error:
                    message = f"{message}: {task.error}"
                raise RemoteTaskError(message, task=task)

            if not task.result_url:
                raise RemoteTaskError("Completed task has no result URL", task=task)

            logger.info("Processing completed")
            destination = Path(result_path) if result_path else self.result_path_for(task.id)
            await self.fetcher.fetch(task.result_url, destination)

            return self.extractor.extract_items_from_file(destination)
        finally:
            clear_task_context()

    async def recognize_receipt_with_callback(
        self,
        image_path: Union[str, Path],
        on_complete: CompletionCallback,
        result_path: Optional[Union[str, Path]] = None
    ) -> None:
        """
        Run recognize_receipt and report the outcome through on_complete.

        on_complete is invoked exactly once, as (None, items) on success or
        (error, None) on failure.
        """
        try:
            items = await self.recognize_receipt(image_path, result_path)
        except OCRError as e:
            logger.warning(f"Receipt recognition failed: {e.message}")
            on_complete(e, None)
            return
        on_complete(None, items)


async def run_cli(argv: List[str]) -> int:
    """Recognize the image named on the command line and print its items."""
    from config import get_settings
    from logging_config import setup_logging

    if len(argv) < 2:
        print("Usage: python -m ocr.services.receipt_pipeline <image> [result-path]")
        return 2

    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=False)

    pipeline = ReceiptPipeline.from_settings(settings)
    result_path = argv[2] if len(argv) > 2 else None

    try:
        items = await pipeline.recognize_receipt(argv[1], result_path)
    except OCRError as e:
        logger.error(f"Error: {e.message}")
        return 1

    print(json.dumps([item.to_dict() for item in items], indent=2))
    return 0


if __name__ == "__main__":
    import sys
    sys.exit(asyncio.run(run_cli(sys.argv)))
