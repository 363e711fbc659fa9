"""
OCR SDK Client

Talks to the cloud recognition service:
- POST /processReceipt - submit raw image bytes, returns a task
- GET /getTaskStatus?taskId=<id> - current task snapshot

Authentication is HTTP basic auth with the application id and password.
Every response is an XML envelope, either

    <response><task id="..." status="..." resultUrl="..."/></response>

or

    <error><message language="english">...</message></error>
"""

import logging
import xml.etree.ElementTree as ET
from contextlib import asynccontextmanager
from typing import Optional, Dict, AsyncIterator

import httpx

from ocr.exceptions import (
    AuthError,
    FileError,
    NetworkError,
    ServiceError,
    UnknownResponseError,
)
from ocr.models import RecognitionTask, ProcessingSettings, ACTIVE_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://cloud.ocrsdk.com"
USER_AGENT = "receipt-ocr-core python client"

# Envelope attribute -> RecognitionTask field
TASK_FIELDS = {
    "id": "id",
    "status": "status",
    "resultUrl": "result_url",
    "error": "error",
    "registrationTime": "registration_time",
    "statusChangeTime": "status_change_time",
    "estimatedProcessingTime": "estimated_processing_time",
}


def _local_name(tag: str) -> str:
    """Strip an XML namespace from a tag name."""
    return tag.rsplit("}", 1)[-1]


def _find_child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def parse_task_response(body: str) -> RecognitionTask:
    """
    Parse a service response envelope into a RecognitionTask.

    Raises:
        ServiceError: the envelope carries an error message
        UnknownResponseError: neither a task nor an error element is present
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise UnknownResponseError(f"Unknown server response: malformed XML ({e})")

    task_element = None
    if _local_name(root.tag) == "response":
        task_element = _find_child(root, "task")

    if task_element is None:
        error_element = root if _local_name(root.tag) == "error" else _find_child(root, "error")
        if error_element is not None:
            message_element = _find_child(error_element, "message")
            message = message_element.text if message_element is not None else error_element.text
            if message:
                raise ServiceError(message)
        raise UnknownResponseError("Unknown server response")

    values: Dict[str, str] = {}
    for attribute, field_name in TASK_FIELDS.items():
        value = task_element.get(attribute)
        if value is None:
            child = _find_child(task_element, attribute)
            if child is not None and child.text:
                value = child.text.strip()
        if value is not None:
            values[field_name] = value

    if "id" not in values or "status" not in values:
        raise UnknownResponseError("Unknown server response: task without id or status")

    return RecognitionTask(**values)


class OCRSDKClient:
    """
    Client for the remote recognition service.

    Holds no task state: every call builds its own request and returns a
    fresh RecognitionTask. An httpx.AsyncClient can be injected (shared
    connection pool, or a mock transport in tests); otherwise one is opened
    per request.
    """

    def __init__(
        self,
        application_id: str,
        password: str,
        server_url: str = DEFAULT_SERVER_URL,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.application_id = application_id
        self.password = password
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @classmethod
    def from_settings(cls, settings, http_client: Optional[httpx.AsyncClient] = None) -> "OCRSDKClient":
        return cls(
            application_id=settings.OCR_APPLICATION_ID,
            password=settings.OCR_PASSWORD,
            server_url=settings.OCR_SERVER_URL,
            timeout=settings.OCR_REQUEST_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    async def submit(
        self,
        image_path: str,
        settings: Optional[ProcessingSettings] = None
    ) -> RecognitionTask:
        """
        Upload a receipt image and create a recognition task.

        Args:
            image_path: Path to the local image file
            settings: Processing options (defaults when None)

        Returns:
            The newly created task, normally Queued
        """
        if settings is None:
            settings = ProcessingSettings()

        try:
            with open(image_path, "rb") as f:
                image_bytes = f.read()
        except OSError as e:
            raise FileError(f"Cannot read image {image_path}: {e}")

        logger.info(f"Uploading image {image_path} ({len(image_bytes)} bytes)")
        task = await self._task_request(
            "POST",
            "/processReceipt",
            params=settings.to_query_params(),
            content=image_bytes,
        )
        logger.info(f"Upload completed. Task id = {task.id}, status is {task.status}")
        return task

    async def get_status(self, task_id: str) -> RecognitionTask:
        """Query the current status of a task."""
        task = await self._task_request("GET", "/getTaskStatus", params={"taskId": task_id})
        logger.debug(f"Task {task_id} status is {task.status}")
        return task

    @staticmethod
    def is_active(task: RecognitionTask) -> bool:
        """True while the task is Queued or InProgress."""
        return task.status in {s.value for s in ACTIVE_STATUSES}

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                yield client

    async def _task_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        content: Optional[bytes] = None
    ) -> RecognitionTask:
        url = f"{self.server_url}{path}"

        try:
            async with self._http() as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    content=content,
                    auth=httpx.BasicAuth(self.application_id, self.password),
                    headers={"User-Agent": USER_AGENT},
                )
        except httpx.TimeoutException:
            raise NetworkError(f"{method} {path} timed out")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"{method} {path} failed: {e}")

        if response.status_code in (401, 403):
            message = f"Authentication failed: HTTP {response.status_code}"
            try:
                parse_task_response(response.text)
            except ServiceError as e:
                if not isinstance(e, UnknownResponseError):
                    message = e.message
            raise AuthError(message)

        try:
            return parse_task_response(response.text)
        except UnknownResponseError as e:
            if response.is_error:
                raise UnknownResponseError(f"{e.message} (HTTP {response.status_code})")
            raise
