"""
Task Status Poller

Waits for a recognition task to reach a terminal state by querying its
status at a fixed interval.

State machine:
- Every tick sleeps `interval` seconds, then queries the service
- Queued / InProgress -> schedule the next tick
- Any other status -> terminal, returned to the caller
- A failed status query ends polling immediately (no retry)
- More than `max_attempts` queries -> PollTimeoutError
"""

import asyncio
import logging
from typing import Optional, Callable, Awaitable

from ocr.clients.ocr_sdk_client import OCRSDKClient
from ocr.exceptions import InvalidTaskError, PollTimeoutError
from ocr.models import RecognitionTask

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0  # seconds
DEFAULT_MAX_ATTEMPTS = 120

# The service renders an unset task id as an all-zero GUID
NULL_TASK_ID_MARKER = "00000000"


def is_null_task_id(task_id: Optional[str]) -> bool:
    return not task_id or NULL_TASK_ID_MARKER in task_id


class StatusPoller:
    """Polls one task until it completes, fails or the attempt limit is hit."""

    def __init__(
        self,
        client: OCRSDKClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: Optional[int] = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Args:
            client: Recognition service client
            interval: Seconds to wait before each status query
            max_attempts: Status queries before giving up (None = unbounded)
            sleep: Timer coroutine, replaceable in tests
        """
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def wait_for_completion(self, task_id: str) -> RecognitionTask:
        """
        Poll until the task leaves the active states.

        Returns:
            The terminal task snapshot (Completed or a failure status)

        Raises:
            InvalidTaskError: null task id, raised before any request
            PollTimeoutError: still active after max_attempts queries
            NetworkError / AuthError / ServiceError: from the status query
        """
        if is_null_task_id(task_id):
            # A null id here means the caller lost the submitted task
            raise InvalidTaskError(f"Null task id passed: {task_id!r}")

        attempts = 0
        task = None
        while self.max_attempts is None or attempts < self.max_attempts:
            await self._sleep(self.interval)
            task = await self.client.get_status(task_id)
            attempts += 1

            logger.info(f"Task status is {task.status}")

            if not self.client.is_active(task):
                logger.info(f"Task {task_id} finished as {task.status} after {attempts} polls")
                return task

        raise PollTimeoutError(
            f"Task {task_id} still {task.status if task else 'active'} "
            f"after {attempts} status checks",
            task=task,
        )
