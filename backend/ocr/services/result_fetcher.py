"""
Result Fetcher

Streams a completed recognition result from its result URL to a local
file. The body is written chunk by chunk as it arrives; the call returns
only once the response is fully read and the file is closed.

On failure the partially written file is left where it is. Callers must
not read it unless fetch() returned.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, AsyncIterator, Union

import httpx

from ocr.exceptions import FileError, NetworkError

logger = logging.getLogger(__name__)


class ResultFetcher:
    """Downloads recognition results to local storage."""

    def __init__(
        self,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.timeout = timeout
        self._http_client = http_client

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                yield client

    async def fetch(self, result_url: str, destination_path: Union[str, Path]) -> Path:
        """
        Download result_url into destination_path.

        Args:
            result_url: URL reported by the Completed task
            destination_path: Local file to create or overwrite

        Returns:
            The destination path

        Raises:
            NetworkError: transport failure or non-2xx response
            FileError: the destination cannot be created or written
        """
        destination = Path(destination_path)
        logger.info(f"Downloading result to {destination}")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            output = open(destination, "wb")
        except OSError as e:
            raise FileError(f"Cannot open {destination} for writing: {e}")

        written = 0
        try:
            async with self._http() as client:
                async with client.stream("GET", result_url) as response:
                    if response.is_error:
                        raise NetworkError(
                            f"Result download failed: HTTP {response.status_code}"
                        )
                    async for chunk in response.aiter_bytes():
                        try:
                            output.write(chunk)
                        except OSError as e:
                            raise FileError(f"Failed writing {destination}: {e}")
                        written += len(chunk)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"Result download failed: {e}")
        finally:
            output.close()

        logger.info(f"Downloaded {written} bytes to {destination}")
        return destination
