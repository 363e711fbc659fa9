"""
OCR Exceptions

Every stage of the receipt pipeline fails with one of these. None of them
is retried: the first failure ends the call.
"""

from typing import Optional

from ocr.models import RecognitionTask


class OCRError(Exception):
    """Base exception for receipt recognition errors"""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class FileError(OCRError):
    """Raised when the image cannot be read or the result cannot be written"""
    pass


class NetworkError(OCRError):
    """Raised when a request to the recognition service fails in transport"""
    pass


class AuthError(OCRError):
    """Raised when the service rejects the application credentials"""
    pass


class InvalidTaskError(OCRError):
    """Raised when a null or malformed task id is handed to the poller"""
    pass


class RemoteTaskError(OCRError):
    """Raised when the service reports the task as failed"""

    def __init__(self, message: str, task: Optional[RecognitionTask] = None):
        super().__init__(message)
        self.task = task


class ServiceError(OCRError):
    """Raised when the service answers with an error envelope"""
    pass


class UnknownResponseError(ServiceError):
    """Raised when the response has neither a task nor an error element"""
    pass


class PollTimeoutError(OCRError, TimeoutError):
    """Raised when a task is still active after the maximum number of polls"""

    def __init__(self, message: str, task: Optional[RecognitionTask] = None):
        super().__init__(message)
        self.task = task
