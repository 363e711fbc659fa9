"""
OCR Data Models

Task, settings and item types shared by the recognition client, the
poller and the text extractor.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Dict, Any


class TaskStatus(str, Enum):
    """Recognition task status as reported by the service."""
    SUBMITTED = "Submitted"
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    PROCESSING_FAILED = "ProcessingFailed"
    FAILED = "Failed"
    DELETED = "Deleted"
    NOT_ENOUGH_CREDITS = "NotEnoughCredits"


ACTIVE_STATUSES = frozenset({TaskStatus.QUEUED, TaskStatus.IN_PROGRESS})


@dataclass
class RecognitionTask:
    """
    Snapshot of a remote recognition task.

    The service is authoritative for status; a new snapshot replaces the
    previous one after every status query.
    """
    id: str
    status: str
    result_url: Optional[str] = None
    error: Optional[str] = None
    registration_time: Optional[str] = None
    status_change_time: Optional[str] = None
    estimated_processing_time: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status in {s.value for s in ACTIVE_STATUSES}

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED.value

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProcessingSettings:
    """Receipt processing options sent with every submit."""
    country: str = "usa"
    image_source: str = "auto"
    correct_orientation: bool = True
    correct_skew: bool = True

    def to_query_params(self) -> Dict[str, str]:
        return {
            "country": self.country,
            "imageSource": self.image_source,
            "correctOrientation": str(self.correct_orientation).lower(),
            "correctSkew": str(self.correct_skew).lower(),
        }


@dataclass
class ExtractedItem:
    """One purchased line recovered from the recognized text."""
    description: str
    price: str

    def to_dict(self) -> Dict[str, str]:
        return {"description": self.description, "price": self.price}
