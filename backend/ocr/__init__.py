"""
OCR Module

Receipt image recognition against the cloud OCR service.
- Submits receipt images and polls the recognition task
- Downloads the recognized text export
- Extracts {description, price} items from the text

The HTTP router lives in ocr.endpoints.receipt_api and the pipeline in
ocr.services.receipt_pipeline; both depend on config, which imports this
package, so they are not re-exported here.
"""

from ocr.models import RecognitionTask, ProcessingSettings, ExtractedItem, TaskStatus

__all__ = [
    'RecognitionTask',
    'ProcessingSettings',
    'ExtractedItem',
    'TaskStatus',
]
