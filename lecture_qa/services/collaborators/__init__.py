"""
External collaborators the answer engine calls out to:

- SlideTextExtractor: PDF bytes -> page texts (pypdf)
- OCRService: image bytes -> text or a sentinel string (tesseract CLI)
- ScreenshotService: video URL + timestamp -> PNG frame (ffmpeg CLI)
"""

from lecture_qa.services.collaborators.errors import ExtractionError
from lecture_qa.services.collaborators.ocr import (
    NO_TEXT_DETECTED,
    OCR_ERROR_PREFIX,
    OCR_UNAVAILABLE,
    OCRService,
    is_ocr_failure,
)
from lecture_qa.services.collaborators.screenshot import ScreenshotService
from lecture_qa.services.collaborators.slides import SlideTextExtractor, read_pdf_pages

__all__ = [
    "ExtractionError",
    "OCRService",
    "is_ocr_failure",
    "NO_TEXT_DETECTED",
    "OCR_ERROR_PREFIX",
    "OCR_UNAVAILABLE",
    "ScreenshotService",
    "SlideTextExtractor",
    "read_pdf_pages",
]
