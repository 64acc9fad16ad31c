from __future__ import annotations

import asyncio
import io
from typing import TYPE_CHECKING

from pypdf import PdfReader
from pypdf.errors import PyPdfError

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.manager import ServicesManager

from lecture_qa.services.collaborators.errors import ExtractionError
from lecture_qa.services.manager import BaseSlideTextExtractorService

# -------------------------------------------------------------- #
# Slide Text Extractor
# -------------------------------------------------------------- #


def read_pdf_pages(data: bytes) -> list[str]:
    """Blocking PDF parse; one string per page, in page order."""
    reader = PdfReader(io.BytesIO(data))
    return [(page.extract_text() or "").strip() for page in reader.pages]


class SlideTextExtractor(BaseSlideTextExtractorService):
    """Extracts page text from a PDF slide deck with pypdf."""

    def __init__(self, context: Context):
        super().__init__(context)

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        if self.services:
            await self.services.logging_service.info("Slide Text Extractor started")

    async def extract_pages(self, data: bytes) -> list[str]:
        """
        Return the text of each page of a PDF.

        Raises:
            ExtractionError: If the bytes are not a readable PDF or contain no text.
        """
        if not data:
            raise ExtractionError("Slide document is empty")

        loop = asyncio.get_event_loop()
        try:
            pages = await loop.run_in_executor(None, read_pdf_pages, data)
        except (PyPdfError, ValueError, OSError) as e:
            raise ExtractionError(f"Unable to read slide document: {e}") from e

        if not any(pages):
            raise ExtractionError("Slide document contains no extractable text")

        if self.services:
            await self.services.logging_service.debug(
                f"Extracted text from {len(pages)} slide page(s)"
            )
        return pages
