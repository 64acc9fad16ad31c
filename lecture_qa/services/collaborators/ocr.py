from __future__ import annotations

import asyncio
import subprocess
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.manager import ServicesManager

from lecture_qa.services.manager import BaseOCRService
from lecture_qa.utils import generate_16_char_uuid

NO_TEXT_DETECTED = "No text detected in the image."
OCR_UNAVAILABLE = (
    "Unable to perform OCR. Please ensure the tesseract command line tool is installed, "
    "or describe the image content in your question."
)
OCR_ERROR_PREFIX = "Error extracting text"

_FAILURE_MARKERS = (NO_TEXT_DETECTED, OCR_UNAVAILABLE, OCR_ERROR_PREFIX)


def is_ocr_failure(text: str) -> bool:
    """True for empty results and for any of the sentinel strings above."""
    stripped = text.strip()
    return not stripped or any(marker in stripped for marker in _FAILURE_MARKERS)


# -------------------------------------------------------------- #
# OCR Service
# -------------------------------------------------------------- #


class OCRService(BaseOCRService):
    """Runs the tesseract CLI on an image and returns its text.

    `extract_text` never raises; failures come back as one of the sentinel
    strings so callers can tell them apart with `is_ocr_failure`.
    """

    def __init__(
        self, context: Context, tesseract_path: str = "tesseract", timeout_s: float = 60.0
    ):
        super().__init__(context)
        self.tesseract_path = tesseract_path
        self.timeout_s = timeout_s

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        available = await self.validate_tesseract()
        if self.services:
            if available:
                await self.services.logging_service.info("OCR Service started (tesseract found)")
            else:
                await self.services.logging_service.warning(
                    f"OCR Service started but '{self.tesseract_path}' is not runnable; "
                    "image questions will fall back to the other context"
                )

    async def validate_tesseract(self) -> bool:
        """Check that the tesseract binary runs."""
        try:
            result = await self._run([self.tesseract_path, "--version"], timeout_s=5)
            return result.returncode == 0
        except (OSError, subprocess.SubprocessError, asyncio.TimeoutError):
            return False

    async def extract_text(self, data: bytes) -> str:
        image_path = self._scratch_path()
        try:
            async with aiofiles.open(image_path, "wb") as f:
                await f.write(data)

            try:
                result = await self._run([self.tesseract_path, str(image_path), "stdout"])
            except (OSError, subprocess.SubprocessError, asyncio.TimeoutError) as e:
                if self.services:
                    await self.services.logging_service.warning(f"tesseract could not run: {e}")
                return OCR_UNAVAILABLE

            if result.returncode != 0:
                return f"{OCR_ERROR_PREFIX}: {result.stderr.strip() or 'tesseract failed'}"

            text = result.stdout.strip()
            if self.services:
                await self.services.logging_service.debug(
                    f"OCR extracted {len(text)} characters from {len(data)} bytes"
                )
            return text or NO_TEXT_DETECTED
        except OSError as e:
            return f"{OCR_ERROR_PREFIX}: {e}"
        finally:
            await self._discard(image_path)

    # -------------------------------------------------------------- #
    # Private Methods
    # -------------------------------------------------------------- #

    def _scratch_path(self) -> Path:
        filename = f"ocr-{generate_16_char_uuid()}.png"
        if self.services:
            return Path(self.services.temp_file_manager.new_path("ocr", filename))
        return Path(tempfile.gettempdir()) / filename

    async def _discard(self, path: Path) -> None:
        if self.services:
            await self.services.temp_file_manager.delete(str(path))
        else:
            path.unlink(missing_ok=True)

    async def _run(
        self, cmd: list[str], timeout_s: float | None = None
    ) -> subprocess.CompletedProcess:
        timeout_s = timeout_s or self.timeout_s
        loop = asyncio.get_event_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(
                None,
                lambda: subprocess.run(cmd, capture_output=True, timeout=timeout_s, text=True),
            ),
            timeout=timeout_s + 1.0,  # Slightly longer than subprocess timeout
        )
