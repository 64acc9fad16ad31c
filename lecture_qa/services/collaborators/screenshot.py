from __future__ import annotations

import asyncio
import os
import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.manager import ServicesManager

from lecture_qa.services.collaborators.errors import ExtractionError
from lecture_qa.services.manager import BaseScreenshotService

# -------------------------------------------------------------- #
# Screenshot Service
# -------------------------------------------------------------- #


class ScreenshotService(BaseScreenshotService):
    """Grabs a single frame of a video with ffmpeg."""

    def __init__(self, context: Context, ffmpeg_path: str = "ffmpeg", timeout_s: float = 60.0):
        super().__init__(context)
        self.ffmpeg_path = ffmpeg_path
        self.timeout_s = timeout_s

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        if self.services:
            await self.services.logging_service.info(
                f"Screenshot Service started (ffmpeg: {self.ffmpeg_path})"
            )

    async def capture(self, url: str, timestamp_ms: int, output_path: str) -> str:
        """
        Write the frame at `timestamp_ms` of `url` to `output_path`.

        Returns:
            The output path

        Raises:
            ExtractionError: If ffmpeg fails, times out, or writes nothing.
        """
        if not url:
            raise ExtractionError("No source URL to capture a screenshot from")

        cmd = [
            self.ffmpeg_path,
            "-y",
            "-ss",
            f"{max(timestamp_ms, 0) / 1000:.3f}",  # seek before -i for a fast input seek
            "-i",
            url,
            "-frames:v",
            "1",
            output_path,
        ]

        try:
            loop = asyncio.get_event_loop()
            result = await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: subprocess.run(
                        cmd, capture_output=True, timeout=self.timeout_s, text=True
                    ),
                ),
                timeout=self.timeout_s + 1.0,  # Slightly longer than subprocess timeout
            )
        except (subprocess.TimeoutExpired, asyncio.TimeoutError) as e:
            raise ExtractionError("ffmpeg screenshot timed out") from e
        except OSError as e:
            raise ExtractionError(f"ffmpeg could not run: {e}") from e

        if result.returncode != 0 or not os.path.exists(output_path):
            raise ExtractionError(
                f"ffmpeg screenshot failed (code {result.returncode}): "
                f"{result.stderr.strip()[-300:]}"
            )

        if self.services:
            await self.services.logging_service.debug(
                f"Captured frame at {timestamp_ms}ms to {output_path}"
            )
        return output_path
