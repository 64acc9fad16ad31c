import asyncio
import contextlib
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

if TYPE_CHECKING:
    from lecture_qa.context import Context

from lecture_qa.services.manager import BaseTempFileServiceManager
from lecture_qa.utils import now_ms, sanitize_filename_part

SCOPES = ("images", "screenshots", "ocr")

# -------------------------------------------------------------- #
# Temp File Manager Service
# -------------------------------------------------------------- #


class TempFileManagerService(BaseTempFileServiceManager):
    """Request-scoped temporary files with a periodic stale-file sweep.

    Files live under `<storage_path>/<scope>/`. Whoever creates a file deletes
    it on the same path; the sweep only catches what was missed.
    """

    def __init__(
        self,
        context: "Context",
        storage_path: str,
        max_age_s: int = 24 * 60 * 60,
        sweep_interval_s: int = 10 * 60,
    ):
        super().__init__(context)

        self.storage_path = storage_path
        self.max_age_s = max_age_s
        self.sweep_interval_s = sweep_interval_s

        self._sweep_task: asyncio.Task | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services):
        await super().on_start(services)

        loop = asyncio.get_event_loop()

        def ensure_dirs():
            for scope in SCOPES:
                Path(self.storage_path, scope).mkdir(parents=True, exist_ok=True)

        await loop.run_in_executor(None, ensure_dirs)

        if self.sweep_interval_s > 0:
            self._sweep_task = asyncio.create_task(self._sweep_forever())

        await self.services.logging_service.info(
            f"TempFileManagerService initialized with storage path: {self.storage_path}"
        )

    async def on_close(self):
        if self._sweep_task:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    # -------------------------------------------------------------- #
    # Paths
    # -------------------------------------------------------------- #

    def get_storage_path(self) -> str:
        return self.storage_path

    def new_path(self, kind: str, filename: str) -> str:
        """
        Path for `filename` inside the `kind` scope.

        Raises:
            ValueError: If `kind` is not a known scope or `filename` escapes it.
        """
        if kind not in SCOPES:
            raise ValueError(f"Unknown temp scope {kind!r}")
        if os.path.basename(filename) != filename or filename in ("", ".", ".."):
            raise ValueError(f"Invalid temp file name {filename!r}")
        return os.path.join(self.storage_path, kind, filename)

    # -------------------------------------------------------------- #
    # File Operations
    # -------------------------------------------------------------- #

    async def save_image(self, user_id: str, data: bytes) -> str | None:
        """Save question image bytes as `images/<user>_<ms>.png`; None on failure."""
        path = self.new_path("images", f"{sanitize_filename_part(user_id)}_{now_ms()}.png")
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            await self.services.logging_service.warning(f"Failed to save image {path}: {e}")
            return None

        await self.services.logging_service.debug(f"Saved image: {path} ({len(data)} bytes)")
        return path

    async def delete(self, path: str) -> bool:
        """Delete `path` if it exists; failures are logged, never raised."""
        loop = asyncio.get_event_loop()
        try:
            if not await loop.run_in_executor(None, os.path.exists, path):
                return False
            await loop.run_in_executor(None, os.remove, path)
        except OSError as e:
            await self.services.logging_service.warning(f"Failed to delete temp file {path}: {e}")
            return False

        await self.services.logging_service.debug(f"Deleted temp file: {path}")
        return True

    async def sweep_stale(self, max_age_s: int | None = None) -> int:
        """Delete files in every scope older than `max_age_s`; returns how many went."""
        max_age_s = self.max_age_s if max_age_s is None else max_age_s
        cutoff = time.time() - max_age_s

        def collect() -> list[str]:
            stale = []
            for scope in SCOPES:
                scope_dir = Path(self.storage_path, scope)
                if not scope_dir.is_dir():
                    continue
                for entry in scope_dir.iterdir():
                    with contextlib.suppress(OSError):
                        if entry.is_file() and entry.stat().st_mtime < cutoff:
                            stale.append(str(entry))
            return stale

        loop = asyncio.get_event_loop()
        stale = await loop.run_in_executor(None, collect)

        deleted = 0
        for path in stale:
            if await self.delete(path):
                deleted += 1

        if deleted:
            await self.services.logging_service.info(f"Swept {deleted} stale temp file(s)")
        return deleted

    async def _sweep_forever(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.sweep_interval_s)
                try:
                    await self.sweep_stale()
                except OSError as e:
                    await self.services.logging_service.error(f"Temp file sweep failed: {e}")
        except asyncio.CancelledError:
            pass
