import asyncio
import contextlib
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

if TYPE_CHECKING:
    from lecture_qa.context import Context

from lecture_qa.services.manager import BaseAsyncLoggingService

LOG_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}

# -------------------------------------------------------------- #
# Async Logging Service
# -------------------------------------------------------------- #


class AsyncLoggingService(BaseAsyncLoggingService):
    """Queue-backed logger; one writer task appends to the log file."""

    def __init__(
        self,
        context: "Context",
        log_dir: str = "logs",
        log_file: str | None = None,
        min_level: str = "DEBUG",
        console_output: bool = True,
    ):
        """Initialize the async logging service.

        Args:
            context: Context instance holding settings and services
            log_dir: Directory to store log files
            log_file: Name of the log file. When None a timestamped
                      `lecture_qa_<timestamp>.log` is used.
            min_level: Messages below this level are dropped.
            console_output: If True, messages are also printed to stdout.
        """
        super().__init__(context)
        self.log_dir = Path(log_dir)
        self.console_output = console_output
        self.min_level = LOG_LEVELS.get(min_level.upper(), LOG_LEVELS["DEBUG"])

        if log_file is None:
            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            log_file = f"lecture_qa_{timestamp}.log"
        self.log_file = log_file
        self.log_path = self.log_dir / self.log_file

        self._write_lock = asyncio.Lock()
        self._log_queue: asyncio.Queue = asyncio.Queue()
        self._writer_task: asyncio.Task | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services) -> None:
        await super().on_start(services)

        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._writer_task = asyncio.create_task(self._drain_forever())

        await self.info(f"AsyncLoggingService started. Logging to: {self.log_path}")

    async def on_close(self) -> None:
        await super().on_close()

        if self._writer_task:
            self._writer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer_task
            self._writer_task = None

        await self._flush_queue()

    # -------------------------------------------------------------- #
    # Public Logging Methods
    # -------------------------------------------------------------- #

    async def log(self, message: str, level: str = "INFO") -> None:
        """Queue a log message.

        Args:
            message: The log message
            level: One of DEBUG, INFO, WARNING, ERROR, CRITICAL
        """
        if LOG_LEVELS.get(level, LOG_LEVELS["INFO"]) < self.min_level:
            return

        timestamp = datetime.now().isoformat()
        await self._log_queue.put(f"[{timestamp}] [{level}] {message}")

    async def debug(self, message: str) -> None:
        await self.log(message, "DEBUG")

    async def info(self, message: str) -> None:
        await self.log(message, "INFO")

    async def warning(self, message: str) -> None:
        await self.log(message, "WARNING")

    async def error(self, message: str) -> None:
        await self.log(message, "ERROR")

    async def critical(self, message: str) -> None:
        await self.log(message, "CRITICAL")

    # -------------------------------------------------------------- #
    # Private Methods
    # -------------------------------------------------------------- #

    async def _drain_forever(self) -> None:
        try:
            while True:
                line = await self._log_queue.get()
                await self._append(line)
                self._log_queue.task_done()
        except asyncio.CancelledError:
            pass

    async def _append(self, line: str) -> None:
        if self.console_output:
            print(line, file=sys.stdout, flush=True)

        async with self._write_lock:
            try:
                async with aiofiles.open(self.log_path, mode="a") as f:
                    await f.write(line + "\n")
            except OSError as e:
                print(f"[ERROR] Failed to write to log file: {e}", file=sys.stderr, flush=True)

    async def _flush_queue(self) -> None:
        while not self._log_queue.empty():
            try:
                line = self._log_queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._append(line)
