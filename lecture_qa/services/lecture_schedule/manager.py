"""
Lecture Schedule Manager.

Keeps a JSON list of lectures, each unlocking at its `availableFrom` time.
When the file is missing a default five-lecture schedule is written, one
lecture unlocking per week (every 15 seconds in test mode). A polling task
re-checks the schedule hourly (every 15 seconds in test mode).
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiofiles

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.manager import ServicesManager

from lecture_qa.services.manager import BaseLectureScheduleService
from lecture_qa.utils import get_current_timestamp_utc

UNLOCK_INTERVAL = timedelta(weeks=1)
TEST_UNLOCK_INTERVAL = timedelta(seconds=15)

POLL_INTERVAL_S = 60 * 60
TEST_POLL_INTERVAL_S = 15

DEFAULT_LECTURES: list[dict[str, Any]] = [
    {
        "id": "1",
        "title": "Introduction to Machine Learning",
        "description": "Basic concepts and foundations of machine learning",
        "duration": 2700,
    },
    {
        "id": "2",
        "title": "Supervised Learning Algorithms",
        "description": "Overview of supervised learning methods",
        "duration": 3000,
    },
    {
        "id": "3",
        "title": "Unsupervised Learning",
        "description": "Clustering and dimensionality reduction techniques",
        "duration": 2880,
    },
    {
        "id": "4",
        "title": "Neural Networks",
        "description": "Deep learning and neural network architectures",
        "duration": 3300,
    },
    {
        "id": "5",
        "title": "Advanced Topics and Applications",
        "description": "Real-world applications and advanced concepts",
        "duration": 3600,
    },
]


# -------------------------------------------------------------- #
# Lecture Object
# -------------------------------------------------------------- #


@dataclass
class Lecture:
    id: str
    title: str
    availableFrom: str
    isAvailable: bool = False
    description: str = ""
    videoUrl: str = ""
    thumbnailUrl: str = ""
    duration: int = 0

    @property
    def available_from(self) -> datetime:
        value = datetime.fromisoformat(self.availableFrom.replace("Z", "+00:00"))
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    def to_json(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> Lecture:
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            availableFrom=data["availableFrom"],
            isAvailable=bool(data.get("isAvailable", False)),
            description=data.get("description", ""),
            videoUrl=data.get("videoUrl", ""),
            thumbnailUrl=data.get("thumbnailUrl", ""),
            duration=int(data.get("duration", 0)),
        )


def default_schedule(now: datetime, test_mode: bool = False) -> list[Lecture]:
    """The first lecture is open now; each following one unlocks an interval later."""
    interval = TEST_UNLOCK_INTERVAL if test_mode else UNLOCK_INTERVAL
    lectures = []
    for position, data in enumerate(DEFAULT_LECTURES):
        lecture_id = data["id"]
        lectures.append(
            Lecture(
                id=lecture_id,
                title=data["title"],
                description=data["description"],
                duration=data["duration"],
                videoUrl=f"https://example.com/videos/lecture{lecture_id}.mp4",
                thumbnailUrl=f"https://example.com/thumbnails/lecture{lecture_id}.jpg",
                availableFrom=(now + position * interval).isoformat(),
                isAvailable=position == 0,
            )
        )
    return lectures


# -------------------------------------------------------------- #
# Lecture Schedule Manager
# -------------------------------------------------------------- #


class LectureScheduleManager(BaseLectureScheduleService):
    """Unlocks lectures as their `availableFrom` time passes."""

    def __init__(self, context: Context, lectures_file_path: str, test_mode: bool = False):
        super().__init__(context)
        self.lectures_file_path = Path(lectures_file_path)
        self.test_mode = test_mode
        self.poll_interval_s = TEST_POLL_INTERVAL_S if test_mode else POLL_INTERVAL_S

        self._file_lock = asyncio.Lock()
        self._poll_task: asyncio.Task | None = None

    # -------------------------------------------------------------- #
    # Manager Methods
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        await self.check_and_update()
        self._poll_task = asyncio.create_task(self._poll_forever())
        if self.services:
            await self.services.logging_service.info(
                f"Lecture schedule started, interval: {self.poll_interval_s} seconds, "
                f"file: {self.lectures_file_path}"
            )

    async def on_close(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._poll_task
            self._poll_task = None

    # -------------------------------------------------------------- #
    # Schedule Methods
    # -------------------------------------------------------------- #

    async def check_and_update(self) -> list[Lecture]:
        """Unlock every lecture whose time has come; saves only when something changed."""
        async with self._file_lock:
            lectures = await self._load()
            now = get_current_timestamp_utc()
            unlocked = []

            for lecture in lectures:
                try:
                    due = now >= lecture.available_from
                except ValueError:
                    await self._log_error(f"Lecture {lecture.id} has an invalid availableFrom")
                    continue
                if not lecture.isAvailable and due:
                    lecture.isAvailable = True
                    unlocked.append(lecture)

            if unlocked:
                await self._save(lectures)
                if self.services:
                    for lecture in unlocked:
                        await self.services.logging_service.info(
                            f"Lecture {lecture.id} ({lecture.title}) has been unlocked"
                        )
            return lectures

    async def is_lecture_available(self, lecture_id: str) -> bool:
        lectures = await self.check_and_update()
        return any(lecture.id == lecture_id and lecture.isAvailable for lecture in lectures)

    async def get_lectures_availability(self) -> list[dict[str, Any]]:
        lectures = await self.check_and_update()
        return [
            {
                "id": lecture.id,
                "title": lecture.title,
                "isAvailable": lecture.isAvailable,
                "availableFrom": lecture.availableFrom,
            }
            for lecture in lectures
        ]

    # -------------------------------------------------------------- #
    # Private Methods
    # -------------------------------------------------------------- #

    async def _load(self) -> list[Lecture]:
        if not self.lectures_file_path.exists():
            lectures = default_schedule(get_current_timestamp_utc(), self.test_mode)
            await self._save(lectures)
            return lectures

        try:
            async with aiofiles.open(self.lectures_file_path, "r", encoding="utf-8") as f:
                raw = await f.read()
            return [Lecture.from_json(item) for item in json.loads(raw)]
        except (OSError, ValueError, KeyError, TypeError) as e:
            await self._log_error(f"Failed to read lecture data: {e}")
            return []

    async def _save(self, lectures: list[Lecture]) -> bool:
        try:
            self.lectures_file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.lectures_file_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps([lecture.to_json() for lecture in lectures], indent=2))
            return True
        except OSError as e:
            await self._log_error(f"Failed to save lecture data: {e}")
            return False

    async def _log_error(self, message: str) -> None:
        if self.services:
            await self.services.logging_service.error(message)

    async def _poll_forever(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.poll_interval_s)
                if self.services:
                    await self.services.logging_service.debug(
                        "Periodic check of lecture availability"
                    )
                await self.check_and_update()
        except asyncio.CancelledError:
            pass
