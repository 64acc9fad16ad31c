from lecture_qa.services.lecture_schedule.manager import (
    Lecture,
    LectureScheduleManager,
    default_schedule,
)

__all__ = ["LectureScheduleManager", "Lecture", "default_schedule"]
