"""Pydantic models for timetable extraction results."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DayOfWeek = Literal[
    "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY",
]
DAYS_OF_WEEK: tuple[str, ...] = (
    "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY",
)

TIME_PATTERN = r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$"
ACADEMIC_YEAR_RE = re.compile(r"^\d{4}\s*[-/]\s*(\d{4}|\d{2})$")


def _to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class TimeBlock(BaseModel):
    """One scheduled interval on one day."""

    day_of_week: DayOfWeek
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    subject: str = Field(min_length=1)
    classroom: str = ""
    grade: str = ""
    section: str = ""
    notes: str = ""
    confidence: int = Field(default=0, ge=0, le=100)

    @field_validator("subject", "classroom", "grade", "section", "notes", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            value = str(value)
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _end_after_start(self) -> "TimeBlock":
        if self.end_minutes <= self.start_minutes:
            raise ValueError(
                f"end_time {self.end_time} must be after start_time {self.start_time}"
            )
        return self

    @property
    def start_minutes(self) -> int:
        return _to_minutes(self.start_time)

    @property
    def end_minutes(self) -> int:
        return _to_minutes(self.end_time)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    def identity(self) -> tuple[str, str, str, str]:
        """Key under which two blocks count as the same entry."""
        return (self.day_of_week, self.start_time, self.end_time, self.subject.lower())


class ConflictPair(BaseModel):
    """Two same-day blocks whose intervals overlap."""

    index_a: int
    index_b: int
    day_of_week: DayOfWeek
    reason: str = "Time overlap detected"


class TimetableDocument(BaseModel):
    """Validated timetable for one teacher."""

    teacher_name: str = Field(min_length=1)
    time_blocks: List[TimeBlock] = Field(default_factory=list)
    academic_year: str = ""
    semester: str = ""
    confidence: int = Field(default=0, ge=0, le=100)
    # Overlaps that survived refinement; every other pair is overlap-free.
    accepted_conflicts: List[ConflictPair] = Field(default_factory=list)

    @field_validator("teacher_name", "semester", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("academic_year", mode="before")
    @classmethod
    def _academic_year_or_blank(cls, value: Any) -> str:
        if value is None:
            return ""
        text = str(value).strip()
        if not ACADEMIC_YEAR_RE.match(text):
            return ""
        return re.sub(r"\s+", "", text)


# ---------------------------------------------------------------------------
# Raw language-model reply (lenient; normalized later)
# ---------------------------------------------------------------------------
class RawTimeBlock(BaseModel):
    model_config = ConfigDict(extra="ignore")

    day_of_week: str = ""
    start_time: str = ""
    end_time: str = ""
    subject: str = ""
    classroom: str = ""
    grade: str = ""
    section: str = ""
    notes: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()


class RawTimetable(BaseModel):
    model_config = ConfigDict(extra="ignore")

    teacher_name: str | None = None
    time_blocks: List[RawTimeBlock] = Field(default_factory=list)
    academic_year: str | None = None
    semester: str | None = None


# ---------------------------------------------------------------------------
# Acquisition
# ---------------------------------------------------------------------------
AcquisitionStrategy = Literal["image", "text-extraction", "ai-vision", "hybrid"]


class AcquisitionResult(BaseModel):
    """Text recovered from one input file and how it was obtained."""

    text: str
    confidence: float = Field(ge=0, le=100)
    method: str  # provider/strategy tag actually used, e.g. "openai-vision"
    strategy: AcquisitionStrategy
    pages_total: int = 1
    images_processed: int = 0
    providers_used: List[str] = Field(default_factory=list)
    processing_time_ms: int = 0


# ---------------------------------------------------------------------------
# Semantic insights (derived, never persisted)
# ---------------------------------------------------------------------------
class DuplicatePair(BaseModel):
    index_a: int
    index_b: int
    similarity: float


class ScheduleGap(BaseModel):
    day_of_week: DayOfWeek
    start_time: str | None = None  # None for a full-day gap
    end_time: str | None = None
    minutes: int | None = None
    full_day: bool = False
    reason: str


class ScheduleStatistics(BaseModel):
    total_blocks: int = 0
    blocks_per_day: Dict[str, int] = Field(default_factory=dict)
    average_block_duration: int = 0
    total_duration: int = 0


class SemanticInsights(BaseModel):
    duplicates: List[DuplicatePair] = Field(default_factory=list)
    conflicts: List[ConflictPair] = Field(default_factory=list)
    gaps: List[ScheduleGap] = Field(default_factory=list)
    statistics: ScheduleStatistics = Field(default_factory=ScheduleStatistics)
    embeddings_available: bool = True

    @property
    def needs_refinement(self) -> bool:
        return bool(self.duplicates or self.conflicts)


# ---------------------------------------------------------------------------
# Pipeline output
# ---------------------------------------------------------------------------
class PipelineResult(BaseModel):
    """Final result of one extraction job."""

    document: TimetableDocument
    acquisition_method: str
    acquisition_strategy: AcquisitionStrategy
    acquisition_confidence: float
    raw_text_chars: int
    insights: SemanticInsights | None = None
    refined: bool = False
    refinement_error: str | None = None
    processing_time_ms: int = 0
