"""Deterministic normalization of language-model output into TimeBlocks.

The model is asked to follow the same rules, but nothing downstream relies on
it doing so: every raw block goes through these functions before it becomes a
``TimeBlock``. Blocks that cannot be normalized are dropped and logged.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

from pydantic import ValidationError

from .schema import DAYS_OF_WEEK, TIME_PATTERN, RawTimeBlock, TimeBlock

logger = logging.getLogger(__name__)

TIME_RE = re.compile(TIME_PATTERN)

# ---------------------------------------------------------------------------
# Times
# ---------------------------------------------------------------------------
_AMPM_RE = re.compile(
    r"^(\d{1,2})(?:\s*[:.h]\s*(\d{2}))?\s*([ap])\.?\s*m?\.?$", re.IGNORECASE
)
_SEPARATED_RE = re.compile(r"^(\d{1,2})\s*[:.h]\s*(\d{2})$")
_COMPACT_RE = re.compile(r"^(\d{3,4})$")
_HOUR_RE = re.compile(r"^(\d{1,2})$")


def _format_time(hours: int, minutes: int) -> str | None:
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return f"{hours:02d}:{minutes:02d}"


def normalize_time(value: str | None) -> str | None:
    """Return *value* as 24-hour ``HH:MM`` or None when it is not a time.

    ``"2:30 PM"`` -> ``"14:30"``, ``"12:30 AM"`` -> ``"00:30"``,
    ``"8.30"`` / ``"830"`` -> ``"08:30"``. Already normalized values are
    returned unchanged.
    """
    if value is None:
        return None
    text = value.strip().lower().replace("noon", "pm")
    if not text:
        return None
    if TIME_RE.match(text):
        return text

    match = _AMPM_RE.match(text)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        if not 1 <= hours <= 12:
            return None
        if match.group(3) == "a":
            hours = 0 if hours == 12 else hours
        else:
            hours = 12 if hours == 12 else hours + 12
        return _format_time(hours, minutes)

    match = _SEPARATED_RE.match(text)
    if match:
        return _format_time(int(match.group(1)), int(match.group(2)))

    match = _COMPACT_RE.match(text)
    if match:
        digits = match.group(1)
        return _format_time(int(digits[:-2]), int(digits[-2:]))

    match = _HOUR_RE.match(text)
    if match:
        return _format_time(int(match.group(1)), 0)
    return None


def time_to_minutes(value: str) -> int:
    """Minutes since midnight for a normalized ``HH:MM`` value."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


# ---------------------------------------------------------------------------
# Days
# ---------------------------------------------------------------------------
DAY_ALIASES: dict[str, str] = {
    "mon": "MONDAY", "monday": "MONDAY",
    "tue": "TUESDAY", "tues": "TUESDAY", "tuesday": "TUESDAY",
    "wed": "WEDNESDAY", "weds": "WEDNESDAY", "wednesday": "WEDNESDAY",
    "thu": "THURSDAY", "thur": "THURSDAY", "thurs": "THURSDAY", "thursday": "THURSDAY",
    "fri": "FRIDAY", "friday": "FRIDAY",
    "sat": "SATURDAY", "saturday": "SATURDAY",
    "sun": "SUNDAY", "sunday": "SUNDAY",
}

_RANGE_SPLIT_RE = re.compile(r"\s*(?:-|–|—|\bto\b|\bthrough\b|\bthru\b)\s*", re.IGNORECASE)
_LIST_SPLIT_RE = re.compile(r"\s*(?:,|/|&|\band\b)\s*", re.IGNORECASE)


def normalize_day(value: str | None) -> str | None:
    """Map a day name or abbreviation to its canonical uppercase name."""
    if not value:
        return None
    key = value.strip().rstrip(".").lower()
    return DAY_ALIASES.get(key)


def expand_days(value: str | None) -> list[str]:
    """Expand a day, a day range or a day list into canonical day names.

    ``"Monday-Friday"`` gives five days, ``"Mon, Wed"`` gives two, and an
    unrecognized value gives an empty list.
    """
    if not value or not value.strip():
        return []
    single = normalize_day(value)
    if single:
        return [single]

    days: list[str] = []
    for part in _LIST_SPLIT_RE.split(value.strip()):
        if not part:
            continue
        bounds = [b for b in _RANGE_SPLIT_RE.split(part) if b]
        if len(bounds) == 2:
            start, end = normalize_day(bounds[0]), normalize_day(bounds[1])
            if start is None or end is None:
                return []
            i, j = DAYS_OF_WEEK.index(start), DAYS_OF_WEEK.index(end)
            span = (j - i) % len(DAYS_OF_WEEK)
            days.extend(DAYS_OF_WEEK[(i + k) % len(DAYS_OF_WEEK)] for k in range(span + 1))
        elif len(bounds) == 1:
            day = normalize_day(bounds[0])
            if day is None:
                return []
            days.append(day)
        else:
            return []
    return list(dict.fromkeys(days))


# ---------------------------------------------------------------------------
# Subjects / rooms
# ---------------------------------------------------------------------------
SUBJECT_ALIASES: dict[str, str] = {
    "math": "Mathematics",
    "maths": "Mathematics",
    "mathematics": "Mathematics",
    "pe": "Physical Education",
    "physical ed": "Physical Education",
    "phys ed": "Physical Education",
    "eng": "English",
    "english": "English",
    "sci": "Science",
    "bio": "Biology",
    "chem": "Chemistry",
    "phys": "Physics",
    "geog": "Geography",
    "geo": "Geography",
    "hist": "History",
    "cs": "Computer Science",
    "comp sci": "Computer Science",
    "computer sci": "Computer Science",
    "ict": "ICT",
    "re": "Religious Education",
    "rs": "Religious Studies",
    "dt": "Design and Technology",
    "pshe": "PSHE",
    "lit": "Literature",
    "econ": "Economics",
    "reg": "Registration",
    "registration": "Registration",
    "form time": "Registration",
    "assembly": "Assembly",
    "break": "Break",
    "break time": "Break",
    "lunch": "Lunch",
    "lunch break": "Lunch",
}

_ROOM_RE = re.compile(r"^(?:rm|r|room)\.?\s*([a-z]?\d+[a-z]?)$", re.IGNORECASE)
_LAB_RE = re.compile(r"^lab\.?\s*(\d+)$", re.IGNORECASE)


def canonicalize_subject(value: str) -> str:
    """Expand common subject abbreviations; unknown subjects pass through."""
    collapsed = " ".join(value.split())
    key = collapsed.lower().replace(".", "").strip()
    return SUBJECT_ALIASES.get(key, collapsed)


def canonicalize_room(value: str) -> str:
    """``Rm 101`` -> ``Room 101``, ``Lab1`` -> ``Lab 1``."""
    collapsed = " ".join(value.split())
    match = _ROOM_RE.match(collapsed)
    if match:
        return f"Room {match.group(1).upper()}"
    match = _LAB_RE.match(collapsed)
    if match:
        return f"Lab {match.group(1)}"
    return collapsed


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------
REQUIRED_FIELD_POINTS = 5
OPTIONAL_FIELD_POINTS = 2
_OPTIONAL_FIELDS = ("classroom", "grade", "section", "notes")
MAX_BLOCK_POINTS = 4 * REQUIRED_FIELD_POINTS + len(_OPTIONAL_FIELDS) * OPTIONAL_FIELD_POINTS


def _block_points(block: TimeBlock) -> int:
    # Required fields are guaranteed by TimeBlock validation.
    points = 4 * REQUIRED_FIELD_POINTS
    for name in _OPTIONAL_FIELDS:
        if getattr(block, name):
            points += OPTIONAL_FIELD_POINTS
    return points


def block_confidence(block: TimeBlock) -> int:
    return round(100 * _block_points(block) / MAX_BLOCK_POINTS)


def calculate_confidence(blocks: Iterable[TimeBlock]) -> int:
    """Field-completeness confidence over all blocks (0 when there are none)."""
    blocks = list(blocks)
    if not blocks:
        return 0
    achieved = sum(_block_points(b) for b in blocks)
    return round(100 * achieved / (MAX_BLOCK_POINTS * len(blocks)))


# ---------------------------------------------------------------------------
# Raw block -> TimeBlock(s)
# ---------------------------------------------------------------------------
def normalize_block(raw: RawTimeBlock) -> list[TimeBlock]:
    """Normalize one raw block; day ranges yield one TimeBlock per day."""
    days = expand_days(raw.day_of_week)
    if not days:
        logger.info("Dropping block with unrecognized day %r", raw.day_of_week)
        return []
    start = normalize_time(raw.start_time)
    end = normalize_time(raw.end_time)
    if start is None or end is None:
        logger.info(
            "Dropping block with invalid time %r-%r", raw.start_time, raw.end_time
        )
        return []
    subject = canonicalize_subject(raw.subject)
    if not subject:
        logger.info("Dropping block with empty subject on %s %s", raw.day_of_week, start)
        return []

    blocks: list[TimeBlock] = []
    for day in days:
        try:
            block = TimeBlock(
                day_of_week=day,
                start_time=start,
                end_time=end,
                subject=subject,
                classroom=canonicalize_room(raw.classroom),
                grade=raw.grade,
                section=raw.section,
                notes=raw.notes,
            )
        except ValidationError as exc:
            logger.info("Dropping invalid block %s %s-%s: %s", day, start, end, exc.errors()[0]["msg"])
            return []
        block.confidence = block_confidence(block)
        blocks.append(block)
    return blocks


def validate_time_blocks(raw_blocks: Iterable[RawTimeBlock]) -> list[TimeBlock]:
    """Normalize raw blocks and keep only the valid ones, in input order."""
    valid: list[TimeBlock] = []
    dropped = 0
    for raw in raw_blocks:
        normalized = normalize_block(raw)
        if not normalized:
            dropped += 1
        valid.extend(normalized)
    if dropped:
        logger.warning("Dropped %d invalid time block(s) during normalization", dropped)
    return valid
