"""Prompts shared by every vision provider and by the structuring model.

Vision providers all receive the same extraction instructions for a given input
class (single image, rendered PDF page, image embedded in a DOCX) so their
outputs are interchangeable downstream.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Raw text extraction (vision)
# ---------------------------------------------------------------------------

_EXTRACTION_RULES = """\
DOCUMENT TYPE: teacher timetable / class schedule.

Extract ALL visible text while preserving the table layout:
- Read row by row, left to right, keeping text that shares a cell together.
- Keep day names, times (any format, e.g. 8:30 AM, 14:45, P1), subjects,
  rooms (Room 101, Lab 2), classes/grades/sections (Year 10, 7B), breaks
  (Lunch, Break, Assembly, Registration) and any notes.
- Keep header/footer metadata: teacher name, academic year, semester or term.
- Separate visible columns with " | " and distinct table sections with "---".
- Fix obvious OCR confusions in times (O -> 0, l -> 1). Mark unreadable text
  with [?] but keep it.

Return ONLY the extracted text. No commentary, no markdown fences.
"""

IMAGE_PROMPT = (
    "You are an OCR system specialized in timetable documents.\n\n"
    + _EXTRACTION_RULES
    + "\nExtract all text from this timetable image:"
)


def pdf_page_prompt(page_number: int, total_pages: int) -> str:
    """Prompt for one rendered PDF page."""
    return (
        "You are an OCR system specialized in timetable documents.\n"
        f"This image is page {page_number} of {total_pages} of a PDF.\n\n"
        + _EXTRACTION_RULES
        + "\nIf the table continues from a previous page, extract it as-is."
        + f"\nExtract all text from page {page_number}:"
    )


def docx_image_prompt(image_number: int, total_images: int) -> str:
    """Prompt for one image embedded in a Word document."""
    return (
        "You are an OCR system specialized in timetable documents.\n"
        f"This image ({image_number} of {total_images}) was embedded in a Word "
        "document whose text is processed separately.\n\n"
        + _EXTRACTION_RULES
        + "\nIf the image holds no timetable content, return an empty reply."
        + f"\nExtract all text from image {image_number}:"
    )


# ---------------------------------------------------------------------------
# Structuring
# ---------------------------------------------------------------------------

STRUCTURING_SYSTEM_PROMPT = """\
You convert raw timetable text into a JSON object. Return ONLY the JSON object.

Schema:
{
  "teacher_name": "<string>",
  "academic_year": "<YYYY-YYYY or YYYY/YY, or empty>",
  "semester": "<string or empty>",
  "time_blocks": [
    {
      "day_of_week": "MONDAY|TUESDAY|WEDNESDAY|THURSDAY|FRIDAY|SATURDAY|SUNDAY",
      "start_time": "HH:MM",
      "end_time": "HH:MM",
      "subject": "<string>",
      "classroom": "<string or empty>",
      "grade": "<string or empty>",
      "section": "<string or empty>",
      "notes": "<string or empty>"
    }
  ]
}

Normalization rules:
- Times use the 24-hour clock: 2:30 PM -> 14:30, 12:30 AM -> 00:30,
  8.30 or 830 -> 08:30.
- Days are full uppercase English names. A row that applies to a day range
  (e.g. Monday-Friday) becomes one entry per day.
- Expand subject abbreviations: Maths -> Mathematics, PE -> Physical
  Education, Eng -> English.
- Rooms: Rm 101 -> Room 101, Lab1 -> Lab 1.
- Breaks, lunch, assembly and registration are entries too.
- Every entry needs day_of_week, start_time, end_time and subject; use ""
  for unknown optional fields. Never invent data that is not in the text.
"""

REFINEMENT_INSTRUCTIONS = """\
A previous extraction of this timetable was analysed. Produce a corrected JSON
object with the same schema:
- Merge or remove entries reported as duplicates (similarity above the stated
  threshold), keeping the most complete entry.
- Resolve reported time conflicts by keeping the higher-confidence entry when
  the source text supports only one of them.
- Check reported gaps against the source text and add entries only when the
  text actually contains them.
- Do not invent data.
"""


def build_structuring_prompt(
    text: str,
    teacher_hint: str | None = None,
    refinement_context: str | None = None,
) -> str:
    """User prompt for the structuring call."""
    parts: list[str] = []
    if teacher_hint:
        parts.append(f"The teacher is expected to be: {teacher_hint}\n")
    if refinement_context:
        parts.append(REFINEMENT_INSTRUCTIONS)
        parts.append(refinement_context)
        parts.append("")
    parts.append("Timetable text:")
    parts.append(text)
    return "\n".join(parts)
