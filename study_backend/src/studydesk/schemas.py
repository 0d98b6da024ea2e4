from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

QUESTION_MAX = 500
ANSWER_MAX = 1500
MIN_TEXT_LENGTH = 10

# Incoming due dates may be a date, a datetime or an ISO8601 string
DueInput = Union[date, datetime, str]


def _parse_due(value: Optional[DueInput]) -> str:
    """
    Normalize a due date to a plain calendar-date string (YYYY-MM-DD).
    - datetime values drop their time part
    - strings must parse as an ISO date (a time part, if present, is dropped)
    """
    if value is None or value == "":
        raise ValueError("due date is required")

    if isinstance(value, datetime):
        return value.date().isoformat()

    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s).isoformat()
        except ValueError:
            try:
                return datetime.fromisoformat(s).date().isoformat()
            except ValueError as e:
                raise ValueError(
                    "Invalid due date format. Use an ISO8601 date string (e.g., '2025-01-31')."
                ) from e

    raise ValueError("Invalid type for due date; expected date, datetime, or ISO8601 string.")


# PUBLIC_INTERFACE
class TextRequest(BaseModel):
    """
    Body of the AI endpoints. Length is checked by the route so a short text gets
    a 400 with an error message instead of a validation error.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"text": "Photosynthesis converts light energy into chemical energy..."}}
    )

    text: Optional[str] = Field(default=None, description="Note body to work on")


# PUBLIC_INTERFACE
class SummaryOut(BaseModel):
    """Response of POST /api/summarize."""

    summary: str = Field(..., description="Bullet summary produced by the language model")


# PUBLIC_INTERFACE
class CardOut(BaseModel):
    """
    One generated flashcard. Missing values become empty strings and long values
    are cut to QUESTION_MAX / ANSWER_MAX characters.
    """

    question: str = Field(default="", description="Prompt side of the card")
    answer: str = Field(default="", description="Answer side of the card")

    @field_validator("question", mode="before")
    @classmethod
    def clip_question(cls, v: Any) -> str:
        return ("" if v is None else str(v))[:QUESTION_MAX]

    @field_validator("answer", mode="before")
    @classmethod
    def clip_answer(cls, v: Any) -> str:
        return ("" if v is None else str(v))[:ANSWER_MAX]


# PUBLIC_INTERFACE
class CardsOut(BaseModel):
    """Response of POST /api/flashcards."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"cards": [{"question": "What does chlorophyll absorb?", "answer": "Mostly red and blue light."}]}
        }
    )

    cards: List[CardOut] = Field(default_factory=list, description="Generated flashcards")


# PUBLIC_INTERFACE
class PdfTextOut(BaseModel):
    """Response of POST /api/pdf/extract."""

    name: str = Field(..., description="Uploaded file name")
    pages: int = Field(..., description="Number of pages read")
    text: str = Field(..., description="Page-marked text, '[Page N]' before each page")


# PUBLIC_INTERFACE
class ErrorOut(BaseModel):
    """Error body returned by the AI and PDF endpoints."""

    error: str = Field(..., description="Short error message")


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Input of the task form. Title and due date are required.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"title": "Problem set 3", "className": "MATH 221", "due": "2025-02-01"}}
    )

    title: str = Field(..., description="Task title", min_length=1, max_length=200)
    className: str = Field(default="", description="Folder label, empty for unfiled")
    due: str = Field(..., description="Due date as YYYY-MM-DD")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        s = (v or "").strip()
        if not (1 <= len(s) <= 200):
            raise ValueError("title length must be between 1 and 200 characters")
        return s

    @field_validator("className", mode="before")
    @classmethod
    def strip_class(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @field_validator("due", mode="before")
    @classmethod
    def parse_due(cls, v: Optional[DueInput]) -> str:
        """
        Normalize due from str/date/datetime to YYYY-MM-DD.
        """
        return _parse_due(v)
