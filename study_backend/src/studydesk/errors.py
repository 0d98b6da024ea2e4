from __future__ import annotations


class StudyDeskError(Exception):
    """Base class for every error raised by studydesk."""


class StoreWriteError(StudyDeskError):
    """A write or delete against the document store failed."""


class PopupBlockedError(StudyDeskError):
    """The interactive sign-in flow could not be opened."""


class TranscriptionUnavailable(StudyDeskError):
    """No speech-recognition capability is available in this environment."""


class PdfExtractionError(StudyDeskError):
    """The uploaded file could not be decoded as a PDF document."""


class LanguageModelError(StudyDeskError):
    """The language-model call failed or returned an unusable payload."""


class DelegateError(StudyDeskError):
    """An external task (summarize, flashcards) did not complete successfully."""
