from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..auth import get_auth_dependency
from ..errors import LanguageModelError
from ..llm import LanguageModel, get_language_model
from ..schemas import MIN_TEXT_LENGTH, CardOut, CardsOut, ErrorOut, SummaryOut, TextRequest

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["ai"],
    dependencies=[Depends(get_auth_dependency())],
)

_ERROR_RESPONSES = {
    400: {"model": ErrorOut, "description": "Text missing or too short"},
    500: {"model": ErrorOut, "description": "Language model failure"},
}


def _too_short(payload: TextRequest) -> bool:
    return not payload.text or len(payload.text) < MIN_TEXT_LENGTH


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# PUBLIC_INTERFACE
@router.post(
    "/summarize",
    response_model=SummaryOut,
    summary="Summarize text",
    description="Ask the language model for a bullet summary of the posted note text.",
    responses=_ERROR_RESPONSES,
)
def summarize(payload: TextRequest, model: LanguageModel = Depends(get_language_model)):
    """
    Summarize a note body. Returns {summary} on success, {error} with 400/500 otherwise.
    """
    if _too_short(payload):
        return _error(status.HTTP_400_BAD_REQUEST, "Text too short")
    try:
        summary = model.summarize(payload.text)
    except LanguageModelError as exc:
        logger.error("Summarize failed: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "AI error")
    return SummaryOut(summary=summary)


# PUBLIC_INTERFACE
@router.post(
    "/flashcards",
    response_model=CardsOut,
    summary="Generate flashcards",
    description=(
        "Ask the language model for question/answer flashcards built from the posted note text. "
        "Questions are cut to 500 characters and answers to 1500."
    ),
    responses=_ERROR_RESPONSES,
)
def flashcards(payload: TextRequest, model: LanguageModel = Depends(get_language_model)):
    """
    Generate flashcards from a note body. Returns {cards} on success, {error} with 400/500 otherwise.
    """
    if _too_short(payload):
        return _error(status.HTTP_400_BAD_REQUEST, "Text too short")
    try:
        raw_cards = model.flashcards(payload.text)
        cards = [CardOut.model_validate(c) for c in raw_cards]
    except (LanguageModelError, ValidationError) as exc:
        logger.error("Flashcard generation failed: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "AI error")
    return CardsOut(cards=cards)
