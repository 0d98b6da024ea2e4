from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse

from ..auth import get_auth_dependency
from ..errors import PdfExtractionError
from ..pdf import read_pdf
from ..schemas import ErrorOut, PdfTextOut

router = APIRouter(
    prefix="/api/pdf",
    tags=["pdf"],
    dependencies=[Depends(get_auth_dependency())],
)


# PUBLIC_INTERFACE
@router.post(
    "/extract",
    response_model=PdfTextOut,
    summary="Extract PDF text",
    description="Upload a PDF and get its text back, each page prefixed with '[Page N]'.",
    responses={400: {"model": ErrorOut, "description": "File is not a readable PDF"}},
)
async def extract(file: UploadFile = File(...)):
    """
    Extract page-marked text from an uploaded PDF.
    """
    data = await file.read()
    try:
        result = read_pdf(data)
    except PdfExtractionError:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "PDF extraction failed"})
    return PdfTextOut(name=file.filename or "document.pdf", pages=result.pages, text=result.text)
