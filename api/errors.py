"""
Mappatura eccezioni del processor → HTTPException.
"""
import logging

from fastapi import HTTPException

from core.errors import (
    PersistenceError, RecordNotFoundError, RecordNotReadyError, UnsupportedReportType
)
from core.file_storage import FileTooLargeError

logger = logging.getLogger(__name__)


def to_http_exception(error: Exception) -> HTTPException:
    """
    Sceglie lo status HTTP per un errore lato richiesta.

    404 record inesistente, 409 record non pronto, 400 input non valido,
    413 upload troppo grande, 500 per tutto il resto.
    """
    if isinstance(error, RecordNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, RecordNotReadyError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, FileTooLargeError):
        return HTTPException(status_code=413, detail=str(error))
    if isinstance(error, (UnsupportedReportType, ValueError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, PersistenceError):
        logger.error(f"[API] Persistence error: {error}")
        return HTTPException(status_code=500, detail="Database error")

    logger.error(f"[API] Unexpected error: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Internal server error: {str(error)}")
