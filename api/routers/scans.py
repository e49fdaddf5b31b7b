"""
Router bulk scan.

Endpoint:
- GET /bulk-scan-records: Elenco file scan caricati
- POST /upload-bulk-scan-file: Upload file scan JSON e avvio ingestione
"""
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from api.dependencies import get_file_storage, get_settings, get_store, get_task_runner
from api.errors import to_http_exception
from api.serializers import bulk_scan_record_to_dict
from core.job_manager import list_bulk_scans, submit_bulk_scan

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bulk-scans"])


@router.get("/bulk-scan-records")
async def get_bulk_scan_records(store=Depends(get_store)):
    """Elenco BulkScanRecord in ordine di creazione."""
    try:
        records = await list_bulk_scans(store)
    except Exception as e:
        raise to_http_exception(e)
    return [bulk_scan_record_to_dict(record) for record in records]


@router.post("/upload-bulk-scan-file", status_code=201)
async def upload_bulk_scan_file(
    file: UploadFile = File(...),
    store=Depends(get_store),
    runner=Depends(get_task_runner),
    storage=Depends(get_file_storage),
    config=Depends(get_settings)
):
    """
    Salva il file scan e avvia l'ingestione in background.

    Ritorna il record appena creato (stato pending): l'avanzamento si legge
    da GET /bulk-scan-records.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="File name is required")

    try:
        record = await submit_bulk_scan(store, runner, storage, file.filename, file.file, config)
    except Exception as e:
        raise to_http_exception(e)
    finally:
        await file.close()

    logger.info(f"[API] Bulk scan file {file.filename} accepted as record id={record.id}")
    return bulk_scan_record_to_dict(record)
