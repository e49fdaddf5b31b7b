"""
Router export report.

Endpoint:
- POST /export-report-records: Crea (o riusa) l'export di un report
- GET /export-report-records/{id}: Stato export
- GET /export-report-records/{id}/download: Download file (202 finché non completed)
"""
import logging
import os

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import get_file_storage, get_settings, get_store, get_task_runner
from api.errors import to_http_exception
from api.serializers import export_report_record_to_dict
from core.job_manager import get_export, submit_export
from core.status import Status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export-report-records", tags=["exports"])


class ExportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_record_id: int = Field(..., alias="reportRecordId")
    report_type: str = Field(default="json", alias="reportType")


@router.post("")
async def create_export_report_record(
    request: ExportRequest,
    store=Depends(get_store),
    runner=Depends(get_task_runner),
    storage=Depends(get_file_storage),
    config=Depends(get_settings)
):
    """
    Avvia l'export del report; una richiesta ripetuta ritorna l'export
    esistente finché questo non è failed.
    """
    try:
        record = await submit_export(
            store, runner, storage, request.report_record_id, request.report_type, config
        )
    except Exception as e:
        raise to_http_exception(e)
    return export_report_record_to_dict(record)


@router.get("/{export_report_record_id}")
async def get_export_report_record(export_report_record_id: int, store=Depends(get_store)):
    try:
        record = await get_export(store, export_report_record_id)
    except Exception as e:
        raise to_http_exception(e)
    return export_report_record_to_dict(record)


@router.get("/{export_report_record_id}/download")
async def download_export_report(export_report_record_id: int, store=Depends(get_store)):
    """
    Scarica il file esportato.

    Returns:
        File JSON se l'export è completed, altrimenti 202 con lo stato corrente
    """
    try:
        record = await get_export(store, export_report_record_id)
    except Exception as e:
        raise to_http_exception(e)

    status = Status(record.status)
    if status != Status.COMPLETED:
        return JSONResponse(
            status_code=202,
            content={
                "id": record.id,
                "status": status.value,
                "message": "Export not completed yet" if status != Status.FAILED else "Export failed",
            }
        )

    if not os.path.exists(record.file_path):
        logger.error(f"[API] Export file missing for record id={record.id}: {record.file_path}")
        raise HTTPException(status_code=404, detail="Export file not found")

    return FileResponse(record.file_path, media_type="application/json", filename=record.file_name)
