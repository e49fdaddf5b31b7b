"""
Router report di confronto inventario.

Endpoint:
- GET /inventory-comparison-reports: Elenco report
- POST /inventory-comparison-reports: Upload CSV di riferimento e avvio comparison
- GET /inventory-comparison-reports/{id}: Dettaglio report
- GET /inventory-comparison-reports/{id}/data: Righe di confronto (array, limit/offset opzionali)
- GET /inventory-comparison-reports/{id}/exports: Export del report
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from api.dependencies import get_file_storage, get_settings, get_store, get_task_runner
from api.errors import to_http_exception
from api.serializers import (
    comparison_data_to_dict, export_report_record_to_dict, report_record_to_dict
)
from core.job_manager import (
    bulk_scan_file_names, get_comparison_page, get_report, list_comparison_data, list_exports,
    list_reports, submit_report
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory-comparison-reports", tags=["reports"])


@router.get("")
async def get_report_records(store=Depends(get_store)):
    try:
        records = await list_reports(store)
        names = await bulk_scan_file_names(store, records)
    except Exception as e:
        raise to_http_exception(e)
    return [report_record_to_dict(record, names.get(record.bulk_scan_record_id)) for record in records]


@router.post("", status_code=201)
async def create_report_record(
    bulkScanFileName: str = Form(...),
    csvFile: UploadFile = File(...),
    store=Depends(get_store),
    runner=Depends(get_task_runner),
    storage=Depends(get_file_storage),
    config=Depends(get_settings)
):
    """
    Crea un report di confronto per un bulk scan completato.

    Args:
        bulkScanFileName: Nome del file scan già ingerito
        csvFile: CSV di riferimento (location,item)
    """
    if not csvFile.filename:
        raise HTTPException(status_code=400, detail="File name is required")

    try:
        record = await submit_report(
            store, runner, storage, bulkScanFileName, csvFile.filename, csvFile.file, config
        )
    except Exception as e:
        raise to_http_exception(e)
    finally:
        await csvFile.close()

    logger.info(f"[API] Reference file {csvFile.filename} accepted as report record id={record.id}")
    return report_record_to_dict(record, bulkScanFileName)


@router.get("/{report_record_id}")
async def get_report_record(report_record_id: int, store=Depends(get_store)):
    try:
        record = await get_report(store, report_record_id)
        names = await bulk_scan_file_names(store, [record])
    except Exception as e:
        raise to_http_exception(e)
    return report_record_to_dict(record, names.get(record.bulk_scan_record_id))


@router.get("/{report_record_id}/data")
async def get_report_data(
    report_record_id: int,
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Righe per pagina (default: tutte)"),
    offset: int = Query(0, ge=0, description="Righe da saltare"),
    store=Depends(get_store)
):
    """Righe ComparisonData del report in ordine CSV, come array JSON."""
    try:
        if limit is None:
            rows = (await list_comparison_data(store, report_record_id))[offset:]
        else:
            rows = await get_comparison_page(store, report_record_id, limit, offset)
    except Exception as e:
        raise to_http_exception(e)
    return [comparison_data_to_dict(row) for row in rows]


@router.get("/{report_record_id}/exports")
async def get_report_exports(report_record_id: int, store=Depends(get_store)):
    try:
        records = await list_exports(store, report_record_id)
    except Exception as e:
        raise to_http_exception(e)
    return [export_report_record_to_dict(record) for record in records]
