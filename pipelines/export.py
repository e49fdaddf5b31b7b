"""
Export streamer: ComparisonData di un report → file JSON.

Legge i dati a pagine, scrive l'array JSON incrementalmente e forza il flush
su disco a fine pagina. In memoria resta al massimo una pagina. In caso di
errore il file resta incompleto: solo un export completed è utilizzabile.
"""
import asyncio
import json
import logging
import os
from typing import Any, Dict, Optional, TextIO

from core.config import get_config
from core.database import ComparisonData, ExportReportRecord, ExportReportType
from core.errors import UnsupportedReportType
from core.events import EventSink, get_event_sink, safe_emit
from core.status import Status, run_tracked

logger = logging.getLogger(__name__)

PIPELINE_NAME = "export"

ARRAY_START = "[\n"
ARRAY_END = "\n]"
SEPARATOR = ",\n"
INDENT = "  "


def comparison_to_dict(row: ComparisonData) -> Dict[str, Any]:
    return {
        "location": row.location,
        "scanned": row.scanned,
        "occupied": row.occupied,
        "actualBarcodes": list(row.actual_barcodes or []),
        "expectedBarcodes": list(row.expected_barcodes or []),
        "result": row.result.value,
    }


def serialize_row(row: ComparisonData) -> str:
    """Oggetto JSON indentato: "{" senza rientro, righe successive rientrate di un livello."""
    text = json.dumps(comparison_to_dict(row), indent=2, ensure_ascii=False)
    return text.replace("\n", "\n" + INDENT)


def _write_synced(fp: TextIO, text: str) -> None:
    fp.write(text)
    fp.flush()
    os.fsync(fp.fileno())


async def write_export_file(
    record: ExportReportRecord,
    store,
    page_size: int,
    emit: Optional[EventSink] = None
) -> int:
    """
    Lavoro della pipeline (senza gestione stato).

    Scritture e fsync girano in un thread (asyncio.to_thread), una chiamata
    per pagina.

    Returns:
        Numero di righe scritte

    Raises:
        UnsupportedReportType: Tipo export diverso da JSON
        OSError: Apertura / scrittura / fsync falliti
        PersistenceError: Lettura pagina fallita
    """
    if ExportReportType(record.report_type) != ExportReportType.JSON:
        raise UnsupportedReportType(f"report type not supported: {ExportReportType(record.report_type).value}")
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")

    sink = get_event_sink(emit)
    offset = 0
    pages = 0

    fp = await asyncio.to_thread(open, record.file_path, "a", encoding="utf-8")
    try:
        await asyncio.to_thread(fp.write, ARRAY_START)

        while True:
            page = await store.get_comparison_data_page(record.report_record_id, page_size, offset)
            if not page:
                break

            parts = []
            for i, row in enumerate(page):
                if offset + i > 0:
                    parts.append(SEPARATOR)
                parts.append(serialize_row(row))

            # Checkpoint durabilità a fine pagina
            await asyncio.to_thread(_write_synced, fp, "".join(parts))
            pages += 1
            offset += len(page)
            safe_emit(sink, "export_page_written", level="debug",
                      pipeline=PIPELINE_NAME, record_id=record.id, page=pages, rows=offset)

        await asyncio.to_thread(_write_synced, fp, ARRAY_END)
    finally:
        await asyncio.to_thread(fp.close)

    safe_emit(sink, "export_done", pipeline=PIPELINE_NAME, record_id=record.id,
              rows=offset, pages=pages, file_path=record.file_path)
    return offset


async def export_report(
    record: ExportReportRecord,
    store,
    page_size: Optional[int] = None,
    emit: Optional[EventSink] = None
) -> Optional[Status]:
    """
    Entry point background: export con lifecycle di stato.

    Args:
        record: ExportReportRecord in stato pending
        store: Record store
        page_size: Righe per pagina (default da config)
        emit: Sink eventi

    Returns:
        Stato finale del record (None se il run è stato saltato)
    """
    if page_size is None:
        page_size = get_config().export_page_size

    logger.info(
        f"[EXPORT] Starting export report record id={record.id} "
        f"report_record_id={record.report_record_id} file={record.file_path}"
    )

    async def work():
        await write_export_file(record, store, page_size, emit)

    status = await run_tracked(store, record, work, PIPELINE_NAME, emit)
    logger.info(f"[EXPORT] Export report record id={record.id} finished with status={status}")
    return status
