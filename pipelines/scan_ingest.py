"""
Pipeline ingestione bulk scan.

Legge in streaming il file JSON di un BulkScanRecord e salva le Scan a batch
di dimensione fissa. Ogni errore è fatale per il run: i batch già salvati
restano (nessun rollback tra batch).
"""
import asyncio
import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from core.config import get_config
from core.database import BulkScanRecord, Scan
from core.errors import FileFormatError
from core.events import EventSink, get_event_sink, safe_emit
from core.status import Status, run_tracked
from pipelines.json_stream import JsonArrayStream
from pipelines.types import ScanItem

logger = logging.getLogger(__name__)

PIPELINE_NAME = "scan_ingest"


def build_scan(item: ScanItem, bulk_scan_record_id: int) -> Scan:
    return Scan(
        bulk_scan_record_id=bulk_scan_record_id,
        location=item.name,
        scanned=item.scanned,
        occupied=item.occupied,
        barcodes=list(item.detected_barcodes)
    )


def decode_scan_item(raw, index: int) -> ScanItem:
    """Valida un elemento dell'array scan; ogni errore diventa FileFormatError."""
    try:
        return ScanItem.model_validate(raw)
    except ValidationError as e:
        raise FileFormatError(f"invalid scan element {index}: {e.errors()[0].get('msg', str(e))}") from e


async def _flush(store, batch: List[Scan], sink: EventSink, record_id: int, batch_number: int) -> None:
    await store.bulk_create_scans(batch)
    safe_emit(sink, "scan_batch_saved", level="debug",
              pipeline=PIPELINE_NAME, record_id=record_id, batch=batch_number, rows=len(batch))


def _read_batch(stream: JsonArrayStream, batch_size: int) -> List[Any]:
    """Decodifica fino a batch_size elementi (bloccante, eseguito in un thread)."""
    items: List[Any] = []
    while len(items) < batch_size and stream.has_more():
        items.append(stream.decode())
    return items


async def ingest_scan_file(
    record: BulkScanRecord,
    store,
    batch_size: int,
    emit: Optional[EventSink] = None
) -> int:
    """
    Lavoro della pipeline (senza gestione stato).

    Letture e decode del file girano in un thread (asyncio.to_thread), la
    validazione e gli insert restano sul loop.

    Args:
        record: BulkScanRecord da elaborare
        store: Record store
        batch_size: Scan per ogni chiamata bulk insert
        emit: Sink eventi

    Returns:
        Numero di Scan salvate

    Raises:
        OSError: File non apribile / non leggibile
        FileFormatError: Documento non è un array o elemento malformato
        PersistenceError: Bulk insert fallito
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    sink = get_event_sink(emit)
    saved = 0
    batches = 0

    fp = await asyncio.to_thread(open, record.file_path, "r", encoding="utf-8-sig")
    try:
        stream = JsonArrayStream(fp)
        await asyncio.to_thread(stream.read_array_start)

        safe_emit(sink, "scan_ingest_reading", pipeline=PIPELINE_NAME, record_id=record.id,
                  file_path=record.file_path, batch_size=batch_size)

        while True:
            raw_items = await asyncio.to_thread(_read_batch, stream, batch_size)
            if not raw_items:
                break

            batch = [
                build_scan(decode_scan_item(raw, saved + i + 1), record.id)
                for i, raw in enumerate(raw_items)
            ]
            batches += 1
            await _flush(store, batch, sink, record.id, batches)
            saved += len(batch)

        await asyncio.to_thread(stream.read_array_end)
    finally:
        await asyncio.to_thread(fp.close)

    safe_emit(sink, "scan_ingest_done", pipeline=PIPELINE_NAME, record_id=record.id,
              scans=saved, batches=batches)
    return saved


async def process_bulk_scan_file(
    record: BulkScanRecord,
    store,
    batch_size: Optional[int] = None,
    emit: Optional[EventSink] = None
) -> Optional[Status]:
    """
    Entry point background: ingestione con lifecycle di stato.

    Args:
        record: BulkScanRecord in stato pending
        store: Record store
        batch_size: Dimensione batch (default da config)
        emit: Sink eventi (default: sink del contesto)

    Returns:
        Stato finale del record (None se il run è stato saltato)
    """
    if batch_size is None:
        batch_size = get_config().scan_batch_size

    logger.info(
        f"[SCAN_INGEST] Starting bulk scan record id={record.id} "
        f"file={record.file_name} path={record.file_path}"
    )

    async def work():
        await ingest_scan_file(record, store, batch_size, emit)

    status = await run_tracked(store, record, work, PIPELINE_NAME, emit)
    logger.info(f"[SCAN_INGEST] Bulk scan record id={record.id} finished with status={status}")
    return status
