"""
Comparison engine: CSV di riferimento vs scan persistite.

Per ogni riga (location, barcode atteso) cerca la Scan della location,
classifica l'esito e salva subito una riga ComparisonData (un insert per
riga, nessun batch). Ogni errore è fatale: le righe già salvate restano.
"""
import asyncio
import itertools
import logging
from typing import Iterator, List, Optional, Tuple

from core.database import ComparisonData, ComparisonOutcome, ReportRecord, Scan
from core.errors import ComparisonCaseNotSupported, FileFormatError, ScanNotFoundError
from core.events import EventSink, get_event_sink, safe_emit
from core.status import Status, run_tracked
from pipelines.csv_reader import iter_reference_rows, open_reference_file
from pipelines.types import ReferenceRow

logger = logging.getLogger(__name__)

PIPELINE_NAME = "comparison"

READ_AHEAD_ROWS = 100


def classify(occupied: bool, detected_barcodes: List[str], expected_barcode: str) -> ComparisonOutcome:
    """
    Tabella di decisione, valutata in ordine.

    Args:
        occupied: Location occupata secondo la scan
        detected_barcodes: Barcode rilevati dal robot
        expected_barcode: Barcode atteso dal CSV ("" = location attesa vuota)

    Returns:
        ComparisonOutcome

    Raises:
        ComparisonCaseNotSupported: Combinazione non coperta dalla tabella
    """
    # Location vuota
    if not occupied and expected_barcode == "":
        return ComparisonOutcome.LOCATION_EMPTY_AS_EXPECTED
    if not occupied and expected_barcode != "":
        return ComparisonOutcome.LOCATION_EMPTY_BUT_NOT_EXPECTED

    # Location occupata: nessun barcode letto ha la precedenza
    if occupied and len(detected_barcodes) == 0:
        return ComparisonOutcome.LOCATION_OCCUPIED_BUT_BARCODE_NOT_IDENTIFIED
    if occupied and expected_barcode == "":
        return ComparisonOutcome.LOCATION_OCCUPIED_BUT_EXPECTED_EMPTY

    # Più barcode = sempre articoli sbagliati, anche se contiene quello atteso
    if len(detected_barcodes) > 1:
        return ComparisonOutcome.LOCATION_OCCUPIED_WITH_WRONG_ITEMS
    if len(detected_barcodes) == 1 and detected_barcodes[0] == expected_barcode:
        return ComparisonOutcome.LOCATION_OCCUPIED_WITH_CORRECT_ITEMS
    if len(detected_barcodes) == 1 and detected_barcodes[0] != expected_barcode:
        return ComparisonOutcome.LOCATION_OCCUPIED_WITH_WRONG_ITEMS

    raise ComparisonCaseNotSupported(
        f"comparison case not supported: occupied={occupied}, "
        f"detected={detected_barcodes}, expected={expected_barcode!r}"
    )


def build_comparison_data(report_record_id: int, scan: Scan, row: ReferenceRow) -> ComparisonData:
    actual = list(scan.barcodes or [])
    return ComparisonData(
        report_record_id=report_record_id,
        location=row.location,
        scanned=scan.scanned,
        occupied=scan.occupied,
        actual_barcodes=actual,
        expected_barcodes=row.expected_barcodes,
        result=classify(scan.occupied, actual, row.expected_barcode)
    )


async def compare_row(store, record: ReportRecord, row: ReferenceRow) -> ComparisonData:
    """Lookup scan, classificazione e insert di una singola riga CSV."""
    scan = await store.get_scan(record.bulk_scan_record_id, row.location)
    if scan is None:
        raise ScanNotFoundError(record.bulk_scan_record_id, row.location)

    comparison = build_comparison_data(record.id, scan, row)
    await store.create_comparison_data(comparison)
    return comparison


def _read_rows(rows: Iterator[ReferenceRow], limit: int) -> Tuple[List[ReferenceRow], Optional[FileFormatError]]:
    """
    Legge fino a limit righe (bloccante, eseguito in un thread).

    Un errore di formato viene ritornato insieme alle righe valide lette
    prima, così da salvarle prima di fallire.
    """
    batch: List[ReferenceRow] = []
    try:
        for row in itertools.islice(rows, limit):
            batch.append(row)
    except FileFormatError as e:
        return batch, e
    return batch, None


async def generate_comparison_data(record: ReportRecord, store, emit: Optional[EventSink] = None) -> int:
    """
    Lavoro della pipeline (senza gestione stato).

    Il CSV viene letto a blocchi di READ_AHEAD_ROWS righe in un thread;
    lookup e insert restano una riga alla volta, in ordine.

    Returns:
        Numero di righe ComparisonData salvate

    Raises:
        OSError: CSV non apribile
        FileFormatError: Header errato o riga malformata
        ScanNotFoundError: Location del CSV senza scan
        PersistenceError: Lookup o insert falliti
    """
    sink = get_event_sink(emit)
    written = 0

    fp = await asyncio.to_thread(open_reference_file, record.reference_file_path)
    try:
        rows = iter_reference_rows(fp)
        while True:
            batch, error = await asyncio.to_thread(_read_rows, rows, READ_AHEAD_ROWS)
            for row in batch:
                comparison = await compare_row(store, record, row)
                written += 1
                safe_emit(sink, "comparison_row_saved", level="debug",
                          pipeline=PIPELINE_NAME, record_id=record.id, line=row.line_number,
                          location=row.location, result=comparison.result.name)
            if error is not None:
                raise error
            if len(batch) < READ_AHEAD_ROWS:
                break
    finally:
        await asyncio.to_thread(fp.close)

    safe_emit(sink, "comparison_done", pipeline=PIPELINE_NAME, record_id=record.id, rows=written)
    return written


async def generate_comparison_data_for_report(
    record: ReportRecord,
    store,
    emit: Optional[EventSink] = None
) -> Optional[Status]:
    """
    Entry point background: comparison con lifecycle di stato.

    Args:
        record: ReportRecord in stato pending (bulk scan già completato)
        store: Record store
        emit: Sink eventi

    Returns:
        Stato finale del record (None se il run è stato saltato)
    """
    logger.info(
        f"[COMPARISON] Starting report record id={record.id} "
        f"reference={record.reference_file_name} path={record.reference_file_path}"
    )

    async def work():
        await generate_comparison_data(record, store, emit)

    status = await run_tracked(store, record, work, PIPELINE_NAME, emit)
    logger.info(f"[COMPARISON] Report record id={record.id} finished with status={status}")
    return status
