"""
Job Manager per scan-processor.

Lato richiesta delle tre pipeline: salva l'artefatto caricato, crea il record
in stato pending e passa la pipeline al task runner senza attenderla.
Contiene anche le letture usate dai router.
"""
import asyncio
import logging
import weakref
from typing import BinaryIO, Dict, Iterable, List, Optional, Tuple

from core.config import ProcessorConfig, get_config
from core.database import (
    BulkScanRecord, ComparisonData, ExportReportRecord, ExportReportType, ReportRecord
)
from core.errors import RecordNotFoundError, RecordNotReadyError, UnsupportedReportType
from core.file_storage import FileStorage
from core.status import Status
from core.tasks import TaskRunner
from pipelines.comparison import generate_comparison_data_for_report
from pipelines.export import export_report
from pipelines.scan_ingest import process_bulk_scan_file

logger = logging.getLogger(__name__)

# Un lock per coppia (report_record_id, report_type): lookup + create atomici nel processo.
# La entry sparisce quando nessuno tiene o attende il lock.
_export_locks: "weakref.WeakValueDictionary[Tuple[int, str], asyncio.Lock]" = weakref.WeakValueDictionary()


def parse_report_type(report_type) -> ExportReportType:
    """
    Converte il tipo richiesto in ExportReportType, accettando solo JSON.

    Raises:
        UnsupportedReportType: Tipo sconosciuto o non implementato (csv)
    """
    try:
        parsed = ExportReportType(str(report_type).strip().lower())
    except ValueError:
        raise UnsupportedReportType(f"unknown report type: {report_type!r}")
    if parsed != ExportReportType.JSON:
        raise UnsupportedReportType(f"report type not supported: {parsed.value}")
    return parsed


def _export_lock(report_record_id: int, report_type: ExportReportType) -> asyncio.Lock:
    key = (report_record_id, report_type.value)
    lock = _export_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _export_locks[key] = lock
    return lock


async def submit_bulk_scan(
    store,
    runner: TaskRunner,
    storage: FileStorage,
    file_name: str,
    stream: BinaryIO,
    config: Optional[ProcessorConfig] = None
) -> BulkScanRecord:
    """
    Salva il file scan JSON e avvia l'ingestione.

    Args:
        store: Record store
        runner: Task runner per l'esecuzione in background
        storage: File storage locale
        file_name: Nome file caricato
        stream: Contenuto del file
        config: Configurazione (default: singleton)

    Returns:
        BulkScanRecord creato (pending al momento della creazione)
    """
    config = config or get_config()

    file_path = await asyncio.to_thread(
        storage.save_file, config.bulk_scan_dir, file_name, stream, config.max_upload_bytes
    )
    record = await store.create_bulk_scan_record(file_path)

    logger.info(f"[JOB_MANAGER] Created bulk scan record id={record.id}, file={record.file_name}")

    await runner.submit(
        process_bulk_scan_file(record, store, batch_size=config.scan_batch_size),
        name=f"scan_ingest-{record.id}"
    )
    return record


async def submit_report(
    store,
    runner: TaskRunner,
    storage: FileStorage,
    bulk_scan_file_name: str,
    file_name: str,
    stream: BinaryIO,
    config: Optional[ProcessorConfig] = None
) -> ReportRecord:
    """
    Salva il CSV di riferimento e avvia la comparison.

    Il bulk scan indicato deve esistere ed essere completed.

    Raises:
        RecordNotFoundError: Nessun bulk scan con quel nome file
        RecordNotReadyError: Bulk scan non ancora completed
    """
    config = config or get_config()

    bulk_scan = await store.get_bulk_scan_record_by_file_name(bulk_scan_file_name)
    if bulk_scan is None:
        raise RecordNotFoundError(f"bulk scan record not found for file name={bulk_scan_file_name}")
    if Status(bulk_scan.status) != Status.COMPLETED:
        raise RecordNotReadyError(
            f"bulk scan record id={bulk_scan.id} is {Status(bulk_scan.status).value}, expected completed"
        )

    file_path = await asyncio.to_thread(
        storage.save_file, config.comparison_dir, file_name, stream, config.max_upload_bytes
    )
    record = await store.create_report_record(bulk_scan.id, file_path)

    logger.info(
        f"[JOB_MANAGER] Created report record id={record.id} "
        f"for bulk scan record id={bulk_scan.id}, reference={record.reference_file_name}"
    )

    await runner.submit(
        generate_comparison_data_for_report(record, store),
        name=f"comparison-{record.id}"
    )
    return record


async def submit_export(
    store,
    runner: TaskRunner,
    storage: FileStorage,
    report_record_id: int,
    report_type,
    config: Optional[ProcessorConfig] = None
) -> ExportReportRecord:
    """
    Crea (o riusa) l'export di un report e avvia lo streamer.

    Se per la coppia (report, tipo) esiste già un export non failed viene
    ritornato quello, senza avviare un nuovo run.

    Raises:
        UnsupportedReportType: Tipo diverso da json
        RecordNotFoundError: ReportRecord inesistente
        RecordNotReadyError: Comparison del report non ancora completed
    """
    config = config or get_config()
    parsed_type = parse_report_type(report_type)

    report = await store.get_report_record(report_record_id)
    if report is None:
        raise RecordNotFoundError(f"report record id={report_record_id} not found")
    if Status(report.status) != Status.COMPLETED:
        raise RecordNotReadyError(
            f"report record id={report.id} is {Status(report.status).value}, expected completed"
        )

    async with _export_lock(report.id, parsed_type):
        existing = await store.get_active_export_report_record(report.id, parsed_type)
        if existing is not None:
            logger.info(
                f"[JOB_MANAGER] Reusing export report record id={existing.id} "
                f"(status={Status(existing.status).value}) for report record id={report.id}"
            )
            return existing

        file_path = await asyncio.to_thread(
            storage.create_file, config.export_dir, f"report_{report.id}.{parsed_type.value}"
        )
        record = await store.create_export_report_record(report.id, file_path, parsed_type)

    logger.info(f"[JOB_MANAGER] Created export report record id={record.id} for report record id={report.id}")

    await runner.submit(
        export_report(record, store, page_size=config.export_page_size),
        name=f"export-{record.id}"
    )
    return record


async def list_bulk_scans(store) -> List[BulkScanRecord]:
    return await store.list_bulk_scan_records()


async def list_reports(store) -> List[ReportRecord]:
    return await store.list_report_records()


async def get_report(store, report_record_id: int) -> ReportRecord:
    report = await store.get_report_record(report_record_id)
    if report is None:
        raise RecordNotFoundError(f"report record id={report_record_id} not found")
    return report


async def get_comparison_page(store, report_record_id: int, limit: int, offset: int) -> List[ComparisonData]:
    """Pagina di ComparisonData in ordine CSV (il report deve esistere)."""
    report = await get_report(store, report_record_id)
    return await store.get_comparison_data_page(report.id, limit, offset)


async def list_comparison_data(store, report_record_id: int, page_size: int = 500) -> List[ComparisonData]:
    """Tutte le righe ComparisonData del report, lette a pagine."""
    report = await get_report(store, report_record_id)
    rows: List[ComparisonData] = []
    while True:
        page = await store.get_comparison_data_page(report.id, page_size, len(rows))
        if not page:
            return rows
        rows.extend(page)


async def bulk_scan_file_names(store, reports: Iterable[ReportRecord]) -> Dict[int, str]:
    """Nome file del bulk scan di ogni report (bulk_scan_record_id -> file_name)."""
    names: Dict[int, str] = {}
    for report in reports:
        if report.bulk_scan_record_id in names:
            continue
        bulk_scan = await store.get_bulk_scan_record(report.bulk_scan_record_id)
        if bulk_scan is not None:
            names[bulk_scan.id] = bulk_scan.file_name
    return names


async def list_exports(store, report_record_id: int) -> List[ExportReportRecord]:
    report = await get_report(store, report_record_id)
    return await store.list_export_report_records(report.id)


async def get_export(store, export_report_record_id: int) -> ExportReportRecord:
    record = await store.get_export_report_record(export_report_record_id)
    if record is None:
        raise RecordNotFoundError(f"export report record id={export_report_record_id} not found")
    return record
