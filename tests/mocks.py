"""
Mock utilities per test scan-processor.

InMemoryRecordStore implementa RecordStore in memoria (vincolo di unicità
delle scan, compare-and-set di stato, iniezione errori per metodo);
EventCollector raccoglie gli eventi emessi dalle pipeline.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Type

from core.database import (
    BulkScanRecord, ComparisonData, ExportReportRecord, ExportReportType, ReportRecord, Scan
)
from core.errors import PersistenceError
from core.status import Status


class InMemoryRecordStore:
    """Record store in memoria con conteggio chiamate e fallimenti configurabili."""

    def __init__(self):
        self.tables: Dict[Type, List[Any]] = {
            BulkScanRecord: [],
            Scan: [],
            ReportRecord: [],
            ComparisonData: [],
            ExportReportRecord: [],
        }
        self._ids: Dict[Type, int] = {model: 0 for model in self.tables}
        self.calls: Dict[str, int] = {}
        self.bulk_insert_sizes: List[int] = []
        self.status_writes: List[tuple] = []
        # nome metodo -> (eccezione, chiamata da cui fallire)
        self._failures: Dict[str, tuple] = {}

    def fail_on(self, method: str, error: Optional[Exception] = None, after: int = 0):
        """
        Fa fallire ``method`` a partire dalla chiamata numero ``after + 1``.

        Args:
            method: Nome metodo del record store
            error: Eccezione da sollevare (default PersistenceError)
            after: Chiamate riuscite prima del fallimento
        """
        self._failures[method] = (error or PersistenceError(f"{method} failed"), after)

    def _track(self, method: str):
        self.calls[method] = self.calls.get(method, 0) + 1
        failure = self._failures.get(method)
        if failure is not None:
            error, after = failure
            if self.calls[method] > after:
                raise error

    def _insert(self, record):
        model = type(record)
        self._ids[model] += 1
        record.id = self._ids[model]
        self.tables[model].append(record)
        return record

    @staticmethod
    def _stamp(record):
        now = datetime.utcnow()
        record.created_at = now
        if hasattr(record, "updated_at"):
            record.updated_at = now
        return record

    async def ping(self) -> None:
        self._track("ping")

    # --- bulk scan records ---------------------------------------------------

    async def create_bulk_scan_record(self, file_path: str) -> BulkScanRecord:
        self._track("create_bulk_scan_record")
        record = BulkScanRecord(
            file_name=file_path.replace("\\", "/").rsplit("/", 1)[-1],
            file_path=file_path,
            status=Status.PENDING
        )
        return self._insert(self._stamp(record))

    async def get_bulk_scan_record(self, record_id: int) -> Optional[BulkScanRecord]:
        self._track("get_bulk_scan_record")
        return next((r for r in self.tables[BulkScanRecord] if r.id == record_id), None)

    async def get_bulk_scan_record_by_file_name(self, file_name: str) -> Optional[BulkScanRecord]:
        self._track("get_bulk_scan_record_by_file_name")
        matches = [r for r in self.tables[BulkScanRecord] if r.file_name == file_name]
        return matches[-1] if matches else None

    async def list_bulk_scan_records(self) -> List[BulkScanRecord]:
        self._track("list_bulk_scan_records")
        return list(self.tables[BulkScanRecord])

    # --- scans -----------------------------------------------------------------

    async def bulk_create_scans(self, scans: Sequence[Scan]) -> None:
        self._track("bulk_create_scans")
        existing = {(s.bulk_scan_record_id, s.location) for s in self.tables[Scan]}
        seen = set()
        for scan in scans:
            key = (scan.bulk_scan_record_id, scan.location)
            if key in existing or key in seen:
                raise PersistenceError(f"duplicate scan for location={scan.location}")
            seen.add(key)
        # Batch atomico: tutto o niente
        for scan in scans:
            self._insert(scan)
        self.bulk_insert_sizes.append(len(scans))

    async def get_scan(self, bulk_scan_record_id: int, location: str) -> Optional[Scan]:
        self._track("get_scan")
        return next(
            (s for s in self.tables[Scan]
             if s.bulk_scan_record_id == bulk_scan_record_id and s.location == location),
            None
        )

    def scans_for(self, bulk_scan_record_id: int) -> List[Scan]:
        return [s for s in self.tables[Scan] if s.bulk_scan_record_id == bulk_scan_record_id]

    # --- report records ----------------------------------------------------------

    async def create_report_record(self, bulk_scan_record_id: int, reference_file_path: str) -> ReportRecord:
        self._track("create_report_record")
        record = ReportRecord(
            bulk_scan_record_id=bulk_scan_record_id,
            reference_file_name=reference_file_path.replace("\\", "/").rsplit("/", 1)[-1],
            reference_file_path=reference_file_path,
            status=Status.PENDING
        )
        return self._insert(self._stamp(record))

    async def get_report_record(self, record_id: int) -> Optional[ReportRecord]:
        self._track("get_report_record")
        return next((r for r in self.tables[ReportRecord] if r.id == record_id), None)

    async def list_report_records(self) -> List[ReportRecord]:
        self._track("list_report_records")
        return list(self.tables[ReportRecord])

    # --- comparison data ---------------------------------------------------------

    async def create_comparison_data(self, row: ComparisonData) -> None:
        self._track("create_comparison_data")
        self._insert(row)

    async def get_comparison_data_page(self, report_record_id: int, limit: int, offset: int) -> List[ComparisonData]:
        self._track("get_comparison_data_page")
        rows = sorted(
            (r for r in self.tables[ComparisonData] if r.report_record_id == report_record_id),
            key=lambda r: r.id
        )
        return rows[offset:offset + limit]

    def comparison_rows_for(self, report_record_id: int) -> List[ComparisonData]:
        return [r for r in self.tables[ComparisonData] if r.report_record_id == report_record_id]

    # --- export report records ---------------------------------------------------

    async def create_export_report_record(
        self, report_record_id: int, file_path: str, report_type: ExportReportType
    ) -> ExportReportRecord:
        self._track("create_export_report_record")
        record = ExportReportRecord(
            report_record_id=report_record_id,
            report_type=ExportReportType(report_type),
            file_name=file_path.replace("\\", "/").rsplit("/", 1)[-1],
            file_path=file_path,
            status=Status.PENDING
        )
        return self._insert(self._stamp(record))

    async def get_export_report_record(self, record_id: int) -> Optional[ExportReportRecord]:
        self._track("get_export_report_record")
        return next((r for r in self.tables[ExportReportRecord] if r.id == record_id), None)

    async def get_active_export_report_record(
        self, report_record_id: int, report_type: ExportReportType
    ) -> Optional[ExportReportRecord]:
        self._track("get_active_export_report_record")
        matches = [
            r for r in self.tables[ExportReportRecord]
            if r.report_record_id == report_record_id
            and r.report_type == ExportReportType(report_type)
            and r.status != Status.FAILED
        ]
        return matches[-1] if matches else None

    async def list_export_report_records(self, report_record_id: int) -> List[ExportReportRecord]:
        self._track("list_export_report_records")
        return [r for r in self.tables[ExportReportRecord] if r.report_record_id == report_record_id]

    # --- status ----------------------------------------------------------------------

    async def transition_status(self, model: Type, record_id: int, expected: Status, new: Status) -> bool:
        self._track("transition_status")
        record = next((r for r in self.tables[model] if r.id == record_id), None)
        if record is None or record.status != expected:
            return False
        record.status = new
        record.updated_at = datetime.utcnow()
        self.status_writes.append((model.__tablename__, record_id, Status(new)))
        return True


class EventCollector:
    """EventSink che memorizza gli eventi per le asserzioni."""

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def __call__(self, event: str, level: str = "info", **fields: Any) -> None:
        self.events.append({"event": event, "level": level, **fields})

    @property
    def names(self) -> List[str]:
        return [e["event"] for e in self.events]

    def of(self, name: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e["event"] == name]


class RecordingTaskRunner:
    """Task runner che registra le submit senza eseguire la pipeline."""

    def __init__(self):
        self.submitted: List[str] = []

    async def submit(self, coro, name: Optional[str] = None) -> None:
        self.submitted.append(name)
        coro.close()
