"""
Record store per scan-processor.

``RecordStore`` descrive le operazioni usate da pipeline e job manager
(create / get / get-by-filter / update stato / bulk-create per entità).
``SqlRecordStore`` le implementa con SQLAlchemy async: una sessione e un
commit per chiamata, così ogni riga è visibile appena scritta.
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional, Protocol, Sequence, Type

from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import (
    BulkScanRecord, ComparisonData, ExportReportRecord, ExportReportType, ReportRecord, Scan
)
from core.errors import PersistenceError
from core.status import Status

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    async def create_bulk_scan_record(self, file_path: str) -> BulkScanRecord: ...
    async def get_bulk_scan_record(self, record_id: int) -> Optional[BulkScanRecord]: ...
    async def get_bulk_scan_record_by_file_name(self, file_name: str) -> Optional[BulkScanRecord]: ...
    async def list_bulk_scan_records(self) -> List[BulkScanRecord]: ...
    async def bulk_create_scans(self, scans: Sequence[Scan]) -> None: ...
    async def get_scan(self, bulk_scan_record_id: int, location: str) -> Optional[Scan]: ...
    async def create_report_record(self, bulk_scan_record_id: int, reference_file_path: str) -> ReportRecord: ...
    async def get_report_record(self, record_id: int) -> Optional[ReportRecord]: ...
    async def list_report_records(self) -> List[ReportRecord]: ...
    async def create_comparison_data(self, row: ComparisonData) -> None: ...
    async def get_comparison_data_page(self, report_record_id: int, limit: int, offset: int) -> List[ComparisonData]: ...
    async def create_export_report_record(
        self, report_record_id: int, file_path: str, report_type: ExportReportType
    ) -> ExportReportRecord: ...
    async def get_export_report_record(self, record_id: int) -> Optional[ExportReportRecord]: ...
    async def get_active_export_report_record(
        self, report_record_id: int, report_type: ExportReportType
    ) -> Optional[ExportReportRecord]: ...
    async def list_export_report_records(self, report_record_id: int) -> List[ExportReportRecord]: ...
    async def transition_status(self, model: Type, record_id: int, expected: Status, new: Status) -> bool: ...
    async def ping(self) -> None: ...


class SqlRecordStore:
    """Implementazione RecordStore su SQLAlchemy AsyncSession."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str):
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"[RECORD_STORE] {operation} failed: {e}")
                raise PersistenceError(f"failed to {operation}, error: {e}") from e

    async def _add(self, session: AsyncSession, record):
        session.add(record)
        await session.commit()
        return record

    async def ping(self) -> None:
        """Verifica connessione database (SELECT 1)."""
        async with self._session("ping database") as session:
            await session.execute(text("SELECT 1"))

    # --- bulk scan records -------------------------------------------------

    async def create_bulk_scan_record(self, file_path: str) -> BulkScanRecord:
        record = BulkScanRecord(
            file_name=os.path.basename(file_path),
            file_path=file_path,
            status=Status.PENDING
        )
        async with self._session("create bulk scan record") as session:
            return await self._add(session, record)

    async def get_bulk_scan_record(self, record_id: int) -> Optional[BulkScanRecord]:
        async with self._session(f"get bulk scan record id={record_id}") as session:
            return await session.get(BulkScanRecord, record_id)

    async def get_bulk_scan_record_by_file_name(self, file_name: str) -> Optional[BulkScanRecord]:
        stmt = (
            select(BulkScanRecord)
            .where(BulkScanRecord.file_name == file_name)
            .order_by(BulkScanRecord.id.desc())
            .limit(1)
        )
        async with self._session(f"get bulk scan record file_name={file_name}") as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_bulk_scan_records(self) -> List[BulkScanRecord]:
        async with self._session("list bulk scan records") as session:
            result = await session.execute(select(BulkScanRecord).order_by(BulkScanRecord.id))
            return list(result.scalars().all())

    # --- scans ---------------------------------------------------------------

    async def bulk_create_scans(self, scans: Sequence[Scan]) -> None:
        async with self._session(f"create {len(scans)} scans") as session:
            session.add_all(list(scans))
            await session.commit()

    async def get_scan(self, bulk_scan_record_id: int, location: str) -> Optional[Scan]:
        stmt = select(Scan).where(
            Scan.bulk_scan_record_id == bulk_scan_record_id,
            Scan.location == location
        )
        async with self._session(f"get scan location={location}") as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    # --- report records ------------------------------------------------------

    async def create_report_record(self, bulk_scan_record_id: int, reference_file_path: str) -> ReportRecord:
        record = ReportRecord(
            bulk_scan_record_id=bulk_scan_record_id,
            reference_file_name=os.path.basename(reference_file_path),
            reference_file_path=reference_file_path,
            status=Status.PENDING
        )
        async with self._session("create report record") as session:
            return await self._add(session, record)

    async def get_report_record(self, record_id: int) -> Optional[ReportRecord]:
        async with self._session(f"get report record id={record_id}") as session:
            return await session.get(ReportRecord, record_id)

    async def list_report_records(self) -> List[ReportRecord]:
        async with self._session("list report records") as session:
            result = await session.execute(select(ReportRecord).order_by(ReportRecord.id))
            return list(result.scalars().all())

    # --- comparison data -----------------------------------------------------

    async def create_comparison_data(self, row: ComparisonData) -> None:
        async with self._session(f"create comparison data location={row.location}") as session:
            await self._add(session, row)

    async def get_comparison_data_page(self, report_record_id: int, limit: int, offset: int) -> List[ComparisonData]:
        stmt = (
            select(ComparisonData)
            .where(ComparisonData.report_record_id == report_record_id)
            .order_by(ComparisonData.id)
            .limit(limit)
            .offset(offset)
        )
        async with self._session("get paginated comparison data") as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # --- export report records ---------------------------------------------

    async def create_export_report_record(
        self, report_record_id: int, file_path: str, report_type: ExportReportType
    ) -> ExportReportRecord:
        record = ExportReportRecord(
            report_record_id=report_record_id,
            report_type=ExportReportType(report_type),
            file_name=os.path.basename(file_path),
            file_path=file_path,
            status=Status.PENDING
        )
        async with self._session("create export report record") as session:
            return await self._add(session, record)

    async def get_export_report_record(self, record_id: int) -> Optional[ExportReportRecord]:
        async with self._session(f"get export report record id={record_id}") as session:
            return await session.get(ExportReportRecord, record_id)

    async def get_active_export_report_record(
        self, report_record_id: int, report_type: ExportReportType
    ) -> Optional[ExportReportRecord]:
        stmt = (
            select(ExportReportRecord)
            .where(
                ExportReportRecord.report_record_id == report_record_id,
                ExportReportRecord.report_type == ExportReportType(report_type),
                ExportReportRecord.status != Status.FAILED
            )
            .order_by(ExportReportRecord.id.desc())
            .limit(1)
        )
        async with self._session("get export report record by type") as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_export_report_records(self, report_record_id: int) -> List[ExportReportRecord]:
        stmt = (
            select(ExportReportRecord)
            .where(ExportReportRecord.report_record_id == report_record_id)
            .order_by(ExportReportRecord.id)
        )
        async with self._session(f"list export report records report_record_id={report_record_id}") as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # --- status ----------------------------------------------------------------

    async def transition_status(self, model: Type, record_id: int, expected: Status, new: Status) -> bool:
        """
        Compare-and-set dello stato.

        Returns:
            True se il record era in ``expected`` ed è stato aggiornato.
        """
        stmt = (
            update(model)
            .where(model.id == record_id, model.status == expected)
            .values(status=new)
            .execution_options(synchronize_session=False)
        )
        async with self._session(f"update {model.__tablename__} id={record_id} to {new.value}") as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1
