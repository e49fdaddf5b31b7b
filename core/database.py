"""
Database core module per scan-processor.

Modelli ORM, engine asincrono e creazione tabelle.
"""
import enum
import logging
from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, UniqueConstraint
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from core.config import get_config
from core.status import Status

logger = logging.getLogger(__name__)

# Base per i modelli
Base = declarative_base()


class ComparisonOutcome(str, enum.Enum):
    """Esiti della classificazione location (testo leggibile come valore)."""
    LOCATION_EMPTY_AS_EXPECTED = "The location was empty, as expected"
    LOCATION_EMPTY_BUT_NOT_EXPECTED = "The location was empty, but it should have been occupied"
    LOCATION_OCCUPIED_WITH_CORRECT_ITEMS = "The location was occupied by the expected items"
    LOCATION_OCCUPIED_WITH_WRONG_ITEMS = "The location was occupied by the wrong items"
    LOCATION_OCCUPIED_BUT_EXPECTED_EMPTY = "The location was occupied by an item, but should have been empty"
    LOCATION_OCCUPIED_BUT_BARCODE_NOT_IDENTIFIED = "The location was occupied, but no barcode could be identified"


class ExportReportType(str, enum.Enum):
    JSON = "json"
    CSV = "csv"  # dichiarato, non implementato


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _status_column():
    return Column(
        Enum(Status, native_enum=False, values_callable=_enum_values, length=20),
        nullable=False,
        default=Status.PENDING
    )


class BulkScanRecord(Base):
    """File JSON di scan caricato dal robot"""
    __tablename__ = 'bulk_scan_records'

    id = Column(Integer, primary_key=True)
    file_name = Column(String(255), nullable=False, index=True)
    file_path = Column(String(1024), nullable=False)
    status = _status_column()
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Scan(Base):
    """Risultato scan di una singola location"""
    __tablename__ = 'scans'
    __table_args__ = (
        UniqueConstraint('bulk_scan_record_id', 'location', name='uq_scans_record_location'),
    )

    id = Column(Integer, primary_key=True)
    bulk_scan_record_id = Column(
        Integer, ForeignKey('bulk_scan_records.id', ondelete='CASCADE'), nullable=False, index=True
    )
    location = Column(String(255), nullable=False)
    scanned = Column(Boolean, nullable=False, default=False)
    occupied = Column(Boolean, nullable=False, default=False)
    barcodes = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)


class ReportRecord(Base):
    """Confronto tra un bulk scan e un CSV di riferimento"""
    __tablename__ = 'report_records'

    id = Column(Integer, primary_key=True)
    bulk_scan_record_id = Column(
        Integer, ForeignKey('bulk_scan_records.id', ondelete='CASCADE'), nullable=False, index=True
    )
    reference_file_name = Column(String(255), nullable=False)
    reference_file_path = Column(String(1024), nullable=False)
    status = _status_column()
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ComparisonData(Base):
    """Riga di confronto per una location (ordine = ordine righe CSV)"""
    __tablename__ = 'comparison_data'

    id = Column(Integer, primary_key=True)
    report_record_id = Column(
        Integer, ForeignKey('report_records.id', ondelete='CASCADE'), nullable=False, index=True
    )
    location = Column(String(255), nullable=False)
    scanned = Column(Boolean, nullable=False, default=False)
    occupied = Column(Boolean, nullable=False, default=False)
    actual_barcodes = Column(JSON, nullable=False, default=list)
    expected_barcodes = Column(JSON, nullable=False, default=list)
    result = Column(
        Enum(ComparisonOutcome, native_enum=False, values_callable=_enum_values),
        nullable=False
    )


class ExportReportRecord(Base):
    """Export materializzato dei dati di confronto di un report"""
    __tablename__ = 'export_report_records'

    id = Column(Integer, primary_key=True)
    report_record_id = Column(
        Integer, ForeignKey('report_records.id', ondelete='CASCADE'), nullable=False, index=True
    )
    report_type = Column(
        Enum(ExportReportType, native_enum=False, values_callable=_enum_values, length=10),
        nullable=False
    )
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(1024), nullable=False)
    status = _status_column()
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Engine asincrono per PostgreSQL
engine = create_async_engine(get_config().async_database_url, echo=False)

# Session factory asincrona
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db():
    """Dependency per ottenere sessione database"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def create_tables():
    """Crea le tabelle dei modelli se non esistono."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Database tables created successfully: bulk_scan_records, scans, "
            "report_records, comparison_data, export_report_records"
        )
    except Exception as e:
        logger.error(f"Error creating database tables: {e}", exc_info=True)
        raise
