"""
Serializzazione record ORM → dict JSON per le risposte API.
"""
from typing import Any, Dict, Optional

from core.database import (
    BulkScanRecord, ComparisonData, ExportReportRecord, ReportRecord
)


def _enum_value(value) -> Optional[str]:
    return getattr(value, "value", value)


def _timestamp(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def bulk_scan_record_to_dict(record: BulkScanRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "fileName": record.file_name,
        "status": _enum_value(record.status),
        "createdAt": _timestamp(record.created_at),
        "updatedAt": _timestamp(record.updated_at),
    }


def report_record_to_dict(record: ReportRecord, bulk_scan_file_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": record.id,
        "bulkScanRecordId": record.bulk_scan_record_id,
        "bulkScanFileName": bulk_scan_file_name,
        "referenceFileName": record.reference_file_name,
        "status": _enum_value(record.status),
        "createdAt": _timestamp(record.created_at),
        "updatedAt": _timestamp(record.updated_at),
    }


def comparison_data_to_dict(row: ComparisonData) -> Dict[str, Any]:
    return {
        "location": row.location,
        "scanned": row.scanned,
        "occupied": row.occupied,
        "actualBarcodes": list(row.actual_barcodes or []),
        "expectedBarcodes": list(row.expected_barcodes or []),
        "result": _enum_value(row.result),
    }


def export_report_record_to_dict(record: ExportReportRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "reportRecordId": record.report_record_id,
        "reportType": _enum_value(record.report_type),
        "fileName": record.file_name,
        "status": _enum_value(record.status),
        "createdAt": _timestamp(record.created_at),
        "updatedAt": _timestamp(record.updated_at),
    }
