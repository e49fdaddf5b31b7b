"""
Routers per API scan-processor.

Moduli:
- scans: Upload ed elenco bulk scan (POST /upload-bulk-scan-file, GET /bulk-scan-records)
- reports: Report di confronto (/inventory-comparison-reports/*)
- exports: Export e download report (/export-report-records/*)
"""
from . import scans, reports, exports

__all__ = ["scans", "reports", "exports"]
