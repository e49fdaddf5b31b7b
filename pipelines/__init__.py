"""
Pipeline asincrone di scan-processor.

Moduli:
- scan_ingest: ingestione in streaming dei file scan JSON (batch insert)
- comparison: confronto CSV di riferimento vs scan persistite
- export: export paginato dei dati di confronto in un file JSON
"""
