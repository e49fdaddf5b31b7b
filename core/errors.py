"""
Eccezioni del processor.

Tassonomia errori pipeline: I/O (``OSError`` nativo), formato file,
consistenza dati, persistenza. Le eccezioni lato richiesta servono ai router
per scegliere lo status HTTP.
"""


class ProcessorError(Exception):
    """Base per tutte le eccezioni del processor."""


class FileFormatError(ProcessorError, ValueError):
    """Token JSON, elemento scan, header o riga CSV malformati."""


class DataConsistencyError(ProcessorError):
    """Dati persistiti incoerenti con il file di input."""


class ScanNotFoundError(DataConsistencyError):
    """Nessuna scan per (bulk_scan_record_id, location)."""

    def __init__(self, bulk_scan_record_id: int, location: str):
        self.bulk_scan_record_id = bulk_scan_record_id
        self.location = location
        super().__init__(
            f"scan not found for bulk scan record id={bulk_scan_record_id} and location={location}"
        )


class ComparisonCaseNotSupported(DataConsistencyError):
    """Combinazione scan / barcode atteso fuori dalla tabella di classificazione."""


class PersistenceError(ProcessorError):
    """Errore del record store (create / update / bulk-create / query)."""


class InvalidStatusTransition(ProcessorError, ValueError):
    """Transizione di stato non ammessa dal lifecycle."""


class RecordNotFoundError(ProcessorError, LookupError):
    """Record richiesto inesistente."""


class RecordNotReadyError(ProcessorError):
    """Record esistente ma non ancora in stato completed."""


class UnsupportedReportType(ProcessorError, ValueError):
    """Tipo di export dichiarato ma non implementato (o sconosciuto)."""
