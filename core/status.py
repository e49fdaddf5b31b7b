"""
Lifecycle di stato condiviso dalle tre pipeline.

Pending → Processing → (Completed | Failed). Ogni transizione è un unico
compare-and-set sul record store: ``run_tracked`` è l'unico punto che scrive
lo stato, le pipeline forniscono solo il lavoro da eseguire.
"""
import enum
import logging
from typing import Any, Awaitable, Callable, Optional

from core.errors import InvalidStatusTransition
from core.events import EventSink, get_event_sink, safe_emit

logger = logging.getLogger(__name__)


class Status(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


ALLOWED_TRANSITIONS = {
    Status.PENDING: frozenset({Status.PROCESSING}),
    Status.PROCESSING: frozenset({Status.COMPLETED, Status.FAILED}),
    Status.COMPLETED: frozenset(),
    Status.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({Status.COMPLETED, Status.FAILED})


def check_transition(current: Status, new: Status) -> None:
    """Solleva InvalidStatusTransition se current → new non è ammessa."""
    if new not in ALLOWED_TRANSITIONS[Status(current)]:
        raise InvalidStatusTransition(f"status transition {Status(current).value} -> {Status(new).value} not allowed")


async def _write_status(store, record, expected: Status, new: Status, sink: EventSink) -> Optional[bool]:
    """
    Esegue il compare-and-set di stato.

    Returns:
        True se applicato, False se il record non era in ``expected``,
        None se la scrittura è fallita (errore loggato, non propagato).
    """
    check_transition(expected, new)
    model = type(record)
    try:
        applied = await store.transition_status(model, record.id, expected, new)
    except Exception as e:
        logger.error(
            f"[STATUS] Failed to update {model.__tablename__} id={record.id} to status={new.value}: {e}",
            exc_info=True
        )
        safe_emit(sink, "status_write_failed", level="error",
                  record_type=model.__tablename__, record_id=record.id, status=new.value, error=str(e))
        return None

    if applied:
        record.status = new
    return applied


async def run_tracked(
    store,
    record,
    work: Callable[[], Awaitable[Any]],
    pipeline: str,
    emit: Optional[EventSink] = None
) -> Optional[Status]:
    """
    Esegue ``work`` dentro il lifecycle di stato del record.

    Args:
        store: Record store con ``transition_status``
        record: Record ORM posseduto dalla pipeline (BulkScanRecord, ReportRecord, ExportReportRecord)
        work: Coroutine function senza argomenti con il lavoro della pipeline
        pipeline: Nome pipeline per gli eventi
        emit: Sink eventi (default: sink del contesto)

    Returns:
        Stato finale raggiunto dal run, oppure None se il record non era
        pending e il run è stato saltato.
    """
    sink = get_event_sink(emit)
    record_type = type(record).__tablename__

    claimed = await _write_status(store, record, Status.PENDING, Status.PROCESSING, sink)
    if claimed is False:
        safe_emit(sink, "pipeline_skipped", level="warning",
                  pipeline=pipeline, record_type=record_type, record_id=record.id,
                  reason="record is not pending")
        return None

    safe_emit(sink, "pipeline_started", pipeline=pipeline, record_type=record_type, record_id=record.id)

    try:
        await work()
    except Exception as e:
        safe_emit(sink, "pipeline_failed", level="error",
                  pipeline=pipeline, record_type=record_type, record_id=record.id,
                  error_type=type(e).__name__, error=str(e))
        final = Status.FAILED
    else:
        final = Status.COMPLETED

    applied = await _write_status(store, record, Status.PROCESSING, final, sink)
    if applied is False:
        logger.warning(
            f"[STATUS] {record_type} id={record.id} left processing state before {final.value} was written"
        )

    safe_emit(sink, "pipeline_finished", pipeline=pipeline, record_type=record_type,
              record_id=record.id, status=final.value)
    return final
