"""
Emissione eventi strutturati delle pipeline.

Le pipeline non chiamano direttamente il logging: ricevono un ``EventSink``
(argomento esplicito oppure context variable) e vi inviano eventi con campi.
Il sink di default scrive sul logging backend.
"""
import contextvars
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from core.logger import log_json, log_with_context

logger = logging.getLogger(__name__)

# Firma: sink(event, level="info", **fields)
EventSink = Callable[..., None]


def log_event(event: str, level: str = "info", **fields: Any) -> None:
    """Sink di default: una riga di testo con i campi evento."""
    details = " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
    log_with_context(level, f"[EVENT] {event} {details}".rstrip())


def json_log_event(event: str, level: str = "info", **fields: Any) -> None:
    """Sink JSON line (produzione)."""
    log_json(level, event, event=event, **fields)


_event_sink: contextvars.ContextVar[Optional[EventSink]] = contextvars.ContextVar('event_sink', default=None)

# Sink usato quando né argomento né contesto ne forniscono uno
_default_sink: EventSink = log_event


def get_event_sink(sink: Optional[EventSink] = None) -> EventSink:
    """Ritorna il sink esplicito se fornito, altrimenti quello del contesto o il default."""
    if sink is not None:
        return sink
    return _event_sink.get() or _default_sink


def set_default_event_sink(sink: EventSink) -> None:
    """Imposta il sink di processo (es. JSON line all'avvio dell'app)."""
    global _default_sink
    _default_sink = sink


def set_event_sink(sink: EventSink) -> None:
    """Imposta il sink per il contesto corrente (e i task creati dopo)."""
    _event_sink.set(sink)


@contextmanager
def use_event_sink(sink: EventSink) -> Iterator[EventSink]:
    """Imposta temporaneamente un sink, ripristinando il precedente all'uscita."""
    token = _event_sink.set(sink)
    try:
        yield sink
    finally:
        _event_sink.reset(token)


def safe_emit(sink: EventSink, event: str, level: str = "info", **fields: Any) -> None:
    """Invia un evento senza propagare errori del sink alla pipeline."""
    try:
        sink(event, level=level, **fields)
    except Exception as e:
        logger.warning(f"[EVENTS] Sink error for event {event}: {e}")
