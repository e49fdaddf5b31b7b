"""
Logging strutturato per scan-processor.

Unifica logging colorato e structured logging con supporto JSON.
"""
import logging
import json
import uuid
import sys
import contextvars
from typing import Optional, Dict, Any
from datetime import datetime

import colorlog

# Context variables per tracciare richieste e record in elaborazione
_request_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar('request_context', default={})


def setup_colored_logging(service_name: str = "processor", level: str = "INFO"):
    """
    Configura logging colorato con colorlog.

    Args:
        service_name: Nome del servizio per identificare log
        level: Livello del root logger
    """
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)

    formatter = colorlog.ColoredFormatter(
        f'%(log_color)s[%(levelname)s]%(reset)s %(asctime)s %(cyan)s{service_name}%(reset)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        reset=True,
        log_colors={
            'DEBUG': 'white',
            'INFO': 'blue',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        },
        secondary_log_colors={},
        style='%'
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Rimuovi handler esistenti
    root_logger.handlers = []
    root_logger.addHandler(handler)

    # Riduci verbosità librerie
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)

    return root_logger


def set_request_context(correlation_id: Optional[str] = None, **fields):
    """
    Imposta contesto richiesta per logging strutturato.

    Args:
        correlation_id: ID correlazione (genera se None)
        **fields: Campi aggiuntivi (es. record_id, pipeline)
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    context = {k: v for k, v in fields.items() if v is not None}
    context["correlation_id"] = correlation_id
    _request_context.set(context)


def get_request_context() -> Dict[str, Any]:
    """Recupera contesto richiesta corrente."""
    return _request_context.get({})


def get_correlation_id() -> Optional[str]:
    """Recupera correlation ID dal contesto, se presente."""
    return get_request_context().get("correlation_id")


def log_with_context(level: str, message: str, correlation_id: Optional[str] = None, **extra):
    """
    Log con prefisso di contesto (correlation_id).

    Args:
        level: 'info', 'warning', 'error', 'debug'
        message: Messaggio da loggare
        correlation_id: ID correlazione (usa contesto se None)
        **extra: Argomenti passati al logger (es. exc_info)
    """
    if correlation_id is None:
        correlation_id = get_correlation_id()

    log_message = message
    if correlation_id:
        log_message = f"[correlation_id={correlation_id}] {log_message}"

    logger = logging.getLogger(__name__)
    log_func = getattr(logger, level.lower(), logger.info)
    log_func(log_message, **extra)


def log_json(level: str, message: str, correlation_id: Optional[str] = None, **fields):
    """
    Log strutturato in formato JSON line.

    Args:
        level: 'info', 'warning', 'error', 'debug'
        message: Messaggio / nome evento
        correlation_id: ID correlazione (usa contesto se None)
        **fields: Campi aggiuntivi serializzati nel JSON
    """
    ctx = get_request_context()

    log_data: Dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat(),
        "level": level.upper(),
        "message": message,
    }
    log_data.update(ctx)
    if correlation_id:
        log_data["correlation_id"] = correlation_id
    log_data.update({k: v for k, v in fields.items() if v is not None})

    logger = logging.getLogger(__name__)
    log_func = getattr(logger, level.lower(), logger.info)
    log_func(json.dumps(log_data, ensure_ascii=False, default=str))
