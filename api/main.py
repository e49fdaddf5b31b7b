"""
Main FastAPI application per scan-processor.

Espone upload dei file scan, report di confronto ed export; le pipeline
girano come task in background avviati dai router.
"""
import logging
from datetime import datetime

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_settings, get_store, get_task_runner
from api.routers import exports, reports, scans
from core.config import get_config, validate_config
from core.database import create_tables
from core.events import json_log_event, set_default_event_sink
from core.logger import set_request_context, setup_colored_logging

# Configurazione logging colorato
setup_colored_logging("processor", level=get_config().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Scan Processor", version=get_config().processor_version)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(scans.router)
app.include_router(reports.router)
app.include_router(exports.router)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    """Correlation ID per richiesta: ereditato anche dai task in background avviati dal router."""
    set_request_context(request.headers.get("X-Correlation-ID"), path=request.url.path)
    response = await call_next(request)
    return response


@app.on_event("startup")
async def startup_event():
    """Valida configurazione e crea tabelle database al startup"""
    config = get_config()
    validate_config()

    if config.log_json:
        set_default_event_sink(json_log_event)
        logger.info("Pipeline events written as JSON lines")

    await create_tables()
    logger.info("Database tables created successfully")

    logger.info(
        f"{config.processor_name} {config.processor_version} started "
        f"(scan_batch_size={config.scan_batch_size}, export_page_size={config.export_page_size})"
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Attende le pipeline ancora in corso"""
    runner = get_task_runner()
    if runner.pending:
        logger.info(f"Waiting for {runner.pending} running pipelines before shutdown")
    await runner.wait_idle()


@app.get("/health")
async def health_check(store=Depends(get_store), config=Depends(get_settings)):
    """Health check del servizio"""
    db_status = "connected"
    try:
        await store.ping()
    except Exception as db_error:
        db_status = f"error: {str(db_error)}"

    return {
        "status": "healthy" if db_status == "connected" else "unhealthy",
        "service": "scan-processor",
        "version": config.processor_version,
        "timestamp": str(datetime.utcnow()),
        "database": db_status,
        "endpoints": {
            "upload_bulk_scan_file": "/upload-bulk-scan-file",
            "bulk_scan_records": "/bulk-scan-records",
            "inventory_comparison_reports": "/inventory-comparison-reports",
            "export_report_records": "/export-report-records",
        }
    }
