"""
Test job manager: submit delle pipeline lato richiesta.
"""
import asyncio
import gc
import io
import json
import os

import pytest

from core import job_manager
from core.database import ExportReportType
from core.errors import RecordNotFoundError, RecordNotReadyError, UnsupportedReportType
from core.file_storage import FileTooLargeError
from core.job_manager import (
    bulk_scan_file_names, get_comparison_page, list_comparison_data, list_exports, parse_report_type,
    submit_bulk_scan, submit_export, submit_report
)
from core.status import Status
from tests.mocks import RecordingTaskRunner


def scan_file(*items):
    return io.BytesIO(json.dumps(list(items)).encode("utf-8"))


async def completed_report(store, runner, storage, config):
    """Bulk scan + report completati con due righe di confronto."""
    await submit_bulk_scan(
        store, runner, storage, "scans.json",
        scan_file({"name": "L1", "occupied": True, "detected_barcodes": ["B1"]},
                  {"name": "L2", "occupied": False}),
        config
    )
    return await submit_report(
        store, runner, storage, "scans.json", "ref.csv",
        io.BytesIO(b"location,item\nL1,B1\nL2,\n"), config
    )


class TestSubmitBulkScan:
    """Test upload file scan."""

    @pytest.mark.asyncio
    async def test_saves_file_and_runs_ingestion(self, store, runner, storage, config):
        record = await submit_bulk_scan(
            store, runner, storage, "scans.json", scan_file({"name": "L1", "occupied": True}), config
        )

        assert record.file_name == "scans.json"
        assert os.path.basename(record.file_path) == "scans.json"
        assert os.path.dirname(os.path.dirname(record.file_path)) == config.bulk_scan_dir
        assert os.path.exists(record.file_path)
        assert record.status == Status.COMPLETED
        assert runner.submitted == [f"scan_ingest-{record.id}"]
        assert len(store.scans_for(record.id)) == 1

    @pytest.mark.asyncio
    async def test_path_components_stripped(self, store, runner, storage, config):
        record = await submit_bulk_scan(store, runner, storage, "../../etc/scans.json", scan_file(), config)
        assert record.file_name == "scans.json"
        assert os.path.dirname(os.path.dirname(record.file_path)) == config.bulk_scan_dir

    @pytest.mark.asyncio
    async def test_too_large(self, store, runner, storage, config):
        small = config.model_copy(update={"max_upload_bytes": 10})

        with pytest.raises(FileTooLargeError):
            await submit_bulk_scan(
                store, runner, storage, "scans.json", scan_file({"name": "L1", "occupied": True}), small
            )

        assert "create_bulk_scan_record" not in store.calls
        assert os.listdir(config.bulk_scan_dir) == []

    @pytest.mark.asyncio
    async def test_same_name_upload_keeps_first_file(self, store, runner, storage, config):
        first = await submit_bulk_scan(
            store, runner, storage, "scans.json", scan_file({"name": "L1", "occupied": True}), config
        )
        second = await submit_bulk_scan(
            store, runner, storage, "scans.json", scan_file({"name": "L2", "occupied": False}), config
        )

        assert first.file_path != second.file_path
        assert first.file_name == second.file_name == "scans.json"
        with open(first.file_path, "r", encoding="utf-8") as f:
            assert json.load(f) == [{"name": "L1", "occupied": True}]
        assert [s.location for s in store.scans_for(first.id)] == ["L1"]
        assert [s.location for s in store.scans_for(second.id)] == ["L2"]


class TestSubmitReport:
    """Test creazione report di confronto."""

    @pytest.mark.asyncio
    async def test_runs_comparison(self, store, runner, storage, config):
        report = await completed_report(store, runner, storage, config)

        assert report.status == Status.COMPLETED
        assert report.reference_file_name == "ref.csv"
        assert os.path.basename(report.reference_file_path) == "ref.csv"
        assert os.path.dirname(os.path.dirname(report.reference_file_path)) == config.comparison_dir
        assert os.path.exists(report.reference_file_path)
        rows = await get_comparison_page(store, report.id, limit=10, offset=0)
        assert [r.location for r in rows] == ["L1", "L2"]

    @pytest.mark.asyncio
    async def test_unknown_bulk_scan(self, store, runner, storage, config):
        with pytest.raises(RecordNotFoundError):
            await submit_report(store, runner, storage, "nope.json", "ref.csv", io.BytesIO(b""), config)
        assert runner.submitted == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [Status.PENDING, Status.PROCESSING, Status.FAILED])
    async def test_bulk_scan_not_completed(self, store, runner, storage, config, status):
        bulk = await store.create_bulk_scan_record(os.path.join(config.bulk_scan_dir, "scans.json"))
        bulk.status = status

        with pytest.raises(RecordNotReadyError):
            await submit_report(store, runner, storage, "scans.json", "ref.csv", io.BytesIO(b""), config)
        assert "create_report_record" not in store.calls

    @pytest.mark.asyncio
    async def test_latest_bulk_scan_with_same_name_is_used(self, store, runner, storage, config):
        old = await store.create_bulk_scan_record(os.path.join(config.bulk_scan_dir, "scans.json"))
        old.status = Status.FAILED
        await submit_bulk_scan(store, runner, storage, "scans.json", scan_file({"name": "L1"}), config)

        report = await submit_report(
            store, runner, storage, "scans.json", "ref.csv", io.BytesIO(b"location,item\nL1,\n"), config
        )

        assert report.bulk_scan_record_id == 2
        assert report.status == Status.COMPLETED


class TestSubmitExport:
    """Test export idempotente."""

    @pytest.mark.parametrize("value", ["json", "JSON", " json ", ExportReportType.JSON])
    def test_parse_json(self, value):
        assert parse_report_type(value) == ExportReportType.JSON

    @pytest.mark.parametrize("value", ["csv", ExportReportType.CSV, "xml", ""])
    def test_parse_rejected(self, value):
        with pytest.raises(UnsupportedReportType):
            parse_report_type(value)

    @pytest.mark.asyncio
    async def test_creates_and_runs_export(self, store, runner, storage, config):
        report = await completed_report(store, runner, storage, config)

        record = await submit_export(store, runner, storage, report.id, "json", config)

        assert record.status == Status.COMPLETED
        assert record.file_path == os.path.join(config.export_dir, f"report_{report.id}.json")
        with open(record.file_path, "r", encoding="utf-8") as f:
            assert len(json.load(f)) == 2

    @pytest.mark.asyncio
    async def test_repeated_request_returns_same_record(self, store, runner, storage, config):
        report = await completed_report(store, runner, storage, config)

        first = await submit_export(store, runner, storage, report.id, "json", config)
        second = await submit_export(store, runner, storage, report.id, "json", config)

        assert second.id == first.id
        assert len(await list_exports(store, report.id)) == 1
        assert runner.submitted.count(f"export-{first.id}") == 1

    @pytest.mark.asyncio
    async def test_failed_export_allows_new_one(self, store, runner, storage, config):
        report = await completed_report(store, runner, storage, config)
        first = await submit_export(store, runner, storage, report.id, "json", config)
        first.status = Status.FAILED

        second = await submit_export(store, runner, storage, report.id, "json", config)

        assert second.id != first.id
        assert second.status == Status.COMPLETED
        assert len(await list_exports(store, report.id)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_create_one_record(self, store, storage, config):
        report = await store.create_report_record(1, "/data/ref.csv")
        report.status = Status.COMPLETED
        runner = RecordingTaskRunner()

        results = await asyncio.gather(*[
            submit_export(store, runner, storage, report.id, "json", config) for _ in range(5)
        ])

        assert len({r.id for r in results}) == 1
        assert runner.submitted == [f"export-{results[0].id}"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [Status.PENDING, Status.PROCESSING, Status.FAILED])
    async def test_report_not_completed(self, store, runner, storage, config, status):
        report = await store.create_report_record(1, "/data/ref.csv")
        report.status = status

        with pytest.raises(RecordNotReadyError):
            await submit_export(store, runner, storage, report.id, "json", config)

        assert "create_export_report_record" not in store.calls
        assert runner.submitted == []
        assert not os.path.exists(os.path.join(config.export_dir, f"report_{report.id}.json"))

    @pytest.mark.asyncio
    async def test_export_lock_released_after_request(self, store, runner, storage, config):
        report = await completed_report(store, runner, storage, config)

        await submit_export(store, runner, storage, report.id, "json", config)
        await submit_export(store, runner, storage, report.id, "json", config)
        gc.collect()

        assert len(job_manager._export_locks) == 0

    @pytest.mark.asyncio
    async def test_unknown_report(self, store, runner, storage, config):
        with pytest.raises(RecordNotFoundError):
            await submit_export(store, runner, storage, 99, "json", config)

    @pytest.mark.asyncio
    async def test_csv_rejected_before_lookup(self, store, runner, storage, config):
        with pytest.raises(UnsupportedReportType):
            await submit_export(store, runner, storage, 1, "csv", config)
        assert "get_report_record" not in store.calls


class TestLookups:
    """Test letture usate dai router."""

    @pytest.mark.asyncio
    async def test_list_comparison_data_reads_all_pages(self, store, runner, storage, config):
        report = await completed_report(store, runner, storage, config)

        rows = await list_comparison_data(store, report.id, page_size=1)

        assert [r.location for r in rows] == ["L1", "L2"]
        assert store.calls["get_comparison_data_page"] >= 3

    @pytest.mark.asyncio
    async def test_list_comparison_data_unknown_report(self, store):
        with pytest.raises(RecordNotFoundError):
            await list_comparison_data(store, 99)

    @pytest.mark.asyncio
    async def test_bulk_scan_file_names(self, store, runner, storage, config):
        report = await completed_report(store, runner, storage, config)

        names = await bulk_scan_file_names(store, [report, report])

        assert names == {report.bulk_scan_record_id: "scans.json"}
