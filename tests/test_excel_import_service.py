"""Tests for teamtime.services.excel_import_service.

Workbooks are real .xlsx files written into tmp_path with openpyxl; the
server side is the mocked session from conftest.
"""

import os

import pytest
import requests

from teamtime.core.exceptions import ImportTimeoutError, TransportError, ValidationError
from teamtime.models.imports import IMPORT_COMPLETED, IMPORT_ERROR, ImportOptions
from teamtime.services import excel_import_service as eis

HEADERS = ["Nombre", "Cliente", "Fecha inicio"]


class TestInspectWorkbook:
    def test_reports_headers_and_rows(self, xlsx_file):
        path = xlsx_file(HEADERS, [["Proyecto A", "ACME", "2024-01-10"], ["Proyecto B", "Beta", None]])

        summary = eis.inspect_workbook(path)

        assert summary.file_name == "projects.xlsx"
        assert summary.sheet_name == "Proyectos"
        assert summary.headers == ("Nombre", "Cliente", "Fecha inicio")
        assert summary.data_rows == 2
        assert summary.is_header_only is False

    def test_header_only_workbook(self, xlsx_file):
        summary = eis.inspect_workbook(xlsx_file(HEADERS))

        assert summary.data_rows == 0
        assert summary.is_header_only is True

    def test_rejects_non_excel_extension(self, tmp_path, http):
        path = tmp_path / "projects.csv"
        path.write_text("Nombre\nA\n", encoding="utf-8")

        with pytest.raises(ValidationError, match="not an Excel file"):
            eis.inspect_workbook(str(path))
        http.request.assert_not_called()

    def test_rejects_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="File not found"):
            eis.inspect_workbook(str(tmp_path / "missing.xlsx"))

    def test_rejects_corrupt_workbook(self, tmp_path):
        path = tmp_path / "broken.xlsx"
        path.write_bytes(b"this is not a zip file")

        with pytest.raises(ValidationError, match="not a readable Excel workbook"):
            eis.inspect_workbook(str(path))

    def test_legacy_xls_left_to_server(self, tmp_path):
        path = tmp_path / "old.xls"
        path.write_bytes(b"\xd0\xcf\x11\xe0")

        summary = eis.inspect_workbook(str(path))

        assert summary.file_name == "old.xls"
        assert summary.data_rows is None


class TestValidateAndPreview:
    def test_validate_uploads_file_with_area(self, http, ok, xlsx_file):
        http.request.return_value = ok({"isValid": True, "errors": []})

        report = eis.validate_excel_structure(xlsx_file(HEADERS, [["A", "B", "C"]]), 3)

        assert report["isValid"] is True
        args, kwargs = http.request.call_args
        assert args[1].endswith("/excel-import/validate")
        assert kwargs["data"] == {"sourceAreaId": "3"}

    def test_preview_never_exceeds_max_rows(self, http, ok, xlsx_file):
        rows = [{"name": f"Proyecto {i}"} for i in range(25)]
        http.request.return_value = ok({"previewRows": rows, "totalRows": 25})

        preview = eis.preview_excel_data(xlsx_file(HEADERS, [["A", "B", "C"]]), 3, max_rows=10)

        assert len(preview["previewRows"]) == 10
        assert preview["previewRows"][0] == {"name": "Proyecto 0"}
        assert preview["totalRows"] == 25
        assert http.request.call_args.kwargs["data"]["maxRows"] == "10"

    def test_preview_rows_key_capped_and_not_duplicated(self, http, ok, xlsx_file):
        http.request.return_value = ok({"rows": [{"name": f"P{i}"} for i in range(8)]})

        preview = eis.preview_excel_data(xlsx_file(HEADERS, [["A", "B", "C"]]), 3, max_rows=3)

        assert len(preview["previewRows"]) == 3
        assert "rows" not in preview

    def test_preview_rejects_non_positive_max_rows(self, http, xlsx_file):
        with pytest.raises(ValidationError, match="max_rows"):
            eis.preview_excel_data(xlsx_file(HEADERS), 3, max_rows=0)
        http.request.assert_not_called()


class TestImport:
    def test_import_sends_options_as_form_fields(self, http, ok, xlsx_file):
        http.request.return_value = ok({"importId": 55, "imported": 2, "errors": 0})

        result = eis.import_excel_to_staging(
            xlsx_file(HEADERS, [["A", "B", "C"], ["D", "E", "F"]]),
            3,
            ImportOptions(batch_size=100, start_row=2, skip_validation=True),
        )

        assert result.import_id == 55
        assert result.imported == 2
        kwargs = http.request.call_args.kwargs
        assert kwargs["data"] == {
            "sourceAreaId": "3",
            "skipValidation": "true",
            "batchSize": "100",
            "startRow": "2",
        }
        assert kwargs["timeout"] == 300

    def test_invalid_options_rejected_before_upload(self, http, xlsx_file):
        with pytest.raises(ValidationError, match="batch_size") as info:
            eis.import_excel_to_staging(xlsx_file(HEADERS), 3, ImportOptions(batch_size=0))
        http.request.assert_not_called()
        assert info.value.details == {"batchSize": "must be >= 1"}

    def test_file_removed_after_selection_rejected_before_upload(self, http, xlsx_file):
        path = xlsx_file(HEADERS, [["A", "B", "C"]])
        os.remove(path)

        with pytest.raises(ValidationError, match="File not found"):
            eis.import_excel_to_staging(path, 3)
        http.request.assert_not_called()

    def test_same_file_imported_twice_creates_two_batches(self, http, ok, xlsx_file):
        """Imports are not idempotent: each call is a new upload and a new batch."""
        path = xlsx_file(HEADERS, [["A", "B", "C"]])
        http.request.side_effect = [
            ok({"importId": 1, "imported": 1, "errors": 0}),
            ok({"importId": 2, "imported": 1, "errors": 0}),
        ]

        first = eis.import_excel_to_staging(path, 3)
        second = eis.import_excel_to_staging(path, 3)

        assert http.request.call_count == 2
        assert first.import_id != second.import_id
        assert (first.import_id, second.import_id) == (1, 2)

    def test_header_only_file_completes_with_zero_records(self, http, ok, xlsx_file):
        http.request.return_value = ok({
            "importLog": {"id": 9, "status": "completed", "recordsProcessed": 0, "recordsImported": 0},
        })

        result = eis.import_excel_to_staging(xlsx_file(HEADERS), 3)

        assert result.import_id == 9
        assert result.status == IMPORT_COMPLETED
        assert result.log.records_processed == 0

    def test_failed_import_reports_error_status(self, http, ok, xlsx_file):
        http.request.return_value = ok({
            "importLog": {
                "id": 10,
                "status": "ERROR",
                "errors": [{"row": 2, "message": "Fecha inválida"}],
            },
        })

        result = eis.import_excel_to_staging(xlsx_file(HEADERS, [["A", "B", "x"]]), 3)

        assert result.log.status == IMPORT_ERROR
        assert result.log.is_terminal is True
        assert result.log.records_failed == 1

    def test_upload_transport_failure_raises_once(self, http, xlsx_file):
        http.request.side_effect = requests.Timeout()

        with pytest.raises(TransportError) as info:
            eis.import_excel_to_staging(xlsx_file(HEADERS, [["A", "B", "C"]]), 3)

        assert "timed out" in str(info.value)
        assert http.request.call_count == 1


class TestProgressPolling:
    def test_polls_until_terminal(self, http, ok):
        http.request.side_effect = [
            ok({"id": 5, "status": "PROCESSING", "progress": 10}),
            ok({"id": 5, "status": "PROCESSING", "progress": 60}),
            ok({"id": 5, "status": "COMPLETED", "progress": 100, "recordsProcessed": 40}),
        ]
        seen, sleeps = [], []

        log = eis.wait_for_import(
            5, poll_interval=0.5, timeout=60, on_progress=seen.append, sleep=sleeps.append
        )

        assert log.status == IMPORT_COMPLETED
        assert log.records_processed == 40
        assert [entry.progress for entry in seen] == [10, 60, 100]
        assert sleeps == [0.5, 0.5]
        args, _ = http.request.call_args
        assert args[1].endswith("/excel-import/progress/5")

    def test_times_out_when_never_terminal(self, http, ok):
        http.request.return_value = ok({"id": 5, "status": "PROCESSING"})

        with pytest.raises(ImportTimeoutError) as info:
            eis.wait_for_import(5, poll_interval=0, timeout=0, sleep=lambda _: None)

        assert info.value.import_id == 5
        assert info.value.last_status == "PROCESSING"

    def test_progress_without_id_keeps_requested_id(self, http, ok):
        http.request.return_value = ok({"status": "PROCESSING", "progress": 5})

        log = eis.get_import_progress(77)

        assert log.id == 77


class TestHistoryAndTemplates:
    def test_history_parses_imports_and_pagination(self, http, ok):
        http.request.return_value = ok({
            "imports": [{"id": 1, "status": "COMPLETED", "fileName": "a.xlsx"}],
            "pagination": {"page": 1, "limit": 20, "total": 1, "pages": 1},
        })

        history = eis.get_import_history(area_id=3)

        assert history["imports"][0].file_name == "a.xlsx"
        assert history["pagination"]["total"] == 1
        assert http.request.call_args.kwargs["params"] == {"page": 1, "limit": 20, "sourceAreaId": 3}

    def test_history_degrades_to_empty_page(self, http):
        http.request.side_effect = requests.ConnectionError("down")

        history = eis.get_import_history()

        assert history["imports"] == []
        assert history["pagination"]["total"] == 0

    def test_statistics_send_iso_dates(self, http, ok):
        http.request.return_value = ok({"total": 3})

        stats = eis.get_import_statistics(3, date_from="01/02/2024", date_to="2024-02-29")

        assert stats == {"total": 3}
        assert http.request.call_args.kwargs["params"] == {
            "sourceAreaId": 3,
            "dateFrom": "2024-02-01",
            "dateTo": "2024-02-29",
        }

    def test_cancel_returns_envelope(self, http, ok):
        http.request.return_value = ok(None, message="Importación cancelada")

        envelope = eis.cancel_import(5)

        assert envelope["message"] == "Importación cancelada"
        args, _ = http.request.call_args
        assert args == ("POST", "http://testserver/api/excel-import/cancel/5")

    def test_template_written_to_destination(self, http, make_response, tmp_path):
        http.request.return_value = make_response(200, content=b"PK\x03\x04template")
        destination = tmp_path / "template.xlsx"

        saved = eis.download_excel_template(3, str(destination))

        assert saved == str(destination)
        assert destination.read_bytes() == b"PK\x03\x04template"
