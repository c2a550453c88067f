"""
Excel-Staging import client.

Uploads a spreadsheet into the staging area of one source area:
inspect locally → validate (advisory) → preview → import → poll progress.

Every upload is one multipart POST with no chunking; the import call uses
the long upload timeout. Nothing here retries: a failed upload must be
started again by the user.

Functions:
    - inspect_workbook:          Local extension/header check with openpyxl
    - validate_excel_structure:  Server structural check (no side effects)
    - preview_excel_data:        First rows as the server would map them
    - import_excel_to_staging:   The real import (not idempotent)
    - get_import_progress / wait_for_import
    - cancel_import / retry_import
    - get_import_history / get_import_details / get_import_statistics
    - download_excel_template / get_import_configuration
"""

from __future__ import annotations

import logging
import os
import time
from typing import Callable

from openpyxl import load_workbook

from teamtime.core.exceptions import ImportTimeoutError, ValidationError
from teamtime.integrations.api_gateway import api_gateway
from teamtime.models.base import Id, pick
from teamtime.models.imports import (
    ImportLog,
    ImportOptions,
    ImportResult,
    WorkbookSummary,
    check_excel_extension,
)
from teamtime.utils.helpers import date_param, read_or_default

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_ROWS = 10


# ═══════════════════════════════════════════════════════════════
# Local inspection
# ═══════════════════════════════════════════════════════════════


def _require_file(file_path: str) -> None:
    if not os.path.isfile(file_path):
        raise ValidationError(f"File not found: {file_path}", details={"file": "not found"})


def inspect_workbook(file_path: str) -> WorkbookSummary:
    """Check a selected file before anything is sent to the server.

    .xlsx files are opened read-only to report the header row and the
    number of non-empty data rows. Legacy .xls files cannot be read by
    openpyxl; they are accepted with data_rows=None and left to the server.

    Raises:
        ValidationError: Wrong extension, missing file or unreadable workbook.
    """
    file_name = os.path.basename(file_path)
    check_excel_extension(file_name)
    _require_file(file_path)

    if file_name.lower().endswith(".xls"):
        return WorkbookSummary(file_name=file_name)

    try:
        wb = load_workbook(file_path, read_only=True, data_only=True)
    except Exception as exc:
        raise ValidationError(
            f"'{file_name}' is not a readable Excel workbook",
            details={"file": str(exc)[:200]},
        ) from exc

    try:
        ws = wb.active
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None) or ()
        headers = tuple("" if v is None else str(v).strip() for v in header)
        while headers and not headers[-1]:
            headers = headers[:-1]
        data_rows = sum(
            1 for row in rows if any(v not in (None, "") for v in row)
        )
        return WorkbookSummary(
            file_name=file_name,
            sheet_name=ws.title,
            headers=headers,
            data_rows=data_rows,
        )
    finally:
        wb.close()


# ═══════════════════════════════════════════════════════════════
# Server calls
# ═══════════════════════════════════════════════════════════════


def validate_excel_structure(file_path: str, area_id: Id) -> dict:
    """Advisory structural check of a file against the area's mappings."""
    _require_file(file_path)
    result = api_gateway.upload(
        "/excel-import/validate", file_path, fields={"sourceAreaId": area_id}
    )
    return result.raise_for_error(resource="Area", resource_id=area_id).payload({})


def preview_excel_data(file_path: str, area_id: Id, max_rows: int = DEFAULT_PREVIEW_ROWS) -> dict:
    """Return how the first rows would be mapped.

    The returned `previewRows` never hold more than `max_rows` rows, even
    if the server sends more.
    """
    if max_rows < 1:
        raise ValidationError(
            "max_rows must be a positive integer", details={"maxRows": "must be >= 1"}
        )
    _require_file(file_path)
    result = api_gateway.upload(
        "/excel-import/preview", file_path,
        fields={"sourceAreaId": area_id, "maxRows": max_rows},
    )
    preview = dict(result.raise_for_error(resource="Area", resource_id=area_id).payload({}))
    rows = pick(preview, "previewRows", "rows", default=[])
    preview.pop("rows", None)
    preview["previewRows"] = list(rows)[:max_rows]
    return preview


def import_excel_to_staging(
    file_path: str,
    area_id: Id,
    options: ImportOptions | None = None,
) -> ImportResult:
    """Upload a file into staging for `area_id`.

    Not idempotent: two calls create two import batches.
    """
    options = options or ImportOptions()
    options.validate()
    _require_file(file_path)
    fields = {"sourceAreaId": area_id, **options.to_form_fields()}
    logger.info(
        "Starting Excel import file=%s area=%s", os.path.basename(file_path), area_id,
        extra={"area_id": area_id},
    )
    result = api_gateway.upload(
        "/excel-import/staging", file_path, fields=fields,
        timeout=api_gateway.upload_timeout,
    )
    imported = ImportResult.from_dict(
        result.raise_for_error(resource="Area", resource_id=area_id).payload({})
    )
    logger.info(
        "Excel import accepted id=%s imported=%s errors=%s",
        imported.import_id, imported.imported, imported.errors,
        extra={"area_id": area_id, "import_id": imported.import_id},
    )
    return imported


def get_import_progress(import_id: Id) -> ImportLog:
    result = api_gateway.get(f"/excel-import/progress/{import_id}")
    payload = result.raise_for_error(resource="ImportLog", resource_id=import_id).payload({})
    log = ImportLog.from_dict(payload)
    if log.id is None:
        log.id = import_id
    return log


def wait_for_import(
    import_id: Id,
    *,
    poll_interval: float = 2,
    timeout: float = 600,
    on_progress: Callable[[ImportLog], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ImportLog:
    """Poll the import until it is COMPLETED, ERROR or CANCELLED.

    Args:
        poll_interval: Seconds between polls.
        timeout:       Overall limit in seconds.
        on_progress:   Called with every ImportLog received, terminal included.
        sleep:         Injected in tests.

    Raises:
        ImportTimeoutError: The import is still running after `timeout`.
    """
    deadline = time.monotonic() + timeout
    while True:
        log = get_import_progress(import_id)
        if on_progress is not None:
            on_progress(log)
        if log.is_terminal:
            logger.info(
                "Import %s finished status=%s processed=%s",
                import_id, log.status, log.records_processed,
                extra={"import_id": import_id},
            )
            return log
        if time.monotonic() >= deadline:
            raise ImportTimeoutError(import_id, timeout, last_status=log.status)
        sleep(poll_interval)


def cancel_import(import_id: Id) -> dict:
    """Best-effort cancel; returns the response envelope."""
    result = api_gateway.post(f"/excel-import/cancel/{import_id}")
    result.raise_for_error(resource="ImportLog", resource_id=import_id)
    logger.info("Import cancel requested id=%s", import_id, extra={"import_id": import_id})
    return result.data or {}


def retry_import(import_id: Id) -> ImportResult:
    result = api_gateway.post(f"/excel-import/retry/{import_id}")
    return ImportResult.from_dict(
        result.raise_for_error(resource="ImportLog", resource_id=import_id).payload({})
    )


# ═══════════════════════════════════════════════════════════════
# History & configuration
# ═══════════════════════════════════════════════════════════════


def get_import_history(page: int = 1, limit: int = 20, area_id: Id | None = None) -> dict:
    """Return {"imports": [ImportLog], "pagination": {...}}; empty page on outage."""
    result = api_gateway.get(
        "/excel-import/logs",
        params={"page": page, "limit": limit, "sourceAreaId": area_id},
    )
    payload = read_or_default(result, {}, "import history")
    rows = payload if isinstance(payload, list) else pick(payload, "imports", "logs", default=[])
    pagination = payload.get("pagination") if isinstance(payload, dict) else None
    return {
        "imports": [ImportLog.from_dict(row) for row in rows],
        "pagination": pagination or {"page": page, "limit": limit, "total": len(rows)},
    }


def get_import_details(import_id: Id) -> ImportLog:
    result = api_gateway.get(f"/excel-import/history/{import_id}")
    return ImportLog.from_dict(
        result.raise_for_error(resource="ImportLog", resource_id=import_id).payload({})
    )


def get_import_statistics(area_id: Id | None = None, date_from=None, date_to=None) -> dict:
    result = api_gateway.get(
        "/excel-import/statistics",
        params={
            "sourceAreaId": area_id,
            "dateFrom": date_param(date_from),
            "dateTo": date_param(date_to),
        },
    )
    return read_or_default(result, {}, "import statistics")


def download_excel_template(area_id: Id, destination: str) -> str:
    """Save the area's import template to `destination` and return the path."""
    result = api_gateway.download(f"/excel-import/template/{area_id}")
    content = result.raise_for_error(resource="Area", resource_id=area_id).data
    with open(destination, "wb") as fh:
        fh.write(content)
    logger.info("Template for area %s saved to %s", area_id, destination)
    return destination


def get_import_configuration(area_id: Id) -> dict:
    result = api_gateway.get(f"/excel-import/config/{area_id}")
    return result.raise_for_error(resource="Area", resource_id=area_id).payload({})
