"""
Excel import contracts: options sent with an upload, the ImportLog the
server keeps for every attempt, and the local workbook summary taken when a
file is selected.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from teamtime.core.exceptions import ValidationError
from teamtime.models.base import Id, as_int, pick

IMPORT_PROCESSING = "PROCESSING"
IMPORT_COMPLETED = "COMPLETED"
IMPORT_ERROR = "ERROR"
IMPORT_CANCELLED = "CANCELLED"

TERMINAL_IMPORT_STATUSES = {IMPORT_COMPLETED, IMPORT_ERROR, IMPORT_CANCELLED}

EXCEL_EXTENSIONS = (".xlsx", ".xls")


@dataclass(frozen=True)
class ImportOptions:
    batch_size: int | None = None
    start_row: int | None = None
    skip_validation: bool = False

    def validate(self) -> None:
        if self.batch_size is not None and self.batch_size < 1:
            raise ValidationError(
                "batch_size must be a positive integer", details={"batchSize": "must be >= 1"}
            )
        if self.start_row is not None and self.start_row < 1:
            raise ValidationError(
                "start_row must be a positive integer", details={"startRow": "must be >= 1"}
            )

    def to_form_fields(self) -> dict:
        """Multipart fields; absent options are not sent at all."""
        fields = {}
        if self.skip_validation:
            fields["skipValidation"] = "true"
        if self.batch_size:
            fields["batchSize"] = str(self.batch_size)
        if self.start_row:
            fields["startRow"] = str(self.start_row)
        return fields


@dataclass(frozen=True)
class WorkbookSummary:
    file_name: str
    sheet_name: str | None = None
    headers: tuple[str, ...] = ()
    data_rows: int | None = None   # None when the format cannot be read locally (.xls)

    @property
    def is_header_only(self) -> bool:
        return self.data_rows == 0


def _failed_count(payload: dict) -> int:
    # `errors` is a count on some endpoints and a list of row errors on others
    count = as_int(pick(payload, "recordsFailed", "records_failed", "failed", "errorCount"))
    if count is not None:
        return count
    raw = payload.get("errors")
    if isinstance(raw, list):
        return len(raw)
    return as_int(raw, default=0)


def _error_list(payload: dict) -> list:
    raw = payload.get("errors")
    if isinstance(raw, list):
        return raw
    return payload.get("errorDetails") or []


@dataclass
class ImportLog:
    id: Id | None
    status: str = IMPORT_PROCESSING
    file_name: str | None = None
    source_area_id: Id | None = None
    records_processed: int = 0
    records_imported: int = 0
    records_failed: int = 0
    progress: int | None = None
    errors: list = field(default_factory=list)
    created_at: str | None = None
    completed_at: str | None = None

    @classmethod
    def from_dict(cls, payload: dict) -> "ImportLog":
        return cls(
            id=pick(payload, "id", "importId", "importLogId"),
            status=str(payload.get("status") or IMPORT_PROCESSING).upper(),
            file_name=pick(payload, "fileName", "file_name"),
            source_area_id=pick(payload, "sourceAreaId", "source_area_id"),
            records_processed=as_int(
                pick(payload, "recordsProcessed", "records_processed", "processed"), default=0
            ),
            records_imported=as_int(
                pick(payload, "recordsImported", "records_imported", "imported"), default=0
            ),
            records_failed=_failed_count(payload),
            progress=as_int(payload.get("progress")),
            errors=_error_list(payload),
            created_at=pick(payload, "createdAt", "created_at"),
            completed_at=pick(payload, "completedAt", "completed_at"),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_IMPORT_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == IMPORT_COMPLETED


@dataclass
class ImportResult:
    """What POST /excel-import/staging returned."""

    import_id: Id | None
    imported: int = 0
    errors: int = 0
    status: str | None = None
    log: ImportLog | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: dict) -> "ImportResult":
        log_payload = payload.get("importLog") or payload.get("log")
        log = ImportLog.from_dict(log_payload) if isinstance(log_payload, dict) else None
        import_id = pick(payload, "importId", "importLogId", "id")
        if import_id is None and log is not None:
            import_id = log.id
        status = payload.get("status") or (log.status if log else None)
        errors = payload.get("errors")
        return cls(
            import_id=import_id,
            imported=as_int(pick(payload, "imported", "recordsImported"), default=0),
            errors=len(errors) if isinstance(errors, list) else as_int(errors, default=0),
            status=str(status).upper() if status else None,
            log=log,
            raw=payload,
        )


def check_excel_extension(file_name: str) -> None:
    if not file_name.lower().endswith(EXCEL_EXTENSIONS):
        raise ValidationError(
            f"'{file_name}' is not an Excel file (.xlsx or .xls)",
            details={"file": "unsupported extension"},
        )
