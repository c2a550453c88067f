"""Client-side copies of the server-owned entities."""

from teamtime.models.area import Area, AreaFlow
from teamtime.models.imports import (
    IMPORT_CANCELLED,
    IMPORT_COMPLETED,
    IMPORT_ERROR,
    IMPORT_PROCESSING,
    TERMINAL_IMPORT_STATUSES,
    ImportLog,
    ImportOptions,
    ImportResult,
    WorkbookSummary,
)
from teamtime.models.mapping import FieldMapping
from teamtime.models.staging import STAGING_STATUSES, StagingProject
from teamtime.models.transfer import TRANSFER_STATUSES, Transfer

__all__ = [
    "Area",
    "AreaFlow",
    "FieldMapping",
    "ImportLog",
    "ImportOptions",
    "ImportResult",
    "StagingProject",
    "Transfer",
    "WorkbookSummary",
    "IMPORT_CANCELLED",
    "IMPORT_COMPLETED",
    "IMPORT_ERROR",
    "IMPORT_PROCESSING",
    "STAGING_STATUSES",
    "TERMINAL_IMPORT_STATUSES",
    "TRANSFER_STATUSES",
]
