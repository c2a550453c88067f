"""
Import workflow coordinator.

Drives one spreadsheet through the staged import:

    idle → file_selected → (validating | previewing)* → importing → completed | errored

Each step is an action in WORKFLOW_TRANSITIONS; calling an action from a
state that does not list it raises WorkflowStateError before any request is
made. Validation and preview are advisory and may be repeated; a failure is
raised once (no retry) and the workflow goes back to file_selected.

The import itself is followed to the end with a real progress poll
(excel_import_service.wait_for_import) rather than a simulated bar.

Usage:
    wf = ImportWorkflow()
    wf.select_file("projects.xlsx", area_id=3)
    wf.preview(max_rows=5)
    log = wf.run_import()
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from teamtime.core.exceptions import ApiError, WorkflowStateError
from teamtime.models.base import Id
from teamtime.models.imports import (
    IMPORT_CANCELLED,
    IMPORT_COMPLETED,
    IMPORT_PROCESSING,
    ImportLog,
    ImportOptions,
    ImportResult,
    WorkbookSummary,
)
from teamtime.services import excel_import_service

logger = logging.getLogger(__name__)

IDLE = "idle"
FILE_SELECTED = "file_selected"
VALIDATING = "validating"
PREVIEWING = "previewing"
IMPORTING = "importing"
COMPLETED = "completed"
ERRORED = "errored"

WORKFLOW_STATES = (IDLE, FILE_SELECTED, VALIDATING, PREVIEWING, IMPORTING, COMPLETED, ERRORED)

WORKFLOW_TRANSITIONS = {
    "select_file": {"from": [IDLE, FILE_SELECTED, COMPLETED, ERRORED], "to": FILE_SELECTED},
    "validate": {"from": [FILE_SELECTED], "to": VALIDATING},
    "validation_done": {"from": [VALIDATING], "to": FILE_SELECTED},
    "preview": {"from": [FILE_SELECTED], "to": PREVIEWING},
    "preview_done": {"from": [PREVIEWING], "to": FILE_SELECTED},
    "import": {"from": [FILE_SELECTED], "to": IMPORTING},
    "import_succeeded": {"from": [IMPORTING], "to": COMPLETED},
    "import_failed": {"from": [IMPORTING], "to": ERRORED},
    "reset": {"from": list(WORKFLOW_STATES), "to": IDLE},
}

Listener = Callable[["ImportWorkflow", str, str], None]


def _log_from_result(result: ImportResult) -> ImportLog:
    """ImportLog for an import the server finished within the upload call."""
    if result.log is not None:
        return result.log
    return ImportLog(
        id=result.import_id,
        status=result.status or IMPORT_COMPLETED,
        records_processed=result.imported + result.errors,
        records_imported=result.imported,
        records_failed=result.errors,
    )


class ImportWorkflow:
    """State machine for one file at a time; reusable after completion."""

    def __init__(
        self,
        *,
        poll_interval: float = 2,
        poll_timeout: float = 600,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._sleep = sleep
        self._listeners: list[Listener] = []
        self.state = IDLE
        self._clear()

    def _clear(self) -> None:
        self.file_path: str | None = None
        self.area_id: Id | None = None
        self.workbook: WorkbookSummary | None = None
        self.validation: dict | None = None
        self.preview_data: dict | None = None
        self.result: ImportResult | None = None
        self.log: ImportLog | None = None
        self.error: str | None = None

    # ── State machine ────────────────────────────────────────────────────────

    def can(self, action: str) -> bool:
        rule = WORKFLOW_TRANSITIONS.get(action)
        return rule is not None and self.state in rule["from"]

    def _transition(self, action: str) -> None:
        rule = WORKFLOW_TRANSITIONS.get(action)
        if rule is None:
            raise ValueError(f"Unknown action: {action}")
        if self.state not in rule["from"]:
            raise WorkflowStateError(self.state, action)
        old, self.state = self.state, rule["to"]
        logger.debug(
            "Import workflow %s: %s -> %s", action, old, self.state,
            extra={"workflow_state": self.state},
        )
        for listener in list(self._listeners):
            listener(self, old, self.state)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(workflow, old_state, new_state)` on every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Steps ────────────────────────────────────────────────────────────────

    def select_file(self, file_path: str, area_id: Id) -> WorkbookSummary:
        """Inspect the file locally and make it the current selection.

        A rejected file leaves the workflow where it was.
        """
        if not self.can("select_file"):
            raise WorkflowStateError(self.state, "select_file")
        summary = excel_import_service.inspect_workbook(file_path)
        self._clear()
        self.file_path, self.area_id, self.workbook = file_path, area_id, summary
        self._transition("select_file")
        return summary

    def validate(self) -> dict:
        self._transition("validate")
        try:
            self.validation = excel_import_service.validate_excel_structure(
                self.file_path, self.area_id
            )
        finally:
            self._transition("validation_done")
        return self.validation

    def preview(self, max_rows: int = excel_import_service.DEFAULT_PREVIEW_ROWS) -> dict:
        self._transition("preview")
        try:
            self.preview_data = excel_import_service.preview_excel_data(
                self.file_path, self.area_id, max_rows=max_rows
            )
        finally:
            self._transition("preview_done")
        return self.preview_data

    def run_import(
        self,
        options: ImportOptions | None = None,
        *,
        wait: bool = True,
        on_progress: Callable[[ImportLog], None] | None = None,
    ) -> ImportLog | None:
        """Upload the selected file and follow the import to its end.

        With wait=False the workflow stays in `importing` when the server
        reports the import as still PROCESSING; call wait() later.

        Returns:
            The terminal ImportLog, or None when not waiting.
        """
        options = options or ImportOptions()
        options.validate()
        self._transition("import")
        try:
            self.result = excel_import_service.import_excel_to_staging(
                self.file_path, self.area_id, options
            )
        except ApiError as exc:
            self._fail(exc.message)
            raise
        except Exception as exc:
            self._fail(str(exc))
            raise

        if self.result.status != IMPORT_PROCESSING:
            return self._finish(_log_from_result(self.result))
        if self.result.import_id is None:
            self._fail("Server reported the import as processing without an import id")
            return None
        if not wait:
            return None
        return self.wait(on_progress=on_progress)

    def wait(self, on_progress: Callable[[ImportLog], None] | None = None) -> ImportLog:
        """Poll the running import until it reaches a terminal status."""
        if self.state != IMPORTING:
            raise WorkflowStateError(self.state, "wait")

        def track(log: ImportLog) -> None:
            self.log = log
            if on_progress is not None:
                on_progress(log)

        try:
            log = excel_import_service.wait_for_import(
                self.result.import_id,
                poll_interval=self.poll_interval,
                timeout=self.poll_timeout,
                on_progress=track,
                sleep=self._sleep,
            )
        except ApiError as exc:
            self._fail(exc.message)
            raise
        return self._finish(log)

    def cancel(self) -> dict:
        """Best-effort server cancel of the running import."""
        if self.state != IMPORTING or self.result is None or self.result.import_id is None:
            raise WorkflowStateError(self.state, "cancel")
        envelope = excel_import_service.cancel_import(self.result.import_id)
        self.log = ImportLog(id=self.result.import_id, status=IMPORT_CANCELLED)
        self._fail("Import cancelled")
        return envelope

    def reset(self) -> None:
        self._clear()
        self._transition("reset")

    # ── Internals ────────────────────────────────────────────────────────────

    def _finish(self, log: ImportLog) -> ImportLog:
        self.log = log
        if log.succeeded:
            self._transition("import_succeeded")
        else:
            self._fail(f"Import ended with status {log.status}")
        return log

    def _fail(self, message: str) -> None:
        self.error = message
        logger.warning(
            "Import of %s failed: %s", self.file_path, message,
            extra={"area_id": self.area_id, "workflow_state": ERRORED},
        )
        self._transition("import_failed")
