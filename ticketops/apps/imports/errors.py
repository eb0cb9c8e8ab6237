"""Errors raised by the import lifecycle.

Each class carries the HTTP status and short ``error`` label the API puts
into its ``{success: false, error, message}`` envelope.
"""
from __future__ import annotations

from typing import Sequence


class ImportLifecycleError(Exception):
    http_status = 500
    error = "Import failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.error)
        self.message = message or self.error


class InvalidRequestError(ImportLifecycleError):
    http_status = 400
    error = "Invalid request"

    def __init__(self, message: str | None = None, *, error: str | None = None):
        super().__init__(message)
        if error:
            self.error = error


class NoRowsSelectedError(ImportLifecycleError):
    http_status = 400
    error = "No rows selected"

    def __init__(self, message: str | None = None):
        super().__init__(message or "At least one row must be selected for import")


class ImportNotFoundError(ImportLifecycleError):
    http_status = 404
    error = "Import not found"

    def __init__(self, import_id: int):
        super().__init__(f"Import {import_id} does not exist")
        self.import_id = import_id


class AlreadyAcceptedError(ImportLifecycleError):
    http_status = 400
    error = "Already accepted"

    def __init__(self, message: str | None = None):
        super().__init__(message or "This import has already been accepted")


class NotProcessedError(ImportLifecycleError):
    http_status = 400
    error = "Not processed"

    def __init__(self, message: str | None = None):
        super().__init__(message or "Import must be processed before acceptance")


class InvalidTransitionError(ImportLifecycleError):
    http_status = 400
    error = "Invalid transition"

    def __init__(self, current: str, action: str, message: str | None = None):
        super().__init__(message or f"Cannot {action} an import in status '{current}'")
        self.current = current
        self.action = action


class SchemaNotFoundError(ImportLifecycleError):
    http_status = 500
    error = "Table schema not found"

    def __init__(self, table: str, expected_columns: Sequence[str], cause: str | None = None):
        message = (
            f"No columns discoverable for table '{table}'; "
            f"expected columns: {', '.join(expected_columns)}"
        )
        if cause:
            message += f" ({cause})"
        super().__init__(message)
        self.table = table
        self.expected_columns = list(expected_columns)


class BatchWriteError(ImportLifecycleError):
    http_status = 500
    error = "Write failed"

    def __init__(self, table: str, cause: str):
        super().__init__(f"Insert into '{table}' failed: {cause}")
        self.table = table
