"""Exceptions raised by the export services."""

import uuid


class ExportError(Exception):
    """Base class for export lookup and lifecycle errors."""

    def __init__(self, job_id: uuid.UUID, message: str) -> None:
        self.job_id = job_id
        super().__init__(message)


class ExportNotFoundError(ExportError):
    """No export job exists with the given ID."""

    def __init__(self, job_id: uuid.UUID) -> None:
        super().__init__(job_id, "Export not found")


class ExportNotCompletedError(ExportError):
    """The export exists but has no downloadable result."""

    def __init__(self, job_id: uuid.UUID, status: str) -> None:
        self.status = status
        super().__init__(job_id, "Export not completed")


class ExportFileMissingError(ExportError):
    """The export completed but its file is no longer on disk."""

    def __init__(self, job_id: uuid.UUID) -> None:
        super().__init__(job_id, "Export file no longer available")


class InvalidTransitionError(ExportError):
    """A job could not move to the requested status from its current one."""

    def __init__(self, job_id: uuid.UUID, target: str, allowed_from: tuple[str, ...]) -> None:
        self.target = target
        self.allowed_from = allowed_from
        super().__init__(
            job_id,
            f"Export {job_id} cannot transition to '{target}' (expected status in {list(allowed_from)})",
        )
