"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from taskboard_api.models.export_job import ExportJob, ExportStatus
from taskboard_api.models.task import Task

__all__ = [
    "ExportJob",
    "ExportStatus",
    "Task",
]
