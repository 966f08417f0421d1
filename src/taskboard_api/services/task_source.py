"""Record source for exports: streams tasks matching a predicate."""

from collections.abc import AsyncIterator, Sequence

from sqlalchemy import ColumnElement, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard_api.models.task import Task

EXPORT_STREAM_BATCH_SIZE = 1000


def task_to_dict(task: Task) -> dict:
    """Convert a Task ORM object to an export record."""
    return {
        "id": str(task.id),
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
        "completed_at": task.completed_at,
        "estimated_time": task.estimated_time,
        "actual_time": task.actual_time,
    }


class TaskSource:
    """Reads tasks for export, newest first.

    Ties on ``created_at`` are broken by ``id`` so repeated exports of the
    same data produce identical output.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def iter_batches(
        self,
        predicate: Sequence[ColumnElement[bool]],
        *,
        batch_size: int = EXPORT_STREAM_BATCH_SIZE,
    ) -> AsyncIterator[list[dict]]:
        """Yield batches of matching task records.

        Uses a server-side cursor with partitions. Each partition is
        expunged once its records are built so the session never holds
        more than one batch of Task objects.

        Args:
            predicate: Conditions to AND together (empty for all tasks).
            batch_size: Records per yielded batch.
        """
        query = select(Task)
        if predicate:
            query = query.where(*predicate)
        query = query.order_by(Task.created_at.desc(), Task.id.desc()).execution_options(yield_per=batch_size)

        result = await self._session.stream(query)
        async for partition in result.scalars().partitions(batch_size):
            records = [task_to_dict(task) for task in partition]
            for task in partition:
                self._session.expunge(task)
            yield records
