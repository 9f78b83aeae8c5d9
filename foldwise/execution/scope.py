"""
Scoped row subsetting for tasks.

Train and predict run on a subset of a task's rows without copying the
task: the active-row role is swapped for the duration of the call and put
back afterwards, whatever happens in between.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

logger = logging.getLogger(__name__)


@contextmanager
def use_rows(task, row_ids: Optional[Sequence[int]]) -> Iterator:
    """
    Temporarily restrict ``task`` to ``row_ids``.

    Parameters
    ----------
    task : Task
        Task whose ``active_rows`` are overridden.
    row_ids : sequence of int or None
        Rows to activate. None leaves the task untouched.

    Yields
    ------
    Task
        The same task object, subset in place.
    """
    if row_ids is None:
        logger.debug(f"Skip subsetting of task '{task.id}'")
        yield task
        return

    logger.debug(
        f"Subsetting task '{task.id}' to {len(row_ids)} rows",
        extra={"task_id": task.id, "n_rows": len(row_ids)},
    )
    previous = task.active_rows
    try:
        task.active_rows = row_ids
        yield task
    finally:
        task.active_rows = previous
