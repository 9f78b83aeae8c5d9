"""
foldwise Train Orchestrator
============================
Trains one learner on one task (optionally restricted to a row subset)
and records what happened in the learner's state.

The Sequence:
    1. Restrict the task to ``row_ids`` (restored on every exit path)
    2. Wipe the learner's state
    3. Run the train step through the capsule, in the learner's
       configured train isolation mode
    4. Store model, log and train time
    5. If a fallback is configured, train it too (no isolation) and keep
       its state inside the primary's state

Failure semantics:
    A fault in the primary learner is data: the model is None and the log
    says why. A fault in the fallback is not: there is no second safety
    net, so it propagates to the caller.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from foldwise.errors import ContractViolation
from foldwise.execution.capsule import encapsulate
from foldwise.execution.scope import use_rows
from foldwise.learners.base import LearnerState
from foldwise.learners.registry import as_learner, require_packages

logger = logging.getLogger(__name__)


def train_wrapper(learner, task):
    """
    The train step run inside the capsule.

    Raises
    ------
    ContractViolation
        If the learner returns no model.
    """
    model = learner.resolve_hook("train")(task)
    if model is None:
        raise ContractViolation(
            f"Learner '{learner.id}' on task '{task.id}' returned no model "
            f"during train"
        )
    return model


def resolve_fallback(learner):
    """Concrete, unisolated copy of ``learner.fallback`` (or None)."""
    if learner.fallback is None:
        return None
    fb = as_learner(learner.fallback, clone=True, task_type=learner.task_type)
    fb.set_encapsulation(train="none", predict="none")
    return fb


def train_learner(
    learner,
    task,
    row_ids: Optional[Sequence[int]] = None,
    logger: Optional[logging.Logger] = None,
):
    """
    Train ``learner`` on ``task``, restricted to ``row_ids`` if given.

    Parameters
    ----------
    learner : Learner
        Learner to train. Its state is replaced, not merged.
    task : Task
        Task to train on. Its active rows are restored before returning.
    row_ids : sequence of int or None
        Training rows. None trains on the currently active rows.
    logger : logging.Logger or None
        Sink for diagnostic events. Defaults to this module's logger.

    Returns
    -------
    Learner
        The same learner, with ``state`` populated.

    Raises
    ------
    Exception
        Anything raised while training the fallback learner, and anything
        raised by the primary learner when its train mode is "none".
    """
    diag = logger or logging.getLogger(__name__)
    context = {"task_id": task.id, "learner_id": learner.id}

    with use_rows(task, row_ids):
        learner.reset()

        diag.debug(
            f"Calling train method of learner '{learner.id}' on task "
            f"'{task.id}' with {task.nrow} observations",
            extra={**context, "n_rows": task.nrow},
        )

        envelope = encapsulate(
            learner.encapsulate["train"],
            train_wrapper,
            {"learner": learner, "task": task},
            packages=learner.packages,
            stage="train",
        )

        learner.state = LearnerState(
            model=envelope.result,
            log=learner.state.log + envelope.log,
            train_time=envelope.elapsed,
        )

        if envelope.result is None:
            diag.debug(
                f"Learner '{learner.id}' on task '{task.id}' failed to fit "
                f"a model: {envelope.log.errors}",
                extra={**context, "elapsed": envelope.elapsed},
            )
        else:
            diag.debug(
                f"Learner '{learner.id}' on task '{task.id}' fitted a model "
                f"in {envelope.elapsed:.3f}s",
                extra={**context, "elapsed": envelope.elapsed},
            )

        fb = resolve_fallback(learner)
        if fb is not None:
            diag.debug(
                f"Calling train method of fallback '{fb.id}' on task "
                f"'{task.id}' with {task.nrow} observations",
                extra={**context, "fallback_id": fb.id, "n_rows": task.nrow},
            )
            require_packages(fb.packages)
            train_learner(fb, task, logger=logger)
            learner.state.fallback_state = fb.state
            diag.debug(f"Fitted fallback learner '{fb.id}'", extra=context)

    return learner
