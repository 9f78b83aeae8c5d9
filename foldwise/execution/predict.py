"""
foldwise Predict Orchestrator
==============================
Asks a trained learner for predictions on a task (optionally restricted
to a row subset) and, when a fallback learner is configured, repairs
whatever the primary learner could not deliver.

Decision Table:
    no rows to predict              → empty Prediction, model never called
    no model stored                 → prediction is None (not an error)
    model stored                    → predict step runs in the capsule
    then, with a fallback:
        prediction is None          → fallback predicts every row
        prediction has missing rows → fallback predicts only those rows,
                                      merged in without duplicates
        nothing missing             → fallback is not called

Like training, a fault in the primary predict step is absorbed (and
compensated by the fallback if there is one); a fault in the fallback
propagates.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from foldwise.errors import ContractViolation
from foldwise.execution.capsule import encapsulate
from foldwise.execution.log import append_log
from foldwise.execution.scope import use_rows
from foldwise.execution.train import resolve_fallback
from foldwise.learners.prediction import Prediction

logger = logging.getLogger(__name__)


def predict_wrapper(task, learner) -> Prediction:
    """
    The predict step run inside the capsule.

    Raises
    ------
    ContractViolation
        If no model is stored, or the hook does not return a Prediction.
    """
    if learner.state.model is None:
        raise ContractViolation(
            f"No trained model available for learner '{learner.id}' "
            f"on task '{task.id}'"
        )

    result = learner.resolve_hook("predict")(task)
    if not isinstance(result, Prediction):
        raise ContractViolation(
            f"Learner '{learner.id}' on task '{task.id}' did not return a "
            f"Prediction, but instead: {type(result).__name__}"
        )
    return result


def _predict_with_fallback(learner, task, row_ids, logger) -> Prediction:
    fb = resolve_fallback(learner)
    fb.predict_type = learner.predict_type
    if learner.state.fallback_state is None:
        raise ContractViolation(
            f"Fallback '{fb.id}' of learner '{learner.id}' has not been trained"
        )
    fb.state = learner.state.fallback_state.copy()
    prediction = predict_learner(fb, task, row_ids, logger=logger)
    if prediction is None:
        raise ContractViolation(
            f"Fallback '{fb.id}' of learner '{learner.id}' returned no prediction"
        )
    return prediction


def predict_learner(
    learner,
    task,
    row_ids: Optional[Sequence[int]] = None,
    logger: Optional[logging.Logger] = None,
) -> Optional[Prediction]:
    """
    Predict ``task`` (restricted to ``row_ids`` if given) with ``learner``.

    Parameters
    ----------
    learner : Learner
        A learner that went through ``train_learner``. Its log and
        ``predict_time`` are updated.
    task : Task
        Task to predict. Its active rows are restored before returning.
    row_ids : sequence of int or None
        Rows to predict. None predicts the currently active rows.
    logger : logging.Logger or None
        Sink for diagnostic events. Defaults to this module's logger.

    Returns
    -------
    Prediction or None
        None only when there is neither a usable model nor a fallback.

    Raises
    ------
    Exception
        Anything raised by the fallback, and anything raised by the
        primary learner when its predict mode is "none".
    """
    diag = logger or logging.getLogger(__name__)
    context = {"task_id": task.id, "learner_id": learner.id}

    with use_rows(task, row_ids):
        if task.nrow == 0:
            diag.debug(
                f"No observations in task '{task.id}', returning empty prediction",
                extra=context,
            )
            learner.state.log = append_log(
                learner.state.log, "predict", "output", ["No data to predict on"]
            )
            return Prediction.empty(task, learner.predict_type)

        if learner.state.model is None:
            diag.debug(
                f"Learner '{learner.id}' has no model stored", extra=context
            )
            prediction = None
            learner.state.predict_time = None
        else:
            diag.debug(
                f"Calling predict method of learner '{learner.id}' on task "
                f"'{task.id}' with {task.nrow} observations",
                extra={**context, "n_rows": task.nrow},
            )
            envelope = encapsulate(
                learner.encapsulate["predict"],
                predict_wrapper,
                {"task": task, "learner": learner},
                packages=learner.packages,
                stage="predict",
            )
            prediction = envelope.result
            learner.state.log = learner.state.log + envelope.log
            learner.state.predict_time = envelope.elapsed
            diag.debug(
                f"Learner '{learner.id}' returned "
                f"{type(prediction).__name__ if prediction is not None else 'nothing'} "
                f"in {envelope.elapsed:.3f}s",
                extra={**context, "elapsed": envelope.elapsed},
            )

        if learner.fallback is None:
            return prediction

        if prediction is None:
            diag.debug(
                f"Creating new Prediction using fallback for learner '{learner.id}'",
                extra=context,
            )
            learner.state.log = append_log(
                learner.state.log, "predict", "output",
                ["Using fallback learner for predictions"],
            )
            return _predict_with_fallback(learner, task, task.row_ids, logger)

        miss_ids = prediction.missing
        diag.debug(
            f"Imputing {len(miss_ids)} of {len(prediction.row_ids)} predictions "
            f"using fallback",
            extra={**context, "n_missing": len(miss_ids)},
        )
        if len(miss_ids):
            learner.state.log = append_log(
                learner.state.log, "predict", "output",
                ["Using fallback learner to impute predictions"],
            )
            imputed = _predict_with_fallback(learner, task, miss_ids, logger)
            prediction = prediction.merge(imputed, duplicates="fill")

    return prediction
