"""
foldwise Iteration Worker
==========================
One resampling iteration, start to finish: train on the iteration's
training rows, predict every configured evaluation set, and package the
outcome into something small enough to send back from a worker process.

Information Flow:
    (iteration, task, learner, resampling)
        → train rows / test rows from the resampling
        → train_learner(clone of learner, clone of task, train rows)
        → predict_learner(...) per evaluation set ("train", "test")
        → IterationResult(learner_state, predictions)
    IterationResult + learner template
        → reassemble() → a usable Learner on the coordinating side

Every call works on its own clone of the learner and of the task's row
roles, so iterations can run concurrently on threads or processes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Union

from foldwise.execution.predict import predict_learner
from foldwise.execution.train import train_learner
from foldwise.learners.base import LearnerState

logger = logging.getLogger(__name__)


@contextmanager
def log_threshold(level: Optional[Union[int, str]]) -> Iterator[None]:
    """Set the "foldwise" logger to ``level`` for the block (None: leave it)."""
    if level is None:
        yield
        return
    package_logger = logging.getLogger("foldwise")
    previous = package_logger.level
    package_logger.setLevel(level)
    try:
        yield
    finally:
        package_logger.setLevel(previous)


@dataclass
class IterationResult:
    """
    What crosses the boundary from a worker back to the coordinator.

    Parameters
    ----------
    iteration : int
        Resampling iteration index.
    learner_state : LearnerState
        Final state of the learner (model erased unless models are stored).
    predictions : dict[str, Prediction]
        Prediction per evaluation set; sets without a prediction are absent.
    """
    iteration: int
    learner_state: LearnerState
    predictions: dict = field(default_factory=dict)


def run_iteration(
    iteration: int,
    task,
    learner,
    resampling,
    log_level: Optional[Union[int, str]] = None,
    store_models: bool = False,
    progress: Optional[Callable[[str], None]] = None,
    logger: Optional[logging.Logger] = None,
) -> IterationResult:
    """
    Train and predict for resampling iteration ``iteration``.

    Parameters
    ----------
    iteration : int
        Index into the (instantiated) resampling.
    task : Task
        Task to work on. Only a clone of its row roles is modified.
    learner : Learner
        Learner template; cloned before training.
    resampling : Resampling
        Instantiated resampling providing the row sets.
    log_level : int, str or None
        Threshold applied to the "foldwise" logger while this iteration
        runs; the previous level is restored afterwards.
    store_models : bool
        Keep the fitted model in the returned state. Off by default to
        keep results small.
    progress : callable or None
        Called once with "<task>|<learner>|i:<iteration>".
    logger : logging.Logger or None
        Sink for diagnostic events, passed on to the orchestrators.

    Returns
    -------
    IterationResult
    """
    diag = logger or logging.getLogger(__name__)

    if progress is not None:
        progress(f"{task.id}|{learner.id}|i:{iteration}")

    with log_threshold(log_level):
        diag.info(
            f"Applying learner '{learner.id}' on task '{task.id}' "
            f"(iter {iteration + 1}/{resampling.iters})",
            extra={"task_id": task.id, "learner_id": learner.id, "iteration": iteration},
        )

        sets = {
            "train": resampling.train_set(iteration),
            "test": resampling.test_set(iteration),
        }

        task = task.clone()
        learner = train_learner(learner.clone(), task, sets["train"], logger=logger)

        predictions = {}
        for name in learner.predict_sets:
            diag.debug(f"Creating Prediction for predict set '{name}'")
            prediction = predict_learner(learner, task, sets[name], logger=logger)
            if prediction is not None:
                predictions[name] = prediction

        if not store_models:
            diag.debug(f"Erasing stored model for learner '{learner.id}'")
            learner.state.model = None

    return IterationResult(
        iteration=iteration,
        learner_state=learner.state,
        predictions=predictions,
    )


def reassemble(result: IterationResult, learner):
    """
    Rebuild a learner carrying ``result``'s state.

    Parameters
    ----------
    result : IterationResult
        Output of ``run_iteration``, possibly from another process.
    learner : Learner
        Template; cloned, never modified.

    Returns
    -------
    Learner
    """
    learner = learner.clone()
    learner.state = result.learner_state
    return learner
