"""
foldwise Resample Coordinator
==============================
Runs every iteration of a resampling for one task/learner pair and
collects the results.

Execution:
    n_jobs == 1  → iterations run one after another in this process,
                   with a tqdm progress bar.
    n_jobs != 1  → iterations are dispatched through joblib.Parallel
                   (default backend "loky", i.e. worker processes).
                   Each worker receives the learner template and returns
                   only an IterationResult; the coordinator reassembles
                   full learners from those.

An exception escaping any iteration (a failing fallback, or a broken
learner running without isolation) aborts the whole call: a resampling
with a silently missing iteration would be a wrong result, not a partial
one.

Usage:
    >>> rr = resample(task, learner, CrossValidation(folds=5), n_jobs=4)
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from joblib import Parallel, delayed
from tqdm import tqdm

from foldwise.evaluation.result import ResampleResult
from foldwise.execution.worker import log_threshold, reassemble, run_iteration
from foldwise.learners.registry import as_learner

logger = logging.getLogger(__name__)


def resample(
    task,
    learner,
    resampling,
    store_models: bool = False,
    n_jobs: int = 1,
    backend: str = "loky",
    log_level: Optional[Union[int, str]] = None,
    show_progress: bool = True,
) -> ResampleResult:
    """
    Resample ``learner`` on ``task``.

    Parameters
    ----------
    task : Task
        Task to resample. Its active rows are unchanged afterwards.
    learner : Learner, str, or estimator
        Anything ``as_learner`` accepts. Never modified.
    resampling : Resampling
        Instantiated on ``task`` here if it is not already.
    store_models : bool
        Keep fitted models in the returned learners.
    n_jobs : int
        Number of parallel workers; 1 runs sequentially, -1 uses all CPUs.
    backend : str
        joblib backend for parallel runs ("loky", "threading", ...).
    log_level : int, str or None
        Log threshold for the "foldwise" logger during the run. In this
        process it is restored when the call returns; worker processes
        default to the coordinator's effective level.
    show_progress : bool
        Show a tqdm progress bar.

    Returns
    -------
    ResampleResult
    """
    learner = as_learner(learner)
    if not resampling.is_instantiated:
        resampling.instantiate(task)
    n_iters = resampling.iters

    logger.info(
        f"Resampling learner '{learner.id}' on task '{task.id}' "
        f"with {resampling.id} ({n_iters} iterations, n_jobs={n_jobs})"
    )

    bar = tqdm(
        total=n_iters,
        desc=f"{task.id}/{learner.id}",
        disable=not show_progress,
    )
    # threads share this process's loggers, so the threshold is set once here
    in_process = n_jobs == 1 or backend == "threading"
    worker_level = None
    if not in_process:
        worker_level = log_level
        if worker_level is None:
            worker_level = logging.getLogger("foldwise").getEffectiveLevel()

    results = []
    with bar, log_threshold(log_level if in_process else None):
        if n_jobs == 1:
            for i in range(n_iters):
                results.append(run_iteration(
                    i, task, learner, resampling,
                    store_models=store_models,
                    progress=bar.set_postfix_str,
                ))
                bar.update(1)
        else:
            parallel = Parallel(n_jobs=n_jobs, backend=backend, return_as="generator")
            for result in parallel(
                delayed(run_iteration)(
                    i, task, learner, resampling,
                    log_level=worker_level,
                    store_models=store_models,
                )
                for i in range(n_iters)
            ):
                results.append(result)
                bar.update(1)

    learners = [reassemble(r, learner) for r in results]
    rr = ResampleResult(
        task=task,
        resampling=resampling,
        learners=learners,
        predictions=[r.predictions for r in results],
    )

    n_errors = len(rr.errors())
    if n_errors:
        logger.warning(
            f"Resampling of '{learner.id}' on '{task.id}' finished with "
            f"{n_errors} captured error(s)"
        )
    else:
        logger.info(f"Resampling of '{learner.id}' on '{task.id}' finished")
    return rr
