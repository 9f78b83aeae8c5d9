"""
foldwise Experiment Builder
============================
Turns a ``FoldwiseConfig`` into the concrete objects of an experiment
(task, learner, resampling) and runs it.

Usage:
    >>> config = FoldwiseConfig.from_yaml("configs/default.yaml")
    >>> rr = run_experiment(config)
    >>> rr.aggregate("classif.acc")
"""

from __future__ import annotations

import logging

from foldwise.config import FoldwiseConfig
from foldwise.data.resampling import CrossValidation, Holdout, Insample, Resampling
from foldwise.data.task import Task
from foldwise.evaluation.result import ResampleResult
from foldwise.execution.resample import resample
from foldwise.learners.base import Learner
from foldwise.learners.registry import LEARNERS, as_learner

logger = logging.getLogger(__name__)


def build_task(config: FoldwiseConfig) -> Task:
    return Task.from_sklearn(config.data.dataset)


def build_learner(config: FoldwiseConfig) -> Learner:
    lc = config.learner
    options = {
        "encapsulate": lc.encapsulate,
        "fallback": lc.fallback,
        "predict_type": lc.predict_type,
        "predict_sets": lc.predict_sets,
    }
    if lc.id is not None:
        options["id"] = lc.id

    if lc.estimator in LEARNERS:
        options["task_type"] = config.data.task_type
        return as_learner(lc.estimator, **lc.params, **options)
    return as_learner(lc.estimator, params=lc.params, **options)


def build_resampling(config: FoldwiseConfig) -> Resampling:
    rc = config.resampling
    if rc.method == "holdout":
        return Holdout(ratio=rc.ratio, seed=rc.seed)
    if rc.method == "cv":
        return CrossValidation(folds=rc.folds, seed=rc.seed)
    return Insample()


def run_experiment(config: FoldwiseConfig) -> ResampleResult:
    """
    Build everything from ``config`` and resample.

    Returns
    -------
    ResampleResult
    """
    config.validate()
    task = build_task(config)
    learner = build_learner(config)
    resampling = build_resampling(config)

    logger.info(f"Running experiment:\n{config}")

    ec = config.execution
    return resample(
        task,
        learner,
        resampling,
        store_models=ec.store_models,
        n_jobs=ec.n_jobs,
        backend=ec.backend,
        log_level=ec.log_level.upper() if ec.log_level else None,
        show_progress=ec.show_progress,
    )
