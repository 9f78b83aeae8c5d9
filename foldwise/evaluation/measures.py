"""
foldwise Performance Measures
==============================
Scores a ``Prediction`` against its truth using scikit-learn metrics.

Available measures:
    classif.acc      — accuracy (higher is better)
    classif.ce       — classification error = 1 - accuracy
    classif.bacc     — balanced accuracy
    classif.logloss  — log loss, requires predict_type="prob"
    regr.mse         — mean squared error
    regr.rmse        — root mean squared error
    regr.mae         — mean absolute error
    regr.rsq         — coefficient of determination (R²)

Rows without a response (missing predictions that no fallback filled)
are skipped with a warning. A prediction with nothing left to score
gives NaN rather than an exception, so one broken iteration does not
spoil the aggregate of the others.

Usage:
    >>> score_prediction(pred, "classif.acc")
    0.94
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

import numpy as np
from sklearn import metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Measure:
    id: str
    task_type: str
    fn: Callable
    minimize: bool = False
    needs_prob: bool = False


def _ce(truth, response):
    return 1.0 - metrics.accuracy_score(truth, response)


def _rmse(truth, response):
    return math.sqrt(metrics.mean_squared_error(truth, response))


MEASURES: dict[str, Measure] = {
    m.id: m for m in (
        Measure("classif.acc", "classif", metrics.accuracy_score),
        Measure("classif.ce", "classif", _ce, minimize=True),
        Measure("classif.bacc", "classif", metrics.balanced_accuracy_score),
        Measure("classif.logloss", "classif", metrics.log_loss,
                minimize=True, needs_prob=True),
        Measure("regr.mse", "regr", metrics.mean_squared_error, minimize=True),
        Measure("regr.rmse", "regr", _rmse, minimize=True),
        Measure("regr.mae", "regr", metrics.mean_absolute_error, minimize=True),
        Measure("regr.rsq", "regr", metrics.r2_score),
    )
}


def get_measure(measure) -> Measure:
    if isinstance(measure, Measure):
        return measure
    if measure not in MEASURES:
        raise ValueError(
            f"Unknown measure: '{measure}'. Choose from: {', '.join(MEASURES)}"
        )
    return MEASURES[measure]


def score_prediction(prediction, measure) -> float:
    """
    Score ``prediction`` with ``measure``.

    Parameters
    ----------
    prediction : Prediction
        Must carry truth values.
    measure : str or Measure
        Measure id (see ``MEASURES``) or a Measure instance.

    Returns
    -------
    float
        The score, or NaN if no row can be scored.

    Raises
    ------
    ValueError
        If the measure does not fit the prediction (task type, missing
        truth or probabilities).
    """
    m = get_measure(measure)
    if m.task_type != prediction.task_type:
        raise ValueError(
            f"Measure '{m.id}' is for {m.task_type} tasks, "
            f"prediction is {prediction.task_type}"
        )
    if prediction.truth is None:
        raise ValueError(f"Cannot compute '{m.id}' without truth values")
    if m.needs_prob and prediction.prob is None:
        raise ValueError(f"Measure '{m.id}' requires predict_type='prob'")

    keep = ~prediction.is_missing
    n_skipped = int((~keep).sum())
    if n_skipped:
        logger.warning(
            f"Skipping {n_skipped} of {len(prediction)} rows without a "
            f"prediction when computing '{m.id}'"
        )
    if not keep.any():
        return float("nan")

    truth = prediction.truth[keep]
    if m.needs_prob:
        return float(m.fn(truth, prediction.prob[keep], labels=prediction.class_names))
    response = prediction.response[keep]
    if prediction.task_type == "classif":
        # object arrays confuse sklearn's label type detection
        response = np.asarray(response.tolist())
    return float(m.fn(truth, response))
