"""
foldwise Resample Result
=========================
Everything a resampling run produced, reassembled on the coordinating
side: one learner (with its state and log) and one dict of predictions
per iteration.

What You Can Ask:
    - per-iteration scores and their mean          → score(), aggregate()
    - all predictions of one evaluation set pooled → prediction()
    - which iterations logged errors or warnings   → errors(), warnings()
    - a compact JSON-friendly overview             → summary()

Usage:
    >>> rr = resample(task, learner, CrossValidation(folds=5))
    >>> rr.score("classif.acc")
    array([0.93, 0.97, 0.9 , 1.  , 0.93])
    >>> rr.aggregate("classif.acc")
    0.946
    >>> rr.errors()
    [{'iteration': 2, 'stage': 'train', 'severity': 'error', 'message': ...}]
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from foldwise.evaluation.measures import get_measure, score_prediction
from foldwise.execution.log import Severity
from foldwise.learners.prediction import Prediction

logger = logging.getLogger(__name__)


class ResampleResult:
    """
    Parameters
    ----------
    task : Task
        The task that was resampled.
    resampling : Resampling
        The instantiated resampling.
    learners : list[Learner]
        Reassembled learner per iteration.
    predictions : list[dict[str, Prediction]]
        Predictions per iteration, keyed by evaluation set.
    """

    def __init__(self, task, resampling, learners: list, predictions: list[dict]):
        if len(learners) != len(predictions):
            raise ValueError(
                f"Got {len(learners)} learners but {len(predictions)} "
                f"prediction sets"
            )
        self.task = task
        self.resampling = resampling
        self.learners = learners
        self._predictions = predictions

    @property
    def iters(self) -> int:
        return len(self.learners)

    def predictions(self, predict_set: str = "test") -> list[Optional[Prediction]]:
        """Prediction per iteration for ``predict_set`` (None where absent)."""
        return [p.get(predict_set) for p in self._predictions]

    def prediction(self, predict_set: str = "test") -> Prediction:
        """All iterations' predictions for ``predict_set`` stacked together."""
        preds = [p for p in self.predictions(predict_set) if p is not None]
        if not preds:
            raise ValueError(f"No predictions available for set '{predict_set}'")
        return Prediction.concat(preds)

    def _records(self, severity: Severity) -> list[dict]:
        out = []
        for i, learner in enumerate(self.learners):
            for record in learner.state.log:
                if record.severity == severity:
                    out.append({"iteration": i, **record.to_dict()})
        return out

    def errors(self) -> list[dict]:
        return self._records(Severity.ERROR)

    def warnings(self) -> list[dict]:
        return self._records(Severity.WARNING)

    def score(self, measure="classif.acc", predict_set: str = "test") -> np.ndarray:
        """
        Score every iteration.

        Iterations without a prediction for ``predict_set`` score NaN.
        """
        m = get_measure(measure)
        return np.array([
            score_prediction(p, m) if p is not None else np.nan
            for p in self.predictions(predict_set)
        ])

    def aggregate(self, measure="classif.acc", predict_set: str = "test") -> float:
        """Mean score over iterations, ignoring NaN."""
        scores = self.score(measure, predict_set)
        if np.all(np.isnan(scores)):
            return float("nan")
        return float(np.nanmean(scores))

    def summary(self, measures: Optional[list] = None) -> dict:
        out = {
            "task_id": self.task.id,
            "learner_id": self.learners[0].id if self.learners else None,
            "resampling": self.resampling.id,
            "iters": self.iters,
            "n_errors": len(self.errors()),
            "n_warnings": len(self.warnings()),
            "train_time": [l.state.train_time for l in self.learners],
            "states": [l.state.to_dict() for l in self.learners],
        }
        for measure in measures or []:
            m = get_measure(measure)
            out[m.id] = {
                "scores": self.score(m).tolist(),
                "mean": self.aggregate(m),
                "minimize": m.minimize,
            }
        return out

    def __repr__(self) -> str:
        return (
            f"ResampleResult(task={self.task.id!r}, iters={self.iters}, "
            f"errors={len(self.errors())}, warnings={len(self.warnings())})"
        )
