"""
Featureless baseline learner.

Ignores the features entirely: predicts the most frequent class (with
the observed class frequencies as probabilities) or the mean target.
It cannot fail on any non-empty training set, which makes it the
default fallback.
"""

from __future__ import annotations

import numpy as np

from foldwise.learners.base import Learner
from foldwise.learners.prediction import Prediction


class FeaturelessLearner(Learner):
    def __init__(self, id: str = "featureless", task_type: str = "classif", **kwargs):
        kwargs.setdefault("packages", ("numpy",))
        super().__init__(id=id, task_type=task_type, **kwargs)

    def fit_model(self, task) -> dict:
        _, y = task.data()
        if task.task_type == "regr":
            return {"mean": float(np.mean(y)) if len(y) else 0.0}

        class_names = task.class_names
        counts = np.array([np.sum(y == c) for c in class_names], dtype=float)
        total = counts.sum()
        freqs = counts / total if total else np.full(len(class_names), 1 / len(class_names))
        return {
            "classes": class_names,
            "freqs": freqs,
            "majority": class_names[int(np.argmax(freqs))],
        }

    def predict_model(self, task) -> Prediction:
        truth = task.truth()
        n = task.nrow
        model = self.model

        if task.task_type == "regr":
            return Prediction(
                row_ids=task.row_ids,
                truth=truth,
                response=np.full(n, model["mean"]),
                task_type="regr",
                predict_type=self.predict_type,
            )

        prob = None
        if self.predict_type == "prob":
            prob = np.tile(model["freqs"], (n, 1))
        return Prediction(
            row_ids=task.row_ids,
            truth=truth,
            response=[model["majority"]] * n,
            prob=prob,
            class_names=model["classes"],
            task_type="classif",
            predict_type=self.predict_type,
        )
