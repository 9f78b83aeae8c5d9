"""
foldwise scikit-learn Adapter
==============================
Wraps any scikit-learn estimator as a foldwise ``Learner``.

The estimator passed in is treated as a template: every fit works on a
fresh ``sklearn.base.clone`` of it, so the template is never mutated and
two learners built from the same estimator never share fitted state.

Usage:
    >>> from sklearn.tree import DecisionTreeClassifier
    >>> learner = SklearnLearner(DecisionTreeClassifier(max_depth=3),
    ...                          predict_type="prob",
    ...                          fallback="featureless")
    >>> learner.train(task, row_ids=train_ids)
    >>> pred = learner.predict(task, row_ids=test_ids)
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from sklearn.base import clone, is_classifier

from foldwise.learners.base import Learner
from foldwise.learners.prediction import Prediction

logger = logging.getLogger(__name__)


class SklearnLearner(Learner):
    """
    Parameters
    ----------
    estimator : sklearn estimator
        Unfitted estimator used as a template.
    id : str or None
        Defaults to the estimator's class name.
    **kwargs
        Forwarded to ``Learner`` (encapsulate, fallback, predict_type, ...).
        ``task_type`` is inferred from the estimator when not given.
    """

    def __init__(self, estimator, id: Optional[str] = None, **kwargs):
        kwargs.setdefault("task_type", "classif" if is_classifier(estimator) else "regr")
        kwargs.setdefault("packages", ("sklearn",))
        super().__init__(id=id or type(estimator).__name__, **kwargs)
        self.estimator = estimator

        if self.predict_type == "prob" and not hasattr(estimator, "predict_proba"):
            raise ValueError(
                f"Estimator {type(estimator).__name__} has no predict_proba; "
                f"cannot use predict_type='prob'"
            )

    def fit_model(self, task):
        X, y = task.data()
        model = clone(self.estimator)
        model.fit(X, y)
        return model

    def predict_model(self, task) -> Prediction:
        X, y = task.data()
        model = self.model
        response = model.predict(X)

        prob = None
        class_names = task.class_names
        if self.predict_type == "prob" and task.task_type == "classif":
            raw = model.predict_proba(X)
            # Classes unseen during training get probability 0
            prob = np.zeros((len(X), len(class_names)))
            col = {c: i for i, c in enumerate(class_names)}
            for j, c in enumerate(model.classes_):
                prob[:, col[c]] = raw[:, j]

        return Prediction(
            row_ids=task.row_ids,
            truth=y,
            response=response,
            prob=prob,
            class_names=class_names,
            task_type=task.task_type,
            predict_type=self.predict_type,
        )
