"""
foldwise Debug Learner
=======================
A learner that misbehaves on request. Used to exercise the fault
isolation and fallback paths of the execution core without depending on
a real model breaking.

Predictions are deterministic functions of the row id (class
``class_names[row_id % n_classes]``, or ``float(row_id)`` for
regression), so results can be compared across runs and threads.

Switches:
    error_train / error_predict       — raise RuntimeError
    warning_train / warning_predict   — emit a UserWarning first
    output_train / output_predict     — print a line first
    null_model                        — fit returns None (contract breach)
    bad_prediction                    — predict returns a dict (contract breach)
    missing_row_ids                   — leave these rows without a response
    missing_fraction                  — leave a seeded random share of rows missing
    exit_train                        — terminate the interpreter during fit;
                                        only ever use with "process" isolation
"""

from __future__ import annotations

import os
import warnings
from typing import Optional, Sequence

import numpy as np

from foldwise.learners.base import Learner
from foldwise.learners.prediction import Prediction


class DebugLearner(Learner):
    def __init__(
        self,
        id: str = "debug",
        task_type: str = "classif",
        error_train: bool = False,
        error_predict: bool = False,
        warning_train: bool = False,
        warning_predict: bool = False,
        output_train: bool = False,
        output_predict: bool = False,
        null_model: bool = False,
        bad_prediction: bool = False,
        missing_row_ids: Optional[Sequence[int]] = None,
        missing_fraction: float = 0.0,
        exit_train: bool = False,
        seed: int = 0,
        **kwargs,
    ):
        super().__init__(id=id, task_type=task_type, **kwargs)
        if not 0.0 <= missing_fraction <= 1.0:
            raise ValueError(
                f"missing_fraction must be in [0, 1], got {missing_fraction}"
            )
        self.error_train = error_train
        self.error_predict = error_predict
        self.warning_train = warning_train
        self.warning_predict = warning_predict
        self.output_train = output_train
        self.output_predict = output_predict
        self.null_model = null_model
        self.bad_prediction = bad_prediction
        self.missing_row_ids = set(int(r) for r in (missing_row_ids or ()))
        self.missing_fraction = missing_fraction
        self.exit_train = exit_train
        self.seed = seed

    def fit_model(self, task):
        if self.output_train:
            print(f"Training debug learner on {task.nrow} rows")
        if self.warning_train:
            warnings.warn("Debug learner training warning", UserWarning)
        if self.exit_train:
            os._exit(1)
        if self.error_train:
            raise RuntimeError("Debug learner training error")
        if self.null_model:
            return None
        return {
            "class_names": task.class_names,
            "train_rows": np.asarray(task.row_ids).copy(),
        }

    def predict_model(self, task):
        if self.output_predict:
            print(f"Predicting {task.nrow} rows with debug learner")
        if self.warning_predict:
            warnings.warn("Debug learner prediction warning", UserWarning)
        if self.error_predict:
            raise RuntimeError("Debug learner prediction error")
        if self.bad_prediction:
            return {"row_ids": task.row_ids}

        row_ids = np.asarray(task.row_ids)
        missing = np.isin(row_ids, list(self.missing_row_ids))
        if self.missing_fraction > 0:
            rng = np.random.default_rng(self.seed)
            missing |= rng.random(len(row_ids)) < self.missing_fraction

        class_names = self.model["class_names"]
        if task.task_type == "regr":
            response = np.where(missing, np.nan, row_ids.astype(float))
            return Prediction(
                row_ids=row_ids,
                truth=task.truth(),
                response=response,
                task_type="regr",
                predict_type=self.predict_type,
            )

        response = [
            None if miss else class_names[int(rid) % len(class_names)]
            for rid, miss in zip(row_ids, missing)
        ]
        prob = None
        if self.predict_type == "prob":
            prob = np.zeros((len(row_ids), len(class_names)))
            for i, (rid, miss) in enumerate(zip(row_ids, missing)):
                if miss:
                    prob[i] = np.nan
                else:
                    prob[i, int(rid) % len(class_names)] = 1.0
        return Prediction(
            row_ids=row_ids,
            truth=task.truth(),
            response=response,
            prob=prob,
            class_names=class_names,
            task_type="classif",
            predict_type=self.predict_type,
        )
