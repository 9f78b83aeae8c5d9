"""
foldwise Learner Base
======================
The pluggable trainable-model abstraction that the execution core drives.

A learner has two halves:
    1. Configuration — id, task type, packages it needs, how its train and
       predict steps are isolated, an optional fallback learner, the
       predict type, and which evaluation sets to predict on.
    2. State — everything produced by training: the fitted model, the
       captured log, timings, and the fallback's own state.

Contract for subclasses:
    fit_model(task)      -> model       (required; must not return None)
    predict_model(task)  -> Prediction  (required)

Both are called with the task already restricted to the rows of interest.
Older learners may instead set single-argument ``train_internal`` /
``predict_internal`` callables on the instance; if present they win.

Analogy:
    The learner is a contractor. ``fit_model`` / ``predict_model`` is the
    job description; ``state`` is the contractor's logbook, which the site
    manager (the orchestrators) wipes clean at the start of every job.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Literal, Optional, Sequence, Union

from foldwise.execution.capsule import ENCAPSULATION_MODES
from foldwise.execution.log import Log

logger = logging.getLogger(__name__)

PREDICT_SETS = ("train", "test")

_LEGACY_HOOKS = {"train": "train_internal", "predict": "predict_internal"}


@dataclass
class LearnerState:
    """
    Everything a learner accumulates during one train/predict cycle.

    Parameters
    ----------
    model : Any
        Fitted model, or None if training failed or was never run.
    log : Log
        Captured output/warnings/errors of train and predict.
    train_time : float or None
        Seconds spent in the train step.
    predict_time : float or None
        Seconds spent in the most recent predict step.
    fallback_state : LearnerState or None
        State of the trained fallback learner, if one is configured.
    """
    model: Any = None
    log: Log = field(default_factory=Log)
    train_time: Optional[float] = None
    predict_time: Optional[float] = None
    fallback_state: Optional["LearnerState"] = None

    def copy(self, **changes) -> "LearnerState":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Summary without the model object (which may be large)."""
        return {
            "has_model": self.model is not None,
            "log": self.log.to_records(),
            "train_time": self.train_time,
            "predict_time": self.predict_time,
            "has_fallback_state": self.fallback_state is not None,
        }


class Learner:
    """
    Abstract learner.

    Parameters
    ----------
    id : str
        Identifier used in logs and results.
    task_type : str
        "classif" or "regr".
    packages : sequence of str
        Importable module names this learner needs at train/predict time.
    encapsulate : dict or None
        Isolation mode per stage, e.g. ``{"train": "evaluate",
        "predict": "evaluate"}``. Missing stages default to "none".
    fallback : Learner, str, or None
        Secondary learner used when this one produces no or incomplete
        predictions. Strings are resolved through the learner registry.
    predict_type : str
        "response" or "prob".
    predict_sets : sequence of str
        Evaluation sets to predict on during resampling ("train", "test").
    """

    def __init__(
        self,
        id: str,
        task_type: Literal["classif", "regr"] = "classif",
        packages: Sequence[str] = (),
        encapsulate: Optional[dict[str, str]] = None,
        fallback: Union["Learner", str, None] = None,
        predict_type: Literal["response", "prob"] = "response",
        predict_sets: Sequence[str] = ("test",),
    ):
        self.id = id
        self.task_type = task_type
        self.packages = tuple(packages)
        self.encapsulate = {"train": "none", "predict": "none"}
        if encapsulate:
            self.set_encapsulation(**encapsulate)
        self.fallback = fallback
        self.predict_type = predict_type
        self.predict_sets = list(predict_sets)
        self.state = LearnerState()

        for name in self.predict_sets:
            if name not in PREDICT_SETS:
                raise ValueError(
                    f"Unknown predict set: '{name}'. "
                    f"Choose from: {', '.join(PREDICT_SETS)}"
                )

    # ─── Contract ───────────────────────────────────────────────────────

    def fit_model(self, task) -> Any:
        """Fit on ``task``'s active rows and return the model."""
        raise NotImplementedError(f"{type(self).__name__} must implement fit_model()")

    def predict_model(self, task):
        """Predict ``task``'s active rows with ``self.model``."""
        raise NotImplementedError(
            f"{type(self).__name__} must implement predict_model()"
        )

    def resolve_hook(self, stage: str) -> Callable:
        """
        Return the callable implementing ``stage`` ("train"/"predict").

        A legacy ``train_internal`` / ``predict_internal`` attribute set
        on the instance takes priority over the contract methods.
        """
        legacy = self.__dict__.get(_LEGACY_HOOKS[stage])
        if callable(legacy):
            return legacy
        return self.fit_model if stage == "train" else self.predict_model

    # ─── Convenience ────────────────────────────────────────────────────

    @property
    def model(self) -> Any:
        return self.state.model

    @property
    def is_trained(self) -> bool:
        return self.state.model is not None

    @property
    def log(self) -> Log:
        return self.state.log

    def set_encapsulation(self, train: Optional[str] = None, predict: Optional[str] = None) -> Learner:
        for stage, mode in (("train", train), ("predict", predict)):
            if mode is None:
                continue
            if mode not in ENCAPSULATION_MODES:
                raise ValueError(
                    f"Unknown encapsulation mode for {stage}: '{mode}'. "
                    f"Choose from: {', '.join(ENCAPSULATION_MODES)}"
                )
            self.encapsulate[stage] = mode
        return self

    def train(self, task, row_ids: Optional[Sequence[int]] = None) -> Learner:
        from foldwise.execution.train import train_learner

        return train_learner(self, task, row_ids)

    def predict(self, task, row_ids: Optional[Sequence[int]] = None):
        from foldwise.execution.predict import predict_learner

        return predict_learner(self, task, row_ids)

    def reset(self) -> Learner:
        self.state = LearnerState()
        return self

    def clone(self) -> Learner:
        """Deep copy, so the clone never shares mutable state with self."""
        return copy.deepcopy(self)

    def __repr__(self) -> str:
        fb = getattr(self.fallback, "id", self.fallback)
        return (
            f"{type(self).__name__}(id={self.id!r}, "
            f"trained={self.is_trained}, "
            f"encapsulate={self.encapsulate}, fallback={fb!r})"
        )
