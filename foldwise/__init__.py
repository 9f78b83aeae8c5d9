"""
foldwise
=========
Fault-tolerant resampling of machine-learning models.

foldwise runs a learner through the iterations of a resampling scheme
(holdout, cross-validation, ...) and makes sure that one broken fit or
predict does not take the whole experiment down with it:

    1. Every train and predict step runs inside a capsule that turns
       exceptions, warnings and printed output into log records
    2. A failed step leaves an empty model / prediction behind, and the
       experiment carries on
    3. An optional fallback learner fills in predictions the primary
       learner could not make, either completely or row by row
    4. Iterations are independent and can run in parallel

Quick Start:
    >>> from sklearn.tree import DecisionTreeClassifier
    >>> from foldwise import Task, CrossValidation, SklearnLearner, resample
    >>> task = Task.from_sklearn("iris")
    >>> learner = SklearnLearner(DecisionTreeClassifier(),
    ...                          encapsulate={"train": "evaluate",
    ...                                       "predict": "evaluate"},
    ...                          fallback="featureless")
    >>> rr = resample(task, learner, CrossValidation(folds=5))
    >>> rr.aggregate("classif.acc")

Subpackages:
    - foldwise.execution  — Capsule executor, train/predict orchestrators, workers
    - foldwise.learners   — Learner abstraction, Prediction, built-in learners
    - foldwise.data       — Task and resampling strategies
    - foldwise.evaluation — Measures and resample results
"""

__version__ = "0.1.0"

# learners must be imported before the orchestrators that depend on them
from foldwise.errors import ContractViolation, FoldwiseError, MissingDependencyError
from foldwise.execution import Log, Severity, append_log, encapsulate, use_rows
from foldwise.learners import (
    DebugLearner,
    FeaturelessLearner,
    Learner,
    LearnerState,
    Prediction,
    SklearnLearner,
    as_learner,
)
from foldwise.data import CrossValidation, CustomResampling, Holdout, Insample, Task
from foldwise.execution.train import train_learner
from foldwise.execution.predict import predict_learner
from foldwise.execution.worker import IterationResult, reassemble, run_iteration
from foldwise.execution.resample import resample
from foldwise.evaluation import ResampleResult, score_prediction
