"""
foldwise.learners — Learners and Predictions
=============================================
The pluggable model side of foldwise.

Components:
    - base.py             — Learner abstraction and LearnerState
    - prediction.py       — Prediction container with fallback-aware merge
    - sklearn_learner.py  — adapter for any scikit-learn estimator
    - featureless.py      — feature-blind baseline (default fallback)
    - debug.py            — learner that fails on demand, for testing
    - registry.py         — as_learner() lookup and package checks
"""

from foldwise.learners.base import Learner, LearnerState
from foldwise.learners.prediction import Prediction
from foldwise.learners.sklearn_learner import SklearnLearner
from foldwise.learners.featureless import FeaturelessLearner
from foldwise.learners.debug import DebugLearner
from foldwise.learners.registry import as_learner, require_packages
