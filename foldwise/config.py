"""
foldwise Configuration System
==============================
Centralized configuration for a foldwise experiment using Python
dataclasses. Which dataset, which learner (and its fallback), how it is
resampled, and how the iterations are executed all live here.

Think of this as the "run sheet" for an experiment. Change a value here
and the CLI picks it up — no hunting through code.

Usage:
    # Load from YAML file:
    >>> config = FoldwiseConfig.from_yaml("configs/default.yaml")

    # Create programmatically:
    >>> config = FoldwiseConfig(
    ...     learner=LearnerConfig(estimator="sklearn.svm.SVC"),
    ...     resampling=ResamplingConfig(method="cv", folds=10),
    ... )

    # Save to YAML:
    >>> config.to_yaml("configs/my_experiment.yaml")

    # Access nested values:
    >>> config.learner.fallback        # "featureless"
    >>> config.execution.n_jobs        # 1
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Literal, Optional

import yaml

from foldwise.data.task import _SKLEARN_DATASETS
from foldwise.execution.capsule import ENCAPSULATION_MODES
from foldwise.learners.base import PREDICT_SETS

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


# =============================================================================
# Data Configuration
# =============================================================================

@dataclass
class DataConfig:
    """
    Which dataset to run on.

    Parameters
    ----------
    dataset : str
        Name of a bundled scikit-learn dataset:
        "iris", "wine", "breast_cancer" (classification) or
        "diabetes" (regression).
    """
    dataset: str = "iris"

    def validate(self) -> None:
        """Validate data parameters."""
        if self.dataset not in _SKLEARN_DATASETS:
            raise ValueError(
                f"Unknown dataset: '{self.dataset}'. "
                f"Choose from: {', '.join(_SKLEARN_DATASETS)}"
            )

    @property
    def task_type(self) -> str:
        return _SKLEARN_DATASETS[self.dataset][1]


# =============================================================================
# Learner Configuration
# =============================================================================

@dataclass
class LearnerConfig:
    """
    The learner under test and how it is protected.

    Parameters
    ----------
    estimator : str
        A registered learner key ("featureless", "debug") or a dotted
        class path such as "sklearn.tree.DecisionTreeClassifier".

    params : dict
        Constructor arguments for the estimator (or learner) class.

    id : str or None
        Learner id used in logs and results. Defaults to the class name.

    predict_type : str
        "response" (labels/values) or "prob" (class probabilities).

    predict_sets : list[str]
        Evaluation sets to predict on in each iteration: "train", "test".

    fallback : str or None
        Learner used when the primary one fails or leaves rows missing.
        Same forms as ``estimator``. None disables the fallback.

    encapsulate_train : str
        Isolation of the train step: "none", "evaluate", or "process".
        With "none" a failing learner stops the whole experiment.

    encapsulate_predict : str
        Isolation of the predict step, same choices.
    """
    estimator: str = "sklearn.tree.DecisionTreeClassifier"
    params: dict = field(default_factory=dict)
    id: Optional[str] = None
    predict_type: Literal["response", "prob"] = "response"
    predict_sets: list[str] = field(default_factory=lambda: ["test"])
    fallback: Optional[str] = "featureless"
    encapsulate_train: Literal["none", "evaluate", "process"] = "evaluate"
    encapsulate_predict: Literal["none", "evaluate", "process"] = "evaluate"

    def validate(self) -> None:
        """Validate learner parameters."""
        if not self.estimator:
            raise ValueError("estimator must be a non-empty string")
        if self.predict_type not in ("response", "prob"):
            raise ValueError(
                f"Unknown predict_type: '{self.predict_type}'. "
                f"Choose from: response, prob"
            )
        if not self.predict_sets:
            raise ValueError("predict_sets must name at least one set")
        for name in self.predict_sets:
            if name not in PREDICT_SETS:
                raise ValueError(
                    f"Unknown predict set: '{name}'. "
                    f"Choose from: {', '.join(PREDICT_SETS)}"
                )
        for stage, mode in (("train", self.encapsulate_train),
                            ("predict", self.encapsulate_predict)):
            if mode not in ENCAPSULATION_MODES:
                raise ValueError(
                    f"Unknown encapsulation mode for {stage}: '{mode}'. "
                    f"Choose from: {', '.join(ENCAPSULATION_MODES)}"
                )

    @property
    def encapsulate(self) -> dict[str, str]:
        return {"train": self.encapsulate_train, "predict": self.encapsulate_predict}


# =============================================================================
# Resampling Configuration
# =============================================================================

@dataclass
class ResamplingConfig:
    """
    How rows are split into training and test sets.

    Parameters
    ----------
    method : str
        "holdout", "cv" (k-fold cross-validation), or "insample".

    ratio : float
        Training fraction for "holdout". Range: (0, 1).

    folds : int
        Number of folds for "cv". Must be >= 2.

    seed : int
        Shuffle seed. Same seed = same splits.
    """
    method: Literal["holdout", "cv", "insample"] = "cv"
    ratio: float = 2 / 3
    folds: int = 3
    seed: int = 42

    def validate(self) -> None:
        """Validate resampling parameters."""
        if self.method not in ("holdout", "cv", "insample"):
            raise ValueError(
                f"Unknown resampling method: '{self.method}'. "
                f"Choose from: holdout, cv, insample"
            )
        if not 0.0 < self.ratio < 1.0:
            raise ValueError(f"ratio must be in (0, 1), got {self.ratio}")
        if self.folds < 2:
            raise ValueError(f"folds must be >= 2, got {self.folds}")


# =============================================================================
# Execution Configuration
# =============================================================================

@dataclass
class ExecutionConfig:
    """
    How iterations are executed and what is kept.

    Parameters
    ----------
    n_jobs : int
        Parallel workers. 1 = sequential, -1 = all CPUs.

    backend : str
        joblib backend for parallel runs: "loky" (processes) or
        "threading".

    store_models : bool
        Keep the fitted model of every iteration. Off by default because
        models can be large.

    log_level : str or None
        Log threshold inside workers ("DEBUG", "INFO", ...).
        None keeps the coordinator's level.

    show_progress : bool
        Show a progress bar over iterations.

    measures : list[str]
        Measures reported at the end of a run, e.g. "classif.acc".
    """
    n_jobs: int = 1
    backend: Literal["loky", "threading"] = "loky"
    store_models: bool = False
    log_level: Optional[str] = None
    show_progress: bool = True
    measures: list[str] = field(default_factory=lambda: ["classif.acc"])

    def validate(self) -> None:
        """Validate execution parameters."""
        if self.n_jobs == 0 or self.n_jobs < -1:
            raise ValueError(f"n_jobs must be >= 1 or -1, got {self.n_jobs}")
        if self.backend not in ("loky", "threading"):
            raise ValueError(
                f"Unknown backend: '{self.backend}'. Choose from: loky, threading"
            )
        if self.log_level is not None and self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(
                f"Unknown log_level: '{self.log_level}'. "
                f"Choose from: {', '.join(_LOG_LEVELS)}"
            )


# =============================================================================
# Master Configuration
# =============================================================================

@dataclass
class FoldwiseConfig:
    """
    Master configuration combining all sub-configurations.

    This is the single source of truth for an experiment.

    Usage:
        # From YAML file:
        >>> config = FoldwiseConfig.from_yaml("configs/default.yaml")

        # Programmatic:
        >>> config = FoldwiseConfig()
        >>> config.validate()

        # Save:
        >>> config.to_yaml("configs/my_experiment.yaml")
    """
    data: DataConfig = field(default_factory=DataConfig)
    learner: LearnerConfig = field(default_factory=LearnerConfig)
    resampling: ResamplingConfig = field(default_factory=ResamplingConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    def validate(self) -> None:
        """
        Validate all sub-configurations and cross-config consistency.

        Raises
        ------
        ValueError
            If any parameter is invalid or configs are inconsistent.
        """
        self.data.validate()
        self.learner.validate()
        self.resampling.validate()
        self.execution.validate()

        # Cross-config consistency checks
        task_type = self.data.task_type
        for measure in self.execution.measures:
            if not measure.startswith(f"{task_type}."):
                raise ValueError(
                    f"Measure '{measure}' does not fit dataset "
                    f"'{self.data.dataset}' ({task_type} task)"
                )
        if self.learner.predict_type == "prob" and task_type != "classif":
            raise ValueError(
                f"predict_type='prob' requires a classification dataset, "
                f"but '{self.data.dataset}' is {task_type}"
            )

        logger.info(
            f"Config validated: {self.learner.estimator} on "
            f"{self.data.dataset}, {self.resampling.method} resampling, "
            f"fallback={self.learner.fallback}"
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> FoldwiseConfig:
        """
        Load configuration from a YAML file.

        Parameters
        ----------
        path : str or Path
            Path to the YAML configuration file.

        Returns
        -------
        FoldwiseConfig
            Loaded and validated configuration.

        Raises
        ------
        FileNotFoundError
            If the YAML file does not exist.
        yaml.YAMLError
            If the YAML file is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(
                f"Config file not found: {path}. "
                f"Create one from configs/default.yaml as a template."
            )

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if raw is None:
            raise ValueError(f"Config file is empty: {path}")

        config = cls(
            data=DataConfig(**raw.get("data", {})),
            learner=LearnerConfig(**raw.get("learner", {})),
            resampling=ResamplingConfig(**raw.get("resampling", {})),
            execution=ExecutionConfig(**raw.get("execution", {})),
        )

        config.validate()
        return config

    def to_yaml(self, path: str | Path) -> None:
        """
        Save configuration to a YAML file.

        Creates parent directories if they don't exist.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.to_dict(),
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

        logger.info(f"Config saved to {path}")

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)

    @classmethod
    def for_smoke_test(cls) -> FoldwiseConfig:
        """
        Minimal configuration that finishes in seconds: a featureless
        learner on iris, 2-fold CV, no parallelism, no progress bar.
        """
        return cls(
            data=DataConfig(dataset="iris"),
            learner=LearnerConfig(
                estimator="featureless",
                predict_sets=["train", "test"],
                fallback=None,
            ),
            resampling=ResamplingConfig(method="cv", folds=2, seed=1),
            execution=ExecutionConfig(
                n_jobs=1,
                store_models=True,
                show_progress=False,
                measures=["classif.acc", "classif.ce"],
            ),
        )

    def __repr__(self) -> str:
        """Pretty-print the configuration."""
        r = self.resampling
        split = f"{r.folds}-fold cv" if r.method == "cv" else (
            f"holdout {r.ratio:.0%}" if r.method == "holdout" else r.method
        )
        lines = [
            "FoldwiseConfig(",
            f"  Data:       {self.data.dataset} ({self.data.task_type})",
            f"  Learner:    {self.learner.estimator} "
            f"(predict_type={self.learner.predict_type}, "
            f"fallback={self.learner.fallback})",
            f"  Isolation:  train={self.learner.encapsulate_train}, "
            f"predict={self.learner.encapsulate_predict}",
            f"  Resampling: {split}, seed={r.seed}",
            f"  Execution:  n_jobs={self.execution.n_jobs} "
            f"({self.execution.backend}), "
            f"store_models={self.execution.store_models}",
            ")",
        ]
        return "\n".join(lines)
