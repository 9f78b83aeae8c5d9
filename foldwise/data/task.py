"""
foldwise Task
==============
A supervised learning problem: a feature matrix, a target vector, and
bookkeeping about which rows are currently "in use".

The row bookkeeping is the part the execution core cares about. Every
row has a stable integer id (by default 0..n-1). The ``"use"`` row role
holds the ids that train/predict should see right now; the orchestrators
narrow it to a resampling split for one call and restore it afterwards.
The data arrays themselves are never copied or modified.

Analogy:
    The data is a library; the task is a reading list. Changing the
    reading list is cheap, and two readers can share one library as long
    as each has their own list (see ``Task.clone``).

Usage:
    >>> task = Task.from_sklearn("iris")
    >>> task.nrow
    150
    >>> task.active_rows = [0, 1, 2]
    >>> X, y = task.data()
    >>> X.shape
    (3, 4)
"""

from __future__ import annotations

import copy
import logging
from typing import Literal, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

TASK_TYPES = ("classif", "regr")

_SKLEARN_DATASETS = {
    "iris": ("load_iris", "classif"),
    "wine": ("load_wine", "classif"),
    "breast_cancer": ("load_breast_cancer", "classif"),
    "diabetes": ("load_diabetes", "regr"),
}


class Task:
    """
    In-memory supervised task backed by NumPy arrays.

    Parameters
    ----------
    id : str
        Human-readable identifier, used in logs and progress strings.
    X : array-like, shape (n_samples, n_features)
        Feature matrix.
    y : array-like, shape (n_samples,)
        Target vector. Class labels for "classif", numbers for "regr".
    task_type : str
        "classif" or "regr".
    row_ids : sequence of int or None
        Stable row identifiers. Defaults to 0..n_samples-1.
    feature_names : sequence of str or None
        Column names. Defaults to x0, x1, ...
    """

    def __init__(
        self,
        id: str,
        X,
        y,
        task_type: Literal["classif", "regr"] = "classif",
        row_ids: Optional[Sequence[int]] = None,
        feature_names: Optional[Sequence[str]] = None,
    ):
        if task_type not in TASK_TYPES:
            raise ValueError(
                f"Unknown task_type: '{task_type}'. Choose from: classif, regr"
            )

        X = np.asarray(X)
        y = np.asarray(y)
        if X.ndim != 2:
            raise ValueError(f"X must be 2-dimensional, got shape {X.shape}")
        if len(y) != X.shape[0]:
            raise ValueError(
                f"X has {X.shape[0]} rows but y has {len(y)} entries"
            )

        if row_ids is None:
            row_ids = np.arange(X.shape[0])
        row_ids = np.asarray(row_ids, dtype=np.int64)
        if len(row_ids) != X.shape[0]:
            raise ValueError(
                f"Got {len(row_ids)} row_ids for {X.shape[0]} rows"
            )
        if len(np.unique(row_ids)) != len(row_ids):
            raise ValueError("row_ids must be unique")

        self.id = id
        self.task_type = task_type
        self.X = X
        self.y = y
        self.feature_names = (
            list(feature_names) if feature_names is not None
            else [f"x{i}" for i in range(X.shape[1])]
        )
        self._all_row_ids = row_ids
        self._positions = {int(rid): i for i, rid in enumerate(row_ids)}
        self.row_roles: dict[str, np.ndarray] = {"use": row_ids.copy()}

    # ─── Row roles ──────────────────────────────────────────────────────

    @property
    def active_rows(self) -> np.ndarray:
        """Row ids currently in use."""
        return self.row_roles["use"]

    @active_rows.setter
    def active_rows(self, row_ids: Sequence[int]) -> None:
        row_ids = np.asarray(row_ids, dtype=np.int64).reshape(-1)
        unknown = [int(r) for r in row_ids if int(r) not in self._positions]
        if unknown:
            raise ValueError(
                f"Task '{self.id}' has no rows with ids {unknown[:10]}"
            )
        self.row_roles["use"] = row_ids

    @property
    def row_ids(self) -> np.ndarray:
        """Ids of the active rows, in order."""
        return self.active_rows

    @property
    def all_row_ids(self) -> np.ndarray:
        return self._all_row_ids

    @property
    def nrow(self) -> int:
        return len(self.active_rows)

    @property
    def n_features(self) -> int:
        return self.X.shape[1]

    @property
    def class_names(self) -> Optional[list]:
        """Sorted class labels over all rows (None for regression)."""
        if self.task_type != "classif":
            return None
        return sorted(np.unique(self.y).tolist())

    # ─── Data access ────────────────────────────────────────────────────

    def _rows_to_positions(self, rows: Optional[Sequence[int]]) -> np.ndarray:
        if rows is None:
            rows = self.active_rows
        return np.fromiter(
            (self._positions[int(r)] for r in rows),
            dtype=np.intp,
            count=len(rows),
        )

    def data(self, rows: Optional[Sequence[int]] = None) -> tuple[np.ndarray, np.ndarray]:
        """
        Return ``(X, y)`` for ``rows`` (default: the active rows).

        Raises
        ------
        KeyError
            If a requested row id does not exist.
        """
        pos = self._rows_to_positions(rows)
        return self.X[pos], self.y[pos]

    def truth(self, rows: Optional[Sequence[int]] = None) -> np.ndarray:
        return self.y[self._rows_to_positions(rows)]

    # ─── Construction helpers ───────────────────────────────────────────

    def clone(self) -> Task:
        """
        Lightweight copy: own row roles, shared data arrays.

        Subsetting the clone never affects the original, so each
        resampling iteration can work on its own clone concurrently.
        """
        new = copy.copy(self)
        new.row_roles = {k: v.copy() for k, v in self.row_roles.items()}
        return new

    @classmethod
    def from_sklearn(cls, name: str) -> Task:
        """
        Build a task from one of scikit-learn's bundled toy datasets.

        Parameters
        ----------
        name : str
            "iris", "wine", "breast_cancer" (classification) or
            "diabetes" (regression).
        """
        if name not in _SKLEARN_DATASETS:
            raise ValueError(
                f"Unknown dataset: '{name}'. "
                f"Choose from: {', '.join(_SKLEARN_DATASETS)}"
            )
        from sklearn import datasets

        loader_name, task_type = _SKLEARN_DATASETS[name]
        bunch = getattr(datasets, loader_name)()
        y = bunch.target
        if task_type == "classif" and hasattr(bunch, "target_names"):
            y = np.asarray(bunch.target_names)[bunch.target]

        logger.info(
            f"Loaded dataset '{name}': {bunch.data.shape[0]} rows, "
            f"{bunch.data.shape[1]} features ({task_type})"
        )
        return cls(
            id=name,
            X=bunch.data,
            y=y,
            task_type=task_type,
            feature_names=getattr(bunch, "feature_names", None),
        )

    def __repr__(self) -> str:
        return (
            f"Task(id={self.id!r}, type={self.task_type}, "
            f"rows={self.nrow}/{len(self._all_row_ids)}, "
            f"features={self.n_features})"
        )
