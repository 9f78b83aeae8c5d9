"""
foldwise Resampling Strategies
===============================
Decide which rows a learner trains on and which rows it is evaluated on,
for each iteration of an experiment.

A resampling is first *instantiated* on a task, which fixes the splits
(row ids, not positions). After that, ``train_set(i)`` and
``test_set(i)`` are pure lookups, so any number of workers can ask for
the same iteration and get the same answer.

Strategies:
    Holdout          — one random train/test split (default 2/3 train)
    CrossValidation  — k shuffled folds, each used once as the test set
    Insample         — train and test on all rows (sanity checks)
    CustomResampling — explicit, user-provided splits

Usage:
    >>> cv = CrossValidation(folds=5, seed=1).instantiate(task)
    >>> cv.iters
    5
    >>> train_ids, test_ids = cv.train_set(0), cv.test_set(0)
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
from sklearn.model_selection import KFold, ShuffleSplit

logger = logging.getLogger(__name__)


class Resampling:
    """
    Base class. Subclasses implement ``_split(row_ids)`` returning a list
    of ``(train_ids, test_ids)`` pairs.
    """

    id = "resampling"

    def __init__(self, seed: Optional[int] = 42):
        self.seed = seed
        self._train_sets: Optional[list[np.ndarray]] = None
        self._test_sets: Optional[list[np.ndarray]] = None
        self.task_id: Optional[str] = None

    def _split(self, row_ids: np.ndarray) -> list[tuple[np.ndarray, np.ndarray]]:
        raise NotImplementedError

    def instantiate(self, task) -> Resampling:
        """Fix the splits for ``task``'s currently active rows."""
        splits = self._split(np.asarray(task.row_ids))
        self._train_sets = [np.asarray(tr, dtype=np.int64) for tr, _ in splits]
        self._test_sets = [np.asarray(te, dtype=np.int64) for _, te in splits]
        self.task_id = task.id
        logger.debug(
            f"Instantiated {self.id} on task '{task.id}' "
            f"with {len(splits)} iterations"
        )
        return self

    @property
    def is_instantiated(self) -> bool:
        return self._train_sets is not None

    @property
    def iters(self) -> int:
        self._check_instantiated()
        return len(self._train_sets)

    def train_set(self, i: int) -> np.ndarray:
        self._check_index(i)
        return self._train_sets[i]

    def test_set(self, i: int) -> np.ndarray:
        self._check_index(i)
        return self._test_sets[i]

    def _check_instantiated(self) -> None:
        if not self.is_instantiated:
            raise RuntimeError(
                f"Resampling '{self.id}' has not been instantiated. "
                f"Call instantiate(task) first."
            )

    def _check_index(self, i: int) -> None:
        self._check_instantiated()
        if not 0 <= i < len(self._train_sets):
            raise IndexError(
                f"Iteration {i} out of range for {self.id} "
                f"with {len(self._train_sets)} iterations"
            )

    def __repr__(self) -> str:
        state = f"{self.iters} iters" if self.is_instantiated else "not instantiated"
        return f"{type(self).__name__}({state})"


class Holdout(Resampling):
    """
    Single random split.

    Parameters
    ----------
    ratio : float
        Fraction of rows used for training, in (0, 1).
    seed : int or None
        Shuffle seed.
    """

    id = "holdout"

    def __init__(self, ratio: float = 2 / 3, seed: Optional[int] = 42):
        if not 0.0 < ratio < 1.0:
            raise ValueError(f"ratio must be in (0, 1), got {ratio}")
        super().__init__(seed)
        self.ratio = ratio

    def _split(self, row_ids):
        splitter = ShuffleSplit(
            n_splits=1, train_size=self.ratio, random_state=self.seed
        )
        return [
            (row_ids[tr], row_ids[te])
            for tr, te in splitter.split(row_ids.reshape(-1, 1))
        ]


class CrossValidation(Resampling):
    """
    Shuffled k-fold cross-validation.

    Parameters
    ----------
    folds : int
        Number of folds (>= 2).
    seed : int or None
        Shuffle seed.
    """

    id = "cv"

    def __init__(self, folds: int = 3, seed: Optional[int] = 42):
        if folds < 2:
            raise ValueError(f"folds must be >= 2, got {folds}")
        super().__init__(seed)
        self.folds = folds

    def _split(self, row_ids):
        if len(row_ids) < self.folds:
            raise ValueError(
                f"Cannot split {len(row_ids)} rows into {self.folds} folds"
            )
        splitter = KFold(n_splits=self.folds, shuffle=True, random_state=self.seed)
        return [
            (row_ids[tr], row_ids[te])
            for tr, te in splitter.split(row_ids.reshape(-1, 1))
        ]


class Insample(Resampling):
    """Train and test on all active rows."""

    id = "insample"

    def _split(self, row_ids):
        return [(row_ids.copy(), row_ids.copy())]


class CustomResampling(Resampling):
    """
    User-defined splits.

    Parameters
    ----------
    train_sets : sequence of sequences of int
        Training row ids per iteration.
    test_sets : sequence of sequences of int
        Test row ids per iteration; same length as ``train_sets``.
    """

    id = "custom"

    def __init__(
        self,
        train_sets: Sequence[Sequence[int]],
        test_sets: Sequence[Sequence[int]],
    ):
        if len(train_sets) != len(test_sets):
            raise ValueError(
                f"Got {len(train_sets)} train sets but {len(test_sets)} test sets"
            )
        super().__init__(seed=None)
        self._given = [
            (np.asarray(tr, dtype=np.int64), np.asarray(te, dtype=np.int64))
            for tr, te in zip(train_sets, test_sets)
        ]

    def _split(self, row_ids):
        known = set(int(r) for r in row_ids)
        for i, (tr, te) in enumerate(self._given):
            unknown = [int(r) for r in np.concatenate([tr, te]) if int(r) not in known]
            if unknown:
                raise ValueError(
                    f"Custom split {i} references unknown row ids {unknown[:10]}"
                )
        return self._given
