"""
foldwise Prediction
====================
Predictions of one learner on a set of rows: the row ids, the true
target, the predicted response and (optionally) class probabilities.

A row whose response is ``None`` (classification) or ``NaN``
(regression) is *missing*: the learner ran but could not say anything
about it. Missing rows are what a fallback learner imputes.

Merging:
    ``primary.merge(fallback)`` combines two predictions into one with
    exactly one entry per row id. For a row present in both, the primary
    value wins unless it is missing, in which case the fallback's value
    fills the gap. Rows only the fallback knows are appended.

Usage:
    >>> pred = learner.predict(task, row_ids=[0, 1, 2])
    >>> pred.missing
    array([1])
    >>> pred = pred.merge(fallback.predict(task, row_ids=pred.missing))
    >>> len(pred.missing)
    0
"""

from __future__ import annotations

from typing import Literal, Optional, Sequence

import numpy as np

PREDICT_TYPES = ("response", "prob")


def _missing_mask(response: np.ndarray) -> np.ndarray:
    if response.dtype.kind == "f":
        return np.isnan(response)
    if response.dtype.kind == "O":
        return np.array(
            [v is None or (isinstance(v, float) and np.isnan(v)) for v in response],
            dtype=bool,
        )
    return np.zeros(len(response), dtype=bool)


class Prediction:
    """
    Parameters
    ----------
    row_ids : sequence of int
        Ids of the predicted rows.
    truth : sequence or None
        True target values, aligned with ``row_ids``.
    response : sequence
        Predicted labels or values; ``None``/``NaN`` marks a missing row.
    prob : array-like, shape (n_rows, n_classes), or None
        Class probabilities, columns ordered as ``class_names``.
    class_names : sequence or None
        Class labels for classification tasks.
    task_type : str
        "classif" or "regr".
    predict_type : str
        "response" or "prob".
    """

    def __init__(
        self,
        row_ids: Sequence[int],
        truth: Optional[Sequence],
        response: Sequence,
        prob: Optional[np.ndarray] = None,
        class_names: Optional[Sequence] = None,
        task_type: Literal["classif", "regr"] = "classif",
        predict_type: Literal["response", "prob"] = "response",
    ):
        if predict_type not in PREDICT_TYPES:
            raise ValueError(
                f"Unknown predict_type: '{predict_type}'. Choose from: response, prob"
            )
        self.row_ids = np.asarray(row_ids, dtype=np.int64).reshape(-1)
        n = len(self.row_ids)

        if task_type == "classif":
            self.response = np.asarray(response, dtype=object).reshape(-1)
        else:
            self.response = np.asarray(
                [np.nan if v is None else v for v in response], dtype=float
            ).reshape(-1)
        self.truth = None if truth is None else np.asarray(truth).reshape(-1)
        self.prob = None if prob is None else np.asarray(prob, dtype=float)
        if self.prob is not None and self.prob.ndim == 1:
            self.prob = self.prob.reshape(n, -1)
        self.class_names = list(class_names) if class_names is not None else None
        self.task_type = task_type
        self.predict_type = predict_type

        if len(self.response) != n:
            raise ValueError(
                f"Got {len(self.response)} responses for {n} row ids"
            )
        if self.truth is not None and len(self.truth) != n:
            raise ValueError(f"Got {len(self.truth)} truth values for {n} row ids")
        if self.prob is not None and self.class_names is not None \
                and self.prob.shape[1] != len(self.class_names):
            raise ValueError(
                f"prob has {self.prob.shape[1]} columns but there are "
                f"{len(self.class_names)} classes"
            )

    # ─── Construction ───────────────────────────────────────────────────

    @classmethod
    def empty(cls, task, predict_type: str = "response") -> Prediction:
        """A zero-row prediction bound to ``task``'s type and classes."""
        class_names = task.class_names
        prob = None
        if predict_type == "prob" and class_names is not None:
            prob = np.empty((0, len(class_names)))
        return cls(
            row_ids=[],
            truth=task.truth([]),
            response=[],
            prob=prob,
            class_names=class_names,
            task_type=task.task_type,
            predict_type=predict_type,
        )

    @classmethod
    def concat(cls, predictions: Sequence[Prediction]) -> Prediction:
        """
        Stack predictions row-wise, keeping every row (duplicates included).

        Used to pool per-iteration predictions of a resampling; use
        ``merge`` to combine predictions of the same rows.
        """
        if not predictions:
            raise ValueError("Need at least one prediction to concatenate")
        first = predictions[0]
        for p in predictions[1:]:
            first._check_compatible(p)
        has_truth = all(p.truth is not None for p in predictions)
        has_prob = all(p.prob is not None for p in predictions)
        return cls(
            row_ids=np.concatenate([p.row_ids for p in predictions]),
            truth=np.concatenate([p.truth for p in predictions]) if has_truth else None,
            response=np.concatenate([p.response for p in predictions]),
            prob=np.vstack([p.prob for p in predictions]) if has_prob else None,
            class_names=first.class_names,
            task_type=first.task_type,
            predict_type=first.predict_type,
        )

    # ─── Inspection ─────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.row_ids)

    @property
    def is_missing(self) -> np.ndarray:
        """Boolean mask over rows: True where the response is absent."""
        return _missing_mask(self.response)

    @property
    def missing(self) -> np.ndarray:
        """Row ids without a predicted response."""
        return self.row_ids[self.is_missing]

    def to_dict(self) -> dict:
        out = {
            "row_ids": self.row_ids.tolist(),
            "response": self.response.tolist(),
        }
        if self.truth is not None:
            out["truth"] = self.truth.tolist()
        if self.prob is not None:
            out["prob"] = self.prob.tolist()
            out["class_names"] = self.class_names
        return out

    # ─── Merging ────────────────────────────────────────────────────────

    def _check_compatible(self, other: Prediction) -> None:
        if not isinstance(other, Prediction):
            raise TypeError(f"Cannot combine Prediction with {type(other).__name__}")
        if self.task_type != other.task_type:
            raise ValueError(
                f"Cannot combine {self.task_type} and {other.task_type} predictions"
            )
        if self.class_names is not None and other.class_names is not None \
                and self.class_names != other.class_names:
            raise ValueError(
                f"Class labels differ: {self.class_names} vs {other.class_names}"
            )

    def merge(
        self,
        other: Prediction,
        duplicates: Literal["fill", "error"] = "fill",
    ) -> Prediction:
        """
        Combine with ``other`` into one prediction without duplicate rows.

        Parameters
        ----------
        other : Prediction
            Prediction to merge in (typically from a fallback learner).
        duplicates : str
            "fill" — on a shared row id keep this prediction's value,
            unless it is missing, then take ``other``'s.
            "error" — raise if the two share any row id.

        Returns
        -------
        Prediction
            Rows of ``self`` in their order, followed by rows only in
            ``other``.

        Raises
        ------
        ValueError
            On shared row ids with ``duplicates="error"``, or when task
            type, class labels or probability columns do not match.
        """
        self._check_compatible(other)
        if duplicates not in ("fill", "error"):
            raise ValueError(
                f"Unknown duplicates policy: '{duplicates}'. Choose from: fill, error"
            )
        if (self.prob is None) != (other.prob is None):
            raise ValueError(
                "Cannot merge a prediction with probabilities and one without"
            )

        positions = {int(rid): i for i, rid in enumerate(self.row_ids)}
        overlap = [int(r) for r in other.row_ids if int(r) in positions]
        if overlap and duplicates == "error":
            raise ValueError(
                f"Predictions share {len(overlap)} row ids, e.g. {overlap[:10]}"
            )

        response = self.response.copy()
        prob = None if self.prob is None else self.prob.copy()
        self_missing = _missing_mask(self.response)
        other_missing = _missing_mask(other.response)

        extra: list[int] = []
        seen: set[int] = set()
        for j, rid in enumerate(other.row_ids):
            rid = int(rid)
            i = positions.get(rid)
            if i is None:
                if rid not in seen:
                    seen.add(rid)
                    extra.append(j)
                continue
            if self_missing[i] and not other_missing[j]:
                response[i] = other.response[j]
                if prob is not None:
                    prob[i] = other.prob[j]

        extra_idx = np.asarray(extra, dtype=np.intp)
        truth = None
        if self.truth is not None and other.truth is not None:
            truth = np.concatenate([self.truth, other.truth[extra_idx]])
        if prob is not None:
            prob = np.vstack([prob, other.prob[extra_idx]])

        return Prediction(
            row_ids=np.concatenate([self.row_ids, other.row_ids[extra_idx]]),
            truth=truth,
            response=np.concatenate([response, other.response[extra_idx]]),
            prob=prob,
            class_names=self.class_names or other.class_names,
            task_type=self.task_type,
            predict_type=self.predict_type,
        )

    def __repr__(self) -> str:
        return (
            f"Prediction({self.task_type}, {len(self)} rows, "
            f"{len(self.missing)} missing, predict_type={self.predict_type})"
        )
