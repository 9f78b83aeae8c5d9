"""
Learner lookup and dependency checks.

``as_learner`` turns the many ways a learner can be specified (instance,
registry key, dotted scikit-learn class path, bare estimator) into a
concrete ``Learner``. Fallbacks and YAML configs go through here.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
from typing import Any, Optional, Sequence

from foldwise.errors import MissingDependencyError
from foldwise.learners.base import Learner
from foldwise.learners.debug import DebugLearner
from foldwise.learners.featureless import FeaturelessLearner
from foldwise.learners.sklearn_learner import SklearnLearner

logger = logging.getLogger(__name__)

LEARNERS: dict[str, type[Learner]] = {
    "featureless": FeaturelessLearner,
    "debug": DebugLearner,
}


def _import_object(path: str) -> Any:
    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ValueError(
            f"Cannot resolve learner '{path}'. Use a registered key "
            f"({', '.join(LEARNERS)}) or a dotted class path."
        )
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'") from None


def as_learner(
    obj: Any,
    clone: bool = False,
    params: Optional[dict] = None,
    **kwargs,
) -> Learner:
    """
    Resolve ``obj`` to a ``Learner``.

    Parameters
    ----------
    obj : Learner, str, or estimator
        - Learner: returned as is (or cloned).
        - str: a key of ``LEARNERS`` or a dotted class path such as
          "sklearn.tree.DecisionTreeClassifier".
        - anything with ``fit``/``predict``: wrapped in ``SklearnLearner``.
    clone : bool
        Return a deep copy when ``obj`` is already a Learner.
    params : dict or None
        Constructor arguments for an estimator class given by path.
    **kwargs
        Learner options (id, encapsulate, fallback, predict_type, ...)
        used when a new learner is constructed.

    Raises
    ------
    ValueError
        If ``obj`` cannot be interpreted as a learner.
    """
    if isinstance(obj, Learner):
        return obj.clone() if clone else obj

    if isinstance(obj, str):
        if obj in LEARNERS:
            return LEARNERS[obj](**kwargs)
        target = _import_object(obj)
        if isinstance(target, type) and issubclass(target, Learner):
            return target(**kwargs)
        obj = target(**(params or {})) if isinstance(target, type) else target

    if hasattr(obj, "fit") and hasattr(obj, "predict"):
        return SklearnLearner(obj, **kwargs)

    raise ValueError(f"Cannot convert {type(obj).__name__} to a Learner")


def _is_importable(name: str) -> bool:
    # find_spec imports the parents of a dotted name and raises if one is absent
    try:
        return importlib.util.find_spec(name) is not None
    except ModuleNotFoundError:
        return False


def require_packages(packages: Sequence[str]) -> None:
    """
    Check that every package in ``packages`` is importable.

    Raises
    ------
    MissingDependencyError
        Listing all packages that could not be found.
    """
    missing = [p for p in packages if not _is_importable(p)]
    if missing:
        raise MissingDependencyError(missing)
