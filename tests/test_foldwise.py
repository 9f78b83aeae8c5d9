#!/usr/bin/env python3
"""
Tests for the foldwise log, capsule executor, train/predict orchestrators,
iteration worker, resampling, predictions, measures and configuration.

Run all tests:
    cd /path/to/foldwise
    python -m pytest tests/ -v --tb=short

Run one group:
    python -m pytest tests/test_foldwise.py -v -k TestPredictLearner
"""

import logging
import sys
import threading
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def _toy_task(n: int = 8, task_type: str = "classif"):
    """Task with row ids 1..n; labels alternate a, b, a, b, ..."""
    from foldwise.data.task import Task
    X = np.arange(n * 2, dtype=float).reshape(n, 2)
    if task_type == "classif":
        y = np.array(["a", "b"] * (n // 2))
    else:
        y = np.arange(n, dtype=float)
    return Task("toy", X, y, task_type=task_type, row_ids=np.arange(1, n + 1))


def _isolated(**kwargs):
    """DebugLearner with both stages in 'evaluate' mode."""
    from foldwise.learners.debug import DebugLearner
    return DebugLearner(
        encapsulate={"train": "evaluate", "predict": "evaluate"}, **kwargs
    )


def _raise_boom():
    raise RuntimeError("boom")


def _chatty():
    print("hello")
    warnings.warn("careful", UserWarning)
    return 42


def _slow_failure():
    time.sleep(0.05)
    raise ValueError("too slow")


def _print_and_wait(tag):
    print(tag)
    time.sleep(0.5)
    return tag


def _exit_three():
    sys.exit(3)


def _outer_with_inner_capsule():
    """Capsule body that runs another capsule on a worker thread."""
    from foldwise.execution.capsule import encapsulate
    print("outer")
    with ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(encapsulate, "evaluate", _chatty).result(timeout=10)


# =============================================================================
# Log Tests
# =============================================================================

class TestLog:
    """Tests for the append-only learner log."""

    def test_append_nothing_is_identity(self):
        """Appending zero messages returns the log unchanged."""
        from foldwise.execution.log import append_log
        log = append_log(None, "train", "warning", ["w1"])
        assert append_log(log, "predict", "error", []) is log
        assert append_log(log, "predict", "error", []) == log

    def test_append_preserves_order_and_count(self):
        """k messages add exactly k records after the existing ones."""
        from foldwise.execution.log import Severity, append_log
        log = append_log(None, "train", "output", ["first"])
        log = append_log(log, "predict", "warning", ["second", "third"])

        assert len(log) == 3
        assert log.messages == ["first", "second", "third"]
        assert [r.stage for r in log] == ["train", "predict", "predict"]
        assert log[1].severity == Severity.WARNING
        assert log[2].severity == Severity.WARNING

    def test_per_message_severities(self):
        """One severity per message is accepted; a length mismatch is not."""
        from foldwise.execution.log import append_log
        log = append_log(None, "train", ["output", "error"], ["o", "e"])
        assert log.errors == ["e"]
        with pytest.raises(ValueError, match="severities"):
            append_log(None, "train", ["output"], ["o", "e"])

    def test_invalid_stage_and_severity(self):
        """Unknown stage or severity is rejected."""
        from foldwise.execution.log import append_log
        with pytest.raises(ValueError, match="stage"):
            append_log(None, "fit", "error", ["x"])
        with pytest.raises(ValueError, match="severity"):
            append_log(None, "train", "fatal", ["x"])

    def test_severity_order(self):
        """output < warning < error, and max_severity reflects it."""
        from foldwise.execution.log import Log, Severity, append_log
        assert Severity.OUTPUT < Severity.WARNING < Severity.ERROR
        assert Log().max_severity is None
        log = append_log(None, "train", ["warning", "output"], ["w", "o"])
        assert log.max_severity == Severity.WARNING

    def test_merge_with_empty_log(self):
        """The empty log is the identity for merging."""
        from foldwise.execution.log import Log, append_log
        log = append_log(None, "train", "error", ["e"])
        assert Log() + log == log
        assert log + Log() == log
        assert len(log + log) == 2

    def test_filter(self):
        """filter() selects by stage and severity."""
        from foldwise.execution.log import append_log
        log = append_log(None, "train", ["output", "error"], ["o", "e"])
        log = append_log(log, "predict", "error", ["pe"])
        assert log.filter(stage="predict").messages == ["pe"]
        assert log.filter(severity="error").messages == ["e", "pe"]


# =============================================================================
# Capsule Tests
# =============================================================================

class TestCapsule:
    """Tests for the capsule executor."""

    def test_none_mode_propagates(self):
        """Mode 'none' lets exceptions through."""
        from foldwise.execution.capsule import encapsulate
        with pytest.raises(RuntimeError, match="boom"):
            encapsulate("none", _raise_boom)

    def test_none_mode_returns_result(self):
        """Mode 'none' still produces an envelope with an empty log."""
        from foldwise.execution.capsule import encapsulate
        env = encapsulate("none", lambda x: x + 1, {"x": 1})
        assert env.result == 2
        assert len(env.log) == 0
        assert env.elapsed >= 0

    def test_evaluate_captures_error(self):
        """An exception becomes an error record and the result is None."""
        from foldwise.execution.capsule import encapsulate
        env = encapsulate("evaluate", _raise_boom, stage="predict")
        assert env.result is None
        assert env.failed
        assert env.log.errors == ["RuntimeError: boom"]
        assert env.log[0].stage == "predict"

    def test_evaluate_captures_output_and_warnings_in_order(self):
        """Printed lines and warnings are recorded in order of occurrence."""
        from foldwise.execution.capsule import encapsulate
        from foldwise.execution.log import Severity
        env = encapsulate("evaluate", _chatty)
        assert env.result == 42
        assert not env.failed
        assert [r.severity for r in env.log] == [Severity.OUTPUT, Severity.WARNING]
        assert env.log.messages == ["hello", "UserWarning: careful"]

    def test_evaluate_restores_stdout(self):
        """Output capture does not leave sys.stdout redirected."""
        from foldwise.execution.capsule import encapsulate
        before = sys.stdout
        encapsulate("evaluate", _chatty)
        encapsulate("evaluate", _raise_boom)
        assert sys.stdout is before

    def test_elapsed_recorded_on_failure(self):
        """Elapsed time covers failed attempts too."""
        from foldwise.execution.capsule import encapsulate
        env = encapsulate("evaluate", _slow_failure)
        assert env.result is None
        assert env.elapsed >= 0.04

    def test_missing_package_is_a_fault(self):
        """A missing package is absorbed like any other fault."""
        from foldwise.execution.capsule import encapsulate
        env = encapsulate(
            "evaluate", _chatty, packages=["definitely_not_installed_pkg_xyz"]
        )
        assert env.result is None
        assert "ModuleNotFoundError" in env.log.errors[0]

    def test_system_exit_is_a_fault(self):
        """sys.exit() inside an isolated step is recorded, not propagated."""
        from foldwise.execution.capsule import encapsulate
        env = encapsulate("evaluate", _exit_three)
        assert env.result is None
        assert env.log.errors == ["SystemExit: 3"]

    def test_threaded_capsules_run_concurrently(self):
        """Capsules on different threads overlap and keep their own output."""
        from foldwise.execution.capsule import encapsulate
        before = sys.stdout
        start = time.perf_counter()
        with ThreadPoolExecutor(max_workers=2) as pool:
            envs = list(pool.map(
                lambda tag: encapsulate("evaluate", _print_and_wait, {"tag": tag}),
                ["first", "second"],
            ))
        elapsed = time.perf_counter() - start

        assert elapsed < 0.9
        assert [env.result for env in envs] == ["first", "second"]
        assert envs[0].log.messages == ["first"]
        assert envs[1].log.messages == ["second"]
        assert sys.stdout is before

    def test_nested_capsule_on_worker_thread(self):
        """A capsule may start another capsule on a different thread."""
        from foldwise.execution.capsule import encapsulate
        before = sys.stdout
        with ThreadPoolExecutor(max_workers=1) as pool:
            env = pool.submit(
                encapsulate, "evaluate", _outer_with_inner_capsule
            ).result(timeout=20)

        assert env.log.messages == ["outer"]
        assert env.result.result == 42
        assert env.result.log.messages == ["hello", "UserWarning: careful"]
        assert sys.stdout is before

    def test_other_threads_output_not_captured(self):
        """Lines printed by unrelated threads stay out of the capsule log."""
        from foldwise.execution.capsule import encapsulate
        started, printed = threading.Event(), threading.Event()

        def body():
            started.set()
            printed.wait(timeout=5)
            print("own line")
            return 1

        def chatter():
            started.wait(timeout=5)
            print("from another thread")
            printed.set()

        thread = threading.Thread(target=chatter)
        thread.start()
        env = encapsulate("evaluate", body)
        thread.join()

        assert env.result == 1
        assert env.log.messages == ["own line"]

    def test_unknown_mode(self):
        """Unknown isolation modes are rejected."""
        from foldwise.execution.capsule import encapsulate
        with pytest.raises(ValueError, match="encapsulation mode"):
            encapsulate("sandbox", _chatty)

    def test_process_mode_captures_error(self):
        """Faults inside a worker process come back as error records."""
        from foldwise.execution.train import train_learner
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        learner = DebugLearner(
            error_train=True, encapsulate={"train": "process"}
        )
        train_learner(learner, task)
        assert learner.model is None
        assert learner.log.errors == ["RuntimeError: Debug learner training error"]

    def test_process_mode_returns_model(self):
        """A successful fit in a worker process returns its model."""
        from foldwise.execution.train import train_learner
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        learner = DebugLearner(encapsulate={"train": "process"})
        train_learner(learner, task)
        assert learner.model is not None
        assert learner.model["class_names"] == ["a", "b"]

    def test_process_mode_survives_crash(self):
        """A worker process that dies is reported, not propagated."""
        from foldwise.execution.train import train_learner
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        learner = DebugLearner(exit_train=True, encapsulate={"train": "process"})
        train_learner(learner, task)
        assert learner.model is None
        assert "terminated unexpectedly" in learner.log.errors[0]


# =============================================================================
# Task, Scope and Resampling Tests
# =============================================================================

class TestTask:
    """Tests for the task and its row roles."""

    def test_active_rows_and_data(self):
        """Setting active rows restricts data() to those rows."""
        task = _toy_task()
        task.active_rows = [2, 5]
        X, y = task.data()
        assert task.nrow == 2
        assert X.tolist() == [[2.0, 3.0], [8.0, 9.0]]
        assert y.tolist() == ["b", "a"]

    def test_unknown_rows_rejected(self):
        """Row ids the task does not have are rejected."""
        task = _toy_task()
        with pytest.raises(ValueError, match="no rows"):
            task.active_rows = [1, 99]
        assert task.nrow == 8

    def test_clone_has_independent_roles(self):
        """Subsetting a clone leaves the original untouched."""
        task = _toy_task()
        clone = task.clone()
        clone.active_rows = [1]
        assert task.nrow == 8
        assert clone.X is task.X

    def test_class_names(self):
        """class_names are sorted labels; None for regression."""
        assert _toy_task().class_names == ["a", "b"]
        assert _toy_task(task_type="regr").class_names is None

    def test_from_sklearn(self):
        """Bundled datasets load with string class labels."""
        from foldwise.data.task import Task
        task = Task.from_sklearn("iris")
        assert task.nrow == 150
        assert task.class_names == ["setosa", "versicolor", "virginica"]
        with pytest.raises(ValueError, match="Unknown dataset"):
            Task.from_sklearn("mnist")


class TestScope:
    """Tests for scoped row subsetting."""

    def test_restores_after_exception(self):
        """Active rows are restored even when the body raises."""
        from foldwise.execution.scope import use_rows
        task = _toy_task()
        before = task.active_rows.tolist()
        with pytest.raises(RuntimeError):
            with use_rows(task, [1, 2]):
                assert task.nrow == 2
                raise RuntimeError("inside")
        assert task.active_rows.tolist() == before

    def test_none_leaves_task_alone(self):
        """row_ids=None does not touch the task."""
        from foldwise.execution.scope import use_rows
        task = _toy_task()
        task.active_rows = [3, 4]
        with use_rows(task, None):
            assert task.active_rows.tolist() == [3, 4]
        assert task.active_rows.tolist() == [3, 4]


class TestResampling:
    """Tests for resampling strategies."""

    def test_cv_partitions_rows(self):
        """CV test sets are disjoint and together cover every row."""
        from foldwise.data.resampling import CrossValidation
        task = _toy_task()
        cv = CrossValidation(folds=4, seed=1).instantiate(task)
        assert cv.iters == 4
        tests = np.concatenate([cv.test_set(i) for i in range(4)])
        assert sorted(tests.tolist()) == list(range(1, 9))
        for i in range(4):
            assert not set(cv.train_set(i)) & set(cv.test_set(i))

    def test_holdout_sizes(self):
        """Holdout splits by the requested ratio."""
        from foldwise.data.resampling import Holdout
        task = _toy_task(n=30)
        ho = Holdout(ratio=0.8, seed=3).instantiate(task)
        assert ho.iters == 1
        assert len(ho.train_set(0)) == 24
        assert len(ho.test_set(0)) == 6

    def test_not_instantiated(self):
        """Accessing splits before instantiate() fails clearly."""
        from foldwise.data.resampling import CrossValidation
        with pytest.raises(RuntimeError, match="instantiate"):
            CrossValidation().train_set(0)

    def test_index_out_of_range(self):
        """Out-of-range iteration indices raise IndexError."""
        from foldwise.data.resampling import Insample
        rs = Insample().instantiate(_toy_task())
        with pytest.raises(IndexError):
            rs.test_set(1)

    def test_custom_unknown_rows(self):
        """Custom splits must refer to existing rows."""
        from foldwise.data.resampling import CustomResampling
        rs = CustomResampling([[1, 2]], [[3, 100]])
        with pytest.raises(ValueError, match="unknown row ids"):
            rs.instantiate(_toy_task())


# =============================================================================
# Prediction Tests
# =============================================================================

class TestPrediction:
    """Tests for the Prediction container and merging."""

    def test_missing_classif_and_regr(self):
        """None (classif) and NaN (regr) mark missing rows."""
        from foldwise.learners.prediction import Prediction
        p = Prediction([1, 2, 3], ["a", "b", "a"], ["a", None, "a"])
        assert p.missing.tolist() == [2]
        r = Prediction([1, 2], [0.0, 1.0], [np.nan, 1.0], task_type="regr")
        assert r.missing.tolist() == [1]

    def test_merge_fills_missing_from_other(self):
        """Missing primary rows take the other prediction's values."""
        from foldwise.learners.prediction import Prediction
        primary = Prediction(
            [1, 2, 3, 4], None, ["a", None, "b", None]
        )
        imputed = Prediction([2, 4], None, ["x", "y"])
        merged = primary.merge(imputed)

        assert merged.row_ids.tolist() == [1, 2, 3, 4]
        assert merged.response.tolist() == ["a", "x", "b", "y"]
        assert len(merged.missing) == 0

    def test_merge_keeps_present_primary_values(self):
        """On a shared row where the primary has a value, the primary wins."""
        from foldwise.learners.prediction import Prediction
        primary = Prediction([1, 2], None, ["a", "b"])
        other = Prediction([2, 3, 3], None, ["z", "c", "d"])
        merged = primary.merge(other)

        assert merged.row_ids.tolist() == [1, 2, 3]
        assert merged.response.tolist() == ["a", "b", "c"]
        assert len(set(merged.row_ids.tolist())) == len(merged)

    def test_merge_error_policy(self):
        """duplicates='error' refuses overlapping row ids."""
        from foldwise.learners.prediction import Prediction
        a = Prediction([1, 2], None, ["a", "b"])
        b = Prediction([2], None, ["b"])
        with pytest.raises(ValueError, match="share"):
            a.merge(b, duplicates="error")
        assert len(a.merge(Prediction([3], None, ["a"]), duplicates="error")) == 3

    def test_merge_incompatible(self):
        """Predictions of different task types cannot be merged."""
        from foldwise.learners.prediction import Prediction
        a = Prediction([1], None, ["a"])
        b = Prediction([2], None, [1.0], task_type="regr")
        with pytest.raises(ValueError, match="combine"):
            a.merge(b)

    def test_merge_probabilities(self):
        """Probability rows follow the response they belong to."""
        from foldwise.learners.prediction import Prediction
        primary = Prediction(
            [1, 2], None, ["a", None],
            prob=[[1.0, 0.0], [np.nan, np.nan]],
            class_names=["a", "b"], predict_type="prob",
        )
        other = Prediction(
            [2], None, ["b"], prob=[[0.2, 0.8]],
            class_names=["a", "b"], predict_type="prob",
        )
        merged = primary.merge(other)
        assert merged.prob.tolist() == [[1.0, 0.0], [0.2, 0.8]]

    def test_empty(self):
        """An empty prediction is bound to the task's type and classes."""
        from foldwise.learners.prediction import Prediction
        p = Prediction.empty(_toy_task(), predict_type="prob")
        assert len(p) == 0
        assert p.class_names == ["a", "b"]
        assert p.prob.shape == (0, 2)


# =============================================================================
# Train Orchestrator Tests
# =============================================================================

class TestTrainLearner:
    """Tests for train_learner()."""

    def test_success(self):
        """A working learner ends up with a model, a time, and no errors."""
        from foldwise.execution.train import train_learner
        task = _toy_task()
        learner = train_learner(_isolated(), task, row_ids=[1, 2, 3])
        assert learner.model["train_rows"].tolist() == [1, 2, 3]
        assert learner.state.train_time >= 0
        assert len(learner.log) == 0
        assert task.nrow == 8

    def test_state_is_replaced(self):
        """Training wipes everything from a previous cycle."""
        from foldwise.execution.log import append_log
        from foldwise.execution.train import train_learner
        learner = _isolated()
        learner.state.predict_time = 5.0
        learner.state.log = append_log(None, "predict", "error", ["old"])
        train_learner(learner, _toy_task())
        assert learner.state.predict_time is None
        assert learner.log.messages == []

    def test_error_is_absorbed(self):
        """A failing primary leaves no model and an error record."""
        from foldwise.execution.train import train_learner
        task = _toy_task()
        learner = train_learner(
            _isolated(error_train=True, output_train=True, warning_train=True),
            task, row_ids=[1, 2],
        )
        assert learner.model is None
        assert learner.state.train_time >= 0
        assert [str(r.severity) for r in learner.log] == ["output", "warning", "error"]
        assert all(r.stage == "train" for r in learner.log)
        assert task.nrow == 8

    def test_no_model_is_recorded_as_error(self):
        """Returning no model is a contract violation recorded in the log."""
        from foldwise.execution.train import train_learner
        learner = train_learner(_isolated(null_model=True), _toy_task())
        assert learner.model is None
        assert learner.log.errors[0].startswith("ContractViolation")

    def test_no_model_without_isolation_raises(self):
        """Without isolation the contract violation propagates."""
        from foldwise.errors import ContractViolation
        from foldwise.execution.train import train_learner
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        with pytest.raises(ContractViolation, match="returned no model"):
            train_learner(DebugLearner(null_model=True), task, row_ids=[1, 2])
        assert task.nrow == 8

    def test_fallback_is_trained(self):
        """A configured fallback is trained and its state stored."""
        from foldwise.execution.train import train_learner
        learner = train_learner(
            _isolated(error_train=True, fallback="featureless"),
            _toy_task(), row_ids=[1, 2, 3],
        )
        assert learner.model is None
        assert learner.state.fallback_state.model["majority"] == "a"

    def test_fallback_failure_propagates(self):
        """A failing fallback is fatal and the task is still restored."""
        from foldwise.execution.train import train_learner
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        learner = _isolated(fallback=DebugLearner(
            error_train=True, encapsulate={"train": "evaluate"}
        ))
        with pytest.raises(RuntimeError, match="Debug learner training error"):
            train_learner(learner, task, row_ids=[1, 2])
        assert task.active_rows.tolist() == list(range(1, 9))

    def test_fallback_missing_package(self):
        """A fallback with unavailable packages is rejected."""
        from foldwise.errors import MissingDependencyError
        from foldwise.execution.train import train_learner
        from foldwise.learners.debug import DebugLearner
        fb = DebugLearner(packages=("definitely_not_installed_pkg_xyz",))
        with pytest.raises(MissingDependencyError, match="not installed"):
            train_learner(_isolated(fallback=fb), _toy_task())

    def test_legacy_hook_takes_priority(self):
        """An instance-level train_internal hook wins over fit_model."""
        from foldwise.execution.train import train_learner
        learner = _isolated(error_train=True)
        learner.train_internal = lambda task: {"legacy": task.nrow}
        train_learner(learner, _toy_task(), row_ids=[1, 2, 3])
        assert learner.model == {"legacy": 3}

    def test_learner_train_method(self):
        """Learner.train delegates to the orchestrator."""
        learner = _isolated()
        assert learner.train(_toy_task()) is learner
        assert learner.is_trained

    def test_reset(self):
        """reset() drops the model, log and timings."""
        learner = _isolated(warning_train=True).train(_toy_task())
        assert learner.log.warnings
        assert learner.reset() is learner
        assert not learner.is_trained
        assert len(learner.log) == 0
        assert learner.state.train_time is None


# =============================================================================
# Predict Orchestrator Tests
# =============================================================================

class TestPredictLearner:
    """Tests for predict_learner()."""

    def test_prediction(self):
        """A trained learner predicts exactly the requested rows."""
        from foldwise.execution.predict import predict_learner
        task = _toy_task()
        learner = _isolated().train(task)
        pred = predict_learner(learner, task, row_ids=[2, 3])
        assert pred.row_ids.tolist() == [2, 3]
        assert pred.response.tolist() == ["a", "b"]
        assert pred.truth.tolist() == ["b", "a"]
        assert learner.state.predict_time >= 0
        assert task.nrow == 8

    def test_zero_rows_skips_model(self):
        """Predicting no rows returns an empty prediction without calling the model."""
        from foldwise.execution.predict import predict_learner
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        learner = DebugLearner(error_predict=True).train(task)
        pred = predict_learner(learner, task, row_ids=[])
        assert len(pred) == 0
        assert learner.log.messages == ["No data to predict on"]
        assert task.nrow == 8

    def test_no_model_no_fallback(self):
        """Without a model and a fallback the result is None, not an error."""
        from foldwise.execution.predict import predict_learner
        task = _toy_task()
        learner = _isolated(error_train=True).train(task)
        assert predict_learner(learner, task) is None
        assert learner.state.predict_time is None

    def test_full_fallback_after_failed_predict(self):
        """When the primary predicts nothing the fallback predicts every row."""
        from foldwise.execution.predict import predict_learner
        task = _toy_task()
        learner = _isolated(error_predict=True, fallback="featureless").train(task)
        pred = predict_learner(learner, task, row_ids=[5, 1, 4])

        assert pred.row_ids.tolist() == [5, 1, 4]
        assert pred.response.tolist() == ["a", "a", "a"]
        assert learner.log.errors == ["RuntimeError: Debug learner prediction error"]
        assert "Using fallback learner for predictions" in learner.log.messages

    def test_full_fallback_after_failed_train(self):
        """A learner that never fitted is covered by its fallback."""
        task = _toy_task()
        learner = _isolated(error_train=True, fallback="featureless").train(task)
        pred = learner.predict(task)
        assert sorted(pred.row_ids.tolist()) == list(range(1, 9))
        assert len(pred.missing) == 0

    def test_partial_imputation(self):
        """Only the rows the primary left missing come from the fallback."""
        task = _toy_task()
        learner = _isolated(missing_row_ids=[3, 7], fallback="featureless")
        learner.train(task)
        pred = learner.predict(task)

        by_row = dict(zip(pred.row_ids.tolist(), pred.response.tolist()))
        assert sorted(by_row) == list(range(1, 9))
        assert len(pred) == 8
        # fallback predicts the majority class "a"; primary gives a/b by row parity
        assert by_row[3] == "a" and by_row[7] == "a"
        for rid in (1, 2, 4, 5, 6, 8):
            assert by_row[rid] == ["a", "b"][rid % 2]
        assert "Using fallback learner to impute predictions" in learner.log.messages

    def test_fallback_not_called_when_complete(self):
        """No missing rows means the fallback is never asked."""
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        learner = _isolated(fallback=DebugLearner(error_predict=True)).train(task)
        pred = learner.predict(task)
        assert len(pred) == 8

    def test_fallback_predict_failure_propagates(self):
        """A failing fallback predict is fatal and the task is restored."""
        from foldwise.learners.debug import DebugLearner
        task = _toy_task()
        learner = _isolated(
            error_predict=True, fallback=DebugLearner(error_predict=True)
        ).train(task)
        with pytest.raises(RuntimeError, match="prediction error"):
            learner.predict(task, row_ids=[1, 2])
        assert task.nrow == 8

    def test_bad_prediction_is_recorded(self):
        """Returning something other than a Prediction is logged as an error."""
        task = _toy_task()
        learner = _isolated(bad_prediction=True).train(task)
        assert learner.predict(task) is None
        assert learner.log.errors[0].startswith("ContractViolation")

    def test_fallback_uses_primary_predict_type(self):
        """The fallback predicts with the primary's predict_type."""
        task = _toy_task()
        learner = _isolated(
            error_predict=True, fallback="featureless", predict_type="prob"
        ).train(task)
        pred = learner.predict(task)
        assert pred.predict_type == "prob"
        assert pred.prob.shape == (8, 2)
        assert np.allclose(pred.prob.sum(axis=1), 1.0)

    def test_legacy_predict_hook(self):
        """An instance-level predict_internal hook wins over predict_model."""
        from foldwise.learners.prediction import Prediction
        task = _toy_task()
        learner = _isolated(error_predict=True).train(task)
        learner.predict_internal = lambda t: Prediction(
            t.row_ids, t.truth(), ["b"] * t.nrow
        )
        pred = learner.predict(task, row_ids=[1, 2])
        assert pred.response.tolist() == ["b", "b"]

    def test_regression_imputation(self):
        """Missing regression responses are imputed with the fallback mean."""
        task = _toy_task(task_type="regr")
        learner = _isolated(
            task_type="regr", missing_row_ids=[2], fallback="featureless"
        ).train(task)
        pred = learner.predict(task)
        by_row = dict(zip(pred.row_ids.tolist(), pred.response.tolist()))
        assert by_row[2] == pytest.approx(3.5)
        assert by_row[5] == 5.0


# =============================================================================
# Worker Tests
# =============================================================================

class TestWorker:
    """Tests for run_iteration() and reassemble()."""

    def _resampling(self, task):
        from foldwise.data.resampling import CustomResampling
        return CustomResampling(
            [[1, 2, 3, 4], [5, 6, 7, 8]], [[5, 6, 7, 8], [1, 2, 3, 4]]
        ).instantiate(task)

    def test_predicts_configured_sets(self):
        """Every configured evaluation set gets its prediction."""
        from foldwise.execution.worker import run_iteration
        task = _toy_task()
        learner = _isolated(predict_sets=["train", "test"])
        result = run_iteration(0, task, learner, self._resampling(task))

        assert set(result.predictions) == {"train", "test"}
        assert result.predictions["train"].row_ids.tolist() == [1, 2, 3, 4]
        assert result.predictions["test"].row_ids.tolist() == [5, 6, 7, 8]

    def test_model_erased_unless_stored(self):
        """The model is dropped by default and kept with store_models."""
        from foldwise.execution.worker import run_iteration
        task = _toy_task()
        rs = self._resampling(task)
        assert run_iteration(0, task, _isolated(), rs).learner_state.model is None
        kept = run_iteration(0, task, _isolated(), rs, store_models=True)
        assert kept.learner_state.model is not None

    def test_inputs_untouched(self):
        """The learner template and the task's rows are not modified."""
        from foldwise.execution.worker import run_iteration
        task = _toy_task()
        learner = _isolated()
        run_iteration(1, task, learner, self._resampling(task), store_models=True)
        assert not learner.is_trained
        assert task.nrow == 8

    def test_progress_callback(self):
        """The progress callback receives task, learner and iteration."""
        from foldwise.execution.worker import run_iteration
        task = _toy_task()
        seen = []
        run_iteration(1, task, _isolated(), self._resampling(task), progress=seen.append)
        assert seen == ["toy|debug|i:1"]

    def test_sets_without_prediction_are_dropped(self):
        """Evaluation sets that yield no prediction are left out."""
        from foldwise.execution.worker import run_iteration
        task = _toy_task()
        result = run_iteration(
            0, task, _isolated(error_train=True), self._resampling(task)
        )
        assert result.predictions == {}
        assert result.learner_state.log.errors

    def test_log_level_applied_then_restored(self):
        """The iteration runs under log_level and puts the old level back."""
        from foldwise.execution.worker import run_iteration
        task = _toy_task()
        learner = _isolated(predict_sets=[])
        learner.train_internal = lambda t: {
            "level": logging.getLogger("foldwise").level
        }
        package_logger = logging.getLogger("foldwise")
        before = package_logger.level

        result = run_iteration(
            0, task, learner, self._resampling(task),
            log_level=logging.ERROR, store_models=True,
        )
        assert result.learner_state.model == {"level": logging.ERROR}
        assert package_logger.level == before

    def test_reassemble(self):
        """reassemble() returns a fresh learner carrying the returned state."""
        from foldwise.execution.worker import reassemble, run_iteration
        task = _toy_task()
        template = _isolated()
        result = run_iteration(0, task, template, self._resampling(task), store_models=True)
        learner = reassemble(result, template)

        assert learner is not template
        assert learner.state is result.learner_state
        assert learner.is_trained
        assert not template.is_trained

    def test_concurrent_equals_sequential(self):
        """Concurrent iterations on shared inputs match sequential ones."""
        from foldwise.execution.worker import run_iteration
        task = _toy_task()
        rs = self._resampling(task)
        learner = _isolated(
            missing_row_ids=[2, 7], fallback="featureless",
            predict_sets=["train", "test"],
        )

        sequential = [run_iteration(i, task, learner, rs) for i in range(2)]
        with ThreadPoolExecutor(max_workers=2) as pool:
            concurrent = list(pool.map(
                lambda i: run_iteration(i, task, learner, rs), range(2)
            ))

        for seq, con in zip(sequential, concurrent):
            assert seq.iteration == con.iteration
            assert seq.learner_state.log == con.learner_state.log
            for name in ("train", "test"):
                assert seq.predictions[name].row_ids.tolist() == \
                    con.predictions[name].row_ids.tolist()
                assert seq.predictions[name].response.tolist() == \
                    con.predictions[name].response.tolist()
        assert task.nrow == 8


# =============================================================================
# Resample Tests
# =============================================================================

class TestResample:
    """Tests for the resample() coordinator and ResampleResult."""

    def test_sklearn_learner(self):
        """A decision tree on iris resamples cleanly and scores well."""
        from sklearn.tree import DecisionTreeClassifier
        from foldwise.data.resampling import CrossValidation
        from foldwise.data.task import Task
        from foldwise.execution.resample import resample
        from foldwise.learners.sklearn_learner import SklearnLearner

        task = Task.from_sklearn("iris")
        learner = SklearnLearner(
            DecisionTreeClassifier(random_state=0),
            encapsulate={"train": "evaluate", "predict": "evaluate"},
        )
        rr = resample(task, learner, CrossValidation(folds=3, seed=0), show_progress=False)

        assert rr.iters == 3
        assert rr.errors() == []
        assert rr.aggregate("classif.acc") > 0.8
        assert len(rr.prediction()) == 150
        assert task.nrow == 150
        assert not learner.is_trained

    def test_broken_learner_is_compensated(self):
        """Every iteration fails, the run completes, and the fallback scores."""
        from foldwise.data.resampling import CrossValidation
        from foldwise.data.task import Task
        from foldwise.execution.resample import resample

        task = Task.from_sklearn("iris")
        learner = _isolated(error_train=True, fallback="featureless")
        rr = resample(task, learner, CrossValidation(folds=3), show_progress=False)

        assert len(rr.errors()) == 3
        assert {e["stage"] for e in rr.errors()} == {"train"}
        scores = rr.score("classif.ce")
        assert np.all(np.isfinite(scores))

    def test_fallback_failure_aborts(self):
        """A fallback failure escapes resample()."""
        from foldwise.data.resampling import Holdout
        from foldwise.execution.resample import resample
        from foldwise.learners.debug import DebugLearner

        learner = _isolated(fallback=DebugLearner(error_train=True))
        with pytest.raises(RuntimeError, match="training error"):
            resample(_toy_task(), learner, Holdout(), show_progress=False)

    @pytest.mark.parametrize("backend", ["threading", "loky"])
    def test_parallel_matches_sequential(self, backend):
        """Parallel execution returns the same predictions as sequential."""
        from foldwise.data.resampling import CrossValidation
        from foldwise.execution.resample import resample

        task = _toy_task()
        learner = _isolated(missing_fraction=0.3, fallback="featureless")
        seq = resample(task, learner, CrossValidation(folds=2, seed=5), show_progress=False)
        par = resample(
            task, learner, CrossValidation(folds=2, seed=5),
            n_jobs=2, backend=backend, show_progress=False,
        )
        for a, b in zip(seq.predictions(), par.predictions()):
            assert a.row_ids.tolist() == b.row_ids.tolist()
            assert a.response.tolist() == b.response.tolist()

    def test_summary(self):
        """summary() reports counts and requested measures."""
        from foldwise.data.resampling import CrossValidation
        from foldwise.execution.resample import resample

        rr = resample(
            _toy_task(), _isolated(warning_train=True),
            CrossValidation(folds=2), show_progress=False,
        )
        summary = rr.summary(["classif.acc", "classif.ce"])
        assert summary["iters"] == 2
        assert summary["n_warnings"] == 2
        assert len(summary["classif.acc"]["scores"]) == 2
        assert summary["classif.acc"]["minimize"] is False
        assert summary["classif.ce"]["minimize"] is True

        state = summary["states"][0]
        assert state["has_model"] is False
        assert state["log"][0]["severity"] == "warning"
        assert state["log"][0]["stage"] == "train"

    def test_log_level_restored(self):
        """A log_level passed to resample() does not outlive the call."""
        from foldwise.data.resampling import CrossValidation
        from foldwise.execution.resample import resample

        package_logger = logging.getLogger("foldwise")
        before = package_logger.level
        resample(
            _toy_task(), _isolated(), CrossValidation(folds=2),
            log_level="ERROR", show_progress=False,
        )
        assert package_logger.level == before
        resample(
            _toy_task(), _isolated(), CrossValidation(folds=2),
            n_jobs=2, backend="threading", log_level="DEBUG", show_progress=False,
        )
        assert package_logger.level == before


# =============================================================================
# Measure Tests
# =============================================================================

class TestMeasures:
    """Tests for scoring predictions."""

    def test_accuracy_and_error(self):
        """acc and ce are complementary."""
        from foldwise.evaluation.measures import score_prediction
        from foldwise.learners.prediction import Prediction
        p = Prediction([1, 2, 3, 4], ["a", "b", "a", "b"], ["a", "b", "b", "b"])
        assert score_prediction(p, "classif.acc") == pytest.approx(0.75)
        assert score_prediction(p, "classif.ce") == pytest.approx(0.25)

    def test_missing_rows_skipped(self):
        """Rows without a response are left out of the score."""
        from foldwise.evaluation.measures import score_prediction
        from foldwise.learners.prediction import Prediction
        p = Prediction([1, 2, 3], ["a", "b", "a"], ["a", None, "a"])
        assert score_prediction(p, "classif.acc") == pytest.approx(1.0)
        empty = Prediction([1], ["a"], [None])
        assert np.isnan(score_prediction(empty, "classif.acc"))

    def test_regression(self):
        """Regression measures follow their definitions."""
        from foldwise.evaluation.measures import score_prediction
        from foldwise.learners.prediction import Prediction
        p = Prediction([1, 2], [0.0, 2.0], [1.0, 2.0], task_type="regr")
        assert score_prediction(p, "regr.mse") == pytest.approx(0.5)
        assert score_prediction(p, "regr.rmse") == pytest.approx(0.5 ** 0.5)
        assert score_prediction(p, "regr.mae") == pytest.approx(0.5)

    def test_mismatches(self):
        """Wrong task type, unknown measure, or missing probabilities fail."""
        from foldwise.evaluation.measures import score_prediction
        from foldwise.learners.prediction import Prediction
        p = Prediction([1], ["a"], ["a"])
        with pytest.raises(ValueError, match="regr tasks"):
            score_prediction(p, "regr.mse")
        with pytest.raises(ValueError, match="Unknown measure"):
            score_prediction(p, "classif.f1_magic")
        with pytest.raises(ValueError, match="prob"):
            score_prediction(p, "classif.logloss")


# =============================================================================
# Registry Tests
# =============================================================================

class TestRegistry:
    """Tests for learner lookup."""

    def test_keys_and_paths(self):
        """Registry keys, dotted paths and estimators all resolve."""
        from sklearn.linear_model import LinearRegression
        from foldwise.learners import FeaturelessLearner, SklearnLearner, as_learner

        assert isinstance(as_learner("featureless"), FeaturelessLearner)
        tree = as_learner("sklearn.tree.DecisionTreeClassifier", params={"max_depth": 2})
        assert isinstance(tree, SklearnLearner)
        assert tree.estimator.max_depth == 2
        assert tree.task_type == "classif"
        assert as_learner(LinearRegression()).task_type == "regr"

    def test_learner_passthrough_and_clone(self):
        """Learners pass through, or are deep-copied on request."""
        from foldwise.learners import as_learner
        learner = _isolated()
        assert as_learner(learner) is learner
        clone = as_learner(learner, clone=True)
        assert clone is not learner
        assert clone.encapsulate == learner.encapsulate

    def test_invalid(self):
        """Things that are not learners are rejected."""
        from foldwise.learners import as_learner
        with pytest.raises(ValueError):
            as_learner("no_such_learner")
        with pytest.raises(ValueError):
            as_learner(42)

    def test_require_packages(self):
        """Missing packages raise an ImportError subclass listing them."""
        from foldwise.errors import MissingDependencyError
        from foldwise.learners import require_packages
        require_packages(["numpy", "sklearn"])
        with pytest.raises(ImportError, match="definitely_not_installed_pkg_xyz"):
            require_packages(["numpy", "definitely_not_installed_pkg_xyz"])
        with pytest.raises(MissingDependencyError):
            require_packages(["definitely_not_installed_pkg_xyz"])

    def test_require_packages_dotted_name(self):
        """A submodule of a missing package counts as missing."""
        from foldwise.errors import MissingDependencyError
        from foldwise.learners import require_packages
        require_packages(["sklearn.tree"])
        with pytest.raises(MissingDependencyError, match="no_such_pkg_xyz.sub"):
            require_packages(["no_such_pkg_xyz.sub"])


# =============================================================================
# Config Tests
# =============================================================================

class TestConfig:
    """Tests for the configuration system."""

    def test_default_config_loads(self):
        """Default config should validate without errors."""
        from foldwise.config import FoldwiseConfig
        FoldwiseConfig().validate()

    def test_smoke_test_config(self):
        """Smoke test config should be valid and minimal."""
        from foldwise.config import FoldwiseConfig
        config = FoldwiseConfig.for_smoke_test()
        config.validate()
        assert config.resampling.folds == 2
        assert config.learner.fallback is None

    def test_invalid_encapsulation(self):
        """Unknown isolation modes are rejected."""
        from foldwise.config import LearnerConfig
        config = LearnerConfig(encapsulate_train="sandbox")
        with pytest.raises(ValueError, match="encapsulation mode"):
            config.validate()

    def test_measure_task_mismatch(self):
        """Measures must fit the dataset's task type."""
        from foldwise.config import DataConfig, ExecutionConfig, FoldwiseConfig
        config = FoldwiseConfig(
            data=DataConfig(dataset="diabetes"),
            execution=ExecutionConfig(measures=["classif.acc"]),
        )
        with pytest.raises(ValueError, match="does not fit"):
            config.validate()

    def test_yaml_round_trip(self, tmp_path):
        """Config should save to YAML and load back identically."""
        from foldwise.config import FoldwiseConfig
        config = FoldwiseConfig.for_smoke_test()
        path = tmp_path / "config.yaml"
        config.to_yaml(path)

        loaded = FoldwiseConfig.from_yaml(path)
        assert loaded.to_dict() == config.to_dict()

    def test_missing_and_empty_files(self, tmp_path):
        """Missing or empty config files fail clearly."""
        from foldwise.config import FoldwiseConfig
        with pytest.raises(FileNotFoundError):
            FoldwiseConfig.from_yaml(tmp_path / "nope.yaml")
        empty = tmp_path / "empty.yaml"
        empty.write_text("")
        with pytest.raises(ValueError, match="empty"):
            FoldwiseConfig.from_yaml(empty)

    def test_shipped_configs_load(self):
        """The configs in configs/ are valid."""
        from foldwise.config import FoldwiseConfig
        root = Path(__file__).resolve().parent.parent / "configs"
        for name in ("default.yaml", "broken_learner.yaml"):
            FoldwiseConfig.from_yaml(root / name)

    def test_run_smoke_experiment(self):
        """The smoke configuration runs end to end."""
        from foldwise.config import FoldwiseConfig
        from foldwise.experiment import run_experiment
        rr = run_experiment(FoldwiseConfig.for_smoke_test())
        assert rr.iters == 2
        assert rr.learners[0].is_trained
        assert 0.0 <= rr.aggregate("classif.acc") <= 1.0
        assert set(rr._predictions[0]) == {"train", "test"}


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
