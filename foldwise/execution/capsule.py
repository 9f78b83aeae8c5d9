"""
foldwise Capsule Executor
==========================
Runs a single train or predict step under a chosen isolation level and
hands back a uniform ``ResultEnvelope`` (result, log, elapsed).

Why this exists:
    A learner is pluggable code we do not control. If it raises halfway
    through a 10-fold cross-validation, we want the other nine folds, plus
    a record of what went wrong in the broken one. The capsule turns a
    raised exception into a log entry and an absent result.

Isolation levels:
    "none"      — run inline, exceptions propagate. Use this when you want
                  a broken learner to stop everything (debugging, fallbacks).
    "evaluate"  — run inline, capture printed output (stdout + stderr),
                  warnings, and any exception as log records.
    "process"   — same capture, but inside a fresh single-worker process,
                  so even a hard crash of the learner only costs the result.

Threads:
    Capture works per thread. While any capsule runs, sys.stdout,
    sys.stderr and warnings.showwarning are replaced by routers that send
    each thread's output to the capsule running on that thread, and
    everything else to the original stream. Capsules on different threads
    run concurrently and may nest.

Analogy:
    A blast chamber on a test bench. Whatever the prototype does inside,
    the bench gets a written report and a stopwatch reading back, never
    shrapnel.

Usage:
    >>> envelope = encapsulate("evaluate", train_wrapper,
    ...                        {"learner": learner, "task": task},
    ...                        stage="train")
    >>> envelope.result is None, envelope.log.errors, envelope.elapsed
"""

from __future__ import annotations

import importlib
import io
import sys
import threading
import time
import warnings
from concurrent.futures import ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from foldwise.execution.log import Log, Severity, append_log

ENCAPSULATION_MODES = ("none", "evaluate", "process")

# Guards installing and removing the routers, never held while a step runs
_CAPTURE_LOCK = threading.Lock()

# Recorder of the capsule running on the current thread, if any
_capture = threading.local()

_routing = {"depth": 0}


@dataclass
class ResultEnvelope:
    """
    Outcome of one capsule invocation.

    Parameters
    ----------
    result : Any
        Return value of the computation, or None if it raised.
    log : Log
        Records captured while the computation ran, in order.
    elapsed : float
        Wall-clock seconds spent on the attempt, success or not.
    """
    result: Any = None
    log: Log = field(default_factory=Log)
    elapsed: float = 0.0

    @property
    def failed(self) -> bool:
        return Severity.ERROR in {r.severity for r in self.log}


class _LineRecorder(io.TextIOBase):
    """Text stream that turns every written line into an output record."""

    def __init__(self, records: list):
        super().__init__()
        self._records = records
        self._pending = ""

    def writable(self) -> bool:
        return True

    def write(self, s: str) -> int:
        self._pending += s
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            if line.strip():
                self._records.append((Severity.OUTPUT, line))
        return len(s)

    def flush_pending(self) -> None:
        if self._pending.strip():
            self._records.append((Severity.OUTPUT, self._pending))
        self._pending = ""

    def add_warning(self, category, message) -> None:
        self.flush_pending()
        self._records.append((Severity.WARNING, f"{category.__name__}: {message}"))


class _StreamRouter(io.TextIOBase):
    """
    Stand-in for sys.stdout / sys.stderr while any capsule is capturing.

    Writes from a thread that runs a capsule go to that capsule's
    recorder; writes from every other thread go to the original stream.
    """

    def __init__(self, target):
        super().__init__()
        self.target = target

    def writable(self) -> bool:
        return True

    def write(self, s: str) -> int:
        recorder = getattr(_capture, "recorder", None)
        if recorder is None:
            return self.target.write(s)
        return recorder.write(s)

    def flush(self) -> None:
        if getattr(_capture, "recorder", None) is None:
            self.target.flush()


def _route_warning(message, category, filename, lineno, file=None, line=None):
    recorder = getattr(_capture, "recorder", None)
    if recorder is None:
        _routing["showwarning"](message, category, filename, lineno, file, line)
    else:
        recorder.add_warning(category, message)


def _install_routers() -> None:
    with _CAPTURE_LOCK:
        if _routing["depth"] == 0:
            guard = warnings.catch_warnings()
            guard.__enter__()
            _routing.update(
                guard=guard,
                showwarning=warnings.showwarning,
                stdout=sys.stdout,
                stderr=sys.stderr,
            )
            warnings.simplefilter("always")
            warnings.showwarning = _route_warning
            sys.stdout = _StreamRouter(sys.stdout)
            sys.stderr = _StreamRouter(sys.stderr)
        _routing["depth"] += 1


def _remove_routers() -> None:
    with _CAPTURE_LOCK:
        _routing["depth"] -= 1
        if _routing["depth"] == 0:
            sys.stdout = _routing.pop("stdout")
            sys.stderr = _routing.pop("stderr")
            _routing.pop("showwarning")
            _routing.pop("guard").__exit__(None, None, None)


def _format_exception(exc: BaseException) -> str:
    msg = str(exc)
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _load_packages(packages: Sequence[str]) -> None:
    for name in packages:
        importlib.import_module(name)


def _run_captured(
    func: Callable,
    args: dict,
    packages: Sequence[str],
) -> tuple[Any, list]:
    """
    Call ``func(**args)`` while recording output, warnings and exceptions.

    Module-level so it can be shipped to a worker process by pickle.

    Returns
    -------
    tuple
        (result or None, list of (Severity, message) in order of occurrence)
    """
    records: list = []
    result = None
    recorder = _LineRecorder(records)
    outer = getattr(_capture, "recorder", None)

    _install_routers()
    _capture.recorder = recorder
    try:
        try:
            _load_packages(packages)
            result = func(**args)
        except (Exception, SystemExit) as exc:
            recorder.flush_pending()
            records.append((Severity.ERROR, _format_exception(exc)))
            result = None
        recorder.flush_pending()
    finally:
        _capture.recorder = outer
        _remove_routers()

    return result, records


def _run_in_process(
    func: Callable,
    args: dict,
    packages: Sequence[str],
) -> tuple[Any, list]:
    with ProcessPoolExecutor(max_workers=1) as pool:
        future = pool.submit(_run_captured, func, args, packages)
        try:
            return future.result()
        except BrokenProcessPool as exc:
            return None, [(
                Severity.ERROR,
                f"Worker process terminated unexpectedly: {exc}",
            )]
        except Exception as exc:
            # Arguments or result could not cross the process boundary
            return None, [(Severity.ERROR, _format_exception(exc))]


def encapsulate(
    mode: str,
    func: Callable,
    args: Optional[dict] = None,
    packages: Sequence[str] = (),
    stage: str = "train",
) -> ResultEnvelope:
    """
    Run ``func(**args)`` under the isolation level ``mode``.

    Parameters
    ----------
    mode : str
        One of ``ENCAPSULATION_MODES``.
    func : callable
        The computation. For mode "process" it must be picklable.
    args : dict or None
        Keyword arguments for ``func``.
    packages : sequence of str
        Modules imported right before ``func`` runs.
    stage : str
        Stage label for the captured log records ("train" or "predict").

    Returns
    -------
    ResultEnvelope
        Exactly one per call. With mode "none" an exception from ``func``
        propagates instead.

    Raises
    ------
    ValueError
        If ``mode`` is unknown.
    """
    if mode not in ENCAPSULATION_MODES:
        raise ValueError(
            f"Unknown encapsulation mode: '{mode}'. "
            f"Choose from: {', '.join(ENCAPSULATION_MODES)}"
        )
    args = args or {}

    start = time.perf_counter()
    if mode == "none":
        _load_packages(packages)
        result = func(**args)
        return ResultEnvelope(
            result=result,
            log=Log(),
            elapsed=time.perf_counter() - start,
        )

    if mode == "evaluate":
        result, records = _run_captured(func, args, packages)
    else:
        result, records = _run_in_process(func, args, packages)
    elapsed = time.perf_counter() - start

    log = append_log(
        None,
        stage,
        [sev for sev, _ in records],
        [msg for _, msg in records],
    )
    return ResultEnvelope(result=result, log=log, elapsed=elapsed)
