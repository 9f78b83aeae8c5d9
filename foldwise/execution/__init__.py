"""
foldwise.execution — Fault-Isolating Execution Core
=====================================================
This subpackage runs learners: it trains them, asks them for
predictions, keeps their faults from taking down an experiment, and
substitutes a fallback learner where the primary one came up short.

Layers (leaves first):
    - log.py       — append-only Log of (stage, severity, message) records
    - capsule.py   — encapsulate(): run one step isolated, get a ResultEnvelope
    - scope.py     — use_rows(): scoped row subsetting of a task
    - train.py     — train_learner(): train orchestrator (+ fallback training)
    - predict.py   — predict_learner(): predict orchestrator (+ imputation)
    - worker.py    — run_iteration() / reassemble(): one resampling iteration
    - resample.py  — resample(): all iterations, sequential or parallel

Information Flow:
    resample → run_iteration → train_learner → encapsulate(train step)
                             → predict_learner → encapsulate(predict step)
                                               → fallback predictions
             → reassemble → ResampleResult
"""

# train/predict/worker/resample depend on foldwise.learners, which depends
# on these leaf modules; import those from their own modules.
from foldwise.execution.log import Log, LogRecord, Severity, append_log
from foldwise.execution.capsule import ENCAPSULATION_MODES, ResultEnvelope, encapsulate
from foldwise.execution.scope import use_rows
