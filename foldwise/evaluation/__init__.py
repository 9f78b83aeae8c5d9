"""
foldwise.evaluation — Measures and Resample Results
=====================================================
    - measures.py — scikit-learn backed scoring of Predictions
    - result.py   — ResampleResult: per-iteration learners, predictions,
                    captured errors, scores
"""

from foldwise.evaluation.measures import MEASURES, Measure, get_measure, score_prediction
from foldwise.evaluation.result import ResampleResult
