"""
foldwise.data — Tasks and Resampling
======================================
    - task.py        — Task: NumPy-backed supervised problem with row roles
    - resampling.py  — Holdout, CrossValidation, Insample, CustomResampling
"""

from foldwise.data.task import Task
from foldwise.data.resampling import (
    Resampling,
    Holdout,
    CrossValidation,
    Insample,
    CustomResampling,
)
