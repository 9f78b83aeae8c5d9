"""
foldwise — Setup Script
========================
Installs foldwise as a local editable package so that all internal
imports (e.g. `from foldwise.execution.train import train_learner`) work
seamlessly from any script or notebook.

Usage:
    cd /path/to/foldwise
    pip install -e .
"""

from setuptools import setup, find_packages

setup(
    name="foldwise",
    version="0.1.0",
    description=(
        "foldwise: Fault-Tolerant Resampling of Machine-Learning Models "
        "with Captured Failures and Fallback Learners"
    ),
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=("tests", "scripts")),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24.0",
        "scikit-learn>=1.3.0",
        "joblib>=1.3.0",
        "tqdm>=4.65.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
)
