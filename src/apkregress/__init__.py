"""
apkregress - Regression testing for APK repositories.

Test every reverse dependency with and without a new repository, and
flag packages that only fail with it.
"""

from apkregress.classifier import classify, summarize
from apkregress.executor import TrialExecutor
from apkregress.scheduler import Scheduler

__version__ = "0.1.0"
__all__ = ["Scheduler", "TrialExecutor", "classify", "summarize", "__version__"]
