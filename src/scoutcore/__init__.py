"""
ScoutCore - adaptive multi-strategy data extraction.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .container import DependencyContainer
from .pipeline import ExtractOptions, Pipeline
from .protocols import ExtractionResult, QueryAnalysis, QueryCategory, ResultStatus

__all__ = [
    "__version__",
    "Config",
    "DependencyContainer",
    "ExtractOptions",
    "Pipeline",
    "ExtractionResult",
    "QueryAnalysis",
    "QueryCategory",
    "ResultStatus",
]
