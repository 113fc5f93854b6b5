"""Threader - Reddit product feedback aggregation and scoring."""

__version__ = "0.1.0"
__author__ = "Threader Team"

from .core.models import *
from .core.config import Settings
from .services.llm import LLMServiceFactory
from .services.pipeline import AnalysisPipeline, RunResult

__all__ = [
    "Settings",
    "LLMServiceFactory",
    "AnalysisPipeline",
    "RunResult",
]
