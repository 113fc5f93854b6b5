"""Core modules for Threader."""

from .models import *
from .config import Settings
from .scoring import *
from .synthesis import Synthesizer
from .comparison import Comparer

__all__ = [
    "Settings",
    "Synthesizer",
    "Comparer",
    "RawItem",
    "FeedbackRecord",
    "FocusArea",
    "SynthesisReport",
    "Snapshot",
]
