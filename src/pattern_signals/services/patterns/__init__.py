"""Candlestick and chart pattern recognition."""

from pattern_signals.services.patterns.engine import DETECTORS, PatternEngine, detect
from pattern_signals.services.patterns.kinds import DESCRIPTORS, Bias, PatternDescriptor, PatternKind
from pattern_signals.services.patterns.models import Detection, PatternMatch

__all__ = [
    "DETECTORS",
    "DESCRIPTORS",
    "Bias",
    "Detection",
    "PatternDescriptor",
    "PatternEngine",
    "PatternKind",
    "PatternMatch",
    "detect",
]
