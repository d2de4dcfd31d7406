"""Behavior detection layer - bot-likelihood classification."""

from trade_bot_detector.detector.classifier import SIGNAL_WEIGHTS, BehaviorClassifier
from trade_bot_detector.detector.history import ClassificationHistory
from trade_bot_detector.detector.models import ClassificationResult, SignalReading

__all__ = [
    "BehaviorClassifier",
    "ClassificationHistory",
    "ClassificationResult",
    "SIGNAL_WEIGHTS",
    "SignalReading",
]
