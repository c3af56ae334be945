"""Spam classification."""

from .classifier import Classification, Classifier
from .training import JsonlTrainingSink

__all__ = ["Classification", "Classifier", "JsonlTrainingSink"]
