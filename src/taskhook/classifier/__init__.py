"""Commit message classification.

This module decides, for a single commit message, which task (if any)
the commit refers to and whether it finishes that task:
- CommitClassifier: LLM-backed classifier for OpenAI-compatible endpoints
- KeywordCommitClassifier: regex fallback when no LLM is configured
- CommitClassification: the transient classification result
"""

from src.taskhook.classifier.agent import (
    ClassificationError,
    Classifier,
    CommitClassifier,
)
from src.taskhook.classifier.keywords import KeywordCommitClassifier
from src.taskhook.classifier.models import CommitClassification

__all__ = [
    "ClassificationError",
    "Classifier",
    "CommitClassification",
    "CommitClassifier",
    "KeywordCommitClassifier",
]
