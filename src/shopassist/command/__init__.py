"""Rule-based command classification."""

from shopassist.command.classifier import CommandClassifier, Rule, classify_text

__all__ = ["CommandClassifier", "Rule", "classify_text"]
