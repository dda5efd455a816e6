"""
Decision policy: map (mode, confidence, name change) to an action.

Pure functions only, so the whole table can be exercised without a catalog.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import Decision, DecisionMode

ALREADY_CORRECT = "already-correct"
AUTO_ACCEPTED = "auto-accepted"
HIGH_CONFIDENCE = "high-confidence"
NEEDS_REVIEW = "needs-review"
LOW_CONFIDENCE = "low-confidence"
MANUAL_MODE = "manual-mode"
NO_MATCH = "no-match"
REMOTE_UNAVAILABLE = "remote-unavailable"
INVALID_INPUT = "invalid-input"
EXCLUDED = "excluded"
ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class DecisionThresholds:
    high_confidence: float = 0.9
    low_confidence: float = 0.6


@dataclass(frozen=True, slots=True)
class PolicyOutcome:
    decision: Decision
    reason: str


DEFAULT_THRESHOLDS = DecisionThresholds()


def decide(
    mode: DecisionMode,
    confidence: float,
    name_changed: bool,
    thresholds: DecisionThresholds = DEFAULT_THRESHOLDS,
) -> PolicyOutcome:
    if mode == DecisionMode.MANUAL:
        return PolicyOutcome(Decision.MANUAL_REVIEW, MANUAL_MODE)
    if mode == DecisionMode.AUTOMATIC:
        return _automatic(name_changed, AUTO_ACCEPTED)
    if confidence >= thresholds.high_confidence:
        return _automatic(name_changed, HIGH_CONFIDENCE)
    if confidence < thresholds.low_confidence:
        return PolicyOutcome(Decision.MANUAL_REVIEW, LOW_CONFIDENCE)
    return PolicyOutcome(Decision.MANUAL_REVIEW, NEEDS_REVIEW)


def no_match(mode: DecisionMode, non_interactive: bool = False) -> PolicyOutcome:
    """Nothing cleared the floor; only unattended automatic runs drop the item."""
    if mode == DecisionMode.AUTOMATIC and non_interactive:
        return PolicyOutcome(Decision.SKIP, NO_MATCH)
    return PolicyOutcome(Decision.MANUAL_REVIEW, NO_MATCH)


def _automatic(name_changed: bool, reason: str) -> PolicyOutcome:
    if not name_changed:
        return PolicyOutcome(Decision.SKIP, ALREADY_CORRECT)
    return PolicyOutcome(Decision.RENAME, reason)
