"""
Accuracy Tracker — Running prediction scorecard for a live session.

Round-level: every slot of the pick matched. Slot-level: each slot scored
on its own. A bounded window keeps the most recent round-level results.
"""

from collections import deque

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG


class AccuracyTracker:
    def __init__(self, config=DEFAULT_CONFIG):
        self.config = config
        self.reset()

    def reset(self):
        self.total_predictions = 0
        self.correct_rounds = 0
        self.slot_total = 0
        self.slot_correct = 0
        self.recent = deque(maxlen=self.config.accuracy_window)

    def record(self, picks, actual):
        """Score one prediction. Returns True when every slot matched."""
        picks = tuple(picks)
        actual = tuple(actual)
        hits = [p == a for p, a in zip(picks, actual)]
        correct = bool(hits) and all(hits) and len(picks) == len(actual)

        self.total_predictions += 1
        self.correct_rounds += int(correct)
        self.slot_total += len(hits)
        self.slot_correct += sum(hits)
        self.recent.append(correct)
        return correct

    @property
    def round_accuracy(self):
        if self.total_predictions == 0:
            return 0.0
        return self.correct_rounds / self.total_predictions

    @property
    def slot_accuracy(self):
        if self.slot_total == 0:
            return 0.0
        return self.slot_correct / self.slot_total

    @property
    def recent_accuracy(self):
        if not self.recent:
            return 0.0
        return sum(self.recent) / len(self.recent)

    def summary(self):
        return {
            'total_predictions': self.total_predictions,
            'correct': self.correct_rounds,
            'accuracy': round(self.round_accuracy * 100, 2),
            'slot_accuracy': round(self.slot_accuracy * 100, 2),
            'recent_window': len(self.recent),
            'recent_accuracy': round(self.recent_accuracy * 100, 2),
        }
