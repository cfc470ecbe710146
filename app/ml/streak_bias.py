"""
Streak Bias — Heuristic correction against long runs.

When the last STREAK_WINDOW rounds put the same outcome in a slot, a
bounded amount of probability mass is moved off that outcome and spread
evenly over the others. Fixed rule, nothing is learned.
"""

import numpy as np

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG
from app.ml.frequency_analyzer import normalize


class StreakBias:
    def __init__(self, config=DEFAULT_CONFIG):
        self.config = config

    def streak_outcome(self, history, slot):
        """The repeated outcome if the slot's tail is uniform, else None."""
        window = self.config.streak_window
        entries = list(history)
        if len(entries) < window:
            return None
        tail = [entry.outcomes[slot] for entry in entries[-window:]]
        first = tail[0]
        if first in self.config.alphabet and all(v == first for v in tail):
            return first
        return None

    def apply(self, probs, history, slot):
        return self.adjust(probs, self.streak_outcome(history, slot))

    def adjust(self, probs, repeated):
        """Move min(STREAK_BONUS, p[repeated] / 2) evenly onto the other outcomes."""
        if repeated is None or repeated not in self.config.alphabet:
            return probs

        idx = self.config.index_of(repeated)
        adjusted = np.array(probs, dtype=np.float64)
        shift = min(self.config.streak_bonus, adjusted[idx] * 0.5)
        adjusted[idx] = max(0.0, adjusted[idx] - shift)
        others = [i for i in range(len(adjusted)) if i != idx]
        for i in others:
            adjusted[i] += shift / len(others)
        return normalize(adjusted)
