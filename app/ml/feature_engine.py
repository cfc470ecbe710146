"""
Feature Engine — Fixed-width numeric encoding of recent history for the
softmax classifier.

The same function generates the training set and the live-inference input,
so it must be pure: identical (history prefix, index, slot) always give
an identical vector. Nothing here reads the wall clock.
"""

import math
from datetime import datetime, timezone

import numpy as np

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG


class FeatureExtractor:
    """Converts a history prefix into one feature vector per (index, slot).

    Layout for an alphabet of size k and position period P:
      short_rates:   k   occurrence rates over the last SHORT_WINDOW rounds
      last_outcome:  k   one-hot of the immediately preceding outcome
      streak:        1   preceding run length, capped and scaled to [0, 1]
      position:      P   one-hot of (index mod P)
      time_of_day:   2   sin/cos of the hour (UTC) of the preceding observation
      long_rates:    k   occurrence rates over the last LONG_WINDOW rounds
    """

    def __init__(self, config=DEFAULT_CONFIG):
        self.config = config
        k = config.num_outcomes
        self.feature_dim = 3 * k + 1 + config.position_period + 2

    # ── Public API ───────────────────────────────────────────────────

    def extract(self, history, index, slot=0):
        """Features describing what was known right before round `index`.

        Only history[:index] is read.
        """
        cfg = self.config
        index = max(0, min(index, len(history)))
        series = [history[j].outcomes[slot] for j in range(max(0, index - cfg.long_window), index)]
        window = series[-cfg.short_window:]

        vec = []
        vec.extend(self._rates(window))
        vec.extend(self._last_outcome(window))
        vec.append(self._streak(window))
        vec.extend(self._position(index))
        vec.extend(self._time_of_day(history[index - 1].ts if index > 0 else None))
        vec.extend(self._rates(series))
        return np.array(vec, dtype=np.float32)

    def build_dataset(self, history, slots=None):
        """Training pairs (X, y) from every index that has a full short window.

        Each slot contributes its own samples; labels are alphabet indices.
        """
        entries = list(history)
        slots = range(self.config.round_width) if slots is None else slots
        X, y = [], []
        for j in range(self.config.short_window, len(entries)):
            for slot in slots:
                outcome = entries[j].outcomes[slot]
                if outcome not in self.config.alphabet:
                    continue
                X.append(self.extract(entries, j, slot))
                y.append(self.config.index_of(outcome))
        if not X:
            return np.zeros((0, self.feature_dim), dtype=np.float32), np.zeros(0, dtype=np.int64)
        return np.vstack(X), np.array(y, dtype=np.int64)

    # ── Internal ─────────────────────────────────────────────────────

    def _rates(self, outcomes):
        counts = [0.0] * self.config.num_outcomes
        for o in outcomes:
            if o in self.config.alphabet:
                counts[self.config.index_of(o)] += 1
        size = max(1, len(outcomes))
        return [c / size for c in counts]

    def _last_outcome(self, window):
        onehot = [0.0] * self.config.num_outcomes
        if window and window[-1] in self.config.alphabet:
            onehot[self.config.index_of(window[-1])] = 1.0
        return onehot

    def _streak(self, window):
        if not window:
            return 0.0
        last = window[-1]
        streak = 0
        for o in reversed(window):
            if o != last:
                break
            streak += 1
        cap = self.config.streak_feature_cap
        return min(streak, cap) / cap

    def _position(self, index):
        period = self.config.position_period
        onehot = [0.0] * period
        onehot[index % period] = 1.0
        return onehot

    @staticmethod
    def _time_of_day(ts):
        # No observation yet: neutral encoding
        if ts is None:
            return [0.0, 0.0]
        dt = datetime.fromtimestamp(ts, tz=timezone.utc)
        hour = dt.hour + dt.minute / 60.0
        angle = 2 * math.pi * hour / 24.0
        return [math.sin(angle), math.cos(angle)]
