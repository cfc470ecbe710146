"""
Pattern Detector — Exact previous-round lookup table.

Keys are the full outcome vector of a round (all slots jointly); values
are per-slot decayed distributions of what the following round produced.
Only vectors that actually occurred get a row. A miss returns None and the
ensemble substitutes the slot marginal.
"""

import numpy as np

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG
from app.ml.frequency_analyzer import normalize, recency_weights, to_mapping


class PatternModel:
    def __init__(self, history=(), config=DEFAULT_CONFIG):
        self.config = config
        self.table = {}
        self.load_history(history)

    def load_history(self, history):
        entries = list(history)
        k = self.config.num_outcomes
        width = self.config.round_width
        alphabet = self.config.alphabet
        self.table = {}
        self.last_round = entries[-1].outcomes if entries else None

        weights = recency_weights(len(entries), self.config.decay)
        for i in range(1, len(entries)):
            key = tuple(entries[i - 1].outcomes)
            row = self.table.get(key)
            if row is None:
                row = np.full((width, k), self.config.alpha)
                self.table[key] = row
            for slot, outcome in enumerate(entries[i].outcomes):
                if outcome in alphabet:
                    row[slot, alphabet.index(outcome)] += weights[i]

    def lookup(self, round_vector):
        """Per-slot distributions following `round_vector`, or None if never seen."""
        if round_vector is None:
            return None
        row = self.table.get(tuple(round_vector))
        if row is None:
            return None
        return [normalize(row[slot]) for slot in range(self.config.round_width)]

    def predict(self):
        return self.lookup(self.last_round)

    @property
    def known_patterns(self):
        return len(self.table)

    def get_summary(self):
        current = self.predict()
        return {
            'known_patterns': self.known_patterns,
            'last_round': list(self.last_round) if self.last_round else None,
            'matched': current is not None,
            'slots': ([to_mapping(p, self.config.alphabet) for p in current]
                      if current is not None else None),
        }
