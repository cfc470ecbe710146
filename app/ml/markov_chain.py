"""
Markov Chain Model - Per-slot first-order transition tables.
Predicts each slot's next outcome from that slot's value in the previous round.
"""

import numpy as np

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG
from app.ml.frequency_analyzer import normalize, uniform, recency_weights, to_mapping


class MarkovModel:
    """table[slot][prev, next] holds decayed transition mass.

    A pair (round i-1, round i) is weighted by decay ** age of round i,
    the later round of the pair.
    """

    def __init__(self, history=(), config=DEFAULT_CONFIG):
        self.config = config
        k = config.num_outcomes
        self.counts = np.zeros((config.round_width, k, k))
        self.load_history(history)

    def load_history(self, history):
        entries = list(history)
        k = self.config.num_outcomes
        self.counts = np.zeros((self.config.round_width, k, k))
        self.last_round = entries[-1].outcomes if entries else None

        weights = recency_weights(len(entries), self.config.decay)
        for i in range(1, len(entries)):
            prev = entries[i - 1].outcomes
            cur = entries[i].outcomes
            for slot in range(self.config.round_width):
                self._add(slot, prev[slot], cur[slot], weights[i])

    def _add(self, slot, prev, cur, amount):
        alphabet = self.config.alphabet
        if prev in alphabet and cur in alphabet:
            self.counts[slot, alphabet.index(prev), alphabet.index(cur)] += amount

    def row_mass(self, slot, previous_outcome):
        if previous_outcome not in self.config.alphabet:
            return 0.0
        return float(self.counts[slot, self.config.index_of(previous_outcome)].sum())

    def next_distribution(self, slot, previous_outcome):
        """P(next | previous) for one slot; uniform when the row was never observed."""
        if self.row_mass(slot, previous_outcome) <= 0:
            return uniform(self.config.num_outcomes)
        row = self.counts[slot, self.config.index_of(previous_outcome)]
        return normalize(row + self.config.alpha)

    def predict_slot(self, slot):
        """Distribution conditioned on the most recent round (uniform when empty)."""
        if self.last_round is None:
            return uniform(self.config.num_outcomes)
        return self.next_distribution(slot, self.last_round[slot])

    def transition_matrix(self, slot):
        return np.vstack([self.next_distribution(slot, o) for o in self.config.alphabet])

    def get_summary(self):
        alphabet = self.config.alphabet
        return {
            'slots': [
                {prev: to_mapping(self.next_distribution(slot, prev), alphabet)
                 for prev in alphabet}
                for slot in range(self.config.round_width)
            ],
        }
