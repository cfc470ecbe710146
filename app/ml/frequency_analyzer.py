"""
Frequency Analyzer — Decayed, Dirichlet-smoothed outcome frequencies,
per-slot / global marginals, and randomness diagnostics.

Every estimate is recomputed from the History it is given: the counters
hold no state between calls, so replaying a persisted History always
reproduces the same distributions.
"""

import math
import numpy as np
from scipy import stats

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG

# Smallest total mass we are willing to divide by
EPSILON = 1e-12


def uniform(size):
    return np.full(size, 1.0 / size)


def normalize(values):
    """Scale to sum 1. Degenerate input (zero, negative or non-finite mass)
    falls back to uniform so NaN/Inf never reach an output distribution."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        return arr
    total = arr.sum()
    if not np.all(np.isfinite(arr)) or not math.isfinite(total) or total <= EPSILON:
        return uniform(arr.size)
    return arr / total


def recency_weights(n, decay):
    """decay ** age for positions 0..n-1, where the last position has age 0."""
    if n <= 0:
        return np.zeros(0)
    ages = np.arange(n - 1, -1, -1, dtype=np.float64)
    return np.power(decay, ages)


def to_mapping(probs, alphabet):
    return {outcome: float(p) for outcome, p in zip(alphabet, probs)}


class DecayedCounter:
    """Exponentially-decayed outcome counts seeded with a Dirichlet prior.

    `extract(entry)` returns the outcome (or list of outcomes) a History
    entry contributes. Each contribution at distance `age` from the end of
    the prefix adds decay**age to its bucket; every bucket starts at ALPHA.
    """

    def __init__(self, config=DEFAULT_CONFIG):
        self.config = config
        self.weights = np.full(config.num_outcomes, config.alpha, dtype=np.float64)

    @classmethod
    def from_history(cls, history, extract, config=DEFAULT_CONFIG):
        counter = cls(config)
        entries = list(history)
        for entry, w in zip(entries, recency_weights(len(entries), config.decay)):
            found = extract(entry)
            if found is None:
                continue
            if isinstance(found, str):
                found = [found]
            for outcome in found:
                counter.add(outcome, w)
        return counter

    def add(self, outcome, amount):
        if outcome in self.config.alphabet:
            self.weights[self.config.index_of(outcome)] += amount

    def weight_of(self, outcome):
        return float(self.weights[self.config.index_of(outcome)])

    @property
    def total(self):
        return float(self.weights.sum())

    def distribution(self):
        return normalize(self.weights)


class SlotMarginalModel:
    """One DecayedCounter per slot plus one pooled over every slot.

    slot_posterior(s) = (1 - mix_global) * slot + mix_global * global,
    which pulls thinly-sampled slots toward the better-sampled pool.
    """

    def __init__(self, history=(), config=DEFAULT_CONFIG):
        self.config = config
        self.slot_counters = []
        self.global_counter = DecayedCounter(config)
        self.load_history(history)

    def load_history(self, history):
        entries = list(history)
        k = self.config.round_width
        self.slot_counters = [
            DecayedCounter.from_history(entries, lambda e, s=s: e.outcomes[s], self.config)
            for s in range(k)
        ]
        self.global_counter = DecayedCounter.from_history(
            entries, lambda e: list(e.outcomes), self.config
        )
        self.total_rounds = len(entries)

    def slot_distribution(self, slot):
        return self.slot_counters[slot].distribution()

    def global_distribution(self):
        return self.global_counter.distribution()

    def slot_posterior(self, slot):
        mix = self.config.mix_global
        blended = (1.0 - mix) * self.slot_distribution(slot) + mix * self.global_distribution()
        return normalize(blended)

    def get_summary(self):
        alphabet = self.config.alphabet
        return {
            'total_rounds': self.total_rounds,
            'global': to_mapping(self.global_distribution(), alphabet),
            'slots': [to_mapping(self.slot_posterior(s), alphabet)
                      for s in range(self.config.round_width)],
        }


# ─── Randomness Diagnostics ───────────────────────────────────────────

def slot_series(history, slot):
    return [entry.outcomes[slot] for entry in history]


def chi_square_test(outcomes, config=DEFAULT_CONFIG):
    """Goodness-of-fit of raw outcome counts against a uniform alphabet."""
    counts = {o: 0 for o in config.alphabet}
    for o in outcomes:
        if o in counts:
            counts[o] += 1
    total = sum(counts.values())
    if total < config.num_outcomes:
        return {'statistic': 0.0, 'p_value': 1.0, 'significant': False,
                'counts': counts, 'total': total}

    observed = np.array([counts[o] for o in config.alphabet], dtype=np.float64)
    chi2, p_value = stats.chisquare(observed)
    return {
        'statistic': float(chi2),
        'p_value': float(p_value),
        'significant': bool(p_value < 0.05),
        'counts': counts,
        'total': total,
    }


def _binary_series(outcomes, config):
    """First alphabet member → 1, second → 0, everything else dropped."""
    first, second = config.alphabet[0], config.alphabet[1]
    return [1 if o == first else 0 for o in outcomes if o in (first, second)]


def runs_test(outcomes, config=DEFAULT_CONFIG):
    """Wald-Wolfowitz runs test on the first two outcomes (normal approximation)."""
    seq = _binary_series(outcomes, config)
    if len(seq) < 2:
        return None
    n1 = sum(seq)
    n2 = len(seq) - n1
    if n1 == 0 or n2 == 0:
        return None

    runs = 1 + sum(1 for a, b in zip(seq, seq[1:]) if a != b)
    n = n1 + n2
    expected = 2.0 * n1 * n2 / n + 1.0
    variance = (2.0 * n1 * n2 * (2.0 * n1 * n2 - n)) / (n ** 2 * (n - 1))
    z = (runs - expected) / math.sqrt(variance) if variance > 0 else 0.0
    p_value = 2.0 * (1.0 - stats.norm.cdf(abs(z)))
    return {
        'runs': runs,
        'expected': expected,
        'variance': variance,
        'z': float(z),
        'p_value': float(p_value),
        'n1': n1,
        'n2': n2,
    }


def lag1_autocorrelation(outcomes, config=DEFAULT_CONFIG):
    seq = _binary_series(outcomes, config)
    if len(seq) < 2:
        return None
    x = np.asarray(seq, dtype=np.float64)
    centered = x - x.mean()
    denom = float(np.sum(centered ** 2))
    if denom == 0:
        return None
    return float(np.sum(centered[:-1] * centered[1:]) / denom)


def randomness_report(history, config=DEFAULT_CONFIG):
    """Per-slot chi-square, runs test and lag-1 autocorrelation."""
    entries = list(history)
    report = []
    for slot in range(config.round_width):
        series = slot_series(entries, slot)
        report.append({
            'slot': slot,
            'chi_square': chi_square_test(series, config),
            'runs_test': runs_test(series, config),
            'lag1_autocorr': lag1_autocorrelation(series, config),
        })
    return report
