"""
Walk-Forward Evaluator — Leakage-free sequential backtest and weight tuning.

For every index i >= min_train, all models are rebuilt from History[:i]
only, round i is predicted and then compared against the real round i.
The per-slot model outputs do not depend on the ensemble weights, so they
are computed once per prefix (component_steps) and every weight
combination is scored against the same steps (score). The tuner is just
a loop over a simplex grid around score().
"""

from collections import namedtuple

import numpy as np

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG, EnsembleWeights, TUNE_STEP, TUNE_MIN_ROUNDS

from app.ml.ensemble import EnsembleCombiner
from app.ml.feature_engine import FeatureExtractor
from app.ml.frequency_analyzer import to_mapping
from app.ml.softmax_classifier import SoftmaxClassifier


WalkForwardStep = namedtuple('WalkForwardStep', ['index', 'actual', 'components'])


class WalkForwardEvaluator:
    def __init__(self, config=DEFAULT_CONFIG, seed=None, min_train=None,
                 use_classifier=True):
        self.config = config
        self.seed = seed
        self.min_train = config.walk_forward_min_train if min_train is None else min_train
        self.use_classifier = use_classifier
        self.combiner = EnsembleCombiner(config)
        self.extractor = FeatureExtractor(config)

    def _trainer(self, index):
        cfg = self.config
        return SoftmaxClassifier(
            cfg,
            seed=None if self.seed is None else self.seed + index,
            learning_rate=cfg.walk_forward_learning_rate,
            epochs=cfg.walk_forward_epochs,
            l2=cfg.walk_forward_l2,
        )

    def component_steps(self, history, should_stop=None):
        """Per-prefix model outputs. Returns (steps, interrupted).

        The classifier is refit every WALK_FORWARD_RETRAIN_EVERY steps on the
        current prefix and reused until the next refit, so it never sees
        round i or later when round i is predicted.
        """
        entries = list(history)
        steps = []
        model = None
        start = max(1, self.min_train)
        for i in range(start, len(entries)):
            if should_stop is not None and should_stop():
                print(f"[Tune] Walk-forward stopped at step {i}")
                return steps, True
            prefix = entries[:i]
            if self.use_classifier and (i - start) % self.config.walk_forward_retrain_every == 0:
                model = self._trainer(i).train_on_history(prefix, self.extractor)
            steps.append(WalkForwardStep(
                i, tuple(entries[i].outcomes), self.combiner.components(prefix, model)
            ))
        return steps, False

    def score(self, steps, weights, rng=None):
        """Accuracy of `weights` over precomputed steps."""
        cfg = self.config
        if rng is None:
            rng = np.random.default_rng(self.seed)

        per_outcome = {o: {'total': 0, 'correct': 0} for o in cfg.alphabet}
        round_correct = 0
        slot_correct = 0
        slot_total = 0
        predictions = []

        for step in steps:
            dists = [self.combiner.combine_slot(c, weights) for c in step.components]
            picks = [self.combiner.pick(d, rng) for d in dists]
            hits = [p == a for p, a in zip(picks, step.actual)]
            for actual, hit in zip(step.actual, hits):
                per_outcome[actual]['total'] += 1
                per_outcome[actual]['correct'] += int(hit)
            slot_correct += sum(hits)
            slot_total += len(hits)
            round_correct += int(all(hits))
            predictions.append({
                'index': step.index,
                'picks': picks,
                'actual': list(step.actual),
                'correct': all(hits),
                'distributions': [to_mapping(d, cfg.alphabet) for d in dists],
            })

        for stats in per_outcome.values():
            stats['accuracy'] = stats['correct'] / stats['total'] if stats['total'] else 0.0

        n = len(steps)
        return {
            'steps': n,
            'round_correct': round_correct,
            'round_accuracy': round_correct / n if n else 0.0,
            'slot_correct': slot_correct,
            'slot_total': slot_total,
            'slot_accuracy': slot_correct / slot_total if slot_total else 0.0,
            'per_outcome': per_outcome,
            'predictions': predictions,
        }

    def evaluate(self, history, weights=None, should_stop=None):
        weights = weights if weights is not None else EnsembleWeights()
        steps, interrupted = self.component_steps(history, should_stop)
        result = self.score(steps, weights)
        result['interrupted'] = interrupted
        result['min_train'] = self.min_train
        result['weights'] = weights.as_dict()
        return result


class WeightTuner:
    """Coarse grid search over the 4-weight simplex, scored by slot accuracy."""

    def __init__(self, evaluator, step=TUNE_STEP):
        if not 0 < step <= 1:
            raise ValueError(f"tune step must be in (0, 1], got {step}")
        self.evaluator = evaluator
        self.step = step

    def grid(self):
        units = max(1, int(round(1.0 / self.step)))
        for a in range(units + 1):
            for b in range(units + 1 - a):
                for c in range(units + 1 - a - b):
                    d = units - a - b - c
                    yield EnsembleWeights(a / units, b / units, c / units, d / units)

    def tune(self, history, should_stop=None):
        """Best weights found, or None with fewer than TUNE_MIN_ROUNDS scored rounds."""
        steps, interrupted = self.evaluator.component_steps(history, should_stop)
        if len(steps) < TUNE_MIN_ROUNDS:
            print(f"[Tune] Need at least {TUNE_MIN_ROUNDS} scored rounds, have {len(steps)}")
            return None

        seed = self.evaluator.seed
        scores = {}
        for weights in self.grid():
            if scores and should_stop is not None and should_stop():
                interrupted = True
                break
            result = self.evaluator.score(steps, weights, np.random.default_rng(seed))
            scores[weights.as_tuple()] = result['slot_accuracy']

        if not scores:
            return None

        # Highest score; ties go to the smallest weight tuple
        best_key = max(sorted(scores), key=lambda k: scores[k])
        best = EnsembleWeights(*best_key)
        best_result = self.evaluator.score(steps, best, np.random.default_rng(seed))
        print(f"[Tune] {len(scores)} combinations over {len(steps)} rounds, "
              f"best slot accuracy {scores[best_key]:.4f}")
        return {
            'best_weights': best.as_dict(),
            'best_score': scores[best_key],
            'round_accuracy': best_result['round_accuracy'],
            'per_outcome': best_result['per_outcome'],
            'evaluated': len(scores),
            'steps': len(steps),
            'step': self.step,
            'interrupted': interrupted,
        }
