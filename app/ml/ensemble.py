"""
Ensemble Predictor - Master orchestrator combining all models.

Per slot, the combiner blends:
  slot   SlotMarginalModel posterior (slot counter mixed with the global pool)
  markov first-order transition from the slot's previous outcome
  pattern exact previous-round lookup (slot posterior substituted on a miss)
  streak StreakBias correction, either as a fourth weighted member built on
         the blend ('weighted') or applied after blending ('post')

The softmax classifier is folded into the blend with CLASSIFIER_MIX; an
untrained classifier contributes a uniform distribution.
"""

from collections import namedtuple

import numpy as np

import sys
sys.path.insert(0, '.')
from config import DEFAULT_CONFIG, EnsembleWeights, COLLAPSE_WARNING, TUNE_STEP

from app.ml.frequency_analyzer import (
    SlotMarginalModel, normalize, to_mapping, randomness_report,
)
from app.ml.markov_chain import MarkovModel
from app.ml.pattern_detector import PatternModel
from app.ml.feature_engine import FeatureExtractor
from app.ml.softmax_classifier import SoftmaxClassifier, classifier_distribution
from app.ml.streak_bias import StreakBias
from app.ml.accuracy_tracker import AccuracyTracker
from app.session.history import History, parse_round


# Everything the combiner needs for one slot, computed once per history prefix.
# pattern is None on a lookup miss; streak_outcome is None when no streak.
SlotComponents = namedtuple(
    'SlotComponents', ['slot', 'markov', 'pattern', 'classifier', 'streak_outcome']
)


def pick_outcome(dist, rng, tolerance=DEFAULT_CONFIG.tie_tolerance):
    """Arg max index; outcomes within `tolerance` of the max are drawn uniformly."""
    probs = np.asarray(dist, dtype=np.float64)
    best = probs.max()
    tied = np.flatnonzero(probs >= best - tolerance)
    if len(tied) == 1:
        return int(tied[0])
    return int(tied[rng.integers(len(tied))])


class EnsembleCombiner:
    def __init__(self, config=DEFAULT_CONFIG):
        self.config = config
        self.extractor = FeatureExtractor(config)
        self.streak = StreakBias(config)

    def components(self, history, classifier_model=None):
        """Rebuild every sub-model from `history` and collect per-slot inputs."""
        cfg = self.config
        entries = list(history)
        marginal = SlotMarginalModel(entries, cfg)
        markov = MarkovModel(entries, cfg)
        pattern = PatternModel(entries, cfg).predict()

        result = []
        for slot in range(cfg.round_width):
            if classifier_model is not None:
                x = self.extractor.extract(entries, len(entries), slot)
            else:
                x = None
            result.append(SlotComponents(
                slot=marginal.slot_posterior(slot),
                markov=markov.predict_slot(slot),
                pattern=pattern[slot] if pattern is not None else None,
                classifier=classifier_distribution(classifier_model, x, cfg.num_outcomes),
                streak_outcome=self.streak.streak_outcome(entries, slot),
            ))
        return result

    def combine_slot(self, comp, weights):
        cfg = self.config
        w = weights.normalized()
        pattern = comp.pattern if comp.pattern is not None else comp.slot

        base_weight = w.slot + w.markov + w.pattern
        if base_weight <= 0:
            base = comp.slot
        else:
            base = normalize(w.slot * comp.slot + w.markov * comp.markov + w.pattern * pattern)

        mix = cfg.classifier_mix
        base = normalize((1.0 - mix) * base + mix * comp.classifier)

        if cfg.streak_mode == 'post':
            return normalize(self.streak.adjust(base, comp.streak_outcome))
        corrected = self.streak.adjust(base, comp.streak_outcome)
        return normalize((1.0 - w.streak) * base + w.streak * corrected)

    def combine(self, history, weights, classifier_model=None):
        return [self.combine_slot(c, weights)
                for c in self.components(history, classifier_model)]

    def pick(self, dist, rng):
        return self.config.alphabet[pick_outcome(dist, rng, self.config.tie_tolerance)]


class EnsemblePredictor:
    def __init__(self, config=DEFAULT_CONFIG, weights=None, seed=None):
        self.config = config
        self.weights = weights if weights is not None else EnsembleWeights()
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.combiner = EnsembleCombiner(config)
        self.extractor = self.combiner.extractor
        self.history = History(config)
        self.accuracy = AccuracyTracker(config)
        self.classifier_model = None
        self.last_prediction = None
        self.rounds_since_train = 0
        self.train_count = 0

    # ─── History ────────────────────────────────────────────────────────

    def load_history(self, entries):
        """Replace History with already-validated entries (e.g. from the store)."""
        self.history = History(self.config, entries)
        self.last_prediction = None
        self.rounds_since_train = 0

    def add_round(self, raw, ts=None, dedupe=False):
        """Validate and append one round. Raises InvalidObservationError.

        Returns (outcomes, added); `added` is False for a fast duplicate.
        """
        outcomes = parse_round(raw, self.config)
        window = self.config.duplicate_window_seconds if dedupe else None
        added = self.history.append(outcomes, ts=ts, dedupe_window=window)
        return outcomes, added

    def observe(self, raw, ts=None, dedupe=True, auto_train=True):
        """One live cycle: score the pending pick, append, retrain if due, predict next."""
        outcomes, added = self.add_round(raw, ts=ts, dedupe=dedupe)
        if not added:
            return {'status': 'duplicate', 'round': list(outcomes)}

        previous = self.last_prediction
        correct = None
        if previous is not None:
            correct = self.accuracy.record(previous['picks'], outcomes)

        self.rounds_since_train += 1
        retrained = False
        if auto_train and self.needs_retrain():
            retrained = self.train_classifier() is not None

        prediction = self.predict()
        return {
            'status': 'added',
            'round': list(outcomes),
            'previous_picks': previous['picks'] if previous else None,
            'previous_distribution': previous['distributions'][0] if previous else None,
            'correct': correct,
            'retrained': retrained,
            'prediction': prediction,
            'accuracy': self.accuracy.summary(),
        }

    def needs_retrain(self):
        if len(self.history) <= self.config.short_window:
            return False
        if self.classifier_model is None:
            return True
        return self.rounds_since_train >= self.config.retrain_interval

    def undo_last(self):
        """Remove the last round. Models are pure projections of History, so
        nothing else needs rolling back. Returns the removed entry or None."""
        removed = self.history.undo()
        if removed is not None:
            self.last_prediction = None
        return removed

    def reset(self):
        self.history.clear()
        self.accuracy.reset()
        self.classifier_model = None
        self.last_prediction = None
        self.rounds_since_train = 0
        print("[RESET] History, accuracy and classifier cleared")

    # ─── Prediction ─────────────────────────────────────────────────────

    def predict(self):
        alphabet = self.config.alphabet
        dists = self.combiner.combine(self.history, self.weights, self.classifier_model)
        picks = [self.combiner.pick(d, self.rng) for d in dists]

        for slot, dist in enumerate(dists):
            top = int(np.argmax(dist))
            if dist[top] > COLLAPSE_WARNING:
                print(f"[Predict] WARNING: slot {slot} collapsed onto "
                      f"{alphabet[top]} (p={dist[top]:.3f})")

        prediction = {
            'rounds': len(self.history),
            'picks': picks,
            'distributions': [to_mapping(d, alphabet) for d in dists],
            'confidence': [round(float(d.max()), 4) for d in dists],
            'weights': self.weights.as_dict(),
            'streak_mode': self.config.streak_mode,
            'classifier_trained': self.classifier_model is not None,
        }
        self.last_prediction = prediction
        return prediction

    # ─── Classifier ─────────────────────────────────────────────────────

    def _next_seed(self):
        if self.seed is None:
            return None
        return self.seed + self.train_count

    def train_classifier(self, progress=None):
        """Fit a fresh classifier on the whole History. Keeps the previous model
        when there are too few samples."""
        trainer = SoftmaxClassifier(self.config, seed=self._next_seed())
        covered = self.rounds_since_train
        model = trainer.train_on_history(self.history, self.extractor, progress=progress)
        self.train_count += 1
        # Rounds observed while fitting still count towards the next retrain
        self.rounds_since_train = max(0, self.rounds_since_train - covered)
        if model is None:
            print(f"[Train] Skipped: fewer than {self.config.min_training_samples} samples")
            return None
        self.classifier_model = model
        print(f"[Train] Classifier fitted on {model.samples} samples "
              f"(loss={model.final_loss})")
        return model

    def set_classifier(self, model):
        if model is None:
            self.classifier_model = None
            return True
        if (model.alphabet != self.config.alphabet
                or model.feature_dim != self.extractor.feature_dim):
            print("[Train] Ignoring classifier with incompatible shape")
            return False
        self.classifier_model = model
        return True

    # ─── Weights / Backtesting ──────────────────────────────────────────

    def set_weights(self, weights):
        if isinstance(weights, dict):
            weights = EnsembleWeights.from_dict(weights)
        self.weights = weights
        return self.weights

    def evaluate(self, weights=None, should_stop=None):
        from app.ml.walk_forward import WalkForwardEvaluator
        evaluator = WalkForwardEvaluator(self.config, seed=self.seed)
        return evaluator.evaluate(self.history, weights or self.weights,
                                  should_stop=should_stop)

    def tune(self, step=TUNE_STEP, should_stop=None, apply=True):
        from app.ml.walk_forward import WalkForwardEvaluator, WeightTuner
        tuner = WeightTuner(WalkForwardEvaluator(self.config, seed=self.seed), step=step)
        result = tuner.tune(self.history, should_stop=should_stop)
        if result is not None and apply:
            self.set_weights(result['best_weights'])
            print(f"[Tune] Applied weights {result['best_weights']} "
                  f"(slot accuracy {result['best_score']:.4f})")
        return result

    def randomness(self):
        return randomness_report(self.history, self.config)

    # ─── Status / Persistence ───────────────────────────────────────────

    def get_model_status(self):
        entries = list(self.history)
        cfg = self.config
        return {
            'rounds': len(entries),
            'alphabet': list(cfg.alphabet),
            'round_width': cfg.round_width,
            'weights': self.weights.as_dict(),
            'streak_mode': cfg.streak_mode,
            'marginal': SlotMarginalModel(entries, cfg).get_summary(),
            'markov': MarkovModel(entries, cfg).get_summary(),
            'patterns': PatternModel(entries, cfg).get_summary(),
            'classifier': {
                'trained': self.classifier_model is not None,
                'samples': self.classifier_model.samples if self.classifier_model else 0,
                'final_loss': self.classifier_model.final_loss if self.classifier_model else None,
                'rounds_since_train': self.rounds_since_train,
            },
            'accuracy': self.accuracy.summary(),
        }

    def save_state(self, store):
        ok = store.save_history(self.history)
        ok = store.save_weights(self.weights) and ok
        if self.classifier_model is not None:
            ok = store.save_classifier(self.classifier_model) and ok
        if ok:
            print(f"[State] Saved state ({len(self.history)} rounds)")
        return ok

    def load_state(self, store):
        """Restore History, weights and classifier. Anything missing or unreadable
        is skipped; what is in memory stays usable."""
        history = store.load_history(self.config)
        if history is not None:
            self.load_history(history)
        weights = store.load_weights()
        if weights is not None:
            self.weights = weights
        model = store.load_classifier()
        if model is not None:
            self.set_classifier(model)
        print(f"[State] Loaded {len(self.history)} rounds, "
              f"classifier trained={self.classifier_model is not None}")
        return history is not None
