"""
Unit Tests for the prediction models: DecayedCounter, SlotMarginalModel,
MarkovModel, PatternModel, FeatureExtractor, SoftmaxClassifier, StreakBias,
EnsembleCombiner and EnsemblePredictor.

Histories are built from fixed seeds so every assertion is reproducible.
"""
import pytest
import numpy as np
import sys
import os
from datetime import datetime, timezone

# Add project root to path
PROJECT_ROOT = os.path.join(os.path.dirname(__file__), '..')
sys.path.insert(0, PROJECT_ROOT)

from config import PredictorConfig, EnsembleWeights, DEFAULT_CONFIG
from app.ml.frequency_analyzer import (
    DecayedCounter, SlotMarginalModel, normalize, uniform, recency_weights,
    chi_square_test, runs_test, lag1_autocorrelation, randomness_report,
)
from app.ml.markov_chain import MarkovModel
from app.ml.pattern_detector import PatternModel
from app.ml.feature_engine import FeatureExtractor
from app.ml.softmax_classifier import (
    SoftmaxClassifier, ClassifierModel, classifier_distribution,
)
from app.ml.streak_bias import StreakBias
from app.ml.ensemble import EnsembleCombiner, EnsemblePredictor, SlotComponents, pick_outcome
from app.ml.accuracy_tracker import AccuracyTracker
from app.session.history import History, HistoryEntry, InvalidObservationError

BASE_TS = 1_700_000_000.0
SINGLE = PredictorConfig.single_stream()
MULTI = PredictorConfig.multi_slot()


def _history(rounds, config=SINGLE):
    """History from a list of outcomes (K=1) or outcome tuples."""
    history = History(config)
    for i, r in enumerate(rounds):
        outcomes = (r,) if isinstance(r, str) else tuple(r)
        history.append(outcomes, ts=BASE_TS + 60 * i)
    return history


def _random_rounds(n, config, seed):
    rng = np.random.default_rng(seed)
    return [tuple(str(o) for o in rng.choice(config.alphabet, size=config.round_width))
            for _ in range(n)]


SAMPLE_SINGLE = _random_rounds(80, SINGLE, seed=7)
SAMPLE_MULTI = _random_rounds(60, MULTI, seed=11)


# ═══════════════════════════════════════════════════════════════
# Numeric helpers
# ═══════════════════════════════════════════════════════════════

class TestNormalize:
    def test_sums_to_one(self):
        assert abs(normalize([1.0, 2.0, 5.0]).sum() - 1.0) < 1e-12

    def test_zero_mass_falls_back_to_uniform(self):
        assert np.allclose(normalize([0.0, 0.0, 0.0]), uniform(3))

    def test_non_finite_falls_back_to_uniform(self):
        out = normalize([np.nan, 1.0, np.inf])
        assert np.all(np.isfinite(out))
        assert np.allclose(out, uniform(3))

    def test_recency_weights_last_is_one(self):
        w = recency_weights(4, 0.5)
        assert np.allclose(w, [0.125, 0.25, 0.5, 1.0])


# ═══════════════════════════════════════════════════════════════
# DecayedCounter / SlotMarginalModel
# ═══════════════════════════════════════════════════════════════

class TestDecayedCounter:
    def test_empty_history_is_uniform(self):
        counter = DecayedCounter.from_history([], lambda e: e.outcomes[0], SINGLE)
        assert np.allclose(counter.distribution(), uniform(3))
        assert counter.total == pytest.approx(3 * SINGLE.alpha)

    def test_most_recent_adds_full_weight(self):
        history = _history(['RED'])
        counter = DecayedCounter.from_history(history, lambda e: e.outcomes[0], SINGLE)
        assert counter.weight_of('RED') == pytest.approx(SINGLE.alpha + 1.0)
        assert counter.weight_of('BLACK') == pytest.approx(SINGLE.alpha)

    def test_decay_monotonicity(self):
        older = _history(['RED', 'BLACK', 'BLACK'])
        newer = _history(['BLACK', 'RED', 'BLACK'])
        extract = lambda e: e.outcomes[0]
        w_old = DecayedCounter.from_history(older, extract, SINGLE).weight_of('RED')
        w_new = DecayedCounter.from_history(newer, extract, SINGLE).weight_of('RED')
        assert w_new > w_old

    def test_ignores_unknown_outcomes(self):
        counter = DecayedCounter(SINGLE)
        counter.add('PURPLE', 5.0)
        assert counter.total == pytest.approx(3 * SINGLE.alpha)


class TestSlotMarginalModel:
    def test_posterior_normalized_multi_slot(self):
        model = SlotMarginalModel(_history(SAMPLE_MULTI, MULTI), MULTI)
        for slot in range(MULTI.round_width):
            assert abs(model.slot_posterior(slot).sum() - 1.0) < 1e-6

    def test_posterior_is_fixed_blend(self):
        model = SlotMarginalModel(_history(SAMPLE_MULTI, MULTI), MULTI)
        mix = MULTI.mix_global
        expected = (1 - mix) * model.slot_distribution(2) + mix * model.global_distribution()
        assert np.allclose(model.slot_posterior(2), expected)

    def test_scenario_c_evidence_overwhelms_prior(self):
        model = SlotMarginalModel(_history(['RED'] * 300), SINGLE)
        p_red = model.slot_posterior(0)[SINGLE.index_of('RED')]
        assert 0.9 < p_red < 1.0

    def test_summary_keys(self):
        summary = SlotMarginalModel(_history(SAMPLE_SINGLE), SINGLE).get_summary()
        assert summary['total_rounds'] == len(SAMPLE_SINGLE)
        assert set(summary['global']) == set(SINGLE.alphabet)


# ═══════════════════════════════════════════════════════════════
# Randomness diagnostics
# ═══════════════════════════════════════════════════════════════

ALTERNATING = ['RED', 'BLACK'] * 10


class TestRandomnessDiagnostics:
    def test_chi_square_flags_biased_series(self):
        result = chi_square_test(['RED'] * 90 + ['BLACK'] * 5 + ['GREEN'] * 5, SINGLE)
        assert result['significant'] is True
        assert result['p_value'] < 0.05
        assert result['counts'] == {'RED': 90, 'BLACK': 5, 'GREEN': 5}

    def test_chi_square_balanced_series(self):
        result = chi_square_test(['RED', 'BLACK', 'GREEN'] * 10, SINGLE)
        assert result['statistic'] == pytest.approx(0.0)
        assert result['p_value'] == pytest.approx(1.0)
        assert result['significant'] is False

    def test_chi_square_too_few_observations(self):
        result = chi_square_test(['RED'], SINGLE)
        assert result['p_value'] == 1.0
        assert result['total'] == 1

    def test_runs_test_alternating_has_maximum_runs(self):
        result = runs_test(ALTERNATING, SINGLE)
        assert result['runs'] == len(ALTERNATING)
        assert result['n1'] == result['n2'] == 10
        assert result['expected'] == pytest.approx(11.0)
        assert result['z'] > 0
        assert result['p_value'] < 0.05

    def test_runs_test_ignores_other_outcomes(self):
        with_green = ['RED', 'GREEN', 'BLACK', 'GREEN'] * 10
        assert runs_test(with_green, SINGLE)['runs'] == runs_test(ALTERNATING, SINGLE)['runs']

    def test_runs_test_single_outcome_is_none(self):
        assert runs_test(['RED'] * 30, SINGLE) is None
        assert runs_test(['GREEN'] * 30, SINGLE) is None

    def test_autocorrelation_alternating_is_negative(self):
        # 19 lagged pairs over 20 points
        assert lag1_autocorrelation(ALTERNATING, SINGLE) == pytest.approx(-0.95)

    def test_autocorrelation_blocks_are_positive(self):
        blocks = ['RED'] * 10 + ['BLACK'] * 10
        assert lag1_autocorrelation(blocks, SINGLE) > 0.8

    def test_autocorrelation_constant_is_none(self):
        assert lag1_autocorrelation(['BLACK'] * 30, SINGLE) is None
        assert lag1_autocorrelation([], SINGLE) is None

    def test_report_per_slot(self):
        report = randomness_report(_history(SAMPLE_MULTI, MULTI), MULTI)
        assert [r['slot'] for r in report] == list(range(MULTI.round_width))
        assert all(r['chi_square']['total'] == len(SAMPLE_MULTI) for r in report)



# ═══════════════════════════════════════════════════════════════
# MarkovModel
# ═══════════════════════════════════════════════════════════════

class TestMarkovModel:
    def test_scenario_a_red_followed_by_black(self):
        config = SINGLE.replace(decay=0.97, alpha=0.5)
        model = MarkovModel(_history(['RED', 'BLACK', 'RED', 'BLACK', 'RED'], config), config)
        dist = model.next_distribution(0, 'RED')
        red, black, green = (dist[config.index_of(o)] for o in ('RED', 'BLACK', 'GREEN'))
        assert black > red
        assert black > green

    def test_unobserved_row_is_uniform(self):
        model = MarkovModel(_history(['RED', 'BLACK', 'RED']), SINGLE)
        assert model.row_mass(0, 'GREEN') == 0.0
        assert np.allclose(model.next_distribution(0, 'GREEN'), uniform(3))

    def test_empty_history_predicts_uniform(self):
        model = MarkovModel([], MULTI)
        for slot in range(MULTI.round_width):
            assert np.allclose(model.predict_slot(slot), uniform(3))

    def test_pair_weighted_by_later_round(self):
        config = SINGLE.replace(decay=0.5)
        model = MarkovModel(_history(['RED', 'BLACK', 'GREEN']), config)
        # RED->BLACK ends at age 1, BLACK->GREEN at age 0
        assert model.row_mass(0, 'RED') == pytest.approx(0.5)
        assert model.row_mass(0, 'BLACK') == pytest.approx(1.0)

    def test_transition_matrix_rows_normalized(self):
        model = MarkovModel(_history(SAMPLE_MULTI, MULTI), MULTI)
        matrix = model.transition_matrix(1)
        assert matrix.shape == (3, 3)
        assert np.allclose(matrix.sum(axis=1), 1.0)


# ═══════════════════════════════════════════════════════════════
# PatternModel
# ═══════════════════════════════════════════════════════════════

class TestPatternModel:
    def test_empty_history_has_no_pattern(self):
        assert PatternModel([], SINGLE).predict() is None

    def test_unseen_key_misses(self):
        model = PatternModel(_history(['RED', 'BLACK']), SINGLE)
        assert model.lookup(('GREEN',)) is None

    def test_seen_key_returns_followers(self):
        model = PatternModel(_history(['RED', 'BLACK', 'RED', 'BLACK', 'RED']), SINGLE)
        dist = model.predict()[0]
        assert abs(dist.sum() - 1.0) < 1e-9
        assert np.argmax(dist) == SINGLE.index_of('BLACK')

    def test_key_is_whole_round(self):
        rounds = [('R', 'R', 'R', 'R', 'R'), ('B', 'B', 'B', 'B', 'B')]
        model = PatternModel(_history(rounds, MULTI), MULTI)
        assert model.lookup(('R', 'R', 'R', 'R', 'B')) is None
        assert len(model.lookup(('R', 'R', 'R', 'R', 'R'))) == MULTI.round_width
        assert model.known_patterns == 1


# ═══════════════════════════════════════════════════════════════
# FeatureExtractor
# ═══════════════════════════════════════════════════════════════

class TestFeatureExtractor:
    def test_dimension(self):
        fx = FeatureExtractor(SINGLE)
        assert fx.feature_dim == 3 * 3 + 1 + 5 + 2
        assert fx.extract(_history(SAMPLE_SINGLE), 40).shape == (fx.feature_dim,)

    def test_pure_and_prefix_only(self):
        fx = FeatureExtractor(SINGLE)
        entries = list(_history(SAMPLE_SINGLE))
        a = fx.extract(entries, 30)
        b = fx.extract(entries, 30)
        c = fx.extract(entries[:30], 30)
        assert np.array_equal(a, b)
        assert np.array_equal(a, c)

    def test_bounded(self):
        fx = FeatureExtractor(MULTI)
        history = _history(SAMPLE_MULTI, MULTI)
        for slot in range(MULTI.round_width):
            vec = fx.extract(history, len(history), slot)
            assert np.all(vec >= -1.0) and np.all(vec <= 1.0)

    def test_position_one_hot(self):
        fx = FeatureExtractor(SINGLE)
        vec = fx.extract(_history(SAMPLE_SINGLE), 7)
        position = vec[7:12]
        assert position.tolist() == [0.0, 0.0, 1.0, 0.0, 0.0]

    def test_time_of_day_from_last_observation(self):
        fx = FeatureExtractor(SINGLE)
        history = History(SINGLE)
        six_am = datetime(2024, 1, 1, 6, 0, tzinfo=timezone.utc).timestamp()
        history.append(('RED',), ts=six_am)
        vec = fx.extract(history, 1)
        assert vec[12] == pytest.approx(1.0, abs=1e-6)
        assert vec[13] == pytest.approx(0.0, abs=1e-6)

    def test_streak_scaled(self):
        fx = FeatureExtractor(SINGLE)
        vec = fx.extract(_history(['BLACK', 'RED', 'RED', 'RED']), 4)
        assert vec[6] == pytest.approx(3 / SINGLE.streak_feature_cap)
        # last outcome one-hot
        assert vec[3:6].tolist() == [1.0, 0.0, 0.0]

    def test_empty_prefix(self):
        fx = FeatureExtractor(SINGLE)
        vec = fx.extract([], 0)
        assert vec.sum() == pytest.approx(1.0)  # only position 0 is set

    def test_build_dataset(self):
        fx = FeatureExtractor(MULTI)
        X, y = fx.build_dataset(_history(SAMPLE_MULTI, MULTI))
        expected = (len(SAMPLE_MULTI) - MULTI.short_window) * MULTI.round_width
        assert X.shape == (expected, fx.feature_dim)
        assert y.shape == (expected,)
        assert set(y.tolist()) <= {0, 1, 2}


# ═══════════════════════════════════════════════════════════════
# SoftmaxClassifier
# ═══════════════════════════════════════════════════════════════

def _separable(n_per_class=30):
    X = np.tile(np.eye(3, dtype=np.float32), (n_per_class, 1))
    y = np.tile(np.arange(3), n_per_class)
    return X, y


class TestSoftmaxClassifier:
    def test_skips_below_min_samples(self):
        X, y = _separable(3)
        assert SoftmaxClassifier(SINGLE, seed=0).train(X, y) is None

    def test_untrained_contributes_uniform(self):
        assert np.allclose(classifier_distribution(None, np.zeros(17), 3), uniform(3))

    def test_learns_separable_data(self):
        X, y = _separable()
        model = SoftmaxClassifier(SINGLE, seed=0).train(X, y)
        assert model is not None
        for label in range(3):
            probs = model.predict(np.eye(3)[label])
            assert abs(probs.sum() - 1.0) < 1e-9
            assert int(np.argmax(probs)) == label

    def test_seeded_training_is_reproducible(self):
        X, y = _separable()
        a = SoftmaxClassifier(SINGLE, seed=42).train(X, y)
        b = SoftmaxClassifier(SINGLE, seed=42).train(X, y)
        assert np.array_equal(a.weights, b.weights)
        assert np.array_equal(a.bias, b.bias)

    def test_model_is_immutable_and_fresh(self):
        X, y = _separable()
        trainer = SoftmaxClassifier(SINGLE, seed=1)
        first = trainer.train(X, y)
        snapshot = first.weights.copy()
        second = trainer.train(X, y)
        assert first is not second
        assert np.array_equal(first.weights, snapshot)
        with pytest.raises(ValueError):
            first.weights[0, 0] = 1.0

    def test_batch_size_bounds(self):
        trainer = SoftmaxClassifier(SINGLE, seed=0)
        assert trainer.batch_size(10) == SINGLE.batch_min
        assert trainer.batch_size(200) == 25
        assert trainer.batch_size(100000) == SINGLE.batch_max

    def test_predict_is_stable_for_large_logits(self):
        model = ClassifierModel(np.array([[1000.0], [0.0], [-1000.0]]), np.zeros(3),
                                SINGLE.alphabet)
        probs = model.predict([1.0])
        assert np.all(np.isfinite(probs))
        assert probs[0] == pytest.approx(1.0)

    def test_progress_callback_per_epoch(self):
        X, y = _separable()
        calls = []
        SoftmaxClassifier(SINGLE, seed=0, epochs=4).train(X, y, progress=lambda e, l: calls.append(e))
        assert calls == [1, 2, 3, 4]

    def test_state_round_trip(self):
        X, y = _separable()
        model = SoftmaxClassifier(SINGLE, seed=0, epochs=5).train(X, y)
        restored = ClassifierModel.from_state(model.to_state())
        assert np.array_equal(model.weights, restored.weights)
        assert restored.alphabet == SINGLE.alphabet


# ═══════════════════════════════════════════════════════════════
# StreakBias
# ═══════════════════════════════════════════════════════════════

class TestStreakBias:
    def test_streak_bound(self):
        bias = StreakBias(SINGLE)
        history = _history(['BLACK', 'RED', 'RED', 'RED'])
        before = np.array([0.6, 0.3, 0.1])
        after = bias.apply(before, history, 0)
        assert after[0] <= before[0]
        assert before[0] - after[0] <= SINGLE.streak_bonus + 1e-12
        assert abs(after.sum() - 1.0) < 1e-9

    def test_shift_capped_at_half_probability(self):
        bias = StreakBias(SINGLE)
        after = bias.apply(np.array([0.04, 0.5, 0.46]), _history(['RED'] * 3), 0)
        assert after[0] == pytest.approx(0.02)
        assert after[1] == pytest.approx(0.51)
        assert after[2] == pytest.approx(0.47)

    def test_no_streak_is_noop(self):
        bias = StreakBias(SINGLE)
        probs = np.array([0.5, 0.3, 0.2])
        assert np.array_equal(bias.apply(probs, _history(['RED', 'BLACK', 'RED']), 0), probs)

    def test_short_history_is_noop(self):
        bias = StreakBias(SINGLE)
        probs = np.array([0.5, 0.3, 0.2])
        assert np.array_equal(bias.apply(probs, _history(['RED', 'RED']), 0), probs)


# ═══════════════════════════════════════════════════════════════
# EnsembleCombiner
# ═══════════════════════════════════════════════════════════════

class TestEnsembleCombiner:
    @pytest.mark.parametrize('config', [SINGLE, MULTI])
    def test_scenario_b_empty_history_is_uniform(self, config):
        dists = EnsembleCombiner(config).combine([], EnsembleWeights())
        assert len(dists) == config.round_width
        for dist in dists:
            assert np.allclose(dist, uniform(config.num_outcomes), atol=1e-9)

    @pytest.mark.parametrize('mode', ['weighted', 'post'])
    def test_normalization_invariant(self, mode):
        config = MULTI.replace(streak_mode=mode)
        combiner = EnsembleCombiner(config)
        history = _history(SAMPLE_MULTI, config)
        for weights in (EnsembleWeights(), EnsembleWeights(0, 0, 0, 1), EnsembleWeights(0, 1, 0, 0)):
            for n in (0, 1, 3, len(history)):
                for dist in combiner.combine(list(history)[:n], weights):
                    assert abs(dist.sum() - 1.0) < 1e-6
                    assert np.all(dist >= 0)

    def test_pattern_miss_substitutes_slot_posterior(self):
        combiner = EnsembleCombiner(SINGLE)
        slot = np.array([0.6, 0.3, 0.1])
        markov = np.array([0.2, 0.5, 0.3])
        clf = uniform(3)
        missed = SlotComponents(slot, markov, None, clf, None)
        explicit = SlotComponents(slot, markov, slot, clf, None)
        weights = EnsembleWeights(0.3, 0.3, 0.4, 0.0)
        assert np.allclose(combiner.combine_slot(missed, weights),
                           combiner.combine_slot(explicit, weights))

    def test_post_mode_applies_streak_after_blend(self):
        config = SINGLE.replace(streak_mode='post', classifier_mix=0.0)
        combiner = EnsembleCombiner(config)
        slot = np.array([0.6, 0.3, 0.1])
        comp = SlotComponents(slot, slot, slot, uniform(3), 'RED')
        out = combiner.combine_slot(comp, EnsembleWeights(1, 0, 0, 0))
        assert out[0] == pytest.approx(0.6 - config.streak_bonus)

    def test_weighted_mode_streak_weight_scales_correction(self):
        config = SINGLE.replace(streak_mode='weighted', classifier_mix=0.0)
        combiner = EnsembleCombiner(config)
        slot = np.array([0.6, 0.3, 0.1])
        comp = SlotComponents(slot, slot, slot, uniform(3), 'RED')
        out = combiner.combine_slot(comp, EnsembleWeights(0.5, 0, 0, 0.5))
        assert out[0] == pytest.approx(0.6 - 0.5 * config.streak_bonus)

    def test_tie_break_fairness(self):
        rng = np.random.default_rng(0)
        picks = [pick_outcome([0.5, 0.5, 0.0], rng) for _ in range(4000)]
        share = picks.count(0) / len(picks)
        assert 0.45 < share < 0.55
        assert 2 not in picks

    def test_unique_max_is_deterministic(self):
        rng = np.random.default_rng(0)
        assert all(pick_outcome([0.2, 0.5, 0.3], rng) == 1 for _ in range(50))


# ═══════════════════════════════════════════════════════════════
# EnsemblePredictor
# ═══════════════════════════════════════════════════════════════

class TestEnsemblePredictor:
    def test_predict_on_empty_history(self):
        predictor = EnsemblePredictor(MULTI, seed=0)
        result = predictor.predict()
        assert len(result['picks']) == MULTI.round_width
        for dist in result['distributions']:
            assert abs(sum(dist.values()) - 1.0) < 1e-6

    def test_invalid_round_not_appended(self):
        predictor = EnsemblePredictor(SINGLE, seed=0)
        with pytest.raises(InvalidObservationError):
            predictor.observe('PURPLE')
        with pytest.raises(InvalidObservationError):
            EnsemblePredictor(MULTI, seed=0).observe('R,B,R')
        assert len(predictor.history) == 0

    def test_observe_scores_previous_pick(self):
        predictor = EnsemblePredictor(SINGLE, seed=0)
        first = predictor.observe('RED', ts=BASE_TS, auto_train=False)
        assert first['correct'] is None
        second = predictor.observe('BLACK', ts=BASE_TS + 60, auto_train=False)
        assert second['correct'] == (second['previous_picks'] == ['BLACK'])
        assert predictor.accuracy.total_predictions == 1

    def test_fast_duplicate_skipped(self):
        predictor = EnsemblePredictor(SINGLE, seed=0)
        predictor.observe('RED', ts=BASE_TS, auto_train=False)
        dup = predictor.observe('red', ts=BASE_TS + 0.5, auto_train=False)
        assert dup['status'] == 'duplicate'
        assert len(predictor.history) == 1

    def test_classifier_trains_once_enough_rounds(self):
        predictor = EnsemblePredictor(SINGLE, seed=3)
        for i, (outcome,) in enumerate(SAMPLE_SINGLE[:32]):
            predictor.observe(outcome, ts=BASE_TS + 60 * i)
        assert predictor.classifier_model is not None
        assert predictor.classifier_model.samples >= SINGLE.min_training_samples

    def test_rounds_added_during_training_still_count(self):
        predictor = EnsemblePredictor(SINGLE.replace(epochs=3), seed=0)
        predictor.load_history(list(_history(SAMPLE_SINGLE[:40])))
        predictor.rounds_since_train = 3
        added = []

        def add_round_mid_fit(epoch, loss):
            if not added:
                added.append(predictor.observe('RED', ts=BASE_TS + 60 * 41, auto_train=False))

        assert predictor.train_classifier(progress=add_round_mid_fit) is not None
        assert added[0]['status'] == 'added'
        assert predictor.rounds_since_train == 1

    def test_undo_and_reset(self):
        predictor = EnsemblePredictor(SINGLE, seed=0)
        assert predictor.undo_last() is None
        predictor.observe('GREEN', ts=BASE_TS, auto_train=False)
        removed = predictor.undo_last()
        assert isinstance(removed, HistoryEntry)
        assert removed.outcomes == ('GREEN',)
        predictor.observe('GREEN', ts=BASE_TS, auto_train=False)
        predictor.reset()
        assert len(predictor.history) == 0
        assert predictor.accuracy.total_predictions == 0

    def test_set_weights_from_dict(self):
        predictor = EnsemblePredictor(SINGLE)
        predictor.set_weights({'slot': 1, 'markov': 0, 'pattern': 0, 'streak': 0})
        assert predictor.weights.as_tuple() == (1.0, 0.0, 0.0, 0.0)
        with pytest.raises(ValueError):
            predictor.set_weights({'slot': 0, 'markov': 0, 'pattern': 0, 'streak': 0})

    def test_status_is_plain_data(self):
        predictor = EnsemblePredictor(MULTI, seed=0)
        predictor.load_history(list(_history(SAMPLE_MULTI, MULTI)))
        status = predictor.get_model_status()
        assert status['rounds'] == len(SAMPLE_MULTI)
        assert status['classifier']['trained'] is False


class TestConfig:
    def test_rejects_bad_decay(self):
        with pytest.raises(ValueError):
            PredictorConfig(decay=1.0)

    def test_rejects_bad_streak_mode(self):
        with pytest.raises(ValueError):
            DEFAULT_CONFIG.replace(streak_mode='sideways')

    @pytest.mark.parametrize('field, value', [
        ('walk_forward_retrain_every', 0),
        ('retrain_interval', 0),
        ('streak_feature_cap', 0),
        ('min_training_samples', 0),
        ('epochs', -1),
        ('learning_rate', 0.0),
        ('l2', -0.01),
    ])
    def test_rejects_values_models_cannot_use(self, field, value):
        with pytest.raises(ValueError):
            PredictorConfig(**{field: value})

    def test_weights_normalized(self):
        w = EnsembleWeights(2, 1, 1, 0).normalized()
        assert sum(w.as_tuple()) == pytest.approx(1.0)
        assert w.slot == pytest.approx(0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            EnsembleWeights(-0.1, 0.5, 0.5, 0.1)


class TestAccuracyTracker:
    def test_round_and_slot_accuracy(self):
        tracker = AccuracyTracker(MULTI)
        assert tracker.record(('R', 'B', 'R', 'B', 'G'), ('R', 'B', 'R', 'B', 'G'))
        assert not tracker.record(('R', 'R', 'R', 'R', 'R'), ('R', 'B', 'R', 'B', 'R'))
        assert tracker.round_accuracy == pytest.approx(0.5)
        assert tracker.slot_accuracy == pytest.approx(8 / 10)

    def test_window_evicts_oldest(self):
        tracker = AccuracyTracker(SINGLE.replace(accuracy_window=3))
        for hit in (True, False, False, False):
            tracker.record(('RED',), ('RED',) if hit else ('BLACK',))
        assert list(tracker.recent) == [False, False, False]
        assert tracker.total_predictions == 4
        assert tracker.summary()['accuracy'] == 25.0
