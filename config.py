"""
Configuration constants for the Red/Black/Green Ensemble Prediction System.
Single source of truth for all tunable parameters.

Module-level constants are the defaults. Models never read them directly:
they receive an immutable PredictorConfig built from them, and a separate
EnsembleWeights value that the tuner can swap out wholesale.
"""

import os
import dataclasses
from dataclasses import dataclass, asdict

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# ─── Outcome Alphabet ────────────────────────────────────────────────
OUTCOMES = ('RED', 'BLACK', 'GREEN')    # Single-stream game (one outcome per round)
ROUND_WIDTH = 1                         # K: outcomes observed together per round

MULTI_SLOT_OUTCOMES = ('R', 'B', 'G')   # R=Red, B=Black, G=Green (neither)
MULTI_SLOT_ROUND_WIDTH = 5              # Five parallel games per round

# ─── Decayed Frequency Estimation ────────────────────────────────────
DECAY = 0.985                   # Per-round recency decay (half-life ~46 rounds)
ALPHA = 0.5                     # Dirichlet prior pseudo-count per outcome
MIX_GLOBAL = 0.20               # Pull per-slot estimate toward the pooled global one
MULTI_SLOT_DECAY = 0.97
MULTI_SLOT_MIX_GLOBAL = 0.25

# ─── Ensemble Weights ────────────────────────────────────────────────
# slot / markov / pattern / streak — normalized to sum to 1 at use time.
ENSEMBLE_SLOT_WEIGHT = 0.50
ENSEMBLE_MARKOV_WEIGHT = 0.35
ENSEMBLE_PATTERN_WEIGHT = 0.12
ENSEMBLE_STREAK_WEIGHT = 0.03

# Share of the blended distribution handed to the softmax classifier.
# An untrained classifier contributes a uniform distribution.
CLASSIFIER_MIX = 0.25

# 'weighted': streak-corrected copy of the blend is a fourth weighted member
# 'post':     streak correction applied after blending the other sources
STREAK_MODE = 'weighted'

# ─── Streak Correction ───────────────────────────────────────────────
STREAK_WINDOW = 3               # Identical tail length that triggers the correction
STREAK_BONUS = 0.06             # Max probability mass moved off the repeated outcome

# ─── Feature Engineering ─────────────────────────────────────────────
FEATURE_SHORT_WINDOW = 10       # Rounds for short-window occurrence rates
FEATURE_LONG_WINDOW = 200       # Rounds for long-window occurrence rates
FEATURE_POSITION_PERIOD = 5     # One-hot of (index mod P)
FEATURE_STREAK_CAP = 9          # Streak length is capped then scaled to [0, 1]

# ─── Softmax Classifier (SGD) ────────────────────────────────────────
CLASSIFIER_LEARNING_RATE = 0.06
CLASSIFIER_EPOCHS = 120
CLASSIFIER_L2 = 0.0015          # Weight decay on W only (bias untouched)
CLASSIFIER_BATCH_MIN = 8
CLASSIFIER_BATCH_MAX = 64
CLASSIFIER_INIT_SCALE = 0.01    # Initial weights uniform in ±scale/2
MIN_TRAINING_SAMPLES = 20       # Below this the classifier stays uniform
RETRAIN_INTERVAL = 5            # Live retrain every N new rounds

# ─── Walk-Forward Evaluation ─────────────────────────────────────────
WALK_FORWARD_MIN_TRAIN = max(20, FEATURE_SHORT_WINDOW + 5)
WALK_FORWARD_RETRAIN_EVERY = 10     # Classifier refit cadence inside the backtest
WALK_FORWARD_EPOCHS = 60
WALK_FORWARD_LEARNING_RATE = 0.08
WALK_FORWARD_L2 = 0.002
TUNE_STEP = 0.1                     # Grid resolution over the weight simplex
TUNE_MIN_ROUNDS = 3

# ─── Accuracy Tracking / History ─────────────────────────────────────
ACCURACY_WINDOW = 20            # Sliding window of recent correctness flags
MAX_HISTORY = 5000              # FIFO cap on retained rounds
DUPLICATE_WINDOW_SECONDS = 2.0  # Same outcome this soon = same round still displayed
TIE_TOLERANCE = 1e-9            # Probabilities this close count as tied
COLLAPSE_WARNING = 0.92         # Warn when one outcome exceeds this probability

# ─── File Paths ───────────────────────────────────────────────────────
DATA_DIR = os.path.join(BASE_DIR, 'data')
HISTORY_FILENAME = 'history.json'
WEIGHTS_FILENAME = 'weights.json'
CLASSIFIER_FILENAME = 'classifier.pth'
PREDICTION_LOG_FILENAME = 'predictions_log.csv'

# ─── Server Settings ─────────────────────────────────────────────────
HOST = '0.0.0.0'
PORT = 5050
DEBUG = False
SECRET_KEY = 'redblack-ensemble-predictor'
SOCKETIO_ASYNC_MODE = 'eventlet'

STREAK_MODES = ('weighted', 'post')


@dataclass(frozen=True)
class PredictorConfig:
    """Immutable hyperparameter bundle passed to every model."""

    alphabet: tuple = OUTCOMES
    round_width: int = ROUND_WIDTH
    decay: float = DECAY
    alpha: float = ALPHA
    mix_global: float = MIX_GLOBAL
    classifier_mix: float = CLASSIFIER_MIX
    streak_mode: str = STREAK_MODE
    streak_window: int = STREAK_WINDOW
    streak_bonus: float = STREAK_BONUS
    short_window: int = FEATURE_SHORT_WINDOW
    long_window: int = FEATURE_LONG_WINDOW
    position_period: int = FEATURE_POSITION_PERIOD
    streak_feature_cap: int = FEATURE_STREAK_CAP
    learning_rate: float = CLASSIFIER_LEARNING_RATE
    epochs: int = CLASSIFIER_EPOCHS
    l2: float = CLASSIFIER_L2
    batch_min: int = CLASSIFIER_BATCH_MIN
    batch_max: int = CLASSIFIER_BATCH_MAX
    init_scale: float = CLASSIFIER_INIT_SCALE
    min_training_samples: int = MIN_TRAINING_SAMPLES
    retrain_interval: int = RETRAIN_INTERVAL
    walk_forward_min_train: int = WALK_FORWARD_MIN_TRAIN
    walk_forward_retrain_every: int = WALK_FORWARD_RETRAIN_EVERY
    walk_forward_epochs: int = WALK_FORWARD_EPOCHS
    walk_forward_learning_rate: float = WALK_FORWARD_LEARNING_RATE
    walk_forward_l2: float = WALK_FORWARD_L2
    accuracy_window: int = ACCURACY_WINDOW
    max_history: int = MAX_HISTORY
    duplicate_window_seconds: float = DUPLICATE_WINDOW_SECONDS
    tie_tolerance: float = TIE_TOLERANCE

    def __post_init__(self):
        object.__setattr__(self, 'alphabet', tuple(self.alphabet))
        if len(self.alphabet) < 2 or len(set(self.alphabet)) != len(self.alphabet):
            raise ValueError(f"alphabet needs at least 2 unique outcomes, got {self.alphabet}")
        if self.round_width < 1:
            raise ValueError(f"round_width must be >= 1, got {self.round_width}")
        if not 0.0 < self.decay < 1.0:
            raise ValueError(f"decay must be in (0, 1), got {self.decay}")
        if self.alpha <= 0:
            raise ValueError(f"alpha must be > 0, got {self.alpha}")
        if not 0.0 <= self.mix_global <= 1.0:
            raise ValueError(f"mix_global must be in [0, 1], got {self.mix_global}")
        if not 0.0 <= self.classifier_mix <= 1.0:
            raise ValueError(f"classifier_mix must be in [0, 1], got {self.classifier_mix}")
        if self.streak_mode not in STREAK_MODES:
            raise ValueError(f"streak_mode must be one of {STREAK_MODES}, got {self.streak_mode!r}")
        if self.streak_window < 1 or self.streak_bonus < 0:
            raise ValueError("streak_window must be >= 1 and streak_bonus >= 0")
        if self.short_window < 1 or self.long_window < 1 or self.position_period < 1:
            raise ValueError("feature windows and position period must be >= 1")
        if not 1 <= self.batch_min <= self.batch_max:
            raise ValueError(f"batch bounds must satisfy 1 <= min <= max, "
                             f"got {self.batch_min}..{self.batch_max}")
        if self.streak_feature_cap < 1:
            raise ValueError(f"streak_feature_cap must be >= 1, got {self.streak_feature_cap}")
        if self.learning_rate <= 0 or self.walk_forward_learning_rate <= 0:
            raise ValueError("learning rates must be > 0")
        if self.epochs < 0 or self.walk_forward_epochs < 0:
            raise ValueError("epoch counts must be >= 0")
        if self.l2 < 0 or self.walk_forward_l2 < 0:
            raise ValueError("l2 weights must be >= 0")
        if self.min_training_samples < 1:
            raise ValueError(f"min_training_samples must be >= 1, got {self.min_training_samples}")
        if self.retrain_interval < 1 or self.walk_forward_retrain_every < 1:
            raise ValueError("retrain_interval and walk_forward_retrain_every must be >= 1")
        if self.accuracy_window < 1 or self.max_history < 1:
            raise ValueError("accuracy_window and max_history must be >= 1")

    @property
    def num_outcomes(self):
        return len(self.alphabet)

    def index_of(self, outcome):
        return self.alphabet.index(outcome)

    def replace(self, **changes):
        return dataclasses.replace(self, **changes)

    def as_dict(self):
        data = asdict(self)
        data['alphabet'] = list(self.alphabet)
        return data

    @classmethod
    def single_stream(cls, **overrides):
        """RED/BLACK/GREEN, one outcome per round."""
        return cls(**overrides)

    @classmethod
    def multi_slot(cls, **overrides):
        """R/B/G, five parallel games per round."""
        settings = {
            'alphabet': MULTI_SLOT_OUTCOMES,
            'round_width': MULTI_SLOT_ROUND_WIDTH,
            'decay': MULTI_SLOT_DECAY,
            'mix_global': MULTI_SLOT_MIX_GLOBAL,
        }
        settings.update(overrides)
        return cls(**settings)


WEIGHT_NAMES = ('slot', 'markov', 'pattern', 'streak')


@dataclass(frozen=True)
class EnsembleWeights:
    """Contribution sizes of the four ensemble members."""

    slot: float = ENSEMBLE_SLOT_WEIGHT
    markov: float = ENSEMBLE_MARKOV_WEIGHT
    pattern: float = ENSEMBLE_PATTERN_WEIGHT
    streak: float = ENSEMBLE_STREAK_WEIGHT

    def __post_init__(self):
        values = self.as_tuple()
        if any(v < 0 for v in values):
            raise ValueError(f"ensemble weights must be non-negative, got {values}")
        if sum(values) <= 0:
            raise ValueError("at least one ensemble weight must be positive")

    def as_tuple(self):
        return (self.slot, self.markov, self.pattern, self.streak)

    def normalized(self):
        total = sum(self.as_tuple())
        return EnsembleWeights(*(v / total for v in self.as_tuple()))

    def as_dict(self):
        return {name: float(v) for name, v in zip(WEIGHT_NAMES, self.as_tuple())}

    @classmethod
    def from_dict(cls, data):
        return cls(**{name: float(data[name]) for name in WEIGHT_NAMES})


DEFAULT_CONFIG = PredictorConfig()
