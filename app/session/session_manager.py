"""
Session Manager - Persistent storage for the observed-round log, ensemble
weights, the trained classifier and the prediction log.

Every write goes to `<file>.tmp` first and is moved into place with
os.replace, so an interrupted write never leaves a half-written file.
Failures are reported and swallowed: the caller keeps its in-memory state.
"""

import os
import csv
import json
import pickle
import time
from datetime import datetime

import torch

import sys
sys.path.insert(0, '.')
from config import (
    DATA_DIR, HISTORY_FILENAME, WEIGHTS_FILENAME, CLASSIFIER_FILENAME,
    PREDICTION_LOG_FILENAME, DEFAULT_CONFIG, EnsembleWeights,
)
from app.session.history import History
from app.ml.softmax_classifier import ClassifierModel

HISTORY_VERSION = 1


class HistoryStore:
    def __init__(self, base_dir=DATA_DIR):
        self.base_dir = base_dir
        self.history_path = os.path.join(base_dir, HISTORY_FILENAME)
        self.weights_path = os.path.join(base_dir, WEIGHTS_FILENAME)
        self.classifier_path = os.path.join(base_dir, CLASSIFIER_FILENAME)
        self.prediction_log_path = os.path.join(base_dir, PREDICTION_LOG_FILENAME)

    def _write_json(self, path, payload):
        os.makedirs(self.base_dir, exist_ok=True)
        tmp_path = path + '.tmp'
        with open(tmp_path, 'w') as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, path)

    def _read_json(self, path):
        with open(path, 'r') as f:
            return json.load(f)

    # ─── History ────────────────────────────────────────────────────────

    def save_history(self, history):
        try:
            self._write_json(self.history_path, {
                'version': HISTORY_VERSION,
                'saved_at': datetime.now().isoformat(),
                'alphabet': list(history.config.alphabet),
                'round_width': history.config.round_width,
                'rounds': history.to_records(),
            })
            return True
        except (OSError, TypeError, ValueError) as e:
            print(f"[Store] Failed to save history: {e}")
            return False

    def load_history(self, config=DEFAULT_CONFIG):
        """History from disk, or None when missing / unreadable / for another alphabet."""
        if not os.path.exists(self.history_path):
            print("[Store] No saved history found")
            return None
        try:
            data = self._read_json(self.history_path)
            if data.get('version') != HISTORY_VERSION:
                print(f"[Store] Unknown history version {data.get('version')}, ignoring")
                return None
            if (tuple(data['alphabet']) != config.alphabet
                    or data['round_width'] != config.round_width):
                print("[Store] Saved history uses a different alphabet/round width, ignoring")
                return None
            return History.from_records(data['rounds'], config)
        except (OSError, ValueError, KeyError, TypeError) as e:
            # InvalidObservationError is a ValueError
            print(f"[Store] Failed to load history: {e}")
            return None

    # ─── Ensemble Weights ───────────────────────────────────────────────

    def save_weights(self, weights):
        try:
            self._write_json(self.weights_path, weights.as_dict())
            return True
        except (OSError, TypeError, ValueError) as e:
            print(f"[Store] Failed to save weights: {e}")
            return False

    def load_weights(self):
        if not os.path.exists(self.weights_path):
            return None
        try:
            return EnsembleWeights.from_dict(self._read_json(self.weights_path))
        except (OSError, ValueError, KeyError, TypeError) as e:
            print(f"[Store] Failed to load weights: {e}")
            return None

    # ─── Classifier ─────────────────────────────────────────────────────

    def save_classifier(self, model):
        try:
            os.makedirs(self.base_dir, exist_ok=True)
            tmp_path = self.classifier_path + '.tmp'
            torch.save(model.to_state(), tmp_path)
            os.replace(tmp_path, self.classifier_path)
            print(f"[Store] Classifier saved to {self.classifier_path}")
            return True
        except (OSError, RuntimeError, pickle.PicklingError) as e:
            print(f"[Store] Failed to save classifier: {e}")
            return False

    def load_classifier(self):
        if not os.path.exists(self.classifier_path):
            return None
        try:
            state = torch.load(self.classifier_path, map_location='cpu', weights_only=True)
            return ClassifierModel.from_state(state)
        except (OSError, EOFError, RuntimeError, ValueError, KeyError, TypeError,
                pickle.UnpicklingError) as e:
            print(f"[Store] Could not load classifier: {e}")
            return None

    # ─── Prediction Log ─────────────────────────────────────────────────

    def append_prediction_log(self, observed, previous_picks, distribution, correct,
                              ts=None, alphabet=DEFAULT_CONFIG.alphabet):
        """One CSV row per observed round; header written with the first row."""
        ts = time.time() if ts is None else ts
        new_file = not os.path.exists(self.prediction_log_path)
        distribution = distribution or {}
        row = [
            datetime.fromtimestamp(ts).isoformat(timespec='seconds'),
            ' '.join(observed),
            ' '.join(previous_picks) if previous_picks else '',
        ]
        row.extend(f"{distribution.get(o, 0.0):.6f}" if distribution else '' for o in alphabet)
        row.append('' if correct is None else int(bool(correct)))
        try:
            os.makedirs(self.base_dir, exist_ok=True)
            with open(self.prediction_log_path, 'a', newline='') as f:
                writer = csv.writer(f)
                if new_file:
                    writer.writerow(['ts', 'observed', 'predicted']
                                    + [f'p_{o}' for o in alphabet] + ['correct'])
                writer.writerow(row)
            return True
        except OSError as e:
            print(f"[Store] Failed to append prediction log: {e}")
            return False

    def clear(self):
        """Remove history / weights / classifier files (the prediction log stays)."""
        removed = 0
        for path in (self.history_path, self.weights_path, self.classifier_path):
            if os.path.exists(path):
                try:
                    os.remove(path)
                    removed += 1
                except OSError as e:
                    print(f"[Store] Could not remove {path}: {e}")
        print(f"[RESET] Removed {removed} stored files")
        return removed
